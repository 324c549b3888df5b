import csv
import io

from edubridge.models.audit_log import AuditActionType, AuditLog
from edubridge.models.course import CourseStatus
from edubridge.models.user import User, UserRole, UserStatus
from edubridge.routes import admin as admin_routes

ADMIN = {"Authorization": "Bearer mock-admin-token"}
STUDENT = {"Authorization": "Bearer mock-student-token"}
REASON = "Approved as a volunteer tutor"


def _audit_rows(db_session, action_type=None):
    db_session.expire_all()
    query = db_session.query(AuditLog)
    if action_type:
        query = query.filter_by(action_type=action_type)
    return query.all()


def test_admin_routes_require_admin(client, student):
    assert client.get("/admin/users", headers=STUDENT).status_code == 403
    assert client.get("/admin/users").status_code == 401


def test_list_users_filters(client, admin, student, tutor):
    resp = client.get("/admin/users", params={"role": "student"}, headers=ADMIN)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [u["id"] for u in data["users"]] == [student.id]
    assert data["pagination"]["total"] == 1

    found = client.get("/admin/users", params={"search": "tutor@"}, headers=ADMIN).json()["data"]
    assert [u["id"] for u in found["users"]] == [tutor.id]


def test_user_detail_counts(client, admin, published_course, enroll, student):
    enroll(published_course, student)
    data = client.get(f"/admin/users/{student.id}", headers=ADMIN).json()["data"]
    assert data["counts"]["enrollments"] == 1
    assert data["counts"]["courses"] == 0


def test_role_change_writes_audit_and_emails(client, db_session, admin, student, sent_emails):
    resp = client.put(
        f"/admin/users/{student.id}/role",
        json={"newRole": "tutor", "reason": REASON},
        headers={**ADMIN, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["user"]["role"] == "tutor"
    assert data["email_sent"] is True
    assert sent_emails[0]["to"] == "student@example.com"
    assert sent_emails[0]["subject"] == "Your EduBridge role has changed"

    rows = _audit_rows(db_session, AuditActionType.USER_ROLE_CHANGE)
    assert len(rows) == 1
    assert rows[0].previous_state == {"role": "student"}
    assert rows[0].new_state == {"role": "tutor"}
    assert rows[0].reason == REASON
    assert rows[0].ip_address == "203.0.113.7"

    history = client.get(f"/admin/users/{student.id}/role-history", headers=ADMIN).json()["data"]
    assert history[0]["admin_name"] == "Admin One"


def test_role_change_validation(client, db_session, admin, student):
    short = client.put(f"/admin/users/{student.id}/role", json={"newRole": "tutor", "reason": "ok"}, headers=ADMIN)
    assert short.status_code == 400

    same = client.put(f"/admin/users/{student.id}/role", json={"newRole": "student", "reason": REASON}, headers=ADMIN)
    assert same.status_code == 400

    own = client.put(f"/admin/users/{admin.id}/role", json={"newRole": "tutor", "reason": REASON}, headers=ADMIN)
    assert own.status_code == 403

    missing = client.put("/admin/users/nobody/role", json={"newRole": "tutor", "reason": REASON}, headers=ADMIN)
    assert missing.status_code == 404
    assert _audit_rows(db_session) == []


def test_role_change_survives_email_failure(client, db_session, admin, student, failing_email):
    resp = client.put(f"/admin/users/{student.id}/role", json={"newRole": "tutor", "reason": REASON}, headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["data"]["email_sent"] is False
    db_session.expire_all()
    assert db_session.get(User, student.id).role == UserRole.tutor


def test_suspension_needs_reason_and_blocks_login(client, admin, student):
    no_reason = client.put(f"/admin/users/{student.id}/status", json={"status": "suspended"}, headers=ADMIN)
    assert no_reason.status_code == 400

    resp = client.put(
        f"/admin/users/{student.id}/status",
        json={"status": "suspended", "reason": "Repeated spam in session chat"},
        headers=ADMIN,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["user"]["status"] == "suspended"
    assert client.get("/users/me", headers=STUDENT).status_code == 403

    restore = client.put(f"/admin/users/{student.id}/status", json={"status": "active"}, headers=ADMIN)
    assert restore.status_code == 200
    assert client.get("/users/me", headers=STUDENT).status_code == 200


def test_password_reset_sends_link(client, db_session, monkeypatch, admin, student, sent_emails):
    monkeypatch.setattr(
        admin_routes.firebase_auth,
        "generate_password_reset_link",
        lambda email: f"https://auth.example.com/reset?email={email}",
    )
    resp = client.post(f"/admin/users/{student.id}/reset-password", headers=ADMIN)
    assert resp.status_code == 200
    assert "https://auth.example.com/reset?email=student@example.com" in sent_emails[0]["plain"]
    assert len(_audit_rows(db_session, AuditActionType.USER_PASSWORD_RESET)) == 1


def test_password_reset_provider_failure(client, db_session, monkeypatch, admin, student):
    def broken(email):
        raise ValueError("identity provider unavailable")

    monkeypatch.setattr(admin_routes.firebase_auth, "generate_password_reset_link", broken)
    resp = client.post(f"/admin/users/{student.id}/reset-password", headers=ADMIN)
    assert resp.status_code == 502
    assert _audit_rows(db_session) == []


def test_soft_delete(client, db_session, admin, student):
    short = client.request("DELETE", f"/admin/users/{student.id}", json={"reason": "spam"}, headers=ADMIN)
    assert short.status_code == 400

    resp = client.request(
        "DELETE",
        f"/admin/users/{student.id}",
        json={"reason": "Account closed at the family's request"},
        headers=ADMIN,
    )
    assert resp.status_code == 200
    db_session.expire_all()
    user = db_session.get(User, student.id)
    assert user.status == UserStatus.banned
    assert user.email == f"deleted_{student.id}@edubridge.local"
    rows = _audit_rows(db_session, AuditActionType.USER_DELETE)
    assert rows[0].previous_state["email"] == "student@example.com"


def test_audit_log_listing_and_export(client, admin, student, tutor):
    client.put(f"/admin/users/{student.id}/role", json={"newRole": "tutor", "reason": REASON}, headers=ADMIN)
    client.put(
        f"/admin/users/{tutor.id}/status",
        json={"status": "suspended", "reason": "Missed three sessions in a row"},
        headers=ADMIN,
    )

    logs = client.get("/admin/audit-logs", params={"actionType": "USER_STATUS_CHANGE"}, headers=ADMIN).json()["data"]
    assert logs["pagination"]["total"] == 1
    assert logs["logs"][0]["target_resource_id"] == tutor.id

    assert client.get("/admin/audit-logs", params={"actionType": "NOPE"}, headers=ADMIN).status_code == 400

    export = client.get("/admin/audit-logs/export", headers=ADMIN)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=audit-logs-" in export.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(export.text)))
    assert rows[0][0] == "Timestamp"
    assert len(rows) == 3
    assert {r[3] for r in rows[1:]} == {"USER_ROLE_CHANGE", "USER_STATUS_CHANGE"}

    stats = client.get("/admin/audit-logs/stats", headers=ADMIN).json()["data"]
    assert stats["total_actions"] == 2
    assert stats["by_admin"][0]["count"] == 2


def test_course_moderation(client, db_session, admin, published_course):
    resp = client.post(
        f"/admin/courses/{published_course.id}/unpublish",
        json={"reason": "Contains copyrighted material"},
        headers=ADMIN,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "DRAFT"

    again = client.post(f"/admin/courses/{published_course.id}/unpublish", headers=ADMIN)
    assert again.status_code == 400

    republish = client.post(f"/admin/courses/{published_course.id}/publish", headers=ADMIN)
    assert republish.status_code == 200
    assert republish.json()["data"]["status"] == CourseStatus.PUBLISHED.value

    actions = [row.action_type for row in _audit_rows(db_session)]
    assert sorted(actions) == [AuditActionType.COURSE_PUBLISH, AuditActionType.COURSE_UNPUBLISH]


def test_analytics(client, admin, published_course, enroll, student, scheduled_session):
    enroll(published_course, student)
    data = client.get("/admin/analytics", headers=ADMIN).json()["data"]
    assert data["users"]["by_role"] == {"admin": 1, "tutor": 1, "student": 1}
    assert data["courses"]["by_status"] == {"PUBLISHED": 1}
    assert data["enrollments"]["active"] == 1
    assert data["sessions"]["upcoming"] == 1
