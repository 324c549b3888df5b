import pytest

from edubridge.models.notification import Notification, NotificationType
from edubridge.services.notifications import notify

STUDENT = {"Authorization": "Bearer mock-student-token"}
TUTOR = {"Authorization": "Bearer mock-tutor-token"}


@pytest.fixture
def inbox(db_session, student, tutor):
    for i in range(3):
        notify(db_session, student.id, NotificationType.ENROLLMENT, f"Note {i}", "Welcome aboard")
    notify(db_session, tutor.id, NotificationType.ACCOUNT, "For the tutor", "Private")
    db_session.commit()
    return db_session.query(Notification).filter_by(user_id=student.id).all()


def test_list_only_own_notifications(client, inbox):
    resp = client.get("/notifications", headers=STUDENT)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert len(data["notifications"]) == 3
    assert data["unread_count"] == 3
    assert {n["title"] for n in data["notifications"]} == {"Note 0", "Note 1", "Note 2"}


def test_mark_one_read(client, inbox):
    target = inbox[0]
    resp = client.post(f"/notifications/{target.id}/read", headers=STUDENT)
    assert resp.status_code == 200
    assert resp.json()["data"]["is_read"] is True

    unread = client.get("/notifications", params={"unreadOnly": True}, headers=STUDENT).json()["data"]
    assert len(unread["notifications"]) == 2
    assert unread["unread_count"] == 2


def test_mark_all_read(client, inbox):
    resp = client.post("/notifications/read-all", headers=STUDENT)
    assert resp.json()["data"]["updated"] == 3
    assert client.get("/notifications", headers=STUDENT).json()["data"]["unread_count"] == 0
    assert client.get("/notifications", headers=TUTOR).json()["data"]["unread_count"] == 1


def test_other_users_notifications_are_not_found(client, db_session, inbox):
    tutor_note = db_session.query(Notification).filter_by(title="For the tutor").one()
    assert client.post(f"/notifications/{tutor_note.id}/read", headers=STUDENT).status_code == 404
    assert client.delete(f"/notifications/{tutor_note.id}", headers=STUDENT).status_code == 404


def test_delete_notification(client, db_session, inbox):
    resp = client.delete(f"/notifications/{inbox[0].id}", headers=STUDENT)
    assert resp.status_code == 200
    db_session.expire_all()
    assert db_session.query(Notification).filter_by(user_id="student-1").count() == 2


def test_requires_authentication(client):
    resp = client.get("/notifications")
    assert resp.status_code == 401
    assert resp.json()["success"] is False
