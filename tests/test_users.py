from edubridge.models.user import UserStatus

STUDENT = {"Authorization": "Bearer mock-student-token"}
TUTOR = {"Authorization": "Bearer mock-tutor-token"}


def test_mock_token_provisions_user(client):
    resp = client.get("/users/me", headers=STUDENT)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == "student-1"
    assert data["role"] == "student"
    assert data["session_invitation_emails"] is True


def test_unknown_mock_uid_is_unauthorized(client):
    resp = client.get("/users/me", headers={"Authorization": "Bearer mock-uid-nobody"})
    assert resp.status_code == 401


def test_suspended_user_is_rejected(client, db_session, student):
    student.status = UserStatus.suspended
    db_session.commit()
    resp = client.get("/users/me", headers=STUDENT)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Account is suspended"


def test_update_profile(client, student):
    resp = client.patch(
        "/users/me",
        json={"bio": "<b>Loves</b> math", "session_invitation_emails": False},
        headers=STUDENT,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["bio"] == "Loves math"
    assert data["session_invitation_emails"] is False
    assert data["name"] == "Student One"


def test_public_profile_hides_email(client, student, tutor):
    resp = client.get(f"/users/{tutor.id}", headers=STUDENT)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Tutor One"
    assert "email" not in data


def test_banned_profile_is_not_found(client, db_session, student, make_student):
    gone = make_student("Gone", status=UserStatus.banned)
    assert client.get(f"/users/{gone.id}", headers=STUDENT).status_code == 404
    assert client.get("/users/missing", headers=STUDENT).status_code == 404


def test_progress_dashboard(client, published_course, enroll, student):
    enroll(published_course, student)
    client.post(f"/lessons/{published_course.lessons[0].id}/complete", headers=STUDENT)

    resp = client.get("/progress/me", headers=STUDENT)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totals"]["total_points"] == 10
    assert data["totals"]["lessons_completed"] == 1
    assert data["totals"]["courses_enrolled"] == 1
    course = data["courses"][0]
    assert course["course_title"] == "Algebra Foundations"
    assert course["lessons_completed"] == 1
    assert course["lessons_total"] == 2
    assert course["progress_percentage"] == 50.0


def test_progress_is_student_only(client, tutor):
    assert client.get("/progress/me", headers=TUTOR).status_code == 403


def test_tutor_dashboard(client, published_course, enroll, student, scheduled_session):
    enroll(published_course, student)

    stats = client.get("/tutor/dashboard/stats", headers=TUTOR).json()["data"]
    assert stats == {
        "total_active_students": 1,
        "published_courses": 1,
        "total_courses": 1,
        "upcoming_sessions": 1,
    }

    recent = client.get("/tutor/dashboard/enrollments/recent", headers=TUTOR).json()["data"]
    assert recent[0]["student"]["name"] == "Student One"

    courses = client.get("/tutor/courses", headers=TUTOR).json()["data"]
    assert courses[0]["lesson_count"] == 2


def test_tutor_routes_reject_students(client, student):
    assert client.get("/tutor/dashboard/stats", headers=STUDENT).status_code == 403
