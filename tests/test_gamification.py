from datetime import date, timedelta

import pytest

from edubridge.models.gamification import ActivityType, PointsTransaction
from edubridge.models.user import User, UserStatus
from edubridge.services import gamification
from edubridge.utils.datetime import naive_utc_now

STUDENT = {"Authorization": "Bearer mock-student-token"}
TODAY = date(2026, 3, 10)


def _learner(**fields) -> User:
    defaults = {"current_streak": 0, "longest_streak": 0, "streak_freezes_available": 2, "streak_freezes_used": 0}
    return User(**{**defaults, **fields})


def test_first_activity_starts_streak():
    user = _learner()
    assert gamification.update_streak(user, TODAY) == 1
    assert user.last_activity_date == TODAY
    assert user.longest_streak == 1


def test_same_day_activity_keeps_streak():
    user = _learner(current_streak=4, longest_streak=4, last_activity_date=TODAY)
    assert gamification.update_streak(user, TODAY) == 4


def test_consecutive_day_extends_streak():
    user = _learner(current_streak=4, longest_streak=6, last_activity_date=TODAY - timedelta(days=1))
    assert gamification.update_streak(user, TODAY) == 5
    assert user.longest_streak == 6


def test_missed_day_resets_streak():
    user = _learner(current_streak=9, longest_streak=9, last_activity_date=TODAY - timedelta(days=2))
    assert gamification.update_streak(user, TODAY) == 1
    assert user.longest_streak == 9


def test_freeze_bridges_a_single_missed_day():
    user = _learner(
        current_streak=3,
        longest_streak=3,
        last_activity_date=TODAY - timedelta(days=2),
        streak_freeze_date=TODAY - timedelta(days=1),
    )
    assert gamification.update_streak(user, TODAY) == 4


def test_streak_status():
    assert gamification.streak_status(_learner(), TODAY) == "broken"
    assert gamification.streak_status(_learner(current_streak=2, last_activity_date=TODAY), TODAY) == "active"
    yesterday = _learner(current_streak=2, last_activity_date=TODAY - timedelta(days=1))
    assert gamification.streak_status(yesterday, TODAY) == "at-risk"
    stale = _learner(current_streak=2, last_activity_date=TODAY - timedelta(days=3))
    assert gamification.streak_status(stale, TODAY) == "broken"


def test_freeze_consumes_allowance():
    user = _learner(streak_freezes_available=1)
    gamification.use_streak_freeze(user, TODAY)
    assert user.streak_freeze_date == TODAY
    assert user.streak_freezes_available == 0
    assert user.streak_freezes_used == 1

    with pytest.raises(ValueError):
        gamification.use_streak_freeze(user, TODAY + timedelta(days=1))


def test_freeze_twice_same_day_rejected():
    user = _learner()
    gamification.use_streak_freeze(user, TODAY)
    with pytest.raises(ValueError, match="already active"):
        gamification.use_streak_freeze(user, TODAY)


def test_century_club_awarded_once(db_session, student):
    gamification.award_points(db_session, student, 120, ActivityType.QUIZ_PASS)
    db_session.flush()
    awarded = gamification.check_and_award_badges(db_session, student)
    assert [b.name for b in awarded] == ["Century Club"]
    db_session.flush()
    assert gamification.check_and_award_badges(db_session, student) == []


def test_streak_freeze_endpoint(client, student):
    resp = client.post("/gamification/streak/freeze", headers=STUDENT)
    assert resp.status_code == 200
    assert resp.json()["data"]["freezes_available"] == 1

    again = client.post("/gamification/streak/freeze", headers=STUDENT)
    assert again.status_code == 400

    info = client.get("/gamification/streak", headers=STUDENT).json()["data"]
    assert info["freezes_used"] == 1
    assert info["status"] == "broken"


def test_badge_catalog_reports_progress(client, db_session, student):
    student.total_points = 40
    db_session.commit()
    resp = client.get("/gamification/badges/all", headers=STUDENT)
    assert resp.status_code == 200
    badges = {b["criteria_type"]: b for b in resp.json()["data"]}
    assert len(badges) == 5
    assert badges["CENTURY_CLUB"]["progress"] == 40
    assert badges["CENTURY_CLUB"]["target"] == 100
    assert badges["CENTURY_CLUB"]["earned"] is False
    assert client.get("/gamification/badges", headers=STUDENT).json()["data"] == []


def _give_points(db, user, amount, days_ago=0):
    db.add(PointsTransaction(
        user_id=user.id,
        points_amount=amount,
        activity_type=ActivityType.LESSON_COMPLETION,
        created_at=naive_utc_now() - timedelta(days=days_ago),
    ))
    db.commit()


def test_leaderboard_ranks_students(client, db_session, student, make_student):
    top = make_student("Top Learner")
    banned = make_student("Banned Learner", status=UserStatus.banned)
    _give_points(db_session, top, 50)
    _give_points(db_session, student, 20)
    _give_points(db_session, banned, 500)

    resp = client.get("/gamification/leaderboard", headers=STUDENT)
    assert resp.status_code == 200
    entries = resp.json()["data"]["entries"]
    assert [(e["name"], e["points"]) for e in entries] == [("Top Learner", 50), ("Student One", 20)]
    assert resp.json()["data"]["current_user_rank"] is None


def test_weekly_leaderboard_ignores_old_points(client, db_session, student, make_student):
    veteran = make_student("Veteran")
    _give_points(db_session, veteran, 300, days_ago=20)
    _give_points(db_session, student, 5)

    entries = client.get("/gamification/leaderboard", params={"period": "weekly"}, headers=STUDENT).json()["data"]["entries"]
    assert entries[0]["name"] == "Student One"
    assert entries[1] == {"rank": 2, "user_id": veteran.id, "name": "Veteran", "points": 0}


def test_leaderboard_reports_rank_outside_limit(client, db_session, student, make_student):
    for i in range(3):
        _give_points(db_session, make_student(f"Learner {i}"), 100 + i)

    data = client.get("/gamification/leaderboard", params={"limit": 2}, headers=STUDENT).json()["data"]
    assert len(data["entries"]) == 2
    assert data["current_user_rank"]["rank"] == 4


def test_course_leaderboard_needs_course(client, student):
    assert client.get("/gamification/leaderboard", params={"scope": "course"}, headers=STUDENT).status_code == 400
    resp = client.get(
        "/gamification/leaderboard",
        params={"scope": "course", "courseId": "missing"},
        headers=STUDENT,
    )
    assert resp.status_code == 404


def test_points_history_filters_by_activity(client, db_session, student):
    _give_points(db_session, student, 10)
    db_session.add(PointsTransaction(user_id=student.id, points_amount=15, activity_type=ActivityType.SESSION_ATTENDANCE))
    db_session.commit()

    resp = client.get("/gamification/points", params={"activityType": "SESSION_ATTENDANCE"}, headers=STUDENT)
    data = resp.json()["data"]
    assert data["total"] == 1
    assert data["transactions"][0]["points_amount"] == 15
