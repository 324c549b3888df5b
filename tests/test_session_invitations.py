from datetime import timedelta

from edubridge.models.tutoring_session import ResponseStatus, SessionBooking, SessionStatus
from edubridge.models.user import User
from edubridge.services import email as email_service
from edubridge.services.invitations import OPTED_OUT_REASON

TUTOR = {"Authorization": "Bearer mock-tutor-token"}
STUDENT = {"Authorization": "Bearer mock-student-token"}


def _invite(client, session_id, *students):
    return client.post(
        f"/sessions/{session_id}/invite",
        json={"studentIds": [s.id for s in students]},
        headers=TUTOR,
    )


def _booking(db_session, session_id, student_id) -> SessionBooking:
    db_session.expire_all()
    return (
        db_session.query(SessionBooking)
        .filter_by(session_id=session_id, student_id=student_id)
        .one()
    )


def test_invite_creates_pending_bookings_and_emails(
    client, db_session, published_course, enroll, make_student, scheduled_session, sent_emails
):
    ana, ben = make_student("Ana"), make_student("Ben")
    enroll(published_course, ana)
    enroll(published_course, ben)

    resp = client.post(
        f"/sessions/{scheduled_session.id}/invite",
        json={"studentIds": [ana.id, ben.id, ana.id]},
        headers=TUTOR,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["sent"] == 2
    assert body["data"]["skipped"] == 0

    assert len(sent_emails) == 2
    email = sent_emails[0]
    assert email["subject"] == "Session Invitation: Algebra Review"
    assert email["attachments"][0]["filename"] == "session.ics"
    assert "BEGIN:VCALENDAR" in email["attachments"][0]["data"]
    assert "respond?booking=" in email["html"]

    booking = _booking(db_session, scheduled_session.id, ana.id)
    assert booking.response_status == ResponseStatus.PENDING
    assert booking.sent_at is not None
    assert booking.email_message_id.startswith("msg-")
    assert booking.failure_reason is None
    assert email["custom_args"]["booking_id"] in {
        b.id for b in db_session.query(SessionBooking).all()
    }


def test_reinviting_skips_existing_bookings(
    client, db_session, published_course, enroll, make_student, scheduled_session, sent_emails
):
    ana = make_student("Ana")
    enroll(published_course, ana)
    assert _invite(client, scheduled_session.id, ana).status_code == 200

    again = _invite(client, scheduled_session.id, ana)
    assert again.status_code == 200
    assert again.json()["data"]["sent"] == 0
    assert again.json()["data"]["skipped"] == 1
    assert db_session.query(SessionBooking).count() == 1
    assert len(sent_emails) == 1


def test_invite_rejects_non_students(client, tutor, scheduled_session):
    resp = client.post(
        f"/sessions/{scheduled_session.id}/invite",
        json={"studentIds": [tutor.id]},
        headers=TUTOR,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["invalid_student_ids"] == [tutor.id]


def test_invite_requires_enrollment_in_tutor_course(client, db_session, make_student, scheduled_session):
    stranger = make_student("Stranger")
    resp = _invite(client, scheduled_session.id, stranger)
    assert resp.status_code == 400
    assert resp.json()["unenrolled_student_ids"] == [stranger.id]
    assert db_session.query(SessionBooking).count() == 0


def test_invite_requires_session_owner(client, student, scheduled_session):
    resp = client.post(
        f"/sessions/{scheduled_session.id}/invite",
        json={"studentIds": [student.id]},
        headers=STUDENT,
    )
    assert resp.status_code == 403


def test_opted_out_student_gets_booking_without_email(
    client, db_session, published_course, enroll, make_student, scheduled_session, sent_emails
):
    quiet = make_student("Quiet", session_invitation_emails=False)
    enroll(published_course, quiet)

    resp = _invite(client, scheduled_session.id, quiet)
    assert resp.status_code == 200
    assert resp.json()["data"]["results"][0]["status"] == "email_opted_out"
    assert sent_emails == []

    booking = _booking(db_session, scheduled_session.id, quiet.id)
    assert booking.response_status == ResponseStatus.PENDING
    assert booking.failure_reason == OPTED_OUT_REASON
    assert booking.sent_at is None


def test_all_emails_failing_keeps_bookings_and_reports_502(
    client, db_session, published_course, enroll, make_student, scheduled_session, failing_email
):
    ana = make_student("Ana")
    enroll(published_course, ana)

    resp = _invite(client, scheduled_session.id, ana)
    assert resp.status_code == 502
    body = resp.json()
    assert body["success"] is False
    assert body["data"]["failed"] == 1

    booking = _booking(db_session, scheduled_session.id, ana.id)
    assert booking.sent_at is not None
    assert booking.failure_reason == "Provider returned status 503"


def test_confirm_is_idempotent_and_terminal(client, db_session, published_course, enroll, student, scheduled_session):
    enroll(published_course, student)
    _invite(client, scheduled_session.id, student)

    first = client.post(f"/sessions/{scheduled_session.id}/confirm", headers=STUDENT)
    assert first.status_code == 200, first.text
    assert first.json()["data"]["response_status"] == "CONFIRMED"
    assert first.json()["data"]["changed"] is True

    repeat = client.post(f"/sessions/{scheduled_session.id}/confirm", headers=STUDENT)
    assert repeat.status_code == 200
    assert repeat.json()["data"]["changed"] is False

    decline = client.post(f"/sessions/{scheduled_session.id}/decline", headers=STUDENT)
    assert decline.status_code == 409
    assert _booking(db_session, scheduled_session.id, student.id).response_status == ResponseStatus.CONFIRMED


def test_decline_records_reason_and_blocks_reschedule(client, published_course, enroll, student, scheduled_session):
    enroll(published_course, student)
    _invite(client, scheduled_session.id, student)

    resp = client.post(
        f"/sessions/{scheduled_session.id}/decline",
        json={"reason": "Exam that evening"},
        headers=STUDENT,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["response_status"] == "DECLINED"
    assert resp.json()["data"]["decline_reason"] == "Exam that evening"

    resched = client.post(
        f"/sessions/{scheduled_session.id}/reschedule",
        json={"reason": "Could we do Friday instead?"},
        headers=STUDENT,
    )
    assert resched.status_code == 409


def test_reschedule_requires_reason_and_stays_pending(client, db_session, published_course, enroll, student, scheduled_session):
    enroll(published_course, student)
    _invite(client, scheduled_session.id, student)

    missing = client.post(
        f"/sessions/{scheduled_session.id}/reschedule",
        json={"preferredTimes": ["2030-01-07T16:00:00Z"]},
        headers=STUDENT,
    )
    assert missing.status_code == 400

    resp = client.post(
        f"/sessions/{scheduled_session.id}/reschedule",
        json={"reason": "Soccer practice runs late", "preferredTimes": ["2030-01-07T16:00:00Z"]},
        headers=STUDENT,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["response_status"] == "PENDING"
    assert data["reschedule_requested"] is True
    assert data["reschedule_reason"] == "Soccer practice runs late"
    assert data["proposed_times"] == ["2030-01-07T16:00:00+00:00"]

    summary = client.get(f"/sessions/{scheduled_session.id}/summary", headers=TUTOR).json()["data"]
    assert summary["pending"] == 1
    assert summary["reschedule_requested"] == 1


def test_student_cannot_answer_someone_elses_booking(
    client, db_session, published_course, enroll, student, make_student, scheduled_session
):
    other = make_student("Other")
    enroll(published_course, other)
    _invite(client, scheduled_session.id, other)
    booking = _booking(db_session, scheduled_session.id, other.id)

    resp = client.post(f"/sessions/bookings/{booking.id}/confirm", headers=STUDENT)
    assert resp.status_code == 403
    assert _booking(db_session, scheduled_session.id, other.id).response_status == ResponseStatus.PENDING


def test_response_summary_counts(
    client, published_course, enroll, make_student, scheduled_session, auth_headers_factory
):
    yes, no, maybe = make_student("Yes"), make_student("No"), make_student("Maybe")
    for s in (yes, no, maybe):
        enroll(published_course, s)
    _invite(client, scheduled_session.id, yes, no, maybe)

    assert client.post(f"/sessions/{scheduled_session.id}/confirm", headers=auth_headers_factory(yes)).status_code == 200
    assert client.post(f"/sessions/{scheduled_session.id}/decline", headers=auth_headers_factory(no)).status_code == 200

    resp = client.get(f"/sessions/{scheduled_session.id}/summary", headers=TUTOR)
    assert resp.status_code == 200
    summary = resp.json()["data"]
    assert summary["confirmed"] == 1
    assert summary["declined"] == 1
    assert summary["pending"] == 1
    assert summary["total"] == 3


def test_partial_email_failure_still_succeeds(
    client, db_session, monkeypatch, published_course, enroll, make_student, scheduled_session
):
    ana, ben = make_student("Ana"), make_student("Ben")
    enroll(published_course, ana)
    enroll(published_course, ben)

    def flaky_send(to_email, *args, **kwargs):
        if to_email == ben.email:
            return email_service.EmailSendResult(False, error="Mailbox full")
        return email_service.EmailSendResult(True, message_id="msg-ok")

    monkeypatch.setattr(email_service, "send_email", flaky_send)

    resp = _invite(client, scheduled_session.id, ana, ben)
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["sent"] == 1
    assert data["failed"] == 1
    assert {r["student_id"]: r["status"] for r in data["results"]} == {ana.id: "sent", ben.id: "failed"}

    assert _booking(db_session, scheduled_session.id, ana.id).failure_reason is None
    assert _booking(db_session, scheduled_session.id, ben.id).failure_reason == "Mailbox full"


def test_resend_keeps_response_and_history(client, db_session, published_course, enroll, student, scheduled_session, sent_emails):
    enroll(published_course, student)
    _invite(client, scheduled_session.id, student)
    client.post(f"/sessions/{scheduled_session.id}/confirm", headers=STUDENT)

    booking = _booking(db_session, scheduled_session.id, student.id)
    first_sent = booking.sent_at - timedelta(hours=1)
    delivered = first_sent + timedelta(minutes=1)
    opened = first_sent + timedelta(minutes=5)
    booking.sent_at = first_sent
    booking.delivered_at = delivered
    booking.opened_at = opened
    db_session.commit()
    responded = booking.responded_at
    assert responded is not None

    resp = client.post(
        f"/sessions/{scheduled_session.id}/resend",
        json={"studentId": student.id},
        headers=TUTOR,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["response_status"] == "CONFIRMED"
    assert data["resend_count"] == 1
    assert len(sent_emails) == 2

    after = _booking(db_session, scheduled_session.id, student.id)
    assert after.sent_at > first_sent
    assert after.response_status == ResponseStatus.CONFIRMED
    assert after.responded_at == responded
    assert after.delivered_at == delivered
    assert after.opened_at == opened


def test_resend_for_uninvited_student_is_404(client, make_student, scheduled_session):
    nobody = make_student("Nobody")
    resp = client.post(
        f"/sessions/{scheduled_session.id}/resend",
        json={"studentId": nobody.id},
        headers=TUTOR,
    )
    assert resp.status_code == 404


def test_responses_closed_after_cancellation(client, published_course, enroll, student, scheduled_session, sent_emails):
    enroll(published_course, student)
    _invite(client, scheduled_session.id, student)

    cancel = client.patch(
        f"/sessions/{scheduled_session.id}/status",
        json={"status": "CANCELLED"},
        headers=TUTOR,
    )
    assert cancel.status_code == 200
    assert cancel.json()["data"]["cancellation_emails_sent"] == 1
    assert sent_emails[-1]["subject"] == "Session Cancelled: Algebra Review"

    resp = client.post(f"/sessions/{scheduled_session.id}/confirm", headers=STUDENT)
    assert resp.status_code == 409


def test_completing_session_expires_pending_and_rewards_attendance(
    client, db_session, published_course, enroll, student, make_student, scheduled_session, auth_headers_factory
):
    silent = make_student("Silent")
    enroll(published_course, student)
    enroll(published_course, silent)
    _invite(client, scheduled_session.id, student, silent)
    client.post(f"/sessions/{scheduled_session.id}/confirm", headers=STUDENT)

    resp = client.patch(
        f"/sessions/{scheduled_session.id}/status",
        json={"status": "COMPLETED"},
        headers=TUTOR,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["marked_no_response"] == 1

    assert _booking(db_session, scheduled_session.id, silent.id).response_status == ResponseStatus.NO_RESPONSE
    attendee = db_session.query(User).filter_by(id=student.id).one()
    assert attendee.total_points == 15

    back = client.patch(
        f"/sessions/{scheduled_session.id}/status",
        json={"status": "SCHEDULED"},
        headers=TUTOR,
    )
    assert back.status_code == 409


def test_student_invitation_listing(client, published_course, enroll, student, scheduled_session):
    enroll(published_course, student)
    _invite(client, scheduled_session.id, student)

    resp = client.get("/sessions/invitations", headers=STUDENT)
    assert resp.status_code == 200
    items = resp.json()["data"]
    assert len(items) == 1
    assert items[0]["session"]["subject"] == "Algebra Review"
    assert items[0]["session"]["tutor"]["name"] == "Tutor One"


def test_self_booking_and_capacity(client, db_session, student, scheduled_session):
    scheduled_session.max_participants = 1
    db_session.commit()

    resp = client.post(f"/sessions/{scheduled_session.id}/book", headers=STUDENT)
    assert resp.status_code == 201, resp.text
    assert resp.json()["data"]["response_status"] == "CONFIRMED"
    assert resp.json()["data"]["invited"] is False

    again = client.post(f"/sessions/{scheduled_session.id}/book", headers=STUDENT)
    assert again.status_code == 400

    listing = client.get("/sessions").json()["data"]["sessions"]
    assert listing[0]["is_full"] is True
    assert listing[0]["available_slots"] == 0


def test_reminders_only_target_pending_students(
    client, published_course, enroll, student, make_student, scheduled_session, sent_emails
):
    waiting = make_student("Waiting")
    enroll(published_course, student)
    enroll(published_course, waiting)
    _invite(client, scheduled_session.id, student, waiting)
    client.post(f"/sessions/{scheduled_session.id}/confirm", headers=STUDENT)
    sent_emails.clear()

    resp = client.post(
        f"/sessions/{scheduled_session.id}/remind",
        json={"timeframe": "2 hours"},
        headers=TUTOR,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["sent"] == 1
    assert [e["to"] for e in sent_emails] == [waiting.email]
    assert sent_emails[0]["subject"] == "Reminder: Algebra Review starts in 2 hours"

    bad = client.post(
        f"/sessions/{scheduled_session.id}/remind",
        json={"timeframe": "soon"},
        headers=TUTOR,
    )
    assert bad.status_code == 400


def test_failed_reminder_leaves_invitation_delivery_alone(
    client, db_session, monkeypatch, published_course, enroll, student, scheduled_session
):
    enroll(published_course, student)
    assert _invite(client, scheduled_session.id, student).status_code == 200

    def rejected(*args, **kwargs):
        return email_service.EmailSendResult(False, error="Provider returned status 503")

    monkeypatch.setattr(email_service, "send_email", rejected)
    resp = client.post(
        f"/sessions/{scheduled_session.id}/remind",
        json={"timeframe": "1 hour"},
        headers=TUTOR,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["failed"] == 1

    row = client.get(f"/sessions/{scheduled_session.id}/email-status", headers=TUTOR).json()["data"]["bookings"][0]
    assert row["indicator"] == "sent"
    assert row["failure_reason"] is None
    assert row["reminder_failure_reason"] == "Provider returned status 503"

    def accepted(*args, **kwargs):
        return email_service.EmailSendResult(True, message_id="msg-reminder")

    monkeypatch.setattr(email_service, "send_email", accepted)
    client.post(f"/sessions/{scheduled_session.id}/remind", json={"timeframe": "1 hour"}, headers=TUTOR)

    booking = _booking(db_session, scheduled_session.id, student.id)
    assert booking.reminder_failure_reason is None
    assert booking.reminder_sent_at is not None
    assert booking.email_message_id == "msg-1"
