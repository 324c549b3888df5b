from datetime import datetime, timedelta

import pytest

from edubridge.models.tutoring_session import SessionBooking, TutoringSession
from edubridge.services.session_email import (
    SessionEmailEvent, build_calendar_invite, reminder_window, render_session_email,
)


@pytest.fixture
def session():
    start = datetime(2030, 5, 6, 15, 30)
    return TutoringSession(
        id="sess-1",
        tutor_id="tutor-1",
        subject="Chemistry, Part 2",
        scheduled_start=start,
        scheduled_end=start + timedelta(minutes=90),
    )


def _context(session):
    booking = SessionBooking(id="book-1", session_id=session.id, student_id="student-1")
    base = f"http://localhost:3000/sessions/{session.id}"
    return {
        "session": session,
        "booking": booking,
        "student_name": "Ana",
        "tutor_name": "Dr. Reyes",
        "duration_minutes": 90,
        "timeframe": "1 hour",
        "view_url": base,
        "confirm_url": f"{base}/respond?booking=book-1&action=confirm",
        "decline_url": f"{base}/respond?booking=book-1&action=decline",
        "reschedule_url": f"{base}/respond?booking=book-1&action=reschedule",
    }


def test_calendar_invite_fields(session):
    ics = build_calendar_invite(session, "Dr. Reyes")
    lines = ics.split("\r\n")
    assert lines[0] == "BEGIN:VCALENDAR"
    assert "DTSTART:20300506T153000Z" in lines
    assert "DTEND:20300506T170000Z" in lines
    assert "UID:sess-1@edubridge" in lines
    assert "SUMMARY:Chemistry\\, Part 2 Tutoring Session" in lines
    assert "TRIGGER:-PT1H" in lines
    assert ics.endswith("END:VCALENDAR\r\n")


def test_invitation_email_has_response_links(session):
    html, plain, subject = render_session_email(SessionEmailEvent.INVITATION, _context(session))
    assert subject == "Session Invitation: Chemistry, Part 2"
    assert "action=confirm" in html
    assert "action=decline" in html
    assert "action=reschedule" in html
    assert "Hi Ana," in plain
    assert "Duration: 90 minutes" in plain
    assert "Confirm: http://localhost:3000/sessions/sess-1/respond?booking=book-1&action=confirm" in plain


def test_reminder_subject_uses_timeframe(session):
    _, plain, subject = render_session_email(SessionEmailEvent.REMINDER, _context(session))
    assert subject == "Reminder: Chemistry, Part 2 starts in 1 hour"
    assert "Details: http://localhost:3000/sessions/sess-1" in plain


def test_cancellation_mentions_cancellation(session):
    _, plain, subject = render_session_email(SessionEmailEvent.CANCELLATION, _context(session))
    assert subject == "Session Cancelled: Chemistry, Part 2"
    assert "cancelled by the tutor" in plain


@pytest.mark.parametrize(
    "text, expected",
    [
        ("30 minutes", timedelta(minutes=30)),
        ("1 hour", timedelta(hours=1)),
        ("2 Days", timedelta(days=2)),
        ("soon", None),
        ("an hour", None),
        ("3 weeks", None),
    ],
)
def test_reminder_window(text, expected):
    assert reminder_window(text) == expected
