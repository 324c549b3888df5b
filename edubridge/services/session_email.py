from __future__ import annotations
import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Tuple

from edubridge.core.settings import settings
from edubridge.models.tutoring_session import TutoringSession, SessionBooking
from edubridge.models.user import User
from edubridge.services import email as email_service
from edubridge.utils.datetime import utc_now, naive_utc_now

logger = logging.getLogger("edubridge.session_email")


class SessionEmailEvent(str, Enum):
    INVITATION = "invitation"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"


SUBJECTS: Dict[SessionEmailEvent, str] = {
    SessionEmailEvent.INVITATION: "Session Invitation: {subject}",
    SessionEmailEvent.REMINDER: "Reminder: {subject} starts in {timeframe}",
    SessionEmailEvent.CANCELLATION: "Session Cancelled: {subject}",
}

TEMPLATE_MAP: Dict[SessionEmailEvent, str] = {
    SessionEmailEvent.INVITATION: "sessions/invitation.html",
    SessionEmailEvent.REMINDER: "sessions/reminder.html",
    SessionEmailEvent.CANCELLATION: "sessions/cancellation.html",
}

# Calendar attachments only make sense while the session is still happening
CALENDAR_EVENTS = {SessionEmailEvent.INVITATION, SessionEmailEvent.REMINDER}


def _ics_time(dt) -> str:
    return dt.strftime("%Y%m%dT%H%M%SZ")


def _ics_escape(value: str) -> str:
    return (value or "").replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,").replace("\n", "\\n")


def build_calendar_invite(session: TutoringSession, tutor_name: str) -> str:
    """iCalendar body for a session with a one hour reminder alarm."""
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//EduBridge//Tutoring Session//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:REQUEST",
        "BEGIN:VEVENT",
        f"UID:{session.id}@edubridge",
        f"DTSTAMP:{_ics_time(utc_now())}",
        f"DTSTART:{_ics_time(session.scheduled_start)}",
        f"DTEND:{_ics_time(session.scheduled_end)}",
        f"SUMMARY:{_ics_escape(session.subject + ' Tutoring Session')}",
        f"DESCRIPTION:{_ics_escape('Tutoring session with ' + tutor_name)}",
        f"URL:{settings.app_url}/sessions/{session.id}",
        "STATUS:CONFIRMED",
        "BEGIN:VALARM",
        "TRIGGER:-PT1H",
        "ACTION:DISPLAY",
        "DESCRIPTION:Session starts in 1 hour",
        "END:VALARM",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


def _links(session: TutoringSession, booking: SessionBooking) -> Dict[str, str]:
    base = f"{settings.app_url.rstrip('/')}/sessions/{session.id}"
    return {
        "view_url": base,
        "confirm_url": f"{base}/respond?booking={booking.id}&action=confirm",
        "decline_url": f"{base}/respond?booking={booking.id}&action=decline",
        "reschedule_url": f"{base}/respond?booking={booking.id}&action=reschedule",
    }


def render_session_email(event: SessionEmailEvent, context: Dict[str, Any]) -> Tuple[str, str, str]:
    """Render HTML & plain text plus subject for a session lifecycle event."""
    session: TutoringSession = context["session"]
    subject = SUBJECTS[event].format(subject=session.subject, timeframe=context.get("timeframe", ""))
    ctx = {**context, "event": event.value, "email_subject": subject}

    html = None
    try:
        html = email_service.render_template(TEMPLATE_MAP[event], ctx)
    except Exception as e:
        logger.error(f"[session_email] Failed to render template {TEMPLATE_MAP[event]}: {e}")

    start = session.scheduled_start.strftime("%A, %B %d, %Y at %H:%M UTC")
    plain_lines = [
        subject,
        "",
        f"Hi {context.get('student_name', 'there')},",
        "",
        f"Subject: {session.subject}",
        f"Tutor: {context.get('tutor_name')}",
        f"When: {start}",
        f"Duration: {context.get('duration_minutes')} minutes",
    ]
    if event == SessionEmailEvent.INVITATION:
        plain_lines += [
            "",
            f"Confirm: {context['confirm_url']}",
            f"Decline: {context['decline_url']}",
            f"Request another time: {context['reschedule_url']}",
        ]
    elif event == SessionEmailEvent.CANCELLATION:
        plain_lines += ["", "This session has been cancelled by the tutor."]
    else:
        plain_lines += ["", f"Details: {context['view_url']}"]
    plain = "\n".join(plain_lines)

    if not html:
        # Fallback minimal HTML
        html = "".join(f"<p>{line}</p>" for line in plain_lines if line)
    return html, plain, subject


def send_session_email(
    event: SessionEmailEvent,
    session: TutoringSession,
    booking: SessionBooking,
    student: User,
    tutor: User,
    timeframe: str | None = None,
) -> email_service.EmailSendResult:
    duration = int((session.scheduled_end - session.scheduled_start).total_seconds() // 60)
    context = {
        "session": session,
        "student_name": student.name,
        "tutor_name": tutor.name,
        "duration_minutes": duration,
        "timeframe": timeframe or "",
        **_links(session, booking),
    }
    html, plain, subject = render_session_email(event, context)

    attachments = None
    if event in CALENDAR_EVENTS:
        attachments = [{
            "data": build_calendar_invite(session, tutor.name),
            "filename": "session.ics",
            "mime_type": "text/calendar",
        }]

    start = utc_now()
    result = email_service.EmailSendResult(False, error="not attempted")
    try:
        result = email_service.send_email(
            student.email,
            subject,
            html,
            plain,
            attachments=attachments,
            custom_args={"booking_id": booking.id, "session_id": session.id, "event": event.value},
        )
        return result
    finally:
        duration_ms = int((utc_now() - start).total_seconds() * 1000)
        log_record = {
            "component": "session_email",
            "event": event.value,
            "booking_id": booking.id,
            "success": bool(result),
            "duration_ms": duration_ms,
        }
        logger.info(f"SESSION_EMAIL_METRIC {log_record}")


def record_delivery(booking: SessionBooking, result: email_service.EmailSendResult) -> None:
    """Copy a send attempt onto the booking's tracking fields."""
    booking.sent_at = naive_utc_now()
    if result.success:
        booking.email_message_id = result.message_id or booking.email_message_id
        booking.failure_reason = None
        # A bounce from an earlier send no longer applies
        booking.bounced_at = None
    else:
        booking.failure_reason = result.error or "Email send failed"


def reminder_window(timeframe: str) -> timedelta | None:
    """Parse '1 hour' / '30 minutes' / '1 day' into a timedelta; None when unparseable."""
    parts = (timeframe or "").strip().lower().split()
    if len(parts) != 2 or not parts[0].isdigit():
        return None
    amount = int(parts[0])
    unit = parts[1].rstrip("s")
    if unit == "minute":
        return timedelta(minutes=amount)
    if unit == "hour":
        return timedelta(hours=amount)
    if unit == "day":
        return timedelta(days=amount)
    return None
