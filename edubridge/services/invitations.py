"""Tutoring session invitations and the per-student response workflow.

Booking state machine::

    PENDING -> CONFIRMED                  (terminal)
    PENDING -> DECLINED                   (terminal)
    PENDING -> PENDING + proposal         (reschedule request, awaits the tutor)
    PENDING -> NO_RESPONSE                (session completed without an answer)

Repeating the response a booking already holds is a no-op; any other move
out of a terminal state is a conflict.
"""
from __future__ import annotations
import logging
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from edubridge.core.settings import settings
from edubridge.exceptions import (
    ConflictException, ExternalServiceException, ForbiddenException,
    NotFoundException, ValidationException,
)
from edubridge.models.course import Course
from edubridge.models.enrollment import Enrollment, EnrollmentStatus
from edubridge.models.gamification import ActivityType
from edubridge.models.notification import NotificationType
from edubridge.models.tutoring_session import (
    ResponseStatus, SessionBooking, SessionStatus, TutoringSession, TERMINAL_RESPONSES,
)
from edubridge.models.user import User, UserRole
from edubridge.services import audit, gamification
from edubridge.services.notifications import notify
from edubridge.services.session_email import (
    SessionEmailEvent, record_delivery, reminder_window, send_session_email,
)
from edubridge.utils.datetime import ensure_aware_utc, naive_utc_now

logger = logging.getLogger("edubridge.invitations")

OPTED_OUT_REASON = "Recipient opted out of session invitation emails"

SESSION_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.SCHEDULED: {SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED, SessionStatus.CANCELLED},
    SessionStatus.IN_PROGRESS: {SessionStatus.COMPLETED, SessionStatus.CANCELLED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.CANCELLED: set(),
}


# --- lookups -----------------------------------------------------------------

def get_session_or_404(db: Session, session_id: str) -> TutoringSession:
    session = db.query(TutoringSession).filter(TutoringSession.id == session_id).first()
    if not session:
        raise NotFoundException("Session not found")
    return session


def ensure_session_manager(session: TutoringSession, user: User) -> None:
    if user.role != UserRole.admin and session.tutor_id != user.id:
        raise ForbiddenException("Only the session's tutor can manage it")


def get_student_booking(db: Session, session_id: str, student: User) -> SessionBooking:
    """The caller's booking for a session (the caller can only ever see their own)."""
    get_session_or_404(db, session_id)
    booking = (
        db.query(SessionBooking)
        .filter(SessionBooking.session_id == session_id, SessionBooking.student_id == student.id)
        .first()
    )
    if not booking:
        raise NotFoundException("No invitation found for this session")
    return booking


def get_owned_booking(db: Session, booking_id: str, student: User) -> SessionBooking:
    booking = db.query(SessionBooking).filter(SessionBooking.id == booking_id).first()
    if not booking:
        raise NotFoundException("Booking not found")
    if booking.student_id != student.id:
        raise ForbiddenException("This booking belongs to another student")
    return booking


def confirmed_count(session: TutoringSession) -> int:
    return sum(1 for b in session.bookings if b.response_status == ResponseStatus.CONFIRMED)


# --- invitation fan-out --------------------------------------------------------

def _unenrolled_students(db: Session, tutor_id: str, student_ids: Iterable[str]) -> list[str]:
    enrolled = {
        row.user_id
        for row in db.query(Enrollment.user_id)
        .join(Course, Course.id == Enrollment.course_id)
        .filter(
            Course.tutor_id == tutor_id,
            Enrollment.status == EnrollmentStatus.ACTIVE,
            Enrollment.user_id.in_(list(student_ids)),
        )
        .all()
    }
    return [sid for sid in student_ids if sid not in enrolled]


def invite_students(db: Session, session: TutoringSession, actor: User, student_ids: list[str]) -> dict:
    """Create one PENDING booking per newly invited student and email each one.

    Already invited students are skipped. Email failures are stored on the
    booking; when every attempted email fails the bookings are kept and an
    ExternalServiceException tells the tutor to resend.
    """
    ensure_session_manager(session, actor)
    if session.status != SessionStatus.SCHEDULED:
        raise ConflictException(f"Cannot invite students to a {session.status.value.lower()} session")

    unique_ids = list(dict.fromkeys(sid for sid in student_ids if sid))
    if not unique_ids:
        raise ValidationException("studentIds must contain at least one student id")

    students = {
        u.id: u
        for u in db.query(User).filter(User.id.in_(unique_ids), User.role == UserRole.student).all()
    }
    unknown = [sid for sid in unique_ids if sid not in students]
    if unknown:
        raise ValidationException("Some ids are not students", extra={"invalid_student_ids": unknown})

    unenrolled = _unenrolled_students(db, session.tutor_id, unique_ids)
    if unenrolled:
        raise ValidationException(
            "Some students are not enrolled in any of your courses",
            extra={"unenrolled_student_ids": unenrolled},
        )

    existing = {b.student_id for b in session.bookings}
    tutor = session.tutor
    sent = failed = 0
    skipped: list[str] = []
    results = []

    for sid in unique_ids:
        if sid in existing:
            skipped.append(sid)
            results.append({"student_id": sid, "status": "already_invited"})
            continue

        student = students[sid]
        booking = SessionBooking(
            session_id=session.id,
            student_id=sid,
            response_status=ResponseStatus.PENDING,
            invited=True,
        )
        db.add(booking)
        db.flush()

        if not student.session_invitation_emails:
            booking.failure_reason = OPTED_OUT_REASON
            results.append({"student_id": sid, "booking_id": booking.id, "status": "email_opted_out"})
        else:
            result = send_session_email(SessionEmailEvent.INVITATION, session, booking, student, tutor)
            record_delivery(booking, result)
            audit.log_email_send(actor.id, "session_invitation", sid, result.success, booking_id=booking.id)
            if result.success:
                sent += 1
                results.append({"student_id": sid, "booking_id": booking.id, "status": "sent"})
            else:
                failed += 1
                logger.warning(f"Invitation email failed booking_id={booking.id} reason={result.error}")
                results.append({
                    "student_id": sid,
                    "booking_id": booking.id,
                    "status": "failed",
                    "error": booking.failure_reason,
                })

        notify(
            db,
            sid,
            NotificationType.SESSION_INVITATION,
            "New session invitation",
            f"{tutor.name} invited you to a {session.subject} session on "
            f"{session.scheduled_start.strftime('%b %d, %Y at %H:%M UTC')}",
            link=f"/sessions/{session.id}",
        )

    db.commit()
    logger.info(
        f"Invitations processed session_id={session.id} sent={sent} failed={failed} skipped={len(skipped)}"
    )

    summary = {"sent": sent, "failed": failed, "skipped": len(skipped), "results": results}
    if failed and not sent:
        raise ExternalServiceException(
            "Invitations were created but no email could be sent; use resend to retry",
            extra={"data": summary},
        )
    return summary


# --- student responses -------------------------------------------------------------

def _ensure_respondable(booking: SessionBooking) -> None:
    if booking.session.status in (SessionStatus.CANCELLED, SessionStatus.COMPLETED):
        raise ConflictException(f"Session is {booking.session.status.value.lower()}; responses are closed")


def _notify_tutor(db: Session, booking: SessionBooking, student: User, verb: str) -> None:
    session = booking.session
    notify(
        db,
        session.tutor_id,
        NotificationType.SESSION_RESPONSE,
        f"Session {verb}",
        f"{student.name} {verb} your {session.subject} session",
        link=f"/tutor/sessions/{session.id}",
    )


def confirm_booking(db: Session, booking: SessionBooking, student: User) -> tuple[SessionBooking, bool]:
    """Returns (booking, changed)."""
    if booking.response_status == ResponseStatus.CONFIRMED:
        return booking, False
    if booking.response_status != ResponseStatus.PENDING:
        raise ConflictException(f"Cannot confirm a {booking.response_status.value.lower()} booking")
    _ensure_respondable(booking)

    booking.response_status = ResponseStatus.CONFIRMED
    booking.responded_at = naive_utc_now()
    _notify_tutor(db, booking, student, "confirmed")
    db.commit()
    db.refresh(booking)
    audit.log_booking_response(student.id, booking.id, booking.session_id, "confirm", booking.response_status.value)
    return booking, True


def decline_booking(db: Session, booking: SessionBooking, student: User, reason: Optional[str] = None) -> tuple[SessionBooking, bool]:
    if booking.response_status == ResponseStatus.DECLINED:
        return booking, False
    if booking.response_status != ResponseStatus.PENDING:
        raise ConflictException(f"Cannot decline a {booking.response_status.value.lower()} booking")
    _ensure_respondable(booking)

    booking.response_status = ResponseStatus.DECLINED
    booking.responded_at = naive_utc_now()
    booking.decline_reason = reason or None
    _notify_tutor(db, booking, student, "declined")
    db.commit()
    db.refresh(booking)
    audit.log_booking_response(student.id, booking.id, booking.session_id, "decline", booking.response_status.value)
    return booking, True


def request_reschedule(
    db: Session,
    booking: SessionBooking,
    student: User,
    reason: Optional[str],
    preferred_times: Optional[list[datetime]] = None,
) -> SessionBooking:
    """Attach a reschedule proposal; the booking stays PENDING for the tutor to act on."""
    if not reason or not reason.strip():
        raise ValidationException("A reason is required to request a reschedule")
    if booking.response_status in TERMINAL_RESPONSES:
        raise ConflictException(
            f"Cannot reschedule a {booking.response_status.value.lower()} booking"
        )
    _ensure_respondable(booking)

    booking.reschedule_reason = reason.strip()
    booking.proposed_times = [ensure_aware_utc(t).isoformat() for t in preferred_times or []]
    booking.reschedule_requested_at = naive_utc_now()
    _notify_tutor(db, booking, student, "requested a new time for")
    db.commit()
    db.refresh(booking)
    audit.log_booking_response(student.id, booking.id, booking.session_id, "reschedule", booking.response_status.value)
    return booking


# --- tutor visibility ----------------------------------------------------------------

def response_summary(session: TutoringSession) -> dict:
    counts = Counter(b.response_status for b in session.bookings)
    return {
        "confirmed": counts[ResponseStatus.CONFIRMED],
        "declined": counts[ResponseStatus.DECLINED],
        "pending": counts[ResponseStatus.PENDING],
        "no_response": counts[ResponseStatus.NO_RESPONSE],
        "reschedule_requested": sum(1 for b in session.bookings if b.reschedule_requested),
        "total": len(session.bookings),
    }


def engagement_indicator(booking: SessionBooking) -> str:
    if booking.clicked_at:
        return "clicked"
    if booking.opened_at:
        return "opened"
    if booking.delivered_at:
        return "delivered"
    if booking.failure_reason:
        return "failed"
    if booking.sent_at:
        return "sent"
    return "not_sent"


def email_status(session: TutoringSession) -> list[dict]:
    rows = []
    for b in session.bookings:
        rows.append({
            "booking_id": b.id,
            "student": {"id": b.student.id, "name": b.student.name, "email": b.student.email},
            "response_status": b.response_status.value,
            "sent_at": b.sent_at,
            "delivered_at": b.delivered_at,
            "opened_at": b.opened_at,
            "clicked_at": b.clicked_at,
            "bounced_at": b.bounced_at,
            "failure_reason": b.failure_reason,
            "resend_count": b.resend_count,
            "reminder_sent_at": b.reminder_sent_at,
            "reminder_failure_reason": b.reminder_failure_reason,
            "indicator": engagement_indicator(b),
        })
    return rows


def resend_invitation(db: Session, session: TutoringSession, actor: User, student_id: str) -> SessionBooking:
    """Send the invitation again; only delivery fields change, never the response."""
    ensure_session_manager(session, actor)
    booking = next((b for b in session.bookings if b.student_id == student_id), None)
    if not booking:
        raise NotFoundException("This student has not been invited to the session")
    student = booking.student
    if not student.session_invitation_emails:
        raise ValidationException("Student has opted out of session invitation emails")

    result = send_session_email(SessionEmailEvent.INVITATION, session, booking, student, session.tutor)
    record_delivery(booking, result)
    booking.resend_count = (booking.resend_count or 0) + 1
    db.commit()
    db.refresh(booking)
    audit.log_email_send(actor.id, "session_invitation_resend", student_id, result.success, booking_id=booking.id)

    if not result.success:
        logger.warning(f"Resend failed booking_id={booking.id} reason={result.error}")
        raise ExternalServiceException(f"Invitation email could not be sent: {booking.failure_reason}")
    return booking


def send_reminders(db: Session, session: TutoringSession, actor: User, timeframe: str = "1 hour") -> dict:
    """Remind every student who has not answered yet; failures are recorded per booking."""
    ensure_session_manager(session, actor)
    if session.status != SessionStatus.SCHEDULED:
        raise ConflictException("Reminders can only be sent for scheduled sessions")
    if reminder_window(timeframe) is None:
        raise ValidationException("timeframe must look like '30 minutes', '1 hour' or '2 days'")

    sent = failed = 0
    results = []
    for booking in session.bookings:
        if booking.response_status != ResponseStatus.PENDING:
            continue
        student = booking.student
        if not student.session_invitation_emails:
            results.append({"student_id": student.id, "booking_id": booking.id, "status": "email_opted_out"})
            continue
        result = send_session_email(
            SessionEmailEvent.REMINDER, session, booking, student, session.tutor, timeframe=timeframe
        )
        if result.success:
            booking.reminder_sent_at = naive_utc_now()
            booking.reminder_failure_reason = None
            sent += 1
            results.append({"student_id": student.id, "booking_id": booking.id, "status": "sent"})
        else:
            # Invitation delivery fields stay untouched
            booking.reminder_failure_reason = result.error or "Reminder send failed"
            failed += 1
            results.append({"student_id": student.id, "booking_id": booking.id, "status": "failed", "error": result.error})
    db.commit()
    logger.info(f"Reminders processed session_id={session.id} sent={sent} failed={failed}")
    return {"sent": sent, "failed": failed, "results": results}


# --- self booking and session lifecycle ------------------------------------------------

def book_session(db: Session, session: TutoringSession, student: User) -> SessionBooking:
    if session.status != SessionStatus.SCHEDULED:
        raise ConflictException("Session is not open for booking")
    if ensure_aware_utc(session.scheduled_start) <= ensure_aware_utc(naive_utc_now()):
        raise ConflictException("Session has already started")

    booking = next((b for b in session.bookings if b.student_id == student.id), None)
    if booking and booking.response_status == ResponseStatus.CONFIRMED:
        raise ValidationException("You have already booked this session")
    if booking and booking.response_status != ResponseStatus.PENDING:
        raise ConflictException(f"Your invitation was already {booking.response_status.value.lower()}")
    if confirmed_count(session) >= session.max_participants:
        raise ConflictException("Session is full")

    if booking is None:
        booking = SessionBooking(session_id=session.id, student_id=student.id, invited=False)
        db.add(booking)
    booking.response_status = ResponseStatus.CONFIRMED
    booking.responded_at = naive_utc_now()

    notify(
        db,
        student.id,
        NotificationType.SESSION_BOOKED,
        "Session booked",
        f"You're booked for {session.subject} on {session.scheduled_start.strftime('%b %d, %Y at %H:%M UTC')}",
        link=f"/sessions/{session.id}",
    )
    notify(
        db,
        session.tutor_id,
        NotificationType.SESSION_BOOKED,
        "New booking",
        f"{student.name} booked your {session.subject} session",
        link=f"/tutor/sessions/{session.id}",
    )
    db.commit()
    db.refresh(booking)
    logger.info(f"Session booked session_id={session.id} student_id={student.id}")
    return booking


def update_session_status(db: Session, session: TutoringSession, actor: User, new_status: SessionStatus) -> dict:
    ensure_session_manager(session, actor)
    if new_status == session.status:
        return {"changed": False}
    if new_status not in SESSION_TRANSITIONS[session.status]:
        raise ConflictException(
            f"Cannot move a {session.status.value.lower()} session to {new_status.value.lower()}"
        )

    previous = session.status
    session.status = new_status
    outcome: dict = {"changed": True, "previous_status": previous.value}

    if new_status == SessionStatus.COMPLETED:
        expired = 0
        for booking in session.bookings:
            if booking.response_status == ResponseStatus.PENDING:
                booking.response_status = ResponseStatus.NO_RESPONSE
                expired += 1
            elif booking.response_status == ResponseStatus.CONFIRMED:
                gamification.record_learning_activity(
                    db,
                    booking.student,
                    settings.session_attendance_points,
                    ActivityType.SESSION_ATTENDANCE,
                    reference_id=session.id,
                    description=f"Attended {session.subject} session",
                )
        outcome["marked_no_response"] = expired

    elif new_status == SessionStatus.CANCELLED:
        emailed = failed = 0
        for booking in session.bookings:
            if booking.response_status not in (ResponseStatus.CONFIRMED, ResponseStatus.PENDING):
                continue
            result = send_session_email(
                SessionEmailEvent.CANCELLATION, session, booking, booking.student, session.tutor
            )
            if result.success:
                emailed += 1
            else:
                failed += 1
                logger.warning(f"Cancellation email failed booking_id={booking.id} reason={result.error}")
            notify(
                db,
                booking.student_id,
                NotificationType.SESSION_UPDATE,
                "Session cancelled",
                f"The {session.subject} session on {session.scheduled_start.strftime('%b %d, %Y')} was cancelled",
                link=f"/sessions/{session.id}",
            )
        outcome.update({"cancellation_emails_sent": emailed, "cancellation_emails_failed": failed})

    db.commit()
    logger.info(f"Session status changed session_id={session.id} {previous.value} -> {new_status.value}")
    return outcome
