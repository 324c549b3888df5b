import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, selectinload

from edubridge.db import get_db
from edubridge.exceptions import ValidationException
from edubridge.models.tutoring_session import (
    ResponseStatus, SessionBooking, SessionStatus, SessionType, TutoringSession,
)
from edubridge.models.user import User
from edubridge.schemas.common import ok
from edubridge.schemas.session import (
    BookingOut, BookingWithSession, BookingWithStudent, DeclineRequest, InviteRequest,
    ReminderRequest, RescheduleRequest, ResendRequest, SessionCreate, SessionOut,
    SessionStatusUpdate, SessionWithTutor,
)
from edubridge.services import invitations
from edubridge.services.auth import require_student, require_tutor, require_tutor_or_admin
from edubridge.utils.datetime import naive_utc_now, to_naive_utc

logger = logging.getLogger("edubridge.sessions")
router = APIRouter(prefix="/sessions", tags=["Sessions"])


def _booking_payload(booking: SessionBooking, changed: bool = True) -> dict:
    data = BookingOut.model_validate(booking).model_dump(mode="json")
    data["changed"] = changed
    return data


# --- tutor scheduling ------------------------------------------------------------------

@router.post("", status_code=status.HTTP_201_CREATED)
def create_session(
    payload: SessionCreate,
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    start = to_naive_utc(payload.scheduled_start)
    end = to_naive_utc(payload.scheduled_end)
    errors = []
    if end <= start:
        errors.append("scheduledEnd must be after scheduledStart")
    if start <= naive_utc_now():
        errors.append("scheduledStart must be in the future")
    if payload.max_participants < 1:
        errors.append("maxParticipants must be at least 1")
    if payload.session_type == SessionType.ONE_ON_ONE and payload.max_participants > 1:
        errors.append("One-on-one sessions take a single participant")
    if errors:
        raise ValidationException("; ".join(errors), extra={"errors": errors})

    session = TutoringSession(
        tutor_id=current_user.id,
        subject=payload.subject,
        education_level=payload.education_level,
        scheduled_start=start,
        scheduled_end=end,
        session_type=payload.session_type,
        max_participants=payload.max_participants,
        price_per_student=payload.price_per_student,
        video_room_id=payload.video_room_id,
        status=SessionStatus.SCHEDULED,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info(f"Session created id={session.id} tutor_id={current_user.id}")
    return ok(SessionOut.model_validate(session), message="Session scheduled successfully")


@router.get("")
def list_available_sessions(
    subject: Optional[str] = None,
    education_level: Optional[str] = Query(None, alias="educationLevel"),
    session_type: Optional[SessionType] = Query(None, alias="sessionType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Future scheduled sessions open for booking."""
    query = db.query(TutoringSession).filter(
        TutoringSession.status == SessionStatus.SCHEDULED,
        TutoringSession.scheduled_start > naive_utc_now(),
    )
    if subject:
        query = query.filter(TutoringSession.subject.ilike(f"%{subject}%"))
    if education_level:
        query = query.filter(TutoringSession.education_level == education_level)
    if session_type:
        query = query.filter(TutoringSession.session_type == session_type)
    if start_date:
        query = query.filter(TutoringSession.scheduled_start >= to_naive_utc(start_date))
    if end_date:
        query = query.filter(TutoringSession.scheduled_start <= to_naive_utc(end_date))

    total = query.count()
    sessions = (
        query.options(selectinload(TutoringSession.bookings), selectinload(TutoringSession.tutor))
        .order_by(TutoringSession.scheduled_start.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    items = []
    for s in sessions:
        item = SessionWithTutor.model_validate(s).model_dump(mode="json")
        booked = invitations.confirmed_count(s)
        item["confirmed_count"] = booked
        item["available_slots"] = max(0, s.max_participants - booked)
        item["is_full"] = booked >= s.max_participants
        items.append(item)
    return ok({"sessions": items, "total": total, "limit": limit, "offset": offset})


@router.get("/today")
def todays_sessions(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    now = naive_utc_now()
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    sessions = (
        db.query(TutoringSession)
        .filter(
            TutoringSession.tutor_id == current_user.id,
            TutoringSession.scheduled_start >= day_start,
            TutoringSession.scheduled_start < day_start + timedelta(days=1),
            TutoringSession.status != SessionStatus.CANCELLED,
        )
        .order_by(TutoringSession.scheduled_start.asc())
        .all()
    )
    items = []
    for s in sessions:
        item = SessionOut.model_validate(s).model_dump(mode="json")
        item["bookings"] = [BookingWithStudent.model_validate(b).model_dump(mode="json") for b in s.bookings]
        item["summary"] = invitations.response_summary(s)
        items.append(item)
    return ok(items)


# --- student listings ---------------------------------------------------------------------

@router.get("/invitations")
def pending_invitations(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    bookings = (
        db.query(SessionBooking)
        .join(TutoringSession, TutoringSession.id == SessionBooking.session_id)
        .filter(
            SessionBooking.student_id == current_user.id,
            SessionBooking.invited.is_(True),
            SessionBooking.response_status == ResponseStatus.PENDING,
            TutoringSession.status == SessionStatus.SCHEDULED,
        )
        .order_by(SessionBooking.created_at.desc())
        .all()
    )
    return ok([BookingWithSession.model_validate(b) for b in bookings])


@router.get("/my-bookings")
def my_bookings(
    status_filter: Optional[ResponseStatus] = Query(None, alias="status"),
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    query = db.query(SessionBooking).filter(SessionBooking.student_id == current_user.id)
    if status_filter:
        query = query.filter(SessionBooking.response_status == status_filter)
    bookings = query.order_by(SessionBooking.created_at.desc()).all()
    return ok([BookingWithSession.model_validate(b) for b in bookings])


# --- booking-scoped responses ------------------------------------------------------------------

@router.post("/bookings/{booking_id}/confirm")
def confirm_booking_by_id(
    booking_id: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    booking = invitations.get_owned_booking(db, booking_id, current_user)
    booking, changed = invitations.confirm_booking(db, booking, current_user)
    return ok(_booking_payload(booking, changed), message="Session confirmed")


@router.post("/bookings/{booking_id}/decline")
def decline_booking_by_id(
    booking_id: str,
    payload: Optional[DeclineRequest] = None,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    booking = invitations.get_owned_booking(db, booking_id, current_user)
    reason = payload.reason if payload else None
    booking, changed = invitations.decline_booking(db, booking, current_user, reason)
    return ok(_booking_payload(booking, changed), message="Session declined")


@router.post("/bookings/{booking_id}/reschedule")
def reschedule_booking_by_id(
    booking_id: str,
    payload: RescheduleRequest,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    booking = invitations.get_owned_booking(db, booking_id, current_user)
    booking = invitations.request_reschedule(db, booking, current_user, payload.reason, payload.preferred_times)
    return ok(_booking_payload(booking), message="Reschedule request sent to the tutor")


# --- session-scoped routes -----------------------------------------------------------------------

@router.get("/{session_id}")
def get_session(
    session_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    invitations.ensure_session_manager(session, current_user)
    data = SessionOut.model_validate(session).model_dump(mode="json")
    data["bookings"] = [BookingWithStudent.model_validate(b).model_dump(mode="json") for b in session.bookings]
    data["summary"] = invitations.response_summary(session)
    return ok(data)


@router.patch("/{session_id}/status")
def update_session_status(
    session_id: str,
    payload: SessionStatusUpdate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    outcome = invitations.update_session_status(db, session, current_user, payload.status)
    db.refresh(session)
    data = SessionOut.model_validate(session).model_dump(mode="json")
    data.update(outcome)
    return ok(data, message=f"Session is now {session.status.value.lower()}")


@router.post("/{session_id}/invite")
def invite_students(
    session_id: str,
    payload: InviteRequest,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    result = invitations.invite_students(db, session, current_user, payload.student_ids)
    return ok(result, message=f"Invitations sent to {result['sent']} student(s)")


@router.get("/{session_id}/summary")
def response_summary(
    session_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    invitations.ensure_session_manager(session, current_user)
    return ok(invitations.response_summary(session))


@router.get("/{session_id}/email-status")
def email_status(
    session_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    invitations.ensure_session_manager(session, current_user)
    return ok({
        "session_id": session.id,
        "summary": invitations.response_summary(session),
        "bookings": invitations.email_status(session),
    })


@router.post("/{session_id}/resend")
def resend_invitation(
    session_id: str,
    payload: ResendRequest,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    booking = invitations.resend_invitation(db, session, current_user, payload.student_id)
    return ok(_booking_payload(booking), message="Invitation resent")


@router.post("/{session_id}/remind")
def send_reminder(
    session_id: str,
    payload: Optional[ReminderRequest] = None,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    timeframe = payload.timeframe if payload else "1 hour"
    result = invitations.send_reminders(db, session, current_user, timeframe)
    return ok(result, message=f"Reminders sent to {result['sent']} student(s)")


@router.post("/{session_id}/book", status_code=status.HTTP_201_CREATED)
def book_session(
    session_id: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    session = invitations.get_session_or_404(db, session_id)
    booking = invitations.book_session(db, session, current_user)
    return ok(_booking_payload(booking), message="Session booked successfully")


@router.post("/{session_id}/confirm")
def confirm_session(
    session_id: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    booking = invitations.get_student_booking(db, session_id, current_user)
    booking, changed = invitations.confirm_booking(db, booking, current_user)
    return ok(_booking_payload(booking, changed), message="Session confirmed")


@router.post("/{session_id}/decline")
def decline_session(
    session_id: str,
    payload: Optional[DeclineRequest] = None,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    booking = invitations.get_student_booking(db, session_id, current_user)
    reason = payload.reason if payload else None
    booking, changed = invitations.decline_booking(db, booking, current_user, reason)
    return ok(_booking_payload(booking, changed), message="Session declined")


@router.post("/{session_id}/reschedule")
def reschedule_session(
    session_id: str,
    payload: RescheduleRequest,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    booking = invitations.get_student_booking(db, session_id, current_user)
    booking = invitations.request_reschedule(db, booking, current_user, payload.reason, payload.preferred_times)
    return ok(_booking_payload(booking), message="Reschedule request sent to the tutor")
