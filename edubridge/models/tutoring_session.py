from sqlalchemy import (
    Column, String, DateTime, Enum, Integer, Numeric, Boolean, Text, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship
import enum
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class SessionStatus(enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SessionType(enum.Enum):
    ONE_ON_ONE = "ONE_ON_ONE"
    GROUP = "GROUP"
    WORKSHOP = "WORKSHOP"


class ResponseStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    NO_RESPONSE = "NO_RESPONSE"


TERMINAL_RESPONSES = {ResponseStatus.CONFIRMED, ResponseStatus.DECLINED, ResponseStatus.NO_RESPONSE}


class TutoringSession(Base):
    __tablename__ = "tutoring_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tutor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    subject = Column(String, nullable=False)
    education_level = Column(String, nullable=True)
    scheduled_start = Column(DateTime, nullable=False, index=True)
    scheduled_end = Column(DateTime, nullable=False)
    session_type = Column(Enum(SessionType), nullable=False, default=SessionType.ONE_ON_ONE)
    max_participants = Column(Integer, nullable=False, default=1)
    price_per_student = Column(Numeric(10, 2), nullable=False, default=0)
    video_room_id = Column(String, nullable=True)
    status = Column(Enum(SessionStatus), nullable=False, default=SessionStatus.SCHEDULED, index=True)
    created_at = Column(DateTime, default=naive_utc_now)

    tutor = relationship("User", back_populates="tutoring_sessions")
    bookings = relationship(
        "SessionBooking",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionBooking.created_at",
    )


class SessionBooking(Base):
    """One row per student per session: the invitation, its delivery tracking and the response."""

    __tablename__ = "session_bookings"
    __table_args__ = (UniqueConstraint("session_id", "student_id", name="uq_booking_session_student"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String, ForeignKey("tutoring_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    response_status = Column(Enum(ResponseStatus), nullable=False, default=ResponseStatus.PENDING, index=True)
    invited = Column(Boolean, nullable=False, default=True)

    # Email delivery / engagement tracking
    sent_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    opened_at = Column(DateTime, nullable=True)
    clicked_at = Column(DateTime, nullable=True)
    bounced_at = Column(DateTime, nullable=True)
    email_message_id = Column(String, nullable=True, index=True)
    failure_reason = Column(Text, nullable=True)
    resend_count = Column(Integer, nullable=False, default=0)
    reminder_sent_at = Column(DateTime, nullable=True)
    reminder_failure_reason = Column(Text, nullable=True)

    # Response
    responded_at = Column(DateTime, nullable=True)
    decline_reason = Column(Text, nullable=True)
    reschedule_reason = Column(Text, nullable=True)
    proposed_times = Column(JSON, nullable=True)
    reschedule_requested_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=naive_utc_now)

    session = relationship("TutoringSession", back_populates="bookings")
    student = relationship("User", back_populates="bookings")

    @property
    def reschedule_requested(self) -> bool:
        return self.response_status == ResponseStatus.PENDING and self.reschedule_requested_at is not None
