from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from edubridge.core.security import SecurityMixin
from edubridge.models.tutoring_session import ResponseStatus, SessionStatus, SessionType
from edubridge.schemas.user import UserPublic


class SessionCreate(SecurityMixin):
    subject: str = Field(..., min_length=1, max_length=200)
    education_level: Optional[str] = Field(None, alias="educationLevel")
    scheduled_start: datetime = Field(..., alias="scheduledStart")
    scheduled_end: datetime = Field(..., alias="scheduledEnd")
    session_type: SessionType = Field(SessionType.ONE_ON_ONE, alias="sessionType")
    max_participants: int = Field(1, alias="maxParticipants")
    price_per_student: Decimal = Field(Decimal("0"), ge=0, alias="pricePerStudent")
    video_room_id: Optional[str] = Field(None, alias="videoRoomId")

    model_config = {"populate_by_name": True}


class SessionStatusUpdate(BaseModel):
    status: SessionStatus


class InviteRequest(BaseModel):
    student_ids: List[str] = Field(default_factory=list, alias="studentIds")

    model_config = {"populate_by_name": True}


class DeclineRequest(SecurityMixin):
    reason: Optional[str] = Field(None, max_length=2000)


class RescheduleRequest(SecurityMixin):
    # Required by the workflow; emptiness is reported as a 400 by the service
    reason: Optional[str] = Field(None, max_length=2000)
    preferred_times: List[datetime] = Field(default_factory=list, alias="preferredTimes")

    model_config = {"populate_by_name": True}

    @field_validator("preferred_times")
    @classmethod
    def limit_preferred_times(cls, v: List[datetime]):
        if len(v) > 10:
            raise ValueError("At most 10 preferred times may be proposed")
        return v


class ResendRequest(BaseModel):
    student_id: str = Field(..., alias="studentId")

    model_config = {"populate_by_name": True}


class ReminderRequest(BaseModel):
    timeframe: str = "1 hour"


class SessionOut(BaseModel):
    id: str
    tutor_id: str
    subject: str
    education_level: Optional[str] = None
    scheduled_start: datetime
    scheduled_end: datetime
    session_type: SessionType
    max_participants: int
    price_per_student: Decimal
    video_room_id: Optional[str] = None
    status: SessionStatus
    created_at: Optional[datetime] = None

    model_config = {
        'from_attributes': True
    }


class BookingOut(BaseModel):
    id: str
    session_id: str
    student_id: str
    response_status: ResponseStatus
    invited: bool
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    clicked_at: Optional[datetime] = None
    resend_count: int = 0
    reminder_sent_at: Optional[datetime] = None
    reminder_failure_reason: Optional[str] = None
    responded_at: Optional[datetime] = None
    decline_reason: Optional[str] = None
    reschedule_reason: Optional[str] = None
    proposed_times: Optional[List[str]] = None
    reschedule_requested_at: Optional[datetime] = None
    reschedule_requested: bool = False
    created_at: Optional[datetime] = None

    model_config = {
        'from_attributes': True
    }


class SessionWithTutor(SessionOut):
    tutor: UserPublic


class BookingWithSession(BookingOut):
    session: SessionWithTutor


class BookingWithStudent(BookingOut):
    student: UserPublic
