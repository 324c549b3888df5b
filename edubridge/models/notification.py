from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class NotificationType:
    SESSION_INVITATION = "SESSION_INVITATION"
    SESSION_RESPONSE = "SESSION_RESPONSE"
    SESSION_BOOKED = "SESSION_BOOKED"
    SESSION_UPDATE = "SESSION_UPDATE"
    ENROLLMENT = "ENROLLMENT"
    COURSE_UPDATE = "COURSE_UPDATE"
    QUIZ_RESULT = "QUIZ_RESULT"
    BADGE_EARNED = "BADGE_EARNED"
    ACCOUNT = "ACCOUNT"


class Notification(Base):
    __tablename__ = "notifications"

    # use a callable for default so new UUIDs are generated per-row
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False, default=NotificationType.ACCOUNT)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String, nullable=True)  # client route path
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=naive_utc_now)

    user = relationship("User", back_populates="notifications")
