from sqlalchemy import Column, String, DateTime, Enum, Integer, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class ActivityType(enum.Enum):
    LESSON_COMPLETION = "LESSON_COMPLETION"
    QUIZ_PASS = "QUIZ_PASS"
    SESSION_ATTENDANCE = "SESSION_ATTENDANCE"


class BadgeCriteria(enum.Enum):
    FIRST_LESSON = "FIRST_LESSON"
    FIRST_COURSE = "FIRST_COURSE"
    QUIZ_MASTER = "QUIZ_MASTER"
    SEVEN_DAY_STREAK = "SEVEN_DAY_STREAK"
    CENTURY_CLUB = "CENTURY_CLUB"


class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    points_amount = Column(Integer, nullable=False)
    activity_type = Column(Enum(ActivityType), nullable=False)
    reference_id = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=naive_utc_now, index=True)


class Badge(Base):
    __tablename__ = "badges"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False, unique=True)
    description = Column(Text, nullable=False)
    criteria_type = Column(Enum(BadgeCriteria), nullable=False, unique=True)
    rarity = Column(String, nullable=False, default="common")

    awards = relationship("UserBadge", back_populates="badge", cascade="all, delete-orphan")


class UserBadge(Base):
    __tablename__ = "user_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="uq_user_badge"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    badge_id = Column(String, ForeignKey("badges.id"), nullable=False)
    earned_at = Column(DateTime, default=naive_utc_now)

    user = relationship("User", back_populates="badges")
    badge = relationship("Badge", back_populates="awards")
