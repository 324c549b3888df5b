from sqlalchemy import Column, String, DateTime, Date, Enum, Integer, Boolean, Text
from sqlalchemy.orm import relationship
import enum
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class UserRole(enum.Enum):
    student = "student"
    tutor = "tutor"
    admin = "admin"


class UserStatus(enum.Enum):
    active = "active"
    suspended = "suspended"
    banned = "banned"


class User(Base):
    __tablename__ = "users"
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.student)
    status = Column(Enum(UserStatus), nullable=False, default=UserStatus.active)
    bio = Column(Text, nullable=True)
    # Opt-out switch for tutor session invitation emails; bookings are still created
    session_invitation_emails = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=naive_utc_now)

    # Gamification (denormalized for leaderboard reads)
    total_points = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(Date, nullable=True)
    streak_freezes_available = Column(Integer, nullable=False, default=2)
    streak_freezes_used = Column(Integer, nullable=False, default=0)
    streak_freeze_date = Column(Date, nullable=True)

    courses = relationship("Course", back_populates="tutor")
    enrollments = relationship("Enrollment", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    tutoring_sessions = relationship("TutoringSession", back_populates="tutor")
    bookings = relationship("SessionBooking", back_populates="student")
    badges = relationship("UserBadge", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active
