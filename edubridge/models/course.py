from sqlalchemy import Column, String, DateTime, Enum, Integer, Numeric, Text, ForeignKey
from sqlalchemy.orm import relationship
import enum
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class CourseStatus(enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class Difficulty(enum.Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class PricingModel(enum.Enum):
    FREE = "FREE"
    ONE_TIME = "ONE_TIME"
    SUBSCRIPTION = "SUBSCRIPTION"


class Course(Base):
    __tablename__ = "courses"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tutor_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=False)
    subject_category = Column(String, nullable=False, index=True)
    education_level = Column(String, nullable=False, index=True)
    difficulty = Column(Enum(Difficulty), nullable=False, default=Difficulty.BEGINNER)
    prerequisites = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    pricing_model = Column(Enum(PricingModel), nullable=False, default=PricingModel.FREE)
    estimated_hours = Column(Integer, nullable=True)
    language = Column(String, nullable=False, default="en")
    thumbnail_url = Column(String, nullable=True)
    status = Column(Enum(CourseStatus), nullable=False, default=CourseStatus.DRAFT, index=True)
    enrollment_count = Column(Integer, nullable=False, default=0)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=naive_utc_now)
    updated_at = Column(DateTime, default=naive_utc_now, onupdate=naive_utc_now)

    tutor = relationship("User", back_populates="courses")
    lessons = relationship(
        "Lesson",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Lesson.sequence_order",
    )
    enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(String, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=True)
    video_url = Column(String, nullable=True)
    sequence_order = Column(Integer, nullable=False, default=1)
    estimated_duration = Column(Integer, nullable=True)  # minutes
    created_at = Column(DateTime, default=naive_utc_now)

    course = relationship("Course", back_populates="lessons")
    quizzes = relationship("Quiz", back_populates="lesson", cascade="all, delete-orphan")
    progress_records = relationship("LessonProgress", back_populates="lesson", cascade="all, delete-orphan")
