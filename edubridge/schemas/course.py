from pydantic import BaseModel, Field
from typing import ClassVar, Optional, List
from datetime import datetime
from decimal import Decimal

from edubridge.core.security import SecurityMixin
from edubridge.models.course import CourseStatus, Difficulty, PricingModel
from edubridge.schemas.user import UserPublic


class CourseCreate(SecurityMixin):
    title: str
    description: str
    subject_category: Optional[str] = Field(None, alias="subjectCategory")
    education_level: Optional[str] = Field(None, alias="educationLevel")
    difficulty: Optional[str] = None
    prerequisites: Optional[str] = None
    price: Decimal = Decimal("0")
    pricing_model: PricingModel = Field(PricingModel.FREE, alias="pricingModel")
    estimated_hours: Optional[int] = Field(None, ge=0, alias="estimatedHours")
    language: str = "en"
    thumbnail_url: Optional[str] = Field(None, alias="thumbnailUrl")

    model_config = {"populate_by_name": True}


class CourseUpdate(SecurityMixin):
    title: Optional[str] = None
    description: Optional[str] = None
    subject_category: Optional[str] = Field(None, alias="subjectCategory")
    education_level: Optional[str] = Field(None, alias="educationLevel")
    difficulty: Optional[str] = None
    prerequisites: Optional[str] = None
    price: Optional[Decimal] = None
    pricing_model: Optional[PricingModel] = Field(None, alias="pricingModel")
    estimated_hours: Optional[int] = Field(None, ge=0, alias="estimatedHours")
    language: Optional[str] = None
    thumbnail_url: Optional[str] = Field(None, alias="thumbnailUrl")

    model_config = {"populate_by_name": True}


class LessonSummary(BaseModel):
    id: str
    title: str
    sequence_order: int
    estimated_duration: Optional[int] = None

    model_config = {
        'from_attributes': True
    }


class CourseOut(BaseModel):
    id: str
    tutor_id: str
    title: str
    slug: str
    description: str
    subject_category: str
    education_level: str
    difficulty: Difficulty
    prerequisites: Optional[str] = None
    price: Decimal
    pricing_model: PricingModel
    estimated_hours: Optional[int] = None
    language: str
    thumbnail_url: Optional[str] = None
    status: CourseStatus
    enrollment_count: int
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {
        'from_attributes': True
    }


class CourseDetail(CourseOut):
    tutor: Optional[UserPublic] = None
    lessons: List[LessonSummary] = []
    is_enrolled: bool = False


class LessonCreate(SecurityMixin):
    raw_text_fields: ClassVar[tuple[str, ...]] = ("content",)

    title: str = Field(..., min_length=1, max_length=200)
    content: Optional[str] = None
    video_url: Optional[str] = Field(None, alias="videoUrl")
    sequence_order: Optional[int] = Field(None, ge=1, alias="sequenceOrder")
    estimated_duration: Optional[int] = Field(None, ge=0, alias="estimatedDuration")

    model_config = {"populate_by_name": True}


class LessonUpdate(SecurityMixin):
    raw_text_fields: ClassVar[tuple[str, ...]] = ("content",)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = None
    video_url: Optional[str] = Field(None, alias="videoUrl")
    estimated_duration: Optional[int] = Field(None, ge=0, alias="estimatedDuration")

    model_config = {"populate_by_name": True}


class LessonReorder(BaseModel):
    lesson_ids: List[str] = Field(..., min_length=1, alias="lessonIds")

    model_config = {"populate_by_name": True}


class LessonOut(BaseModel):
    id: str
    course_id: str
    title: str
    content: Optional[str] = None
    video_url: Optional[str] = None
    sequence_order: int
    estimated_duration: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {
        'from_attributes': True
    }


class LessonDetail(LessonOut):
    content_html: str = ""
    quiz_ids: List[str] = []
    completed: Optional[bool] = None
    bookmarked: Optional[bool] = None
    notes: Optional[str] = None


class LessonNotes(SecurityMixin):
    raw_text_fields: ClassVar[tuple[str, ...]] = ("notes",)

    notes: str = Field("", max_length=10000)
