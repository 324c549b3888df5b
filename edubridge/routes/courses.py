import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.exceptions import NotFoundException, ValidationException
from edubridge.models.course import Course, CourseStatus, Difficulty, Lesson, PricingModel
from edubridge.models.enrollment import Enrollment, LessonProgress
from edubridge.models.user import User, UserRole
from edubridge.schemas.common import ok, pagination
from edubridge.schemas.course import (
    CourseCreate, CourseDetail, CourseOut, CourseUpdate, LessonCreate, LessonOut, LessonSummary,
)
from edubridge.schemas.user import UserPublic
from edubridge.services import courses as course_service
from edubridge.services.auth import (
    get_current_user, get_current_user_optional, require_student, require_tutor_or_admin,
)
from edubridge.services.slug import generate_unique_course_slug

logger = logging.getLogger("edubridge.courses")
router = APIRouter(prefix="/courses", tags=["Courses"])


@router.get("")
def list_courses(
    search: Optional[str] = None,
    subject_category: Optional[str] = Query(None, alias="subjectCategory"),
    education_level: Optional[str] = Query(None, alias="educationLevel"),
    difficulty: Optional[Difficulty] = None,
    pricing_model: Optional[PricingModel] = Query(None, alias="pricingModel"),
    language: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Public catalog of published courses."""
    query = db.query(Course).filter(Course.status == CourseStatus.PUBLISHED)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Course.title.ilike(pattern), Course.description.ilike(pattern)))
    if subject_category:
        query = query.filter(Course.subject_category == subject_category)
    if education_level:
        query = query.filter(Course.education_level == education_level)
    if difficulty:
        query = query.filter(Course.difficulty == difficulty)
    if pricing_model:
        query = query.filter(Course.pricing_model == pricing_model)
    if language:
        query = query.filter(Course.language == language)

    total = query.count()
    rows = (
        query.order_by(Course.published_at.desc(), Course.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    items = []
    for course in rows:
        item = CourseOut.model_validate(course).model_dump(mode="json")
        item["tutor"] = UserPublic.model_validate(course.tutor).model_dump(mode="json")
        item["lesson_count"] = len(course.lessons)
        items.append(item)
    return ok({"courses": items, "pagination": pagination(total, page, limit)})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    # Every wizard field is checked on create, unset ones included
    fields = payload.model_dump()
    errors = course_service.validate_course_fields(db, current_user.id, fields)
    if errors:
        raise ValidationException(errors[0], extra={"errors": errors})

    course = Course(
        tutor_id=current_user.id,
        title=payload.title,
        slug=generate_unique_course_slug(db, payload.title),
        description=payload.description,
        subject_category=payload.subject_category,
        education_level=payload.education_level,
        difficulty=Difficulty(payload.difficulty),
        prerequisites=payload.prerequisites,
        price=payload.price,
        pricing_model=payload.pricing_model,
        estimated_hours=payload.estimated_hours,
        language=payload.language,
        thumbnail_url=payload.thumbnail_url,
        status=CourseStatus.DRAFT,
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    logger.info(f"Course created id={course.id} slug={course.slug} tutor_id={current_user.id}")
    return ok(CourseOut.model_validate(course), message="Course created as draft")


@router.get("/{course_id}")
def get_course(
    course_id: str,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    is_owner = current_user is not None and (
        current_user.id == course.tutor_id or current_user.role == UserRole.admin
    )
    if course.status != CourseStatus.PUBLISHED and not is_owner:
        # Drafts are invisible outside their owner
        raise NotFoundException("Course not found")

    detail = CourseDetail.model_validate(course)
    detail.is_enrolled = bool(current_user and course_service.get_enrollment(db, current_user.id, course.id))
    return ok(detail)


@router.put("/{course_id}")
def update_course(
    course_id: str,
    payload: CourseUpdate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    course_service.ensure_course_owner(course, current_user)

    changes = payload.model_dump(exclude_unset=True)
    errors = course_service.validate_course_fields(db, course.tutor_id, changes, course_id=course.id)
    if errors:
        raise ValidationException(errors[0], extra={"errors": errors})

    if "title" in changes and changes["title"] != course.title:
        course.slug = generate_unique_course_slug(db, changes["title"], exclude_course_id=course.id)
    if "difficulty" in changes:
        changes["difficulty"] = Difficulty(changes["difficulty"])
    for key, value in changes.items():
        setattr(course, key, value)
    db.commit()
    db.refresh(course)
    return ok(CourseOut.model_validate(course), message="Course updated")


@router.delete("/{course_id}")
def delete_course(
    course_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    course_service.ensure_course_owner(course, current_user)
    course_service.ensure_deletable(db, course)
    db.delete(course)
    db.commit()
    logger.info(f"Course deleted id={course_id} by={current_user.id}")
    return ok(message="Course deleted")


@router.patch("/{course_id}/publish")
def toggle_publish(
    course_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    course_service.ensure_course_owner(course, current_user, allow_admin=False)
    course = course_service.toggle_publish(db, course)
    return ok(CourseOut.model_validate(course), message=f"Course is now {course.status.value.lower()}")


@router.post("/{course_id}/enroll", status_code=status.HTTP_201_CREATED)
def enroll(
    course_id: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    enrollment = course_service.enroll_student(db, course, current_user)
    return ok({
        "enrollment_id": enrollment.id,
        "course_id": course.id,
        "status": enrollment.status.value,
        "progress_percentage": enrollment.progress_percentage,
        "enrolled_at": enrollment.enrolled_at,
    }, message=f"Enrolled in {course.title}")


@router.get("/{course_id}/enrollments")
def list_enrollments(
    course_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    course_service.ensure_course_owner(course, current_user)
    rows = (
        db.query(Enrollment)
        .filter(Enrollment.course_id == course.id)
        .order_by(Enrollment.enrolled_at.desc())
        .all()
    )
    return ok([
        {
            "enrollment_id": e.id,
            "student": UserPublic.model_validate(e.user).model_dump(mode="json"),
            "status": e.status.value,
            "progress_percentage": e.progress_percentage,
            "enrolled_at": e.enrolled_at,
            "last_accessed_at": e.last_accessed_at,
        }
        for e in rows
    ])


@router.post("/{course_id}/lessons", status_code=status.HTTP_201_CREATED)
def create_lesson(
    course_id: str,
    payload: LessonCreate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    course_service.ensure_course_owner(course, current_user)

    next_order = max((lesson.sequence_order for lesson in course.lessons), default=0) + 1
    lesson = Lesson(
        course_id=course.id,
        title=payload.title,
        content=payload.content,
        video_url=payload.video_url,
        sequence_order=payload.sequence_order or next_order,
        estimated_duration=payload.estimated_duration,
    )
    db.add(lesson)
    db.flush()
    # Existing enrollments track the new lesson too
    for enrollment in course.enrollments:
        db.add(LessonProgress(enrollment_id=enrollment.id, lesson_id=lesson.id, user_id=enrollment.user_id))
    for enrollment in course.enrollments:
        course_service.recompute_progress(db, enrollment)
    db.commit()
    db.refresh(lesson)
    return ok(LessonOut.model_validate(lesson), message="Lesson created")


@router.get("/{course_id}/lessons")
def list_lessons(
    course_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    course = course_service.get_course_or_404(db, course_id)
    enrollment = course_service.ensure_can_view_lessons(db, course, current_user)
    completed = set()
    if enrollment:
        completed = {
            p.lesson_id for p in enrollment.lesson_progress if p.completed
        }
    items = []
    for lesson in course.lessons:
        item = LessonSummary.model_validate(lesson).model_dump(mode="json")
        if enrollment:
            item["completed"] = lesson.id in completed
        items.append(item)
    return ok(items)
