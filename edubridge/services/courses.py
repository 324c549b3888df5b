"""Course authoring rules, enrollment and progress bookkeeping."""
from __future__ import annotations
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from edubridge.exceptions import ConflictException, ForbiddenException, NotFoundException, ValidationException
from edubridge.models.course import Course, CourseStatus, Difficulty, Lesson
from edubridge.models.enrollment import Enrollment, EnrollmentStatus, LessonProgress
from edubridge.models.notification import NotificationType
from edubridge.models.user import User, UserRole
from edubridge.services.notifications import notify
from edubridge.utils.datetime import naive_utc_now

logger = logging.getLogger("edubridge.courses")

TITLE_MIN, TITLE_MAX = 5, 200
DESCRIPTION_MIN = 50


def validate_course_fields(db: Session, tutor_id: str, fields: dict, course_id: Optional[str] = None) -> list[str]:
    """Return human readable problems for the course wizard fields present in ``fields``."""
    errors = []
    if "title" in fields:
        title = (fields.get("title") or "").strip()
        if not TITLE_MIN <= len(title) <= TITLE_MAX:
            errors.append(f"Title must be between {TITLE_MIN} and {TITLE_MAX} characters")
        else:
            dup = db.query(Course.id).filter(
                Course.tutor_id == tutor_id,
                func.lower(Course.title) == title.lower(),
            )
            if course_id:
                dup = dup.filter(Course.id != course_id)
            if dup.first():
                errors.append("You already have a course with this title")
    if "description" in fields and len((fields.get("description") or "").strip()) < DESCRIPTION_MIN:
        errors.append(f"Description must be at least {DESCRIPTION_MIN} characters")
    if "difficulty" in fields:
        valid = {d.value for d in Difficulty}
        if fields.get("difficulty") not in valid:
            errors.append(f"Difficulty must be one of {', '.join(sorted(valid))}")
    for key, label in (("subject_category", "Subject category"), ("education_level", "Education level")):
        if key in fields and not (fields.get(key) or "").strip():
            errors.append(f"{label} is required")
    if "price" in fields and fields.get("price") is not None and fields["price"] < 0:
        errors.append("Price cannot be negative")
    return errors


def get_course_or_404(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundException("Course not found")
    return course


def ensure_course_owner(course: Course, user: User, allow_admin: bool = True) -> None:
    if course.tutor_id == user.id:
        return
    if allow_admin and user.role == UserRole.admin:
        return
    raise ForbiddenException("You do not own this course")


def get_enrollment(db: Session, user_id: str, course_id: str) -> Optional[Enrollment]:
    return (
        db.query(Enrollment)
        .filter(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
        .first()
    )


def ensure_can_view_lessons(db: Session, course: Course, user: User) -> Optional[Enrollment]:
    """Owner and admins see everything; students need an enrollment."""
    if course.tutor_id == user.id or user.role == UserRole.admin:
        return None
    enrollment = get_enrollment(db, user.id, course.id)
    if not enrollment or enrollment.status == EnrollmentStatus.DROPPED:
        raise ForbiddenException("Enroll in this course to access its lessons")
    return enrollment


def enroll_student(db: Session, course: Course, student: User) -> Enrollment:
    if course.status != CourseStatus.PUBLISHED:
        raise ValidationException("Course is not available for enrollment")
    if get_enrollment(db, student.id, course.id):
        raise ValidationException("Already enrolled in this course")

    enrollment = Enrollment(user_id=student.id, course_id=course.id, status=EnrollmentStatus.ACTIVE)
    db.add(enrollment)
    db.flush()
    for lesson in course.lessons:
        db.add(LessonProgress(enrollment_id=enrollment.id, lesson_id=lesson.id, user_id=student.id))
    course.enrollment_count = (course.enrollment_count or 0) + 1
    notify(
        db,
        student.id,
        NotificationType.ENROLLMENT,
        "Enrolled successfully",
        f"You are now enrolled in {course.title}",
        link=f"/courses/{course.id}",
    )
    db.commit()
    db.refresh(enrollment)
    logger.info(f"Enrollment created user_id={student.id} course_id={course.id}")
    return enrollment


def toggle_publish(db: Session, course: Course) -> Course:
    if course.status == CourseStatus.PUBLISHED:
        course.status = CourseStatus.DRAFT
        message = f"{course.title} was unpublished"
    else:
        if not course.lessons:
            raise ValidationException("Add at least one lesson before publishing")
        course.status = CourseStatus.PUBLISHED
        course.published_at = course.published_at or naive_utc_now()
        message = f"{course.title} is now published"
    notify(db, course.tutor_id, NotificationType.COURSE_UPDATE, "Course status changed", message,
           link=f"/tutor/courses/{course.id}")
    db.commit()
    db.refresh(course)
    return course


def ensure_deletable(db: Session, course: Course) -> None:
    active = (
        db.query(Enrollment)
        .filter(Enrollment.course_id == course.id, Enrollment.status == EnrollmentStatus.ACTIVE)
        .count()
    )
    if active:
        raise ConflictException(f"Course has {active} active enrollment(s); archive it instead")


def recompute_progress(db: Session, enrollment: Enrollment) -> float:
    """Refresh progress % from lesson completion; completes the enrollment at 100%."""
    total = db.query(Lesson).filter(Lesson.course_id == enrollment.course_id).count()
    done = (
        db.query(LessonProgress)
        .filter(LessonProgress.enrollment_id == enrollment.id, LessonProgress.completed.is_(True))
        .count()
    )
    enrollment.progress_percentage = round(done / total * 100, 2) if total else 0.0
    enrollment.last_accessed_at = naive_utc_now()
    if total and done >= total:
        enrollment.progress_percentage = 100.0
        enrollment.status = EnrollmentStatus.COMPLETED
        enrollment.completed_at = enrollment.completed_at or naive_utc_now()
    elif enrollment.status == EnrollmentStatus.COMPLETED:
        # a lesson was added after completion
        enrollment.status = EnrollmentStatus.ACTIVE
        enrollment.completed_at = None
    return enrollment.progress_percentage


def get_or_create_progress(db: Session, enrollment: Enrollment, lesson: Lesson) -> LessonProgress:
    progress = (
        db.query(LessonProgress)
        .filter(LessonProgress.enrollment_id == enrollment.id, LessonProgress.lesson_id == lesson.id)
        .first()
    )
    if not progress:
        progress = LessonProgress(enrollment_id=enrollment.id, lesson_id=lesson.id, user_id=enrollment.user_id)
        db.add(progress)
        db.flush()
    return progress
