from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.models.course import Course, CourseStatus
from edubridge.models.enrollment import Enrollment, EnrollmentStatus
from edubridge.models.tutoring_session import SessionStatus, TutoringSession
from edubridge.models.user import User
from edubridge.schemas.common import ok
from edubridge.schemas.course import CourseOut
from edubridge.schemas.user import UserPublic
from edubridge.services.auth import require_tutor
from edubridge.utils.datetime import naive_utc_now

router = APIRouter(prefix="/tutor", tags=["Tutor"])


@router.get("/courses")
def my_courses(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    courses = (
        db.query(Course)
        .filter(Course.tutor_id == current_user.id)
        .order_by(Course.created_at.desc())
        .all()
    )
    items = []
    for course in courses:
        item = CourseOut.model_validate(course).model_dump(mode="json")
        item["lesson_count"] = len(course.lessons)
        items.append(item)
    return ok(items)


@router.get("/dashboard/stats")
def dashboard_stats(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    active_students = (
        db.query(func.count(func.distinct(Enrollment.user_id)))
        .join(Course, Course.id == Enrollment.course_id)
        .filter(Course.tutor_id == current_user.id, Enrollment.status == EnrollmentStatus.ACTIVE)
        .scalar()
    )
    published = (
        db.query(Course)
        .filter(Course.tutor_id == current_user.id, Course.status == CourseStatus.PUBLISHED)
        .count()
    )
    total_courses = db.query(Course).filter(Course.tutor_id == current_user.id).count()
    upcoming = (
        db.query(TutoringSession)
        .filter(
            TutoringSession.tutor_id == current_user.id,
            TutoringSession.status == SessionStatus.SCHEDULED,
            TutoringSession.scheduled_start >= naive_utc_now(),
        )
        .count()
    )
    return ok({
        "total_active_students": active_students or 0,
        "published_courses": published,
        "total_courses": total_courses,
        "upcoming_sessions": upcoming,
    })


@router.get("/dashboard/enrollments/recent")
def recent_enrollments(
    current_user: User = Depends(require_tutor),
    db: Session = Depends(get_db),
):
    since = naive_utc_now() - timedelta(days=7)
    rows = (
        db.query(Enrollment)
        .join(Course, Course.id == Enrollment.course_id)
        .filter(Course.tutor_id == current_user.id, Enrollment.enrolled_at >= since)
        .order_by(Enrollment.enrolled_at.desc())
        .limit(10)
        .all()
    )
    return ok([
        {
            "enrollment_id": e.id,
            "course_id": e.course_id,
            "course_title": e.course.title,
            "student": UserPublic.model_validate(e.user).model_dump(mode="json"),
            "enrolled_at": e.enrolled_at,
        }
        for e in rows
    ])
