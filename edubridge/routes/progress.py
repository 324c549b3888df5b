from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.models.enrollment import Enrollment, EnrollmentStatus, LessonProgress
from edubridge.models.quiz import Quiz, QuizAttempt
from edubridge.models.user import User
from edubridge.schemas.common import ok
from edubridge.services.auth import require_student

router = APIRouter(prefix="/progress", tags=["Progress"])


@router.get("/me")
def my_progress(
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    """Learning dashboard: totals, per-course progress and recent quiz attempts."""
    enrollments = (
        db.query(Enrollment)
        .filter(Enrollment.user_id == current_user.id)
        .order_by(Enrollment.enrolled_at.desc())
        .all()
    )
    lessons_completed = (
        db.query(LessonProgress)
        .filter(LessonProgress.user_id == current_user.id, LessonProgress.completed.is_(True))
        .count()
    )
    quizzes_passed = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.user_id == current_user.id, QuizAttempt.passed.is_(True))
        .count()
    )
    recent_attempts = (
        db.query(QuizAttempt, Quiz.title)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .filter(QuizAttempt.user_id == current_user.id)
        .order_by(QuizAttempt.completed_at.desc())
        .limit(10)
        .all()
    )

    courses = []
    for e in enrollments:
        done = sum(1 for p in e.lesson_progress if p.completed)
        courses.append({
            "enrollment_id": e.id,
            "course_id": e.course_id,
            "course_title": e.course.title,
            "status": e.status.value,
            "progress_percentage": e.progress_percentage,
            "lessons_completed": done,
            "lessons_total": len(e.course.lessons),
            "last_accessed_at": e.last_accessed_at,
            "completed_at": e.completed_at,
        })

    return ok({
        "totals": {
            "total_points": current_user.total_points,
            "current_streak": current_user.current_streak,
            "longest_streak": current_user.longest_streak,
            "courses_enrolled": len(enrollments),
            "courses_completed": sum(1 for e in enrollments if e.status == EnrollmentStatus.COMPLETED),
            "lessons_completed": lessons_completed,
            "quizzes_passed": quizzes_passed,
        },
        "courses": courses,
        "recent_quiz_attempts": [
            {
                "attempt_id": attempt.id,
                "quiz_id": attempt.quiz_id,
                "quiz_title": title,
                "score_percentage": attempt.score_percentage,
                "passed": attempt.passed,
                "completed_at": attempt.completed_at,
            }
            for attempt, title in recent_attempts
        ],
    })
