import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from edubridge.core.settings import settings
from edubridge.db import get_db
from edubridge.exceptions import ForbiddenException, NotFoundException, ValidationException
from edubridge.models.course import Lesson
from edubridge.models.gamification import ActivityType
from edubridge.models.quiz import AnswerOption, Question, Quiz
from edubridge.models.user import User
from edubridge.schemas.common import ok
from edubridge.schemas.course import LessonDetail, LessonNotes, LessonOut, LessonReorder, LessonUpdate
from edubridge.schemas.quiz import QuizCreate, QuizOut
from edubridge.services import courses as course_service
from edubridge.services import gamification
from edubridge.services.auth import get_current_user, require_student, require_tutor_or_admin
from edubridge.services.markdown_renderer import render_lesson_markdown
from edubridge.utils.datetime import naive_utc_now

logger = logging.getLogger("edubridge.lessons")
router = APIRouter(prefix="/lessons", tags=["Lessons"])


def get_lesson_or_404(db: Session, lesson_id: str) -> Lesson:
    lesson = db.query(Lesson).filter(Lesson.id == lesson_id).first()
    if not lesson:
        raise NotFoundException("Lesson not found")
    return lesson


def _require_enrollment(db: Session, lesson: Lesson, user: User):
    enrollment = course_service.get_enrollment(db, user.id, lesson.course_id)
    if not enrollment:
        raise ForbiddenException("Enroll in this course to track progress")
    return enrollment


@router.patch("/reorder")
def reorder_lessons(
    payload: LessonReorder,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    lessons = db.query(Lesson).filter(Lesson.id.in_(payload.lesson_ids)).all()
    if len(lessons) != len(set(payload.lesson_ids)):
        raise NotFoundException("One or more lessons not found")
    course_ids = {lesson.course_id for lesson in lessons}
    if len(course_ids) != 1:
        raise ValidationException("All lessons must belong to the same course")
    course = course_service.get_course_or_404(db, course_ids.pop())
    course_service.ensure_course_owner(course, current_user)
    if len(lessons) != len(course.lessons):
        raise ValidationException("Reorder must include every lesson of the course")

    by_id = {lesson.id: lesson for lesson in lessons}
    for index, lesson_id in enumerate(payload.lesson_ids, start=1):
        by_id[lesson_id].sequence_order = index
    db.commit()
    ordered = sorted(lessons, key=lambda lesson: lesson.sequence_order)
    return ok([LessonOut.model_validate(lesson) for lesson in ordered], message="Lessons reordered")


@router.get("/{lesson_id}")
def get_lesson(
    lesson_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    enrollment = course_service.ensure_can_view_lessons(db, lesson.course, current_user)

    detail = LessonDetail.model_validate(lesson)
    detail.content_html = render_lesson_markdown(lesson.content)
    detail.quiz_ids = [quiz.id for quiz in lesson.quizzes]
    if enrollment:
        progress = course_service.get_or_create_progress(db, enrollment, lesson)
        enrollment.last_accessed_at = naive_utc_now()
        db.commit()
        detail.completed = progress.completed
        detail.bookmarked = progress.bookmarked
        detail.notes = progress.notes
    return ok(detail)


@router.put("/{lesson_id}")
def update_lesson(
    lesson_id: str,
    payload: LessonUpdate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    course_service.ensure_course_owner(lesson.course, current_user)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(lesson, key, value)
    db.commit()
    db.refresh(lesson)
    return ok(LessonOut.model_validate(lesson), message="Lesson updated")


@router.delete("/{lesson_id}")
def delete_lesson(
    lesson_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    course = lesson.course
    course_service.ensure_course_owner(course, current_user)
    db.delete(lesson)
    db.flush()
    for enrollment in course.enrollments:
        course_service.recompute_progress(db, enrollment)
    db.commit()
    return ok(message="Lesson deleted")


@router.post("/{lesson_id}/quizzes", status_code=status.HTTP_201_CREATED)
def create_quiz(
    lesson_id: str,
    payload: QuizCreate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    course_service.ensure_course_owner(lesson.course, current_user)

    quiz = Quiz(
        lesson_id=lesson.id,
        title=payload.title,
        passing_percentage=payload.passing_percentage,
        max_attempts=payload.max_attempts,
        immediate_feedback=payload.immediate_feedback,
    )
    for order, q in enumerate(payload.questions, start=1):
        question = Question(
            question_text=q.question_text,
            question_type=q.question_type,
            points=q.points,
            explanation=q.explanation,
            sequence_order=order,
        )
        question.options = [AnswerOption(option_text=o.option_text, is_correct=o.is_correct) for o in q.options]
        quiz.questions.append(question)
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    logger.info(f"Quiz created id={quiz.id} lesson_id={lesson.id} questions={len(quiz.questions)}")
    return ok(QuizOut.model_validate(quiz), message="Quiz created")


@router.post("/{lesson_id}/complete")
def complete_lesson(
    lesson_id: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    enrollment = _require_enrollment(db, lesson, current_user)
    progress = course_service.get_or_create_progress(db, enrollment, lesson)

    rewards = None
    if not progress.completed:
        progress.completed = True
        progress.completed_at = naive_utc_now()
        db.flush()
        course_service.recompute_progress(db, enrollment)
        db.flush()
        rewards = gamification.record_learning_activity(
            db,
            current_user,
            settings.lesson_completion_points,
            ActivityType.LESSON_COMPLETION,
            reference_id=lesson.id,
            description=f"Completed lesson: {lesson.title}",
        )
    db.commit()
    db.refresh(enrollment)
    return ok({
        "lesson_id": lesson.id,
        "completed": True,
        "already_completed": rewards is None,
        "course_progress": enrollment.progress_percentage,
        "enrollment_status": enrollment.status.value,
        "rewards": rewards,
    }, message="Lesson completed")


@router.put("/{lesson_id}/notes")
def save_notes(
    lesson_id: str,
    payload: LessonNotes,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    enrollment = _require_enrollment(db, lesson, current_user)
    progress = course_service.get_or_create_progress(db, enrollment, lesson)
    progress.notes = payload.notes
    db.commit()
    return ok({"lesson_id": lesson.id, "notes": progress.notes}, message="Notes saved")


@router.post("/{lesson_id}/bookmark")
def toggle_bookmark(
    lesson_id: str,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    lesson = get_lesson_or_404(db, lesson_id)
    enrollment = _require_enrollment(db, lesson, current_user)
    progress = course_service.get_or_create_progress(db, enrollment, lesson)
    progress.bookmarked = not progress.bookmarked
    db.commit()
    return ok({"lesson_id": lesson.id, "bookmarked": progress.bookmarked})
