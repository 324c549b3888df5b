import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.exceptions import ForbiddenException, NotFoundException, ValidationException
from edubridge.models.gamification import ActivityType
from edubridge.models.notification import NotificationType
from edubridge.models.quiz import AnswerOption, Question, Quiz, QuizAttempt
from edubridge.models.user import User
from edubridge.schemas.common import ok
from edubridge.schemas.quiz import (
    QuestionIn, QuestionOut, QuestionReorder, QuestionUpdate, QuizAttemptOut, QuizOut, QuizSubmission,
    QuizUpdate, validate_options,
)
from edubridge.services import courses as course_service
from edubridge.services import gamification
from edubridge.services.auth import get_current_user, require_student, require_tutor_or_admin
from edubridge.services.notifications import notify
from edubridge.services.quiz_grading import grade_quiz

logger = logging.getLogger("edubridge.quizzes")
router = APIRouter(tags=["Quizzes"])


def get_quiz_or_404(db: Session, quiz_id: str) -> Quiz:
    quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    if not quiz:
        raise NotFoundException("Quiz not found")
    return quiz


def get_question_or_404(db: Session, question_id: str) -> Question:
    question = db.query(Question).filter(Question.id == question_id).first()
    if not question:
        raise NotFoundException("Question not found")
    return question


def _is_author(quiz: Quiz, user: User) -> bool:
    try:
        course_service.ensure_course_owner(quiz.lesson.course, user)
        return True
    except ForbiddenException:
        return False


@router.get("/quizzes/{quiz_id}")
def get_quiz(
    quiz_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quiz = get_quiz_or_404(db, quiz_id)
    course_service.ensure_can_view_lessons(db, quiz.lesson.course, current_user)
    data = QuizOut.model_validate(quiz).model_dump(mode="json")
    if not _is_author(quiz, current_user):
        # Learners never see which options are correct
        for question in data["questions"]:
            for option in question["options"]:
                option.pop("is_correct", None)
        data["attempts_used"] = (
            db.query(QuizAttempt)
            .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.user_id == current_user.id)
            .count()
        )
    return ok(data)


@router.put("/quizzes/{quiz_id}")
def update_quiz(
    quiz_id: str,
    payload: QuizUpdate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    quiz = get_quiz_or_404(db, quiz_id)
    course_service.ensure_course_owner(quiz.lesson.course, current_user)
    changes = payload.model_dump(exclude_unset=True)
    for field in ("title", "passing_percentage", "immediate_feedback"):
        if field in changes and changes[field] is None:
            raise ValidationException(f"{field} cannot be empty")
    for key, value in changes.items():
        setattr(quiz, key, value)
    db.commit()
    db.refresh(quiz)
    logger.info(f"Quiz updated id={quiz.id} fields={sorted(changes)}")
    return ok(QuizOut.model_validate(quiz), message="Quiz updated")


@router.delete("/quizzes/{quiz_id}")
def delete_quiz(
    quiz_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    quiz = get_quiz_or_404(db, quiz_id)
    course_service.ensure_course_owner(quiz.lesson.course, current_user)
    # Attempts go with the quiz; points already awarded stay in the ledger
    db.delete(quiz)
    db.commit()
    logger.info(f"Quiz deleted id={quiz_id} by={current_user.id}")
    return ok(message="Quiz deleted")


@router.post("/quizzes/{quiz_id}/questions", status_code=status.HTTP_201_CREATED)
def add_question(
    quiz_id: str,
    payload: QuestionIn,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    quiz = get_quiz_or_404(db, quiz_id)
    course_service.ensure_course_owner(quiz.lesson.course, current_user)
    question = Question(
        quiz_id=quiz.id,
        question_text=payload.question_text,
        question_type=payload.question_type,
        points=payload.points,
        explanation=payload.explanation,
        sequence_order=max((q.sequence_order for q in quiz.questions), default=0) + 1,
    )
    question.options = [AnswerOption(option_text=o.option_text, is_correct=o.is_correct) for o in payload.options]
    db.add(question)
    db.commit()
    db.refresh(question)
    return ok(QuestionOut.model_validate(question), message="Question added")


@router.patch("/questions/reorder")
def reorder_questions(
    payload: QuestionReorder,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    questions = db.query(Question).filter(Question.id.in_(payload.question_ids)).all()
    if len(questions) != len(set(payload.question_ids)):
        raise NotFoundException("One or more questions not found")
    quiz_ids = {q.quiz_id for q in questions}
    if len(quiz_ids) != 1:
        raise ValidationException("All questions must belong to the same quiz")
    quiz = get_quiz_or_404(db, quiz_ids.pop())
    course_service.ensure_course_owner(quiz.lesson.course, current_user)
    if len(questions) != len(quiz.questions):
        raise ValidationException("Reorder must include every question of the quiz")

    by_id = {q.id: q for q in questions}
    for index, question_id in enumerate(payload.question_ids, start=1):
        by_id[question_id].sequence_order = index
    db.commit()
    ordered = sorted(questions, key=lambda q: q.sequence_order)
    return ok([QuestionOut.model_validate(q) for q in ordered], message="Questions reordered")


@router.put("/questions/{question_id}")
def update_question(
    question_id: str,
    payload: QuestionUpdate,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    question = get_question_or_404(db, question_id)
    course_service.ensure_course_owner(question.quiz.lesson.course, current_user)
    changes = payload.model_dump(exclude_unset=True, exclude={"options"})
    for field in ("question_text", "points"):
        if field in changes and changes[field] is None:
            raise ValidationException(f"{field} cannot be empty")

    if payload.options is not None:
        try:
            validate_options(question.question_type, payload.options)
        except ValueError as e:
            raise ValidationException(str(e))
        question.options = [AnswerOption(option_text=o.option_text, is_correct=o.is_correct) for o in payload.options]
    for key, value in changes.items():
        setattr(question, key, value)
    db.commit()
    db.refresh(question)
    return ok(QuestionOut.model_validate(question), message="Question updated")


@router.delete("/questions/{question_id}")
def delete_question(
    question_id: str,
    current_user: User = Depends(require_tutor_or_admin),
    db: Session = Depends(get_db),
):
    question = get_question_or_404(db, question_id)
    course_service.ensure_course_owner(question.quiz.lesson.course, current_user)
    db.delete(question)
    db.commit()
    return ok(message="Question deleted")


@router.post("/quizzes/{quiz_id}/attempts", status_code=status.HTTP_201_CREATED)
def submit_attempt(
    quiz_id: str,
    payload: QuizSubmission,
    current_user: User = Depends(require_student),
    db: Session = Depends(get_db),
):
    quiz = get_quiz_or_404(db, quiz_id)
    lesson = quiz.lesson
    if not course_service.get_enrollment(db, current_user.id, lesson.course_id):
        raise ForbiddenException("Enroll in this course to take its quizzes")

    previous = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.user_id == current_user.id)
        .count()
    )
    if quiz.max_attempts is not None and previous >= quiz.max_attempts:
        raise ForbiddenException(f"Maximum attempts ({quiz.max_attempts}) reached for this quiz")

    graded = grade_quiz(quiz, payload.answers)
    attempt = QuizAttempt(
        user_id=current_user.id,
        quiz_id=quiz.id,
        answers=payload.answers,
        score_percentage=graded["score_percentage"],
        points_earned=graded["earned_points"] if graded["passed"] else 0,
        passed=graded["passed"],
    )
    db.add(attempt)
    db.flush()

    rewards = None
    if attempt.passed:
        rewards = gamification.record_learning_activity(
            db,
            current_user,
            attempt.points_earned,
            ActivityType.QUIZ_PASS,
            reference_id=attempt.id,
            description=f"Passed quiz: {quiz.title}",
        )
    outcome = "passed" if attempt.passed else "did not pass"
    notify(
        db,
        current_user.id,
        NotificationType.QUIZ_RESULT,
        "Quiz result",
        f"You {outcome} {quiz.title} with {attempt.score_percentage:g}%",
        link=f"/lessons/{lesson.id}",
    )
    db.commit()
    db.refresh(attempt)
    logger.info(f"Quiz attempt user_id={current_user.id} quiz_id={quiz.id} score={attempt.score_percentage} passed={attempt.passed}")

    data = QuizAttemptOut.model_validate(attempt).model_dump(mode="json")
    data.update({
        "earned_points": graded["earned_points"],
        "total_points": graded["total_points"],
        "passing_percentage": quiz.passing_percentage,
        "attempts_remaining": (quiz.max_attempts - previous - 1) if quiz.max_attempts is not None else None,
        "rewards": rewards,
    })
    if quiz.immediate_feedback:
        data["results"] = graded["results"]
    return ok(data, message=f"Quiz {outcome}")


@router.get("/quizzes/{quiz_id}/attempts")
def list_attempts(
    quiz_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    quiz = get_quiz_or_404(db, quiz_id)
    attempts = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.user_id == current_user.id)
        .order_by(QuizAttempt.completed_at.desc())
        .all()
    )
    return ok([QuizAttemptOut.model_validate(a) for a in attempts])
