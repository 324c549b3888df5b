"""Scoring of quiz submissions against the stored answer options."""
from __future__ import annotations
from typing import Any

from edubridge.models.quiz import Question, QuestionType, Quiz, SINGLE_ANSWER_TYPES


def _normalize_text(value: Any) -> str:
    return " ".join(str(value or "").split()).lower()


def _as_id_set(value: Any) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, (list, tuple, set)):
        return {str(v) for v in value}
    return {str(value)}


def is_answer_correct(question: Question, answer: Any) -> bool:
    if question.question_type in SINGLE_ANSWER_TYPES:
        selected = _as_id_set(answer)
        correct = {o.id for o in question.options if o.is_correct}
        return len(selected) == 1 and selected == correct
    if question.question_type == QuestionType.MULTIPLE_SELECT:
        correct = {o.id for o in question.options if o.is_correct}
        return _as_id_set(answer) == correct
    if question.question_type == QuestionType.SHORT_ANSWER:
        accepted = {_normalize_text(o.option_text) for o in question.options if o.is_correct}
        return _normalize_text(answer) in accepted
    return False


def correct_answer_for(question: Question) -> Any:
    if question.question_type == QuestionType.SHORT_ANSWER:
        return next((o.option_text for o in question.options if o.is_correct), None)
    correct = [o.id for o in question.options if o.is_correct]
    if question.question_type in SINGLE_ANSWER_TYPES:
        return correct[0] if correct else None
    return correct


def grade_quiz(quiz: Quiz, answers: dict[str, Any]) -> dict:
    """Grade ``answers`` (question id -> option id, option ids or text).

    Score is weighted by question points; unanswered questions score zero.
    """
    total_points = 0
    earned_points = 0
    results = []
    for question in quiz.questions:
        total_points += question.points
        correct = is_answer_correct(question, answers.get(question.id))
        if correct:
            earned_points += question.points
        results.append({
            "question_id": question.id,
            "correct": correct,
            "points": question.points if correct else 0,
            "correct_answer": correct_answer_for(question),
            "explanation": question.explanation,
        })

    score = round(earned_points / total_points * 100, 2) if total_points else 0.0
    return {
        "score_percentage": score,
        "earned_points": earned_points,
        "total_points": total_points,
        "passed": score >= quiz.passing_percentage,
        "results": results,
    }
