from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

from edubridge.core.security import SecurityMixin
from edubridge.models.quiz import QuestionType, SINGLE_ANSWER_TYPES


class AnswerOptionIn(SecurityMixin):
    option_text: str = Field(..., min_length=1, alias="optionText")
    is_correct: bool = Field(False, alias="isCorrect")

    model_config = {"populate_by_name": True}


def validate_options(question_type: QuestionType, options: List[AnswerOptionIn]) -> None:
    """Raise ValueError when the options don't fit the question type."""
    correct = [o for o in options if o.is_correct]
    if question_type == QuestionType.SHORT_ANSWER:
        if len(options) != 1 or not correct:
            raise ValueError("Short answer questions need exactly one correct option holding the accepted answer")
        return
    if len(options) < 2:
        raise ValueError("Choice questions need at least two options")
    if not correct:
        raise ValueError("At least one option must be marked correct")
    if question_type in SINGLE_ANSWER_TYPES and len(correct) != 1:
        raise ValueError(f"{question_type.value} questions need exactly one correct option")


class QuestionIn(SecurityMixin):
    question_text: str = Field(..., min_length=1, alias="questionText")
    question_type: QuestionType = Field(..., alias="questionType")
    points: int = Field(1, ge=1)
    explanation: Optional[str] = None
    options: List[AnswerOptionIn] = []

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_options(self):
        validate_options(self.question_type, self.options)
        return self


class QuestionUpdate(SecurityMixin):
    # The type is fixed once a question exists; options are replaced wholesale
    question_text: Optional[str] = Field(None, min_length=1, alias="questionText")
    points: Optional[int] = Field(None, ge=1)
    explanation: Optional[str] = None
    options: Optional[List[AnswerOptionIn]] = None

    model_config = {"populate_by_name": True}


class QuestionReorder(BaseModel):
    question_ids: List[str] = Field(..., min_length=1, alias="questionIds")

    model_config = {"populate_by_name": True}


class QuizCreate(SecurityMixin):
    title: str = Field(..., min_length=1, max_length=200)
    passing_percentage: int = Field(70, ge=0, le=100, alias="passingPercentage")
    max_attempts: Optional[int] = Field(None, ge=1, alias="maxAttempts")
    immediate_feedback: bool = Field(True, alias="immediateFeedback")
    questions: List[QuestionIn] = []

    model_config = {"populate_by_name": True}


class QuizUpdate(SecurityMixin):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    passing_percentage: Optional[int] = Field(None, ge=0, le=100, alias="passingPercentage")
    max_attempts: Optional[int] = Field(None, ge=1, alias="maxAttempts")
    immediate_feedback: Optional[bool] = Field(None, alias="immediateFeedback")

    model_config = {"populate_by_name": True}


class QuizSubmission(BaseModel):
    # question id -> option id (single choice), list of option ids (multi select) or text
    answers: Dict[str, Any]


class AnswerOptionOut(BaseModel):
    id: str
    option_text: str
    is_correct: Optional[bool] = None

    model_config = {
        'from_attributes': True
    }


class QuestionOut(BaseModel):
    id: str
    question_text: str
    question_type: QuestionType
    points: int
    explanation: Optional[str] = None
    sequence_order: int
    options: List[AnswerOptionOut] = []

    model_config = {
        'from_attributes': True
    }


class QuizOut(BaseModel):
    id: str
    lesson_id: str
    title: str
    passing_percentage: int
    max_attempts: Optional[int] = None
    immediate_feedback: bool
    questions: List[QuestionOut] = []

    model_config = {
        'from_attributes': True
    }


class QuizAttemptOut(BaseModel):
    id: str
    quiz_id: str
    score_percentage: float
    points_earned: int
    passed: bool
    completed_at: Optional[datetime] = None

    model_config = {
        'from_attributes': True
    }
