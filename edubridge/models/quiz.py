from sqlalchemy import Column, String, DateTime, Enum, Integer, Float, Boolean, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
import enum
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class QuestionType(enum.Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    MULTIPLE_SELECT = "MULTIPLE_SELECT"
    SHORT_ANSWER = "SHORT_ANSWER"


SINGLE_ANSWER_TYPES = {QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE}


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    lesson_id = Column(String, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    passing_percentage = Column(Integer, nullable=False, default=70)
    max_attempts = Column(Integer, nullable=True)  # None = unlimited
    immediate_feedback = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=naive_utc_now)

    lesson = relationship("Lesson", back_populates="quizzes")
    questions = relationship(
        "Question",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="Question.sequence_order",
    )
    attempts = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")


class Question(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = Column(String, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(Enum(QuestionType), nullable=False)
    points = Column(Integer, nullable=False, default=1)
    explanation = Column(Text, nullable=True)
    sequence_order = Column(Integer, nullable=False, default=1)

    quiz = relationship("Quiz", back_populates="questions")
    options = relationship("AnswerOption", back_populates="question", cascade="all, delete-orphan")


class AnswerOption(Base):
    __tablename__ = "answer_options"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    question_id = Column(String, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    # For SHORT_ANSWER questions the single option holds the accepted answer text
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)

    question = relationship("Question", back_populates="options")


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    quiz_id = Column(String, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    answers = Column(JSON, nullable=False, default=dict)
    score_percentage = Column(Float, nullable=False, default=0)
    points_earned = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, default=naive_utc_now)

    quiz = relationship("Quiz", back_populates="attempts")
