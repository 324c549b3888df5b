import os

# Settings are read at import time, so the environment must be in place first
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_WEBHOOK_TOKEN"] = "test-webhook-token"

import itertools
from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from edubridge.main import app
from edubridge.db import Base, get_db
from edubridge.models.course import Course, CourseStatus, Difficulty, Lesson
from edubridge.models.enrollment import Enrollment, EnrollmentStatus, LessonProgress
from edubridge.models.tutoring_session import SessionType, TutoringSession
from edubridge.models.user import User, UserRole
from edubridge.services import email as email_service
from edubridge.utils.datetime import naive_utc_now

# Use SQLite in-memory for test DB
TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
# For in-memory SQLite we must use a StaticPool so the TestClient requests and
# the fixtures below share the same in-memory database.
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency override
def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_test_db():
    # recreate schema for each test to ensure isolation
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db_session():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Replace the SendGrid transport; every call is recorded and succeeds."""
    outbox = []
    counter = itertools.count(1)

    def fake_send_email(to_email, subject, html_content, plain_content, from_email=None,
                        attachments=None, custom_args=None):
        outbox.append({
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "plain": plain_content,
            "attachments": attachments or [],
            "custom_args": custom_args or {},
        })
        return email_service.EmailSendResult(True, message_id=f"msg-{next(counter)}")

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    return outbox


@pytest.fixture
def failing_email(monkeypatch):
    """Make every email send fail like a rejected provider call."""
    def fake_send_email(*args, **kwargs):
        return email_service.EmailSendResult(False, error="Provider returned status 503")

    monkeypatch.setattr(email_service, "send_email", fake_send_email)


@pytest.fixture
def auth_headers_factory():
    """Bearer headers acting as an existing user row (mock-uid tokens)."""
    def _factory(user: User) -> dict:
        return {"Authorization": f"Bearer mock-uid-{user.id}"}
    return _factory


def _add_user(db, user_id, name, email, role, **extra):
    user = User(id=user_id, name=name, email=email, role=role, created_at=naive_utc_now(), **extra)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# Ids match the deterministic mock tokens so the header and the fixture are the same user
@pytest.fixture
def tutor(db_session):
    return _add_user(db_session, "tutor-1", "Tutor One", "tutor@example.com", UserRole.tutor)


@pytest.fixture
def student(db_session):
    return _add_user(db_session, "student-1", "Student One", "student@example.com", UserRole.student)


@pytest.fixture
def admin(db_session):
    return _add_user(db_session, "admin-1", "Admin One", "admin@example.com", UserRole.admin)


@pytest.fixture
def make_student(db_session):
    def _make(name="Extra Student", **extra):
        uid = str(uuid4())
        return _add_user(db_session, uid, name, f"{uid[:8]}@example.com", UserRole.student, **extra)
    return _make


@pytest.fixture
def published_course(db_session, tutor):
    course = Course(
        tutor_id=tutor.id,
        title="Algebra Foundations",
        slug="algebra-foundations",
        description="A gentle path through linear equations, inequalities and graphing for beginners.",
        subject_category="Mathematics",
        education_level="High School",
        difficulty=Difficulty.BEGINNER,
        status=CourseStatus.PUBLISHED,
        published_at=naive_utc_now(),
    )
    course.lessons = [
        Lesson(title="Variables", content="# Variables\n\nA *variable* holds a value.", sequence_order=1),
        Lesson(title="Equations", content="Solve for **x**.", sequence_order=2),
    ]
    db_session.add(course)
    db_session.commit()
    db_session.refresh(course)
    return course


@pytest.fixture
def enroll(db_session):
    """Enroll a student directly, with a progress row per lesson."""
    def _enroll(course, user):
        enrollment = Enrollment(user_id=user.id, course_id=course.id, status=EnrollmentStatus.ACTIVE)
        db_session.add(enrollment)
        db_session.flush()
        for lesson in course.lessons:
            db_session.add(LessonProgress(enrollment_id=enrollment.id, lesson_id=lesson.id, user_id=user.id))
        db_session.commit()
        return enrollment
    return _enroll


@pytest.fixture
def scheduled_session(db_session, tutor):
    start = naive_utc_now().replace(microsecond=0) + timedelta(days=2)
    session = TutoringSession(
        tutor_id=tutor.id,
        subject="Algebra Review",
        education_level="High School",
        scheduled_start=start,
        scheduled_end=start + timedelta(hours=1),
        session_type=SessionType.GROUP,
        max_participants=10,
    )
    db_session.add(session)
    db_session.commit()
    db_session.refresh(session)
    return session
