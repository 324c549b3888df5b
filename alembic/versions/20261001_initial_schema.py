"""Initial EduBridge schema

Revision ID: 20261001_initial_schema
Revises:
Create Date: 2026-10-01 09:00:00
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '20261001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum('student', 'tutor', 'admin', name='userrole')
user_status = sa.Enum('active', 'suspended', 'banned', name='userstatus')
course_status = sa.Enum('DRAFT', 'PUBLISHED', 'ARCHIVED', name='coursestatus')
difficulty = sa.Enum('BEGINNER', 'INTERMEDIATE', 'ADVANCED', name='difficulty')
pricing_model = sa.Enum('FREE', 'ONE_TIME', 'SUBSCRIPTION', name='pricingmodel')
question_type = sa.Enum('MULTIPLE_CHOICE', 'TRUE_FALSE', 'MULTIPLE_SELECT', 'SHORT_ANSWER', name='questiontype')
enrollment_status = sa.Enum('ACTIVE', 'COMPLETED', 'DROPPED', name='enrollmentstatus')
session_status = sa.Enum('SCHEDULED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', name='sessionstatus')
session_type = sa.Enum('ONE_ON_ONE', 'GROUP', 'WORKSHOP', name='sessiontype')
response_status = sa.Enum('PENDING', 'CONFIRMED', 'DECLINED', 'NO_RESPONSE', name='responsestatus')
activity_type = sa.Enum('LESSON_COMPLETION', 'QUIZ_PASS', 'SESSION_ATTENDANCE', name='activitytype')
badge_criteria = sa.Enum(
    'FIRST_LESSON', 'FIRST_COURSE', 'QUIZ_MASTER', 'SEVEN_DAY_STREAK', 'CENTURY_CLUB', name='badgecriteria'
)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('status', user_status, nullable=False),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('session_invitation_emails', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('longest_streak', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_activity_date', sa.Date(), nullable=True),
        sa.Column('streak_freezes_available', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('streak_freezes_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('streak_freeze_date', sa.Date(), nullable=True),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'courses',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tutor_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('subject_category', sa.String(), nullable=False),
        sa.Column('education_level', sa.String(), nullable=False),
        sa.Column('difficulty', difficulty, nullable=False),
        sa.Column('prerequisites', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('pricing_model', pricing_model, nullable=False),
        sa.Column('estimated_hours', sa.Integer(), nullable=True),
        sa.Column('language', sa.String(), nullable=False, server_default='en'),
        sa.Column('thumbnail_url', sa.String(), nullable=True),
        sa.Column('status', course_status, nullable=False),
        sa.Column('enrollment_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_courses_tutor_id', 'courses', ['tutor_id'])
    op.create_index('ix_courses_slug', 'courses', ['slug'], unique=True)
    op.create_index('ix_courses_subject_category', 'courses', ['subject_category'])
    op.create_index('ix_courses_education_level', 'courses', ['education_level'])
    op.create_index('ix_courses_status', 'courses', ['status'])

    op.create_table(
        'lessons',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('course_id', sa.String(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('video_url', sa.String(), nullable=True),
        sa.Column('sequence_order', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('estimated_duration', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_lessons_course_id', 'lessons', ['course_id'])

    op.create_table(
        'quizzes',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('lesson_id', sa.String(), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('passing_percentage', sa.Integer(), nullable=False, server_default='70'),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('immediate_feedback', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_quizzes_lesson_id', 'quizzes', ['lesson_id'])

    op.create_table(
        'questions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('quiz_id', sa.String(), sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', question_type, nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('sequence_order', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'])

    op.create_table(
        'answer_options',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('question_id', sa.String(), sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('option_text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_answer_options_question_id', 'answer_options', ['question_id'])

    op.create_table(
        'quiz_attempts',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('quiz_id', sa.String(), sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('score_percentage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('points_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('passed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_quiz_attempts_user_id', 'quiz_attempts', ['user_id'])
    op.create_index('ix_quiz_attempts_quiz_id', 'quiz_attempts', ['quiz_id'])

    op.create_table(
        'enrollments',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('course_id', sa.String(), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', enrollment_status, nullable=False),
        sa.Column('progress_percentage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('enrolled_at', sa.DateTime(), nullable=True),
        sa.Column('last_accessed_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'course_id', name='uq_enrollment_user_course'),
    )
    op.create_index('ix_enrollments_user_id', 'enrollments', ['user_id'])
    op.create_index('ix_enrollments_course_id', 'enrollments', ['course_id'])

    op.create_table(
        'lesson_progress',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('enrollment_id', sa.String(), sa.ForeignKey('enrollments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', sa.String(), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('bookmarked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('enrollment_id', 'lesson_id', name='uq_progress_enrollment_lesson'),
    )
    op.create_index('ix_lesson_progress_enrollment_id', 'lesson_progress', ['enrollment_id'])
    op.create_index('ix_lesson_progress_lesson_id', 'lesson_progress', ['lesson_id'])
    op.create_index('ix_lesson_progress_user_id', 'lesson_progress', ['user_id'])

    op.create_table(
        'tutoring_sessions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('tutor_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('education_level', sa.String(), nullable=True),
        sa.Column('scheduled_start', sa.DateTime(), nullable=False),
        sa.Column('scheduled_end', sa.DateTime(), nullable=False),
        sa.Column('session_type', session_type, nullable=False),
        sa.Column('max_participants', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price_per_student', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('video_room_id', sa.String(), nullable=True),
        sa.Column('status', session_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_tutoring_sessions_tutor_id', 'tutoring_sessions', ['tutor_id'])
    op.create_index('ix_tutoring_sessions_scheduled_start', 'tutoring_sessions', ['scheduled_start'])
    op.create_index('ix_tutoring_sessions_status', 'tutoring_sessions', ['status'])

    op.create_table(
        'session_bookings',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('session_id', sa.String(), sa.ForeignKey('tutoring_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('response_status', response_status, nullable=False),
        sa.Column('invited', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('opened_at', sa.DateTime(), nullable=True),
        sa.Column('clicked_at', sa.DateTime(), nullable=True),
        sa.Column('bounced_at', sa.DateTime(), nullable=True),
        sa.Column('email_message_id', sa.String(), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('resend_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reminder_sent_at', sa.DateTime(), nullable=True),
        sa.Column('reminder_failure_reason', sa.Text(), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        sa.Column('decline_reason', sa.Text(), nullable=True),
        sa.Column('reschedule_reason', sa.Text(), nullable=True),
        sa.Column('proposed_times', sa.JSON(), nullable=True),
        sa.Column('reschedule_requested_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('session_id', 'student_id', name='uq_booking_session_student'),
    )
    op.create_index('ix_session_bookings_session_id', 'session_bookings', ['session_id'])
    op.create_index('ix_session_bookings_student_id', 'session_bookings', ['student_id'])
    op.create_index('ix_session_bookings_response_status', 'session_bookings', ['response_status'])
    op.create_index('ix_session_bookings_email_message_id', 'session_bookings', ['email_message_id'])

    op.create_table(
        'points_transactions',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('points_amount', sa.Integer(), nullable=False),
        sa.Column('activity_type', activity_type, nullable=False),
        sa.Column('reference_id', sa.String(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_points_transactions_user_id', 'points_transactions', ['user_id'])
    op.create_index('ix_points_transactions_created_at', 'points_transactions', ['created_at'])

    op.create_table(
        'badges',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('criteria_type', badge_criteria, nullable=False, unique=True),
        sa.Column('rarity', sa.String(), nullable=False, server_default='common'),
    )

    op.create_table(
        'user_badges',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('badge_id', sa.String(), sa.ForeignKey('badges.id'), nullable=False),
        sa.Column('earned_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_user_badge'),
    )
    op.create_index('ix_user_badges_user_id', 'user_badges', ['user_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.String(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('admin_id', sa.String(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('action_type', sa.String(), nullable=False),
        sa.Column('target_resource_type', sa.String(), nullable=False),
        sa.Column('target_resource_id', sa.String(), nullable=False),
        sa.Column('previous_state', sa.JSON(), nullable=True),
        sa.Column('new_state', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_audit_logs_action_type', 'audit_logs', ['action_type'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_admin_created', 'audit_logs', ['admin_id', 'created_at'])
    op.create_index('ix_audit_logs_target', 'audit_logs', ['target_resource_type', 'target_resource_id'])


def downgrade() -> None:
    for table in (
        'audit_logs', 'notifications', 'user_badges', 'badges', 'points_transactions',
        'session_bookings', 'tutoring_sessions', 'lesson_progress', 'enrollments',
        'quiz_attempts', 'answer_options', 'questions', 'quizzes', 'lessons', 'courses', 'users',
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum_type in (
        badge_criteria, activity_type, response_status, session_type, session_status,
        enrollment_status, question_type, pricing_model, difficulty, course_status, user_status, user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
