"""Points ledger, daily streaks and badge awards."""
from __future__ import annotations
import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from edubridge.models.enrollment import Enrollment, LessonProgress
from edubridge.models.gamification import (
    ActivityType, Badge, BadgeCriteria, PointsTransaction, UserBadge,
)
from edubridge.models.notification import NotificationType
from edubridge.models.quiz import QuizAttempt
from edubridge.models.user import User
from edubridge.services.notifications import notify
from edubridge.utils.datetime import utc_today

logger = logging.getLogger("edubridge.gamification")

QUIZ_MASTER_MIN_SCORE = 80

# criteria -> (name, description, rarity, target)
DEFAULT_BADGES: dict[BadgeCriteria, tuple[str, str, str, int]] = {
    BadgeCriteria.FIRST_LESSON: ("First Steps", "Complete your first lesson", "common", 1),
    BadgeCriteria.FIRST_COURSE: ("Course Finisher", "Complete your first course", "rare", 1),
    BadgeCriteria.QUIZ_MASTER: ("Quiz Master", "Pass 5 quizzes with a score of 80% or higher", "rare", 5),
    BadgeCriteria.SEVEN_DAY_STREAK: ("Week Warrior", "Keep a 7 day learning streak", "epic", 7),
    BadgeCriteria.CENTURY_CLUB: ("Century Club", "Earn 100 points", "common", 100),
}


def ensure_default_badges(db: Session) -> None:
    existing = {b.criteria_type for b in db.query(Badge).all()}
    missing = [c for c in DEFAULT_BADGES if c not in existing]
    for criteria in missing:
        name, description, rarity, _ = DEFAULT_BADGES[criteria]
        db.add(Badge(name=name, description=description, criteria_type=criteria, rarity=rarity))
    if missing:
        db.flush()
        logger.info(f"Seeded {len(missing)} default badges")


def award_points(
    db: Session,
    user: User,
    amount: int,
    activity_type: ActivityType,
    reference_id: Optional[str] = None,
    description: Optional[str] = None,
) -> PointsTransaction:
    txn = PointsTransaction(
        user_id=user.id,
        points_amount=amount,
        activity_type=activity_type,
        reference_id=reference_id,
        description=description,
    )
    db.add(txn)
    user.total_points = (user.total_points or 0) + amount
    logger.info(f"Awarded {amount} points user_id={user.id} activity={activity_type.value} ref={reference_id}")
    return txn


def update_streak(user: User, today: Optional[date] = None) -> int:
    """Record activity for today and return the resulting streak length.

    Same day keeps the streak, the following day extends it, and a single
    missed day is bridged when a streak freeze was applied on it.
    """
    today = today or utc_today()
    last = user.last_activity_date

    if last == today:
        return user.current_streak
    if last == today - timedelta(days=1):
        user.current_streak = (user.current_streak or 0) + 1
    elif last == today - timedelta(days=2) and user.streak_freeze_date == today - timedelta(days=1):
        user.current_streak = (user.current_streak or 0) + 1
    else:
        user.current_streak = 1

    user.last_activity_date = today
    if user.current_streak > (user.longest_streak or 0):
        user.longest_streak = user.current_streak
    return user.current_streak


def streak_status(user: User, today: Optional[date] = None) -> str:
    today = today or utc_today()
    last = user.last_activity_date
    if not last or not user.current_streak:
        return "broken"
    if last == today:
        return "active"
    if last == today - timedelta(days=1) or user.streak_freeze_date == today:
        return "at-risk"
    if last == today - timedelta(days=2) and user.streak_freeze_date == today - timedelta(days=1):
        return "at-risk"
    return "broken"


def use_streak_freeze(user: User, today: Optional[date] = None) -> None:
    """Protect today from breaking the streak. Raises ValueError when not possible."""
    today = today or utc_today()
    if (user.streak_freezes_available or 0) <= 0:
        raise ValueError("No streak freezes available")
    if user.streak_freeze_date == today:
        raise ValueError("Streak freeze already active today")
    user.streak_freeze_date = today
    user.streak_freezes_available -= 1
    user.streak_freezes_used = (user.streak_freezes_used or 0) + 1


def badge_progress(db: Session, user: User, criteria: BadgeCriteria) -> int:
    if criteria == BadgeCriteria.FIRST_LESSON:
        return (
            db.query(LessonProgress)
            .filter(LessonProgress.user_id == user.id, LessonProgress.completed.is_(True))
            .count()
        )
    if criteria == BadgeCriteria.FIRST_COURSE:
        return (
            db.query(Enrollment)
            .filter(Enrollment.user_id == user.id, Enrollment.progress_percentage >= 100)
            .count()
        )
    if criteria == BadgeCriteria.QUIZ_MASTER:
        return (
            db.query(QuizAttempt)
            .filter(
                QuizAttempt.user_id == user.id,
                QuizAttempt.passed.is_(True),
                QuizAttempt.score_percentage >= QUIZ_MASTER_MIN_SCORE,
            )
            .count()
        )
    if criteria == BadgeCriteria.SEVEN_DAY_STREAK:
        return max(user.current_streak or 0, user.longest_streak or 0)
    if criteria == BadgeCriteria.CENTURY_CLUB:
        return user.total_points or 0
    return 0


def badge_target(criteria: BadgeCriteria) -> int:
    return DEFAULT_BADGES[criteria][3]


def check_and_award_badges(db: Session, user: User) -> list[Badge]:
    """Award every badge whose criteria the user now meets; each badge is awarded once."""
    ensure_default_badges(db)
    db.flush()
    earned_ids = {ub.badge_id for ub in db.query(UserBadge).filter(UserBadge.user_id == user.id).all()}
    awarded: list[Badge] = []
    for badge in db.query(Badge).all():
        if badge.id in earned_ids:
            continue
        if badge_progress(db, user, badge.criteria_type) >= badge_target(badge.criteria_type):
            db.add(UserBadge(user_id=user.id, badge_id=badge.id))
            notify(
                db,
                user.id,
                NotificationType.BADGE_EARNED,
                "Badge earned!",
                f"You earned the {badge.name} badge: {badge.description}",
                link="/gamification/badges",
            )
            awarded.append(badge)
            logger.info(f"Badge awarded user_id={user.id} badge={badge.criteria_type.value}")
    return awarded


def record_learning_activity(
    db: Session,
    user: User,
    points: int,
    activity_type: ActivityType,
    reference_id: Optional[str] = None,
    description: Optional[str] = None,
) -> dict:
    """Points + streak + badges for one learning event; returns what changed."""
    award_points(db, user, points, activity_type, reference_id, description)
    streak = update_streak(user)
    db.flush()
    badges = check_and_award_badges(db, user)
    return {
        "points_awarded": points,
        "total_points": user.total_points,
        "current_streak": streak,
        "badges_earned": [b.name for b in badges],
    }
