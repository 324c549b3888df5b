import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.exceptions import NotFoundException, ValidationException
from edubridge.models.course import Course
from edubridge.models.enrollment import Enrollment
from edubridge.models.gamification import ActivityType, Badge, PointsTransaction, UserBadge
from edubridge.models.user import User, UserRole, UserStatus
from edubridge.schemas.common import ok
from edubridge.services import gamification
from edubridge.services.auth import get_current_user
from edubridge.utils.datetime import naive_utc_now

logger = logging.getLogger("edubridge.gamification")
router = APIRouter(prefix="/gamification", tags=["Gamification"])

PERIODS = {"all-time": None, "weekly": timedelta(days=7), "monthly": timedelta(days=30)}


@router.get("/badges")
def my_badges(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(UserBadge, Badge)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .filter(UserBadge.user_id == current_user.id)
        .order_by(UserBadge.earned_at.desc())
        .all()
    )
    return ok([
        {
            "badge_id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "criteria_type": badge.criteria_type.value,
            "rarity": badge.rarity,
            "earned_at": award.earned_at,
        }
        for award, badge in rows
    ])


@router.get("/badges/all")
def all_badges(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    gamification.ensure_default_badges(db)
    db.commit()
    earned = {
        ub.badge_id: ub.earned_at
        for ub in db.query(UserBadge).filter(UserBadge.user_id == current_user.id).all()
    }
    items = []
    for badge in db.query(Badge).order_by(Badge.name).all():
        target = gamification.badge_target(badge.criteria_type)
        progress = gamification.badge_progress(db, current_user, badge.criteria_type)
        items.append({
            "badge_id": badge.id,
            "name": badge.name,
            "description": badge.description,
            "criteria_type": badge.criteria_type.value,
            "rarity": badge.rarity,
            "earned": badge.id in earned,
            "earned_at": earned.get(badge.id),
            "progress": min(progress, target),
            "target": target,
        })
    return ok(items)


@router.get("/points")
def points_history(
    activity_type: Optional[ActivityType] = Query(None, alias="activityType"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(PointsTransaction).filter(PointsTransaction.user_id == current_user.id)
    if activity_type:
        query = query.filter(PointsTransaction.activity_type == activity_type)
    total = query.count()
    rows = query.order_by(PointsTransaction.created_at.desc()).offset(offset).limit(limit).all()
    return ok({
        "total_points": current_user.total_points,
        "transactions": [
            {
                "id": t.id,
                "points_amount": t.points_amount,
                "activity_type": t.activity_type.value,
                "reference_id": t.reference_id,
                "description": t.description,
                "created_at": t.created_at,
            }
            for t in rows
        ],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@router.get("/leaderboard")
def leaderboard(
    scope: str = Query("global", pattern="^(global|course)$"),
    period: str = Query("all-time", pattern="^(all-time|weekly|monthly)$"),
    course_id: Optional[str] = Query(None, alias="courseId"),
    limit: int = Query(10, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    points = func.coalesce(func.sum(PointsTransaction.points_amount), 0).label("points")
    join_on = PointsTransaction.user_id == User.id
    window = PERIODS[period]
    if window is not None:
        # window goes in the join so students without recent points still rank at zero
        join_on = join_on & (PointsTransaction.created_at >= naive_utc_now() - window)
    query = (
        db.query(User.id, User.name, points)
        .outerjoin(PointsTransaction, join_on)
        .filter(User.role == UserRole.student, User.status == UserStatus.active)
    )
    if scope == "course":
        if not course_id:
            raise ValidationException("courseId is required for the course leaderboard")
        if not db.query(Course.id).filter(Course.id == course_id).first():
            raise NotFoundException("Course not found")
        query = query.join(Enrollment, Enrollment.user_id == User.id).filter(Enrollment.course_id == course_id)

    ranked = query.group_by(User.id, User.name).order_by(points.desc(), User.name.asc()).all()
    entries = [
        {"rank": i, "user_id": uid, "name": name, "points": int(total)}
        for i, (uid, name, total) in enumerate(ranked, start=1)
    ]
    current = next((e for e in entries if e["user_id"] == current_user.id), None)
    return ok({
        "scope": scope,
        "period": period,
        "entries": entries[:limit],
        "current_user_rank": current if current and current["rank"] > limit else None,
    })


@router.get("/streak")
def streak_info(current_user: User = Depends(get_current_user)):
    return ok({
        "current_streak": current_user.current_streak,
        "longest_streak": current_user.longest_streak,
        "last_activity_date": current_user.last_activity_date,
        "status": gamification.streak_status(current_user),
        "freezes_available": current_user.streak_freezes_available,
        "freezes_used": current_user.streak_freezes_used,
        "freeze_active_date": current_user.streak_freeze_date,
    })


@router.post("/streak/freeze")
def use_streak_freeze(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        gamification.use_streak_freeze(current_user)
    except ValueError as e:
        raise ValidationException(str(e))
    db.commit()
    logger.info(f"Streak freeze used user_id={current_user.id}")
    return ok({
        "freezes_available": current_user.streak_freezes_available,
        "freeze_active_date": current_user.streak_freeze_date,
    }, message="Streak freeze activated for today")
