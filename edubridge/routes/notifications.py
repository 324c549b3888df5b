from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.exceptions import NotFoundException
from edubridge.models.notification import Notification
from edubridge.models.user import User
from edubridge.schemas.common import ok
from edubridge.services.auth import get_current_user

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _serialize(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "link": n.link,
        "is_read": bool(n.is_read),
        "created_at": n.created_at,
    }


def _get_own(db: Session, notification_id: str, user: User) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user.id)
        .first()
    )
    if not notification:
        raise NotFoundException("Notification not found")
    return notification


@router.get("")
def list_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Notification).filter(Notification.user_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    rows = query.order_by(Notification.created_at.desc()).limit(50).all()
    unread = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .count()
    )
    return ok({"notifications": [_serialize(n) for n in rows], "unread_count": unread})


@router.post("/read-all")
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return ok({"updated": updated}, message="All notifications marked as read")


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = _get_own(db, notification_id, current_user)
    notification.is_read = True
    db.commit()
    return ok(_serialize(notification))


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = _get_own(db, notification_id, current_user)
    db.delete(notification)
    db.commit()
    return ok(message="Notification deleted")
