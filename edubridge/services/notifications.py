import logging

from sqlalchemy.orm import Session

from edubridge.models.notification import Notification

logger = logging.getLogger("edubridge.notifications")


def notify(db: Session, user_id: str, type: str, title: str, message: str, link: str | None = None) -> Notification:
    """Queue an in-app notification on the caller's session (committed with the caller's work)."""
    notification = Notification(user_id=user_id, type=type, title=title, message=message, link=link)
    db.add(notification)
    logger.debug(f"Notification queued user_id={user_id} type={type}")
    return notification
