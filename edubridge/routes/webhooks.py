"""Email provider event webhook (delivery / open / click / bounce tracking)."""
import hmac
import logging
from datetime import datetime, UTC
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Header
from sqlalchemy.orm import Session

from edubridge.core.settings import settings
from edubridge.db import get_db
from edubridge.exceptions import ForbiddenException
from edubridge.models.tutoring_session import SessionBooking
from edubridge.schemas.common import ok

logger = logging.getLogger("edubridge.webhooks")
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

BOUNCE_EVENTS = {"bounce", "dropped", "blocked"}


def verify_webhook_token(x_webhook_token: Optional[str] = Header(None)):
    """Shared-secret check for provider callbacks."""
    expected = settings.email_webhook_token
    if not expected:
        logger.error("EMAIL_WEBHOOK_TOKEN not configured; rejecting webhook call")
        raise ForbiddenException("Webhook not configured")
    if not x_webhook_token or not hmac.compare_digest(x_webhook_token, expected):
        logger.warning("Webhook call with invalid token")
        raise ForbiddenException("Invalid webhook token")
    return True


def _event_time(event: dict) -> datetime:
    ts = event.get("timestamp")
    if isinstance(ts, (int, float)) and not isinstance(ts, bool):
        try:
            return datetime.fromtimestamp(ts, UTC).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            logger.warning(f"Unusable webhook timestamp {ts!r}; using receive time")
    return datetime.now(UTC).replace(tzinfo=None)


def _find_booking(db: Session, event: dict) -> Optional[SessionBooking]:
    booking_id = event.get("booking_id")
    if booking_id:
        booking = db.query(SessionBooking).filter(SessionBooking.id == str(booking_id)).first()
        if booking:
            return booking
    sg_message_id = event.get("sg_message_id")
    if sg_message_id:
        # Provider appends ".filterXXXX..." to the X-Message-Id returned at send time
        message_id = str(sg_message_id).split(".")[0]
        return db.query(SessionBooking).filter(SessionBooking.email_message_id == message_id).first()
    return None


def apply_event(booking: SessionBooking, event: dict) -> bool:
    """Set the engagement timestamp for one event; the first timestamp wins."""
    kind = str(event.get("event", "")).lower()
    at = _event_time(event)
    if kind == "delivered":
        if not booking.delivered_at:
            booking.delivered_at = at
        return True
    if kind == "open":
        if not booking.opened_at:
            booking.opened_at = at
        return True
    if kind == "click":
        if not booking.clicked_at:
            booking.clicked_at = at
        if not booking.opened_at:
            booking.opened_at = at
        return True
    if kind in BOUNCE_EVENTS:
        if not booking.bounced_at:
            booking.bounced_at = at
        booking.failure_reason = str(event.get("reason") or event.get("response") or kind)[:500]
        return True
    return False


@router.post("/email/events")
def receive_email_events(
    events: List[Any] = Body(...),
    _: bool = Depends(verify_webhook_token),
    db: Session = Depends(get_db),
):
    processed = matched = 0
    for event in events:
        if not isinstance(event, dict):
            continue
        processed += 1
        booking = _find_booking(db, event)
        if booking and apply_event(booking, event):
            matched += 1
    db.commit()
    logger.info(f"Email webhook processed={processed} matched={matched}")
    return ok({"processed": processed, "matched": matched})
