"""Admin audit trail: persisted rows plus single-line log records.

The row is added to the caller's session so it commits atomically with the
admin mutation it describes.
"""
from __future__ import annotations
import csv
import io
import logging
from datetime import datetime
from typing import Optional, Any

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from edubridge.models.audit_log import AuditLog
from edubridge.models.user import User
from edubridge.utils.datetime import utc_now, iso_or_none, to_naive_utc

_logger = logging.getLogger("edubridge.audit")

CSV_HEADERS = [
    "Timestamp",
    "Admin Email",
    "Admin Name",
    "Action Type",
    "Target Resource Type",
    "Target Resource ID",
    "Reason",
    "IP Address",
]


def _emit(event: str, user_id: Optional[str] = None, **data: Any):
    payload = {"ts": utc_now().isoformat(), "event": event}
    if user_id:
        payload["user_id"] = user_id
    payload.update(data)
    parts = [f"{k}={repr(v)}" for k, v in payload.items()]
    _logger.info("AUDIT " + " ".join(parts))


def log_admin_action(
    db: Session,
    admin_id: str,
    action_type: str,
    target_resource_type: str,
    target_resource_id: str,
    previous_state: dict | None = None,
    new_state: dict | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        admin_id=admin_id,
        action_type=action_type,
        target_resource_type=target_resource_type,
        target_resource_id=target_resource_id,
        previous_state=previous_state,
        new_state=new_state,
        reason=reason,
        ip_address=ip_address,
    )
    db.add(entry)
    _emit(
        f"admin.{action_type.lower()}",
        user_id=admin_id,
        target_type=target_resource_type,
        target_id=target_resource_id,
        previous=previous_state,
        new=new_state,
        ip=ip_address,
    )
    return entry


def log_email_send(user_id: str, purpose: str, target_user_id: str | None, sent: bool, **extra: Any):
    _emit("email.send", user_id=user_id, purpose=purpose, target_user_id=target_user_id, sent=sent, **extra)


def log_booking_response(student_id: str, booking_id: str, session_id: str, action: str, status: str):
    _emit("booking.respond", user_id=student_id, booking_id=booking_id, session_id=session_id, action=action, status=status)


def query_logs(
    db: Session,
    admin_id: str | None = None,
    action_type: str | None = None,
    target_resource_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
):
    """Filtered query over audit rows, newest first (pagination left to the caller)."""
    query = db.query(AuditLog)
    if admin_id:
        query = query.filter(AuditLog.admin_id == admin_id)
    if action_type:
        query = query.filter(AuditLog.action_type == action_type)
    if target_resource_type:
        query = query.filter(AuditLog.target_resource_type == target_resource_type)
    if start_date:
        query = query.filter(AuditLog.created_at >= to_naive_utc(start_date))
    if end_date:
        query = query.filter(AuditLog.created_at <= to_naive_utc(end_date))
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(AuditLog.reason.ilike(pattern), AuditLog.target_resource_id.ilike(pattern)))
    return query.order_by(AuditLog.created_at.desc())


def serialize_log(entry: AuditLog) -> dict:
    admin = entry.admin
    return {
        "id": entry.id,
        "admin_id": entry.admin_id,
        "admin_name": admin.name if admin else None,
        "admin_email": admin.email if admin else None,
        "action_type": entry.action_type,
        "target_resource_type": entry.target_resource_type,
        "target_resource_id": entry.target_resource_id,
        "previous_state": entry.previous_state,
        "new_state": entry.new_state,
        "reason": entry.reason,
        "ip_address": entry.ip_address,
        "created_at": iso_or_none(entry.created_at),
    }


def export_to_csv(entries: list[AuditLog]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for entry in entries:
        admin = entry.admin
        writer.writerow([
            iso_or_none(entry.created_at),
            admin.email if admin else "",
            admin.name if admin else "",
            entry.action_type,
            entry.target_resource_type,
            entry.target_resource_id,
            entry.reason or "",
            entry.ip_address or "",
        ])
    return buffer.getvalue()


def get_statistics(db: Session, start_date: datetime | None = None, end_date: datetime | None = None) -> dict:
    base = query_logs(db, start_date=start_date, end_date=end_date).order_by(None)
    total = base.count()

    by_action = (
        base.with_entities(AuditLog.action_type, func.count(AuditLog.id))
        .group_by(AuditLog.action_type)
        .all()
    )
    by_admin = (
        base.join(User, User.id == AuditLog.admin_id)
        .with_entities(AuditLog.admin_id, User.name, User.email, func.count(AuditLog.id))
        .group_by(AuditLog.admin_id, User.name, User.email)
        .order_by(func.count(AuditLog.id).desc())
        .all()
    )
    return {
        "total_actions": total,
        "by_action_type": {action: count for action, count in by_action},
        "by_admin": [
            {"admin_id": admin_id, "name": name, "email": email, "count": count}
            for admin_id, name, email, count in by_admin
        ],
    }
