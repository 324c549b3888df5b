"""Admin user management, course moderation, audit trail and platform analytics.

Every mutation writes its audit row on the request session before the single
commit, so the change and its audit entry land together.
"""
import io
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from firebase_admin import auth as firebase_auth
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from edubridge.core.settings import settings
from edubridge.db import get_db
from edubridge.exceptions import (
    ExternalServiceException, ForbiddenException, NotFoundException, ValidationException,
)
from edubridge.models.audit_log import AuditActionType, AuditLog, AuditResourceType
from edubridge.models.course import Course, CourseStatus
from edubridge.models.enrollment import Enrollment, EnrollmentStatus
from edubridge.models.notification import NotificationType
from edubridge.models.tutoring_session import SessionBooking, SessionStatus, TutoringSession
from edubridge.models.user import User, UserRole, UserStatus
from edubridge.schemas.admin import (
    MIN_REASON_LENGTH, CourseModerationRequest, DeleteUserRequest, RoleChangeRequest, StatusChangeRequest,
)
from edubridge.schemas.common import ok, pagination
from edubridge.schemas.course import CourseOut
from edubridge.schemas.user import UserOut
from edubridge.services import audit
from edubridge.services import email as email_service
from edubridge.services.auth import require_admin
from edubridge.services.notifications import notify
from edubridge.utils.datetime import naive_utc_now

logger = logging.getLogger("edubridge.admin")
router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _require_reason(reason: Optional[str]) -> str:
    if not reason or len(reason.strip()) < MIN_REASON_LENGTH:
        raise ValidationException(f"A reason of at least {MIN_REASON_LENGTH} characters is required")
    return reason.strip()


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundException("User not found")
    return user


def _not_self(admin: User, target: User, action: str) -> None:
    if admin.id == target.id:
        raise ForbiddenException(f"Admins cannot {action} their own account")


def _email_user(admin: User, target: User, purpose: str, subject: str, message: str) -> bool:
    """Best-effort account email; the outcome is audited, never raised."""
    result = email_service.send_notification_email(target.email, subject, message, action_url=settings.app_url)
    audit.log_email_send(admin.id, purpose, target.id, bool(result), error=result.error)
    return bool(result)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@router.get("/users")
def list_users(
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if status:
        query = query.filter(User.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    total = query.count()
    users = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return ok({
        "users": [UserOut.model_validate(u) for u in users],
        "pagination": pagination(total, page, limit),
    })


@router.get("/users/{user_id}")
def get_user(user_id: str, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    data = UserOut.model_validate(user).model_dump(mode="json")
    data["counts"] = {
        "enrollments": db.query(Enrollment).filter(Enrollment.user_id == user.id).count(),
        "courses": db.query(Course).filter(Course.tutor_id == user.id).count(),
        "bookings": db.query(SessionBooking).filter(SessionBooking.student_id == user.id).count(),
        "sessions": db.query(TutoringSession).filter(TutoringSession.tutor_id == user.id).count(),
    }
    return ok(data)


@router.put("/users/{user_id}/role")
def change_role(
    user_id: str,
    payload: RoleChangeRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    target = _get_user_or_404(db, user_id)
    _not_self(current_user, target, "change the role of")
    reason = _require_reason(payload.reason)
    if target.role == payload.new_role:
        raise ValidationException(f"User already has role {payload.new_role.value}")

    previous = target.role
    target.role = payload.new_role
    audit.log_admin_action(
        db,
        admin_id=current_user.id,
        action_type=AuditActionType.USER_ROLE_CHANGE,
        target_resource_type=AuditResourceType.USER,
        target_resource_id=target.id,
        previous_state={"role": previous.value},
        new_state={"role": target.role.value},
        reason=reason,
        ip_address=_client_ip(request),
    )
    notify(db, target.id, NotificationType.ACCOUNT, "Your role has changed",
           f"Your account role is now {target.role.value}")
    db.commit()
    db.refresh(target)
    logger.info(f"Role changed user_id={target.id} {previous.value}->{target.role.value} by={current_user.id}")

    emailed = _email_user(
        current_user, target, "role_change", "Your EduBridge role has changed",
        f"Your account role was changed from {previous.value} to {target.role.value}. Reason: {reason}",
    )
    return ok({"user": UserOut.model_validate(target), "email_sent": emailed}, message="Role updated")


@router.put("/users/{user_id}/status")
def change_status(
    user_id: str,
    payload: StatusChangeRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    target = _get_user_or_404(db, user_id)
    _not_self(current_user, target, "change the status of")
    reason = payload.reason
    if payload.status in (UserStatus.suspended, UserStatus.banned):
        reason = _require_reason(reason)
    if target.status == payload.status:
        raise ValidationException(f"User is already {payload.status.value}")

    previous = target.status
    target.status = payload.status
    audit.log_admin_action(
        db,
        admin_id=current_user.id,
        action_type=AuditActionType.USER_STATUS_CHANGE,
        target_resource_type=AuditResourceType.USER,
        target_resource_id=target.id,
        previous_state={"status": previous.value},
        new_state={"status": target.status.value},
        reason=reason,
        ip_address=_client_ip(request),
    )
    db.commit()
    db.refresh(target)
    logger.info(f"Status changed user_id={target.id} {previous.value}->{target.status.value} by={current_user.id}")

    message = f"Your account status is now {target.status.value}."
    if reason:
        message += f" Reason: {reason}"
    emailed = _email_user(current_user, target, "status_change", "Your EduBridge account status changed", message)
    return ok({"user": UserOut.model_validate(target), "email_sent": emailed}, message="Status updated")


@router.post("/users/{user_id}/reset-password")
def reset_password(
    user_id: str,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    target = _get_user_or_404(db, user_id)
    try:
        link = firebase_auth.generate_password_reset_link(target.email)
    except Exception as e:
        logger.error(f"Password reset link failed user_id={target.id}: {e}")
        raise ExternalServiceException("Could not generate a password reset link")

    result = email_service.send_notification_email(
        target.email,
        "Reset your EduBridge password",
        "An administrator started a password reset for your account. Use the link below to choose a new password.",
        action_url=link,
    )
    audit.log_email_send(current_user.id, "password_reset", target.id, bool(result), error=result.error)
    if not result:
        raise ExternalServiceException("Password reset email could not be sent")

    audit.log_admin_action(
        db,
        admin_id=current_user.id,
        action_type=AuditActionType.USER_PASSWORD_RESET,
        target_resource_type=AuditResourceType.USER,
        target_resource_id=target.id,
        ip_address=_client_ip(request),
    )
    db.commit()
    return ok({"user_id": target.id, "email": target.email}, message="Password reset email sent")


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    payload: DeleteUserRequest,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    target = _get_user_or_404(db, user_id)
    _not_self(current_user, target, "delete")
    reason = _require_reason(payload.reason)

    previous = {"email": target.email, "status": target.status.value}
    target.status = UserStatus.banned
    target.email = f"deleted_{target.id}@edubridge.local"
    audit.log_admin_action(
        db,
        admin_id=current_user.id,
        action_type=AuditActionType.USER_DELETE,
        target_resource_type=AuditResourceType.USER,
        target_resource_id=target.id,
        previous_state=previous,
        new_state={"email": target.email, "status": target.status.value},
        reason=reason,
        ip_address=_client_ip(request),
    )
    db.commit()
    logger.info(f"User soft-deleted user_id={target.id} by={current_user.id}")
    return ok({"user_id": target.id, "status": target.status.value}, message="User deleted")


@router.get("/users/{user_id}/role-history")
def role_history(user_id: str, db: Session = Depends(get_db)):
    target = _get_user_or_404(db, user_id)
    entries = (
        audit.query_logs(db, action_type=AuditActionType.USER_ROLE_CHANGE,
                         target_resource_type=AuditResourceType.USER)
        .filter(AuditLog.target_resource_id == target.id)
        .all()
    )
    return ok([audit.serialize_log(e) for e in entries])


# ---------------------------------------------------------------------------
# Audit logs
# ---------------------------------------------------------------------------

def _audit_filters(
    admin_id: Optional[str] = Query(None, alias="adminId"),
    action_type: Optional[str] = Query(None, alias="actionType"),
    target_resource_type: Optional[str] = Query(None, alias="targetResourceType"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    search: Optional[str] = None,
) -> dict:
    if action_type and action_type not in AuditActionType.ALL:
        raise ValidationException(f"Unknown action type: {action_type}")
    if start_date and end_date and start_date > end_date:
        raise ValidationException("startDate must be before endDate")
    return {
        "admin_id": admin_id,
        "action_type": action_type,
        "target_resource_type": target_resource_type,
        "start_date": start_date,
        "end_date": end_date,
        "search": search,
    }


@router.get("/audit-logs")
def list_audit_logs(
    filters: dict = Depends(_audit_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    query = audit.query_logs(db, **filters)
    total = query.count()
    entries = query.offset((page - 1) * limit).limit(limit).all()
    return ok({
        "logs": [audit.serialize_log(e) for e in entries],
        "pagination": pagination(total, page, limit),
    })


@router.get("/audit-logs/export")
def export_audit_logs(
    filters: dict = Depends(_audit_filters),
    db: Session = Depends(get_db),
):
    content = audit.export_to_csv(audit.query_logs(db, **filters).all())
    filename = f"audit-logs-{naive_utc_now().strftime('%Y%m%d-%H%M%S')}.csv"
    return StreamingResponse(io.StringIO(content), media_type="text/csv", headers={
        "Content-Disposition": f"attachment; filename={filename}"
    })


@router.get("/audit-logs/stats")
def audit_log_stats(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    return ok(audit.get_statistics(db, start_date=start_date, end_date=end_date))


# ---------------------------------------------------------------------------
# Course moderation
# ---------------------------------------------------------------------------

def _moderate_course(db: Session, request: Request, admin: User, course_id: str,
                     publish: bool, reason: Optional[str]) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundException("Course not found")
    previous = course.status
    if publish:
        if previous == CourseStatus.PUBLISHED:
            raise ValidationException("Course is already published")
        if not course.lessons:
            raise ValidationException("Cannot publish a course without lessons")
        course.status = CourseStatus.PUBLISHED
        course.published_at = course.published_at or naive_utc_now()
        action = AuditActionType.COURSE_PUBLISH
    else:
        if previous != CourseStatus.PUBLISHED:
            raise ValidationException("Course is not published")
        course.status = CourseStatus.DRAFT
        action = AuditActionType.COURSE_UNPUBLISH

    audit.log_admin_action(
        db,
        admin_id=admin.id,
        action_type=action,
        target_resource_type=AuditResourceType.COURSE,
        target_resource_id=course.id,
        previous_state={"status": previous.value},
        new_state={"status": course.status.value},
        reason=reason,
        ip_address=_client_ip(request),
    )
    verb = "published" if publish else "unpublished"
    notify(db, course.tutor_id, NotificationType.COURSE_UPDATE, f"Course {verb} by an administrator",
           f"{course.title} was {verb}" + (f": {reason}" if reason else ""),
           link=f"/tutor/courses/{course.id}")
    db.commit()
    db.refresh(course)
    return course


@router.post("/courses/{course_id}/publish")
def admin_publish_course(
    course_id: str,
    request: Request,
    payload: Optional[CourseModerationRequest] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    course = _moderate_course(db, request, current_user, course_id, True, payload.reason if payload else None)
    return ok(CourseOut.model_validate(course), message="Course published")


@router.post("/courses/{course_id}/unpublish")
def admin_unpublish_course(
    course_id: str,
    request: Request,
    payload: Optional[CourseModerationRequest] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    course = _moderate_course(db, request, current_user, course_id, False, payload.reason if payload else None)
    return ok(CourseOut.model_validate(course), message="Course unpublished")


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

def _grouped(db: Session, column) -> dict:
    return {
        (key.value if hasattr(key, "value") else key): count
        for key, count in db.query(column, func.count()).group_by(column).all()
    }


@router.get("/analytics")
def platform_analytics(db: Session = Depends(get_db)):
    return ok({
        "users": {
            "total": db.query(User).count(),
            "by_role": _grouped(db, User.role),
            "by_status": _grouped(db, User.status),
        },
        "courses": {
            "total": db.query(Course).count(),
            "by_status": _grouped(db, Course.status),
        },
        "enrollments": {
            "total": db.query(Enrollment).count(),
            "active": db.query(Enrollment).filter(Enrollment.status == EnrollmentStatus.ACTIVE).count(),
            "completed": db.query(Enrollment).filter(Enrollment.status == EnrollmentStatus.COMPLETED).count(),
        },
        "sessions": {
            "total": db.query(TutoringSession).count(),
            "upcoming": db.query(TutoringSession).filter(
                TutoringSession.status == SessionStatus.SCHEDULED,
                TutoringSession.scheduled_start >= naive_utc_now(),
            ).count(),
            "by_status": _grouped(db, TutoringSession.status),
        },
        "bookings": {
            "total": db.query(SessionBooking).count(),
            "by_response": _grouped(db, SessionBooking.response_status),
        },
    })
