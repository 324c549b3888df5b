from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
import uuid

from edubridge.db import Base
from edubridge.utils.datetime import naive_utc_now


class AuditActionType:
    USER_ROLE_CHANGE = "USER_ROLE_CHANGE"
    USER_STATUS_CHANGE = "USER_STATUS_CHANGE"
    USER_PASSWORD_RESET = "USER_PASSWORD_RESET"
    USER_DELETE = "USER_DELETE"
    COURSE_PUBLISH = "COURSE_PUBLISH"
    COURSE_UNPUBLISH = "COURSE_UNPUBLISH"

    ALL = (
        USER_ROLE_CHANGE,
        USER_STATUS_CHANGE,
        USER_PASSWORD_RESET,
        USER_DELETE,
        COURSE_PUBLISH,
        COURSE_UNPUBLISH,
    )


class AuditResourceType:
    USER = "USER"
    COURSE = "COURSE"


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_admin_created", "admin_id", "created_at"),
        Index("ix_audit_logs_target", "target_resource_type", "target_resource_id"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    admin_id = Column(String, ForeignKey("users.id"), nullable=False)
    action_type = Column(String, nullable=False, index=True)
    target_resource_type = Column(String, nullable=False)
    target_resource_id = Column(String, nullable=False)
    previous_state = Column(JSON, nullable=True)
    new_state = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime, default=naive_utc_now, index=True)

    admin = relationship("User", foreign_keys=[admin_id])
