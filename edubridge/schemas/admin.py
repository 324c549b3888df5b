from typing import Optional

from pydantic import Field

from edubridge.core.security import SecurityMixin
from edubridge.models.user import UserRole, UserStatus

# Reasons are length-checked in the route so a short one answers 400 with a message
MIN_REASON_LENGTH = 10


class RoleChangeRequest(SecurityMixin):
    new_role: UserRole = Field(..., alias="newRole")
    reason: Optional[str] = Field(None, max_length=1000)

    model_config = {"populate_by_name": True}


class StatusChangeRequest(SecurityMixin):
    status: UserStatus
    reason: Optional[str] = Field(None, max_length=1000)


class DeleteUserRequest(SecurityMixin):
    reason: Optional[str] = Field(None, max_length=1000)


class CourseModerationRequest(SecurityMixin):
    reason: Optional[str] = Field(None, max_length=1000)
