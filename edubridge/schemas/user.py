from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from edubridge.models.user import UserRole, UserStatus
from edubridge.core.security import SecurityMixin


class UserPublic(BaseModel):
    id: str
    name: str
    role: UserRole
    bio: Optional[str] = None

    model_config = {
        'from_attributes': True
    }


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole
    status: UserStatus
    bio: Optional[str] = None
    session_invitation_emails: bool
    total_points: int
    current_streak: int
    longest_streak: int
    created_at: Optional[datetime]

    model_config = {
        'from_attributes': True
    }


class UserUpdate(SecurityMixin):
    name: Optional[str] = Field(None, min_length=1, max_length=120)
    bio: Optional[str] = Field(None, max_length=2000)
    session_invitation_emails: Optional[bool] = None
