import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from edubridge.db import get_db
from edubridge.exceptions import NotFoundException
from edubridge.models.user import User, UserStatus
from edubridge.schemas.common import ok
from edubridge.schemas.user import UserOut, UserPublic, UserUpdate
from edubridge.services.auth import get_current_user

logger = logging.getLogger("edubridge.users")
router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    return ok(UserOut.model_validate(current_user))


@router.patch("/me")
def update_me(
    payload: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in changes.items():
        setattr(current_user, key, value)
    db.commit()
    db.refresh(current_user)
    if changes:
        logger.info(f"Profile updated user_id={current_user.id} fields={sorted(changes)}")
    return ok(UserOut.model_validate(current_user), message="Profile updated")


@router.get("/{user_id}")
def get_public_profile(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.status == UserStatus.banned:
        raise NotFoundException("User not found")
    return ok(UserPublic.model_validate(user))
