import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth as firebase_auth
from sqlalchemy.orm import Session

from edubridge.core.settings import settings
from edubridge.db import get_db
from edubridge.exceptions import UnauthorizedException, ForbiddenException
from edubridge.models.user import User, UserRole
from edubridge.utils.datetime import naive_utc_now

logger = logging.getLogger("edubridge.auth")

security = HTTPBearer(auto_error=False)

# Deterministic identities for local development and tests (ensure persistence so FK constraints pass)
MOCK_TOKENS = {
    "mock-student-token": ("student-1", "Student One", "student@example.com", UserRole.student),
    "mock-tutor-token": ("tutor-1", "Tutor One", "tutor@example.com", UserRole.tutor),
    "mock-admin-token": ("admin-1", "Admin One", "admin@example.com", UserRole.admin),
}
# "mock-uid-<user id>" acts as an existing user outside production
MOCK_UID_PREFIX = "mock-uid-"


def _role_from_claim(claim: Optional[str]) -> UserRole:
    try:
        return UserRole(claim) if claim else UserRole.student
    except ValueError:
        return UserRole.student


def _mock_user(token: str, db: Session) -> Optional[User]:
    if settings.is_production:
        return None
    if token in MOCK_TOKENS:
        uid, name, email, role = MOCK_TOKENS[token]
        user = db.query(User).filter(User.id == uid).first()
        if not user:
            user = User(id=uid, name=name, email=email, role=role, created_at=naive_utc_now())
            db.add(user)
            db.commit()
            db.refresh(user)
        return user
    if token.startswith(MOCK_UID_PREFIX):
        user = db.query(User).filter(User.id == token[len(MOCK_UID_PREFIX):]).first()
        if not user:
            raise UnauthorizedException("Unknown mock user")
        return user
    return None


def _resolve_user(token: str, db: Session) -> User:
    user = _mock_user(token, db)
    if user:
        return user

    try:
        decoded_token = firebase_auth.verify_id_token(token)
        user_id = decoded_token["uid"]
        email = decoded_token["email"]
    except Exception:
        raise UnauthorizedException("Invalid or expired identity token")

    full_name = decoded_token.get("name")
    if not full_name:
        given = decoded_token.get("given_name", "")
        family = decoded_token.get("family_name", "")
        full_name = (given + " " + family).strip() or None

    # First try to find user by identity provider UID
    user = db.query(User).filter(User.id == user_id).first()
    if user:
        return user

    # Existing account created before the provider link (matched by email)
    user = db.query(User).filter(User.email == email.lower()).first()
    if user:
        user.id = user_id
        db.commit()
        return user

    user = User(
        id=user_id,
        email=email.lower(),
        name=full_name or email.split("@")[0].title(),
        role=_role_from_claim(decoded_token.get("role")),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Provisioned user id={user.id} role={user.role.value}")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("Authorization header missing or invalid")

    user = _resolve_user(credentials.credentials, db)
    if not user.is_active:
        logger.warning(f"Rejected {user.status.value} user id={user.id}")
        raise ForbiddenException(f"Account is {user.status.value}")
    return user


def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Resolve the caller when a token is supplied; anonymous access otherwise."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return get_current_user(credentials, db)
    except (UnauthorizedException, ForbiddenException):
        return None


def require_roles(*roles: UserRole):
    """Single capability check: the dependency passes only for the given roles."""
    allowed = set(roles)

    def role_checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            names = " or ".join(sorted(r.value for r in allowed))
            raise ForbiddenException(f"Forbidden: {names} access required")
        return user

    return role_checker


require_student = require_roles(UserRole.student)
require_tutor = require_roles(UserRole.tutor)
require_admin = require_roles(UserRole.admin)
require_tutor_or_admin = require_roles(UserRole.tutor, UserRole.admin)
