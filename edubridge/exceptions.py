"""Domain exceptions mapped to HTTP status codes by the handlers in main.py."""

from fastapi import HTTPException, status


class EduBridgeException(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None, extra: dict | None = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)
        self.extra = extra or {}


class ValidationException(EduBridgeException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation failed"


class UnauthorizedException(EduBridgeException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Authentication required"


class ForbiddenException(EduBridgeException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFoundException(EduBridgeException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ConflictException(EduBridgeException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict with current state"


class ExternalServiceException(EduBridgeException):
    """An upstream provider (email, identity) failed for every attempt."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "External service unavailable"
