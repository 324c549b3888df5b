"""Rate limiting built on slowapi.

Limits are applied per client address as seen by the ASGI server. Forwarded
headers are not trusted here; deployments behind a proxy should run uvicorn
with ``--proxy-headers`` and ``--forwarded-allow-ips`` so the server resolves
the real client before the request reaches the app.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

logger = logging.getLogger("edubridge.rate_limit")

EXEMPT_PATH_PREFIXES = ("/health", "/webhooks/")


def get_client_identifier(request: Request) -> str:
    return f"ip:{get_remote_address(request)}"


def build_limiter(calls_per_minute: int) -> Limiter:
    # memory:// storage expires idle client windows on its own
    return Limiter(
        key_func=get_client_identifier,
        default_limits=[f"{calls_per_minute}/minute"],
        storage_uri="memory://",
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render a 429 in the standard error envelope.

    Called synchronously by ``SlowAPIMiddleware``, so this must stay a plain function.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.warning(
        f"[{correlation_id}] Rate limit exceeded ({exc.detail}) for "
        f"{get_client_identifier(request)} on {request.url.path}"
    )
    retry_after = 60
    limit = getattr(exc, "limit", None)
    if limit is not None:
        retry_after = max(1, int(limit.limit.get_expiry()))
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please slow down.",
            "correlation_id": correlation_id,
        },
        headers={"Retry-After": str(retry_after)},
    )


class RateLimitMiddleware(SlowAPIMiddleware):
    """SlowAPIMiddleware that skips health probes and provider webhooks."""

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(EXEMPT_PATH_PREFIXES):
            return await call_next(request)
        return await super().dispatch(request, call_next)


def install_rate_limiting(app: FastAPI, calls_per_minute: int) -> Limiter:
    limiter = build_limiter(calls_per_minute)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(RateLimitMiddleware)
    return limiter
