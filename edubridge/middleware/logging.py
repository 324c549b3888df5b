"""Request logging with a per-request correlation id."""

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("edubridge.requests")

CORRELATION_HEADER = "X-Correlation-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Attach a correlation id to request.state and log each request with timing."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        start_time = time.time()
        method = request.method
        path = request.url.path

        try:
            response: Response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception(
                f"[{correlation_id}] {method} {path} - {type(e).__name__}",
                extra={
                    "correlation_id": correlation_id,
                    "method": method,
                    "path": path,
                    "process_time_ms": round(process_time * 1000, 2),
                },
            )
            raise

        process_time = time.time() - start_time
        logger.info(
            f"[{correlation_id}] {method} {path} - {response.status_code} "
            f"({round(process_time * 1000, 2)}ms)",
            extra={
                "correlation_id": correlation_id,
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "client_host": request.client.host if request.client else None,
            },
        )
        response.headers[CORRELATION_HEADER] = correlation_id
        return response
