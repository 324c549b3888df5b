"""
Health check and probe endpoints.
"""
import time
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from edubridge.db import check_database_health
from edubridge.services.email import get_sendgrid_client
from edubridge.core.settings import settings

logger = logging.getLogger("edubridge.health")
router = APIRouter(tags=["Health"])

VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "version": VERSION,
    }


@router.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with database and email provider status."""
    start_time = time.time()

    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "services": {},
    }

    db_health = await check_database_health()
    health_status["services"]["database"] = db_health
    if db_health["status"] != "healthy":
        health_status["status"] = "degraded"

    if get_sendgrid_client():
        health_status["services"]["email"] = {
            "status": "configured",
            "provider": "sendgrid",
            "webhook_token_set": bool(settings.email_webhook_token),
        }
    else:
        health_status["services"]["email"] = {
            "status": "not_configured",
            "note": "Email sending disabled; invitations record a failure reason",
        }

    response_time = (time.time() - start_time) * 1000
    health_status["response_time_ms"] = round(response_time, 2)
    return health_status


@router.get("/health/ready")
async def readiness_check():
    """Readiness probe: ready only when the database answers."""
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        logger.warning(f"Readiness check failed: {db_health['database']}")
        return JSONResponse(status_code=503, content={"status": "not_ready", "reason": "database_unavailable"})
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """Liveness probe."""
    return {"status": "alive", "timestamp": time.time()}
