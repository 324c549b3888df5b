from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

# Import core components
from edubridge.core.logging_config import setup_logging
from edubridge.core.settings import settings
from edubridge.middleware.logging import LoggingMiddleware
from edubridge.middleware.rate_limit import install_rate_limiting

# Import configuration
from edubridge.config import init_firebase

# Import route modules
from edubridge.routes import (
    health, users, courses, lessons, quizzes, progress,
    sessions, webhooks, gamification, notifications, tutor, admin,
)
from edubridge.exceptions import EduBridgeException

# Load environment variables
load_dotenv()

# Set up logging first
logger = setup_logging()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup logic
    logger.info("=" * 50)
    logger.info("EduBridge API starting up")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"CORS origins: {settings.cors_origins}")
    logger.info(f"Rate limiting: {'enabled' if settings.rate_limit_enabled else 'disabled'}")
    logger.info(f"SQL Debug: {'enabled' if settings.sql_debug else 'disabled'}")

    from edubridge.services.email import get_sendgrid_client
    email_status = "configured" if get_sendgrid_client() else "not configured (sends recorded as failures)"
    logger.info(f"SendGrid Email: {email_status}")
    logger.info("=" * 50)

    # Seed default badges
    try:
        from edubridge.db import SessionLocal
        from edubridge.services.gamification import ensure_default_badges
        session = SessionLocal()
        try:
            ensure_default_badges(session)
            session.commit()
            logger.info("Default badges ensured")
        finally:
            session.close()
    except Exception as seed_err:
        logger.error(f"Failed seeding default badges: {seed_err}")

    yield
    # Shutdown logic
    logger.info("EduBridge API shutting down gracefully")

app = FastAPI(
    title="EduBridge API",
    description="Online tutoring and learning platform: courses, live sessions, progress and gamification",
    version=VERSION,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Add middleware in correct order (last added = first executed)
if settings.rate_limit_enabled:
    install_rate_limiting(app, settings.rate_limit_per_minute)

app.add_middleware(LoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Initialize Firebase (skip in test environment)
if not settings.is_test:
    init_firebase()

# Include routers
app.include_router(health.router)
app.include_router(users.router)
app.include_router(courses.router)
app.include_router(lessons.router)
app.include_router(quizzes.router)
app.include_router(progress.router)
app.include_router(sessions.router)
app.include_router(webhooks.router)
app.include_router(gamification.router)
app.include_router(notifications.router)
app.include_router(tutor.router)
app.include_router(admin.router)


def _error_body(request: Request, message, **extra) -> dict:
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    return {"success": False, "message": message, "correlation_id": correlation_id, **extra}


# Exception handlers
@app.exception_handler(EduBridgeException)
async def edubridge_exception_handler(request: Request, exc: EduBridgeException):
    body = _error_body(request, exc.detail, **exc.extra)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"[{body['correlation_id']}] {type(exc).__name__} on {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    body = _error_body(request, exc.detail)
    logger.warning(f"[{body['correlation_id']}] HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    logger.error(f"[{correlation_id}] Unhandled exception on {request.url.path}: {str(exc)}", exc_info=True)

    if settings.is_development:
        return JSONResponse(
            status_code=500,
            content=_error_body(request, "Internal server error", error=str(exc), type=type(exc).__name__),
        )
    return JSONResponse(status_code=500, content=_error_body(request, "Internal server error"))


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "EduBridge API",
        "version": VERSION,
        "environment": settings.environment,
        "docs_url": "/docs" if settings.is_development else None,
        "health_check": "/health",
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info" if settings.is_development else "warning",
    )
