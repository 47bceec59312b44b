"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.dependencies import get_snapshot_store
from api.routes import appointments, paystack
from booking.errors import BookingError
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.redis_client import close_redis_client
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="LashBook Booking API",
    version="1.0.0",
)

# Load settings for CORS configuration
settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

# Webhook router first so /appointments/paystack-webhook is never read as an id
app.include_router(paystack.router)
app.include_router(appointments.router)


@app.on_event("startup")
async def startup_config_validation():
    """
    Validate critical configuration at startup.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        validate_startup_config()
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise  # FastAPI will fail to start


@app.on_event("startup")
async def start_snapshot_sweeper():
    await get_snapshot_store().start()


@app.on_event("shutdown")
async def stop_snapshot_sweeper():
    await get_snapshot_store().stop()
    await close_redis_client()


@app.exception_handler(BookingError)
async def booking_exception_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Map booking errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__} on {request.url.path}: {exc.message}",
            extra={"request_path": request.url.path},
        )
    else:
        logger.info(
            f"{type(exc).__name__} on {request.url.path}: {exc.message}",
            extra={"request_path": request.url.path},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "detail": exc.message},
    )


# Exception handler for validation errors
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": exc.errors(include_url=False)},
    )


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - PostgreSQL connectivity (SELECT 1 query)
    - Redis connectivity (PING command), only when snapshots live in Redis

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    from sqlalchemy import text

    from database.connection import get_async_session
    from shared.redis_client import get_redis_client

    health_status = {
        "status": "healthy",
        "postgres": "unknown",
        "redis": "not_used",
    }
    status_code = 200

    # Check PostgreSQL connectivity
    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["postgres"] = "connected"
    except Exception:
        health_status["postgres"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    # Check Redis connectivity
    if get_settings().SNAPSHOT_BACKEND == "redis":
        try:
            redis_client = get_redis_client()
            await redis_client.ping()
            health_status["redis"] = "connected"
        except Exception:
            health_status["redis"] = "disconnected"
            health_status["status"] = "degraded"
            status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "LashBook Booking API - Use /health for health checks"}
