"""Nitpickr API

Main FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from nitpickr.api import auth, files, issues, listings, misc, nitpicks, payments, teams
from nitpickr.config.settings import get_settings
from nitpickr.database import close_db
from nitpickr.infrastructure.ai_backend import close_ai_client
from nitpickr.infrastructure.redis import close_redis_client, get_redis_client
from nitpickr.jobs.cleanup_usage import register_usage_cleanup
from nitpickr.jobs.cron import cron_service
from nitpickr.middleware.usage import QuotaExceededError

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.environment)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    try:
        await get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise

    if settings.cron_enabled:
        register_usage_cleanup()
        cron_service.start()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.service_name}")
    await cron_service.stop()
    await close_ai_client()
    await close_redis_client()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title="Nitpickr API",
    version=settings.service_version,
    description="Real-estate search, AI nitpick reports, team collaboration and billing",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


# Health check endpoint
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
    }


@app.get("/")
async def root():
    """Root endpoint with service information"""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "docs": "/docs",
        "health": "/health",
    }


app.include_router(auth.router)
app.include_router(listings.router)
app.include_router(nitpicks.router)
app.include_router(issues.router)
app.include_router(teams.router)
app.include_router(teams.invitations_router)
app.include_router(payments.router)
app.include_router(payments.team_router)
app.include_router(files.router)
app.include_router(misc.router)


@app.exception_handler(QuotaExceededError)
async def quota_exceeded_handler(request: Request, exc: QuotaExceededError):
    """429 with the usage details, as JSON or plain text."""
    if exc.json_errors:
        return JSONResponse(status_code=429, content=exc.to_dict())
    return PlainTextResponse(exc.to_text(), status_code=429)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "nitpickr.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
