"""
app/main.py

Purpose: Application entry point

- Initializes FastAPI app
- Loads configuration and logging
- Registers exception handlers and API routes
- Manages application lifecycle (startup/shutdown, cleanup cron)
- No business logic should be written here
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

from app.core.config import settings, validate_settings
from app.core.errors import add_exception_handlers
from app.core.logging import setup_logging, get_logger
from app.db.mongo import connect_to_mongo, close_mongo_connection, check_database_health
from app.db.indexes import create_indexes
from app.jobs.cleanup_cron import CleanupCron
from app.services.cleanup_service import run_cleanup_tasks
from app.api import cleanup, config_parameters, content, coupons, invoices, plans, profiles, users, verifications

# Initialize logging first
setup_logging()
logger = get_logger(__name__)

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting marketplace API...")

    try:
        validate_settings()
        logger.info("Configuration validated")

        await connect_to_mongo()
        await create_indexes()

        if await check_database_health():
            logger.info("Database health check passed")
        else:
            logger.warning("Database health check failed during startup")

        app.state.cleanup_cron = CleanupCron(run_cleanup_tasks, settings.CLEANUP_INTERVAL_SECONDS)
        if settings.CLEANUP_CRON_ENABLED:
            app.state.cleanup_cron.start()
        else:
            logger.info("Cleanup cron disabled")

        logger.info(f"Marketplace API started (environment={settings.ENVIRONMENT}, debug={settings.DEBUG})")

    except Exception as e:
        logger.critical(f"Failed to start application: {str(e)}", exc_info=True)
        raise

    yield

    logger.info("Shutting down marketplace API...")

    try:
        await app.state.cleanup_cron.stop()
        await close_mongo_connection()
        logger.info("Marketplace API shut down")

    except Exception as e:
        logger.error(f"Error during shutdown: {str(e)}", exc_info=True)


app = FastAPI(
    title="Marketplace API",
    description="Profiles, plans, upgrades, coupons and invoices for a two-sided marketplace",
    version=APP_VERSION,
    lifespan=lifespan,
    debug=settings.DEBUG,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time header to all responses."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    if process_time > 5.0:
        logger.warning(
            f"Slow request detected: {request.method} {request.url.path}",
            extra={"process_time": process_time}
        )

    return response


app.include_router(users.router, prefix=f"{settings.API_PREFIX}/user", tags=["Users"])
app.include_router(profiles.router, prefix=f"{settings.API_PREFIX}/profile", tags=["Profiles"])
app.include_router(
    verifications.router, prefix=f"{settings.API_PREFIX}/profile-verification", tags=["Profile Verification"]
)
app.include_router(plans.router, prefix=f"{settings.API_PREFIX}/plans", tags=["Plans"])
app.include_router(coupons.router, prefix=f"{settings.API_PREFIX}/coupons", tags=["Coupons"])
app.include_router(invoices.router, prefix=f"{settings.API_PREFIX}/invoices", tags=["Invoices"])
app.include_router(content.router, prefix=f"{settings.API_PREFIX}/content", tags=["Content"])
app.include_router(
    config_parameters.router, prefix=f"{settings.API_PREFIX}/config-parameters", tags=["Config Parameters"]
)
app.include_router(cleanup.router, prefix=f"{settings.API_PREFIX}/cleanup", tags=["Cleanup"])


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic info."""
    return {
        "name": "Marketplace API",
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Checks database connectivity and the cleanup cron.
    """
    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.ENVIRONMENT,
        "version": APP_VERSION,
        "checks": {}
    }

    try:
        db_healthy = await check_database_health()
        health_status["checks"]["database"] = "healthy" if db_healthy else "unhealthy"
        if not db_healthy:
            health_status["status"] = "degraded"
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        health_status["checks"]["database"] = "unhealthy"
        health_status["status"] = "unhealthy"

    cron = getattr(app.state, "cleanup_cron", None)
    health_status["checks"]["cleanup_cron"] = "running" if cron and cron.is_running else "stopped"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return JSONResponse(content=health_status, status_code=status_code)


@app.get("/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness check - indicates if app is ready to receive traffic.
    """
    try:
        if await check_database_health():
            return {"status": "ready"}
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "database_unavailable"}
        )
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": str(e)}
        )


@app.get("/live", tags=["Health"])
async def liveness_check():
    return {"status": "alive"}


@app.get("/ping", tags=["Health"])
async def ping():
    return {"message": "pong"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
