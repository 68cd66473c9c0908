"""
FastAPI Application Entry Point.

This is the main application file for the Ledger Accrual Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm.exc import StaleDataError
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, Base
from backend.app.core.observability import ObservabilityMiddleware, configure_logging, logger
from backend.app.core.redis_client import ping_redis
from backend.app.services.sweep_scheduler import SweepScheduler
from backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    stale_data_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.credit_settings import CustomerCreditSettings, CompanyOverdueSettings
from backend.app.models.status_change_log import StatusChangeLog
from backend.app.models.dlq import DeadLetterQueue


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging and creates database tables on startup.
    2. Starts the periodic reconciliation sweep when enabled.
    3. On shutdown, cancels the sweep between entries and waits for it.
    """
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    scheduler = SweepScheduler(settings.sweep_interval_minutes)
    scheduler.start()
    app.state.sweep_scheduler = scheduler
    logger.info("%s started", settings.app_name)
    yield
    await scheduler.stop()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Overdue accrual, settlement and credit engine for a multi-tenant ledger",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StaleDataError, stale_data_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Ledger Accrual Backend API",
        "docs": "/docs",
        "health": "/health",
    }
