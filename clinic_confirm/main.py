"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinic_confirm.api.links import router as links_router
from clinic_confirm.api.v1.router import api_router
from clinic_confirm.config import settings
from clinic_confirm.core.exceptions import AppException
from clinic_confirm.core.redis_client import check_redis_connection, close_redis_connection
from clinic_confirm.database import AsyncSessionLocal, check_database_connection, engine
from clinic_confirm.jobs.scheduler import JobOrchestrator
from clinic_confirm.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from clinic_confirm.middleware.logging import LoggingMiddleware, configure_logging
from clinic_confirm.notifications.email import build_email_sender
from clinic_confirm.notifications.sms import build_sms_sender

# Configure logging
configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the notification transports (a bad provider configuration stops
    startup), checks dependencies and runs the job scheduler.
    """
    logger.info("application_startup", environment=settings.environment)

    app.state.sms_sender = build_sms_sender(settings)
    app.state.email_sender = build_email_sender(settings)
    logger.info(
        "notification_transports_ready",
        sms_provider=settings.sms_provider,
        email_provider=settings.email_provider,
    )

    if await check_database_connection():
        logger.info("database_connected")
    else:
        logger.error("database_connection_failed")

    if await check_redis_connection():
        logger.info("redis_connected")
    else:
        logger.error("redis_connection_failed", note="link rate limiting fails open")

    app.state.orchestrator = None
    if settings.disable_scheduler:
        logger.info("scheduler_disabled")
    else:
        orchestrator = JobOrchestrator(
            AsyncSessionLocal,
            app.state.sms_sender,
            app.state.email_sender,
            settings,
        )
        orchestrator.start()
        app.state.orchestrator = orchestrator

    yield

    logger.info("application_shutdown")

    if app.state.orchestrator is not None:
        app.state.orchestrator.shutdown()

    await engine.dispose()
    logger.info("database_connections_closed")

    close_redis_connection()
    logger.info("redis_connection_closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Appointment confirmation and auto-cancel service for clinics",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Add exception handlers
app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(Exception, general_exception_handler)  # type: ignore[arg-type]

# Patient links live at the root so SMS URLs stay short
app.include_router(links_router, tags=["Links"])
app.include_router(api_router, prefix=settings.api_v1_prefix)

# Setup Prometheus instrumentation
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/docs", "/redoc", "/openapi.json"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Service name, version and docs location."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "clinic_confirm.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
