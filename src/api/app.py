"""FastAPI application configuration."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from src.api.dependencies import verify_token
from src.api.health import router as health_router
from src.api.health.endpoints import API_VERSION
from src.api.medications import router as medications_router
from src.api.medications.models import ErrorResponse
from src.dosing.factory import get_reminder_runtime
from src.observability.sentry import init_sentry
from src.utils.logging import configure_logging

configure_logging()
init_sentry()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Start the reminder runtime with the API and stop it on shutdown.

    With the in-process timer backend this re-arms stored reminders and
    starts the timer pump. Celery workers deliver timers otherwise.
    """
    runtime = get_reminder_runtime()
    runtime.start()
    try:
        yield
    finally:
        runtime.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    :returns: Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Medication Reminders API",
        version=API_VERSION,
        lifespan=lifespan,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid request"},
            401: {"model": ErrorResponse, "description": "Unauthorised"},
            500: {"model": ErrorResponse, "description": "Internal server error"},
        },
    )

    # Register routers
    application.include_router(health_router)
    application.include_router(medications_router, dependencies=[Depends(verify_token)])

    logger.info("FastAPI application created")

    return application


# Application instance for uvicorn
app = create_app()
