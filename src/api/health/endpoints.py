"""Health check endpoints."""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import get_reminder_service
from src.api.health.models import HealthResponse
from src.dosing.service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

API_VERSION = "0.1.0"


@router.get(
    "",
    response_model=HealthResponse,
    summary="Check service health",
    description="Returns the health of the API and the reminder engine behind it.",
)
def health_check(
    service: ReminderService = Depends(get_reminder_service),
) -> HealthResponse:
    """Check the API and the reminder store are reachable.

    :returns: Health status response.
    """
    scheduled = service.get_scheduled_reminders()
    logger.debug(f"Health check requested: scheduled_reminders={len(scheduled.reminders)}")
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        can_schedule_exact=scheduled.can_schedule_exact,
        scheduled_reminders=len(scheduled.reminders),
    )
