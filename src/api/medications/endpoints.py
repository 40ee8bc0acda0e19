"""API endpoints for medication reminders and dose responses."""

import logging
import time as perf_time
from collections.abc import Callable
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_reminder_service
from src.api.medications.models import (
    ClearQueueRequest,
    ClearQueueResponse,
    DoseRequest,
    ExactTimersResponse,
    RecoveryResponse,
    ScheduleMedicineRequest,
    ScheduleReminderRequest,
    SnoozeDoseRequest,
)
from src.dosing.exceptions import ReminderEngineError
from src.dosing.models import (
    CancelResult,
    CaregiverAlertRecord,
    DoseSnapshot,
    ResponseOutcome,
    ScheduledReminders,
    ScheduleMedicineResult,
    ScheduleResult,
    SyncActionRecord,
)
from src.dosing.service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])

T = TypeVar("T")


def _call(operation: str, func: Callable[[], T]) -> T:
    """Run a service call, mapping engine errors to 400 responses.

    :param operation: Operation name for logging.
    :param func: The service call.
    :returns: The service result.
    :raises HTTPException: If the service rejects the request.
    """
    start = perf_time.perf_counter()
    try:
        result = func()
    except ReminderEngineError as e:
        logger.warning(f"{operation} rejected: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    elapsed_ms = (perf_time.perf_counter() - start) * 1000
    logger.info(f"{operation} complete: elapsed={elapsed_ms:.0f}ms")
    return result


@router.post(
    "",
    response_model=ScheduleResult,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule reminder",
)
def schedule_reminder(
    request: ScheduleReminderRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ScheduleResult:
    """Register or update one daily reminder time for a medicine."""
    logger.info(f"Schedule reminder: reminder_id={request.reminder_id}, time={request.time}")
    return _call(
        "Schedule reminder",
        lambda: service.schedule_reminder(
            reminder_id=request.reminder_id,
            name=request.name,
            dosage=request.dosage,
            time=request.time,
            is_critical=request.is_critical,
            instructions=request.instructions,
            voice_enabled=request.voice_enabled,
        ),
    )


@router.post(
    "/medicine",
    response_model=ScheduleMedicineResult,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule medicine reminders",
)
def schedule_medicine_reminders(
    request: ScheduleMedicineRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ScheduleMedicineResult:
    """Register every daily reminder time of a medicine at once.

    All times are validated before any of them is scheduled.
    """
    logger.info(
        f"Schedule medicine reminders: reminder_id={request.reminder_id}, times={request.times}"
    )
    return _call(
        "Schedule medicine reminders",
        lambda: service.schedule_medicine_reminders(
            reminder_id=request.reminder_id,
            name=request.name,
            dosage=request.dosage,
            times=request.times,
            is_critical=request.is_critical,
            instructions=request.instructions,
            voice_enabled=request.voice_enabled,
        ),
    )


@router.get("", response_model=ScheduledReminders, summary="List reminders")
def list_reminders(
    reminder_id: str | None = Query(None, description="Only list this medicine"),
    service: ReminderService = Depends(get_reminder_service),
) -> ScheduledReminders:
    """List registered reminders together with the exact timer capability."""
    return _call("List reminders", lambda: service.get_scheduled_reminders(reminder_id))


@router.delete("/{reminder_id}/{time}", response_model=CancelResult, summary="Cancel reminder")
def cancel_reminder(
    reminder_id: str,
    time: str,
    service: ReminderService = Depends(get_reminder_service),
) -> CancelResult:
    """Cancel one reminder time. Doses already in flight keep escalating."""
    logger.info(f"Cancel reminder: reminder_id={reminder_id}, time={time}")
    return _call("Cancel reminder", lambda: service.cancel_reminder(reminder_id, time))


@router.delete("/{reminder_id}", response_model=CancelResult, summary="Cancel medicine reminders")
def cancel_medicine_reminders(
    reminder_id: str,
    service: ReminderService = Depends(get_reminder_service),
) -> CancelResult:
    """Cancel every reminder time of a medicine."""
    logger.info(f"Cancel medicine reminders: reminder_id={reminder_id}")
    return _call(
        "Cancel medicine reminders", lambda: service.cancel_medicine_reminders(reminder_id)
    )


@router.get("/doses", response_model=DoseSnapshot, summary="Get dose")
def get_dose(
    reminder_id: str = Query(..., description="Stable medicine identifier"),
    time: str = Query(..., description="Scheduled local time as HH:MM"),
    date: str | None = Query(None, description="Dose date as YYYY-MM-DD"),
    service: ReminderService = Depends(get_reminder_service),
) -> DoseSnapshot:
    """Get the stored state of one dose."""
    snapshot = _call("Get dose", lambda: service.get_dose(reminder_id, time, date))
    if snapshot is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Dose not found: {reminder_id} {time} {date or 'today'}",
        )
    return snapshot


@router.post("/doses/taken", response_model=ResponseOutcome, summary="Mark dose taken")
def mark_taken(
    request: DoseRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ResponseOutcome:
    """Record that a dose was taken and stop its escalation."""
    logger.info(f"Mark taken: reminder_id={request.reminder_id}, time={request.time}")
    return _call(
        "Mark taken", lambda: service.mark_taken(request.reminder_id, request.time, request.date)
    )


@router.post("/doses/snooze", response_model=ResponseOutcome, summary="Snooze dose")
def snooze_dose(
    request: SnoozeDoseRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ResponseOutcome:
    """Snooze a dose so it is reminded again after the snooze period.

    The re-reminder uses the stored dose or reminder details. Any name, dosage
    or criticality given in the request replaces just that field.
    """
    logger.info(f"Snooze dose: reminder_id={request.reminder_id}, time={request.time}")

    overrides = request.model_dump(include={"name", "dosage", "is_critical"}, exclude_none=True)

    def _snooze() -> ResponseOutcome:
        return service.snooze_dose(
            request.reminder_id, request.time, request.date, overrides=overrides or None
        )

    return _call("Snooze dose", _snooze)


@router.post("/doses/skip", response_model=ResponseOutcome, summary="Skip dose")
def skip_dose(
    request: DoseRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ResponseOutcome:
    """Record that a dose was deliberately skipped."""
    logger.info(f"Skip dose: reminder_id={request.reminder_id}, time={request.time}")
    return _call(
        "Skip dose", lambda: service.skip_dose(request.reminder_id, request.time, request.date)
    )


@router.get("/sync-actions", response_model=list[SyncActionRecord], summary="List sync actions")
def get_pending_sync_actions(
    service: ReminderService = Depends(get_reminder_service),
) -> list[SyncActionRecord]:
    """List dose outcomes waiting to be synced."""
    return service.get_pending_sync_actions()


@router.post(
    "/sync-actions/clear", response_model=ClearQueueResponse, summary="Clear sync actions"
)
def clear_pending_sync_actions(
    request: ClearQueueRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ClearQueueResponse:
    """Remove synced dose outcomes."""
    cleared = service.clear_pending_sync_actions(request.ids)
    logger.info(f"Cleared sync actions: count={cleared}")
    return ClearQueueResponse(cleared=cleared)


@router.get(
    "/caregiver-alerts",
    response_model=list[CaregiverAlertRecord],
    summary="List caregiver alerts",
)
def get_pending_caregiver_alerts(
    service: ReminderService = Depends(get_reminder_service),
) -> list[CaregiverAlertRecord]:
    """List caregiver alerts waiting to be delivered."""
    return service.get_pending_caregiver_alerts()


@router.post(
    "/caregiver-alerts/clear",
    response_model=ClearQueueResponse,
    summary="Clear caregiver alerts",
)
def clear_pending_caregiver_alerts(
    request: ClearQueueRequest,
    service: ReminderService = Depends(get_reminder_service),
) -> ClearQueueResponse:
    """Remove delivered caregiver alerts."""
    cleared = service.clear_pending_caregiver_alerts(request.ids)
    logger.info(f"Cleared caregiver alerts: count={cleared}")
    return ClearQueueResponse(cleared=cleared)


@router.get("/exact-timers", response_model=ExactTimersResponse, summary="Exact timer capability")
def can_schedule_exact_timers(
    service: ReminderService = Depends(get_reminder_service),
) -> ExactTimersResponse:
    """Report whether exact timers are currently permitted."""
    return ExactTimersResponse(can_schedule_exact=service.can_schedule_exact_timers())


@router.post("/recover", response_model=RecoveryResponse, summary="Re-arm reminders")
def recover(service: ReminderService = Depends(get_reminder_service)) -> RecoveryResponse:
    """Re-arm every stored reminder."""
    result = service.recover()
    return RecoveryResponse(rearmed=result.rearmed, failed=result.failed, errors=result.errors)
