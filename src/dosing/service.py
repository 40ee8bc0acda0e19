"""Inbound facade of the reminder engine.

Validates caller parameters before any state is touched and delegates to the
scheduler, the acknowledgment handler and the store.
"""

import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from src.dosing.acknowledgement import AcknowledgmentHandler
from src.dosing.exceptions import InvalidParameterError, MissingParameterError
from src.dosing.models import (
    CancelResult,
    CaregiverAlertRecord,
    DoseKey,
    DoseSnapshot,
    MedicinePayload,
    ResponseOutcome,
    ScheduledReminders,
    ScheduleMedicineResult,
    ScheduleResult,
    SyncActionRecord,
    normalise_time_of_day,
)
from src.dosing.recovery import RebootRecovery, RecoveryResult
from src.dosing.scheduler import ReminderScheduler
from src.dosing.store import DoseStateStore
from src.dosing.timers.base import TimerFacility

logger = logging.getLogger(__name__)


def _require_text(name: str, value: str | None) -> str:
    if value is None or not str(value).strip():
        raise MissingParameterError(name)
    return str(value).strip()


def _require_time(name: str, value: str | None) -> str:
    raw = _require_text(name, value)
    try:
        return normalise_time_of_day(raw)
    except InvalidParameterError as e:
        raise InvalidParameterError(name, value, e.reason) from e


def _parse_date(value: date | str | None, default: date) -> date:
    if value is None or value == "":
        return default
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidParameterError("date", value, "expected YYYY-MM-DD") from e


class ReminderService:
    """Synchronous entry point for scheduling reminders and answering doses."""

    def __init__(  # noqa: PLR0913
        self,
        store: DoseStateStore,
        timers: TimerFacility,
        scheduler: ReminderScheduler,
        acknowledgement: AcknowledgmentHandler,
        recovery: RebootRecovery,
    ) -> None:
        """Initialise the service.

        :param store: Dose state store.
        :param timers: Timer facility, queried for exact timer capability.
        :param scheduler: Reminder scheduler.
        :param acknowledgement: Taken, Snooze and Skip handler.
        :param recovery: Restart recovery.
        """
        self._store = store
        self._timers = timers
        self._scheduler = scheduler
        self._acknowledgement = acknowledgement
        self._recovery = recovery

    @property
    def tz(self) -> ZoneInfo:
        """Timezone reminder times are expressed in."""
        return self._scheduler.tz

    def schedule_reminder(  # noqa: PLR0913
        self,
        reminder_id: str | None,
        name: str | None,
        dosage: str | None = "",
        time: str | None = None,
        is_critical: bool = False,
        instructions: str | None = None,
        voice_enabled: bool = True,
    ) -> ScheduleResult:
        """Register or update one daily reminder time.

        :raises MissingParameterError: If reminder_id, name or time is missing.
        :raises InvalidParameterError: If time is not HH:MM.
        """
        reminder_id = _require_text("reminder_id", reminder_id)
        name = _require_text("name", name)
        time_of_day = _require_time("time", time)
        payload = self._build_payload(
            reminder_id, name, dosage, time_of_day, is_critical, instructions, voice_enabled
        )
        next_fire_at = self._scheduler.arm(payload)
        return ScheduleResult(
            success=True,
            reminder_id=payload.reminder_id,
            time=payload.time_of_day,
            next_fire_at=next_fire_at,
        )

    def schedule_medicine_reminders(  # noqa: PLR0913
        self,
        reminder_id: str | None,
        name: str | None,
        dosage: str | None = "",
        times: Sequence[str] | None = None,
        is_critical: bool = False,
        instructions: str | None = None,
        voice_enabled: bool = True,
    ) -> ScheduleMedicineResult:
        """Register several daily reminder times for one medicine.

        Every time is validated before any of them is scheduled.

        :raises MissingParameterError: If reminder_id, name or times is missing.
        :raises InvalidParameterError: If any time is not HH:MM.
        """
        reminder_id = _require_text("reminder_id", reminder_id)
        name = _require_text("name", name)
        if times is None or isinstance(times, str):
            raise MissingParameterError("times")

        normalised = dict.fromkeys(_require_time("times", value) for value in times)
        payloads = [
            self._build_payload(
                reminder_id, name, dosage, time, is_critical, instructions, voice_enabled
            )
            for time in normalised
        ]
        for payload in payloads:
            self._scheduler.arm(payload)

        return ScheduleMedicineResult(
            success=True,
            reminder_id=reminder_id,
            scheduled_count=len(payloads),
            times=[payload.time_of_day for payload in payloads],
        )

    def cancel_reminder(self, reminder_id: str | None, time: str | None) -> CancelResult:
        """Cancel one reminder time.

        :raises MissingParameterError: If reminder_id or time is missing.
        """
        reminder_id = _require_text("reminder_id", reminder_id)
        time_of_day = _require_time("time", time)
        existed = self._scheduler.cancel(reminder_id, time_of_day)
        return CancelResult(success=True, reminder_id=reminder_id, cancelled_count=int(existed))

    def cancel_medicine_reminders(self, reminder_id: str | None) -> CancelResult:
        """Cancel every reminder time of a medicine.

        :raises MissingParameterError: If reminder_id is missing.
        """
        reminder_id = _require_text("reminder_id", reminder_id)
        count = self._scheduler.cancel_all(reminder_id)
        return CancelResult(success=True, reminder_id=reminder_id, cancelled_count=count)

    def mark_taken(
        self,
        reminder_id: str | None,
        time: str | None,
        dose_date: date | str | None = None,
    ) -> ResponseOutcome:
        """Record that a dose was taken. The date defaults to today.

        :raises MissingParameterError: If reminder_id or time is missing.
        """
        return self._acknowledgement.acknowledge(self._dose_key(reminder_id, time, dose_date))

    def snooze_dose(
        self,
        reminder_id: str | None,
        time: str | None,
        dose_date: date | str | None = None,
        payload: MedicinePayload | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ResponseOutcome:
        """Snooze a dose. The date defaults to today.

        :param overrides: Medicine fields to change for the re-reminder only.
        :raises MissingParameterError: If reminder_id or time is missing.
        """
        key = self._dose_key(reminder_id, time, dose_date)
        return self._acknowledgement.snooze(key, payload=payload, overrides=overrides)

    def skip_dose(
        self,
        reminder_id: str | None,
        time: str | None,
        dose_date: date | str | None = None,
    ) -> ResponseOutcome:
        """Record that a dose was skipped. The date defaults to today.

        :raises MissingParameterError: If reminder_id or time is missing.
        """
        return self._acknowledgement.skip(self._dose_key(reminder_id, time, dose_date))

    def get_dose(
        self,
        reminder_id: str | None,
        time: str | None,
        dose_date: date | str | None = None,
    ) -> DoseSnapshot | None:
        """Get the stored state of a dose, or None if it never fired."""
        return self._store.get_dose(self._dose_key(reminder_id, time, dose_date))

    def get_pending_sync_actions(self) -> list[SyncActionRecord]:
        """List dose outcomes waiting to be synced."""
        return self._store.pending_sync_actions()

    def clear_pending_sync_actions(self, ids: list[int] | None = None) -> int:
        """Remove synced outcomes. Removes all when ids is None."""
        return self._store.clear_sync_actions(ids)

    def get_pending_caregiver_alerts(self) -> list[CaregiverAlertRecord]:
        """List caregiver alerts waiting to be delivered."""
        return self._store.pending_caregiver_alerts()

    def clear_pending_caregiver_alerts(self, ids: list[int] | None = None) -> int:
        """Remove delivered caregiver alerts. Removes all when ids is None."""
        return self._store.clear_caregiver_alerts(ids)

    def can_schedule_exact_timers(self) -> bool:
        """Check whether exact timers are currently permitted."""
        return self._timers.can_schedule_exact()

    def get_scheduled_reminders(self, reminder_id: str | None = None) -> ScheduledReminders:
        """List registered reminders together with the exact timer capability."""
        return ScheduledReminders(
            reminders=self._scheduler.list_definitions(reminder_id),
            can_schedule_exact=self.can_schedule_exact_timers(),
        )

    def recover(self) -> RecoveryResult:
        """Re-arm every stored reminder."""
        return self._recovery.recover()

    def _dose_key(
        self,
        reminder_id: str | None,
        time: str | None,
        dose_date: date | str | None,
    ) -> DoseKey:
        reminder_id = _require_text("reminder_id", reminder_id)
        time_of_day = _require_time("time", time)
        today = datetime.now(UTC).astimezone(self.tz).date()
        return DoseKey(reminder_id, time_of_day, _parse_date(dose_date, today))

    @staticmethod
    def _build_payload(  # noqa: PLR0913
        reminder_id: str | None,
        name: str | None,
        dosage: str | None,
        time_of_day: str,
        is_critical: bool,
        instructions: str | None,
        voice_enabled: bool,
    ) -> MedicinePayload:
        try:
            return MedicinePayload(
                reminder_id=_require_text("reminder_id", reminder_id),
                name=_require_text("name", name),
                dosage=(dosage or "").strip(),
                time_of_day=time_of_day,
                is_critical=bool(is_critical),
                instructions=(instructions or "").strip() or None,
                voice_enabled=bool(voice_enabled),
            )
        except ValidationError as e:
            raise InvalidParameterError("reminder", reminder_id, str(e)) from e
