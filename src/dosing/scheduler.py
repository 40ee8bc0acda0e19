"""Recurring daily reminder scheduling."""

import logging
from datetime import UTC, date, datetime, time
from zoneinfo import ZoneInfo

from croniter import croniter

from src.dosing.models import (
    MedicinePayload,
    TimerEvent,
    TimerKind,
    daily_timer_id,
    normalise_time_of_day,
    parse_time_of_day,
)
from src.dosing.store import DoseStateStore
from src.dosing.timers.base import TimerFacility

logger = logging.getLogger(__name__)


def daily_cron_expression(time_of_day: str) -> str:
    """Build the cron expression that fires once a day at a time of day.

    :param time_of_day: Time of day as HH:MM.
    :returns: Cron expression such as "30 8 * * *".
    """
    hour, minute = parse_time_of_day(time_of_day)
    return f"{minute} {hour} * * *"


def next_trigger(time_of_day: str, after: datetime, tz: ZoneInfo) -> datetime:
    """Calculate the next occurrence of a local time of day.

    The result is strictly after `after`: if today's time has already passed
    (or is exactly now) the occurrence is tomorrow.

    :param time_of_day: Local time of day as HH:MM.
    :param after: Calculate the next trigger after this time.
    :param tz: Timezone the time of day is expressed in.
    :returns: The next trigger time in UTC.
    """
    cron = croniter(daily_cron_expression(time_of_day), after.astimezone(tz))
    next_time = cron.get_next(datetime)

    # Ensure timezone awareness
    if next_time.tzinfo is None:
        next_time = next_time.replace(tzinfo=tz)

    return next_time.astimezone(UTC)


def scheduled_instant(time_of_day: str, dose_date: date, tz: ZoneInfo) -> datetime:
    """Get the UTC instant a dose was scheduled for.

    :param time_of_day: Local time of day as HH:MM.
    :param dose_date: Local calendar date of the dose.
    :param tz: Timezone the time of day is expressed in.
    :returns: The scheduled instant in UTC.
    """
    hour, minute = parse_time_of_day(time_of_day)
    return datetime.combine(dose_date, time(hour, minute), tzinfo=tz).astimezone(UTC)


class ReminderScheduler:
    """Owns reminder definitions and keeps one daily timer armed per definition."""

    def __init__(self, store: DoseStateStore, timers: TimerFacility, tz: ZoneInfo) -> None:
        """Initialise the scheduler.

        :param store: Dose state store holding the definitions.
        :param timers: Timer facility the daily timers are armed on.
        :param tz: Timezone reminder times are expressed in.
        """
        self._store = store
        self._timers = timers
        self._tz = tz

    @property
    def tz(self) -> ZoneInfo:
        """Timezone reminder times are expressed in."""
        return self._tz

    def next_trigger(self, time_of_day: str, after: datetime | None = None) -> datetime:
        """Calculate the next trigger of a time of day in the configured timezone."""
        return next_trigger(time_of_day, after or datetime.now(UTC), self._tz)

    def arm(self, payload: MedicinePayload, now: datetime | None = None) -> datetime:
        """Persist a definition and arm its next daily timer.

        Arming replaces any daily timer already armed for the same reminder
        time, so calling this repeatedly leaves exactly one timer armed.

        :param payload: Definition to schedule.
        :param now: Current time (defaults to now).
        :returns: When the daily timer fires next (UTC).
        """
        if now is None:
            now = datetime.now(UTC)

        time_of_day = normalise_time_of_day(payload.time_of_day)
        if time_of_day != payload.time_of_day:
            payload = payload.model_copy(update={"time_of_day": time_of_day})

        self._store.save_definition(payload, now=now)
        fire_at = self._arm_daily(payload, after=now)
        logger.info(
            f"Scheduled reminder: reminder_id={payload.reminder_id}, time={time_of_day}, "
            f"next_fire_at={fire_at.isoformat()}"
        )
        return fire_at

    def cancel(self, reminder_id: str, time_of_day: str) -> bool:
        """Cancel a reminder time and remove its definition.

        Escalation chains already running for earlier doses are left alone.

        :param reminder_id: Medicine identifier.
        :param time_of_day: Time of day as HH:MM.
        :returns: True if a definition existed.
        """
        time_of_day = normalise_time_of_day(time_of_day)
        self._timers.cancel(daily_timer_id(reminder_id, time_of_day))
        existed = self._store.delete_definition(reminder_id, time_of_day)
        logger.info(
            f"Cancelled reminder: reminder_id={reminder_id}, time={time_of_day}, existed={existed}"
        )
        return existed

    def cancel_all(self, reminder_id: str) -> int:
        """Cancel every registered time of a medicine.

        :param reminder_id: Medicine identifier.
        :returns: Number of reminder times cancelled.
        """
        definitions = self._store.list_definitions(reminder_id)
        for definition in definitions:
            self.cancel(definition.reminder_id, definition.time_of_day)
        logger.info(f"Cancelled all reminders: reminder_id={reminder_id}, count={len(definitions)}")
        return len(definitions)

    def on_fire(
        self,
        event: TimerEvent,
        now: datetime | None = None,
        definition: MedicinePayload | None = None,
    ) -> datetime | None:
        """Re-arm a daily timer after it fired.

        The next occurrence is computed after both now and the occurrence that
        just fired, so an early delivery never re-arms the same dose.

        :param event: The daily event that fired.
        :param now: Current time (defaults to now).
        :param definition: Definition already read by the caller. When omitted it is
            read from the store.
        :returns: When the timer fires next, or None if the definition is gone.
        """
        if now is None:
            now = datetime.now(UTC)

        payload = definition or self._store.get_definition(event.reminder_id, event.time_of_day)
        if payload is None:
            logger.info(
                f"Not re-arming removed reminder: reminder_id={event.reminder_id}, "
                f"time={event.time_of_day}"
            )
            return None

        fired_for = scheduled_instant(event.time_of_day, event.dose_date, self._tz)
        fire_at = self._arm_daily(payload, after=max(now, fired_for))
        logger.debug(
            f"Re-armed reminder: reminder_id={payload.reminder_id}, time={payload.time_of_day}, "
            f"next_fire_at={fire_at.isoformat()}"
        )
        return fire_at

    def list_definitions(self, reminder_id: str | None = None) -> list[MedicinePayload]:
        """List registered reminder definitions."""
        return self._store.list_definitions(reminder_id)

    def _arm_daily(self, payload: MedicinePayload, after: datetime) -> datetime:
        fire_at = next_trigger(payload.time_of_day, after, self._tz)
        event = TimerEvent(
            kind=TimerKind.DAILY,
            reminder_id=payload.reminder_id,
            time_of_day=payload.time_of_day,
            dose_date=fire_at.astimezone(self._tz).date(),
            payload=payload,
        )
        self._timers.arm_preferring_exact(
            daily_timer_id(payload.reminder_id, payload.time_of_day),
            fire_at,
            event,
        )
        return fire_at
