"""Routes fired timer events to the scheduler and the escalation engine."""

import logging
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError

from src.dosing.escalation import EscalationEngine
from src.dosing.models import MedicinePayload, TimerEvent, TimerKind
from src.dosing.scheduler import ReminderScheduler
from src.dosing.store import DoseStateStore

logger = logging.getLogger(__name__)


class TimerDispatcher:
    """Single entry point for every timer facility. Never raises."""

    def __init__(
        self,
        store: DoseStateStore,
        scheduler: ReminderScheduler,
        engine: EscalationEngine,
    ) -> None:
        """Initialise the dispatcher.

        :param store: Dose state store used to look up definitions.
        :param scheduler: Scheduler that re-arms daily timers.
        :param engine: Escalation engine handling dose timers.
        """
        self._store = store
        self._scheduler = scheduler
        self._engine = engine

    def dispatch(self, event: TimerEvent, now: datetime | None = None) -> None:
        """Handle a fired timer.

        :param event: The fired timer's event.
        :param now: Current time (defaults to now).
        """
        if now is None:
            now = datetime.now(UTC)

        logger.debug(
            f"Dispatching timer: kind={event.kind}, key={event.dose_key}, step={event.step}"
        )
        try:
            match event.kind:
                case TimerKind.DAILY:
                    self._on_daily(event, now)
                case TimerKind.SNOOZE:
                    if event.payload is None:
                        logger.warning(
                            f"Dropping snooze timer without payload: key={event.dose_key}"
                        )
                        return
                    self._engine.on_initial_fire(event.dose_key, event.payload, now)
                case _:
                    self._engine.handle(event, now)
        except Exception:
            logger.exception(f"Timer dispatch failed: kind={event.kind}, key={event.dose_key}")

    def _on_daily(self, event: TimerEvent, now: datetime) -> None:
        try:
            definition = self._store.get_definition(event.reminder_id, event.time_of_day)
        except SQLAlchemyError:
            logger.exception(
                f"Failed to read reminder definition, using armed payload: "
                f"reminder_id={event.reminder_id}, time={event.time_of_day}"
            )
            definition = event.payload
        else:
            if definition is None:
                logger.info(
                    f"Ignoring daily timer for removed reminder: "
                    f"reminder_id={event.reminder_id}, time={event.time_of_day}"
                )
                return

        try:
            if definition is not None:
                self._engine.on_initial_fire(event.dose_key, definition, now)
        finally:
            self._rearm_daily(event, now, definition)

    def _rearm_daily(
        self, event: TimerEvent, now: datetime, definition: MedicinePayload | None
    ) -> None:
        if definition is None:
            logger.error(
                f"Cannot re-arm daily timer without a definition: "
                f"reminder_id={event.reminder_id}, time={event.time_of_day}"
            )
            return

        try:
            self._scheduler.on_fire(event, now, definition=definition)
        except Exception:
            logger.exception(
                f"Failed to re-arm daily timer: reminder_id={event.reminder_id}, "
                f"time={event.time_of_day}"
            )

