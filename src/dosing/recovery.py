"""Re-arming of daily reminders after a restart."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from src.dosing.scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    """Result of re-arming stored reminders."""

    rearmed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


class RebootRecovery:
    """Re-arms every stored reminder definition.

    Escalation chains that were in flight when the process stopped are not
    restored; those doses stay in their last stored status.
    """

    def __init__(self, scheduler: ReminderScheduler) -> None:
        """Initialise recovery.

        :param scheduler: Scheduler used to re-arm definitions.
        """
        self._scheduler = scheduler

    def recover(self, now: datetime | None = None) -> RecoveryResult:
        """Re-arm all stored reminders.

        A definition that fails to arm is logged and counted; the others are
        still re-armed.

        :param now: Current time (defaults to now).
        :returns: Counts of re-armed and failed definitions.
        """
        if now is None:
            now = datetime.now(UTC)

        result = RecoveryResult()
        for definition in self._scheduler.list_definitions():
            try:
                self._scheduler.arm(definition, now=now)
                result.rearmed += 1
            except Exception as e:
                logger.exception(
                    f"Failed to re-arm reminder: reminder_id={definition.reminder_id}, "
                    f"time={definition.time_of_day}"
                )
                result.failed += 1
                result.errors.append(f"{definition.reminder_id}@{definition.time_of_day}: {e}")

        logger.info(f"Reminder recovery complete: rearmed={result.rearmed}, failed={result.failed}")
        return result
