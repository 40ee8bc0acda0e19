"""Abstract timer facility.

A timer facility fires a callback at an absolute time, at least once, possibly
late or coalesced. Timers are identified by an (owner, correlation_key) pair
and arming an id that is already armed replaces the earlier timer.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from src.dosing.models import TimerEvent, TimerId

# Callback invoked with the event of a fired timer
TimerHandler = Callable[[TimerEvent], None]

logger = logging.getLogger(__name__)


class TimerFacility(ABC):
    """Abstract base class for timer facilities."""

    @abstractmethod
    def arm(
        self, timer_id: TimerId, fire_at: datetime, event: TimerEvent, exact: bool = True
    ) -> None:
        """Arm a one-shot timer, replacing any timer armed under the same id.

        :param timer_id: Owner and correlation key of the timer.
        :param fire_at: Absolute time (timezone-aware) to fire at.
        :param event: Event delivered to the handler when the timer fires.
        :param exact: Whether the timer should fire at exactly fire_at.
        """
        ...

    @abstractmethod
    def cancel(self, timer_id: TimerId) -> None:
        """Cancel a timer. Cancelling an unknown id is a no-op.

        :param timer_id: Owner and correlation key of the timer.
        """
        ...

    @abstractmethod
    def can_schedule_exact(self) -> bool:
        """Check whether exact timers are currently permitted.

        :returns: True if exact timers can be armed.
        """
        ...

    def arm_preferring_exact(self, timer_id: TimerId, fire_at: datetime, event: TimerEvent) -> bool:
        """Arm a timer exact when permitted, otherwise inexact with a warning.

        :param timer_id: Owner and correlation key of the timer.
        :param fire_at: Absolute time (timezone-aware) to fire at.
        :param event: Event delivered to the handler when the timer fires.
        :returns: True if the timer was armed exact.
        """
        exact = self.can_schedule_exact()
        if not exact:
            logger.warning(
                f"Exact timers unavailable, arming inexact: owner={timer_id.owner}, "
                f"key={timer_id.correlation_key}"
            )
        self.arm(timer_id, fire_at, event, exact=exact)
        return exact

    def cancel_all(self, timer_ids: list[TimerId]) -> None:
        """Cancel several timers.

        :param timer_ids: Timers to cancel.
        """
        for timer_id in timer_ids:
            self.cancel(timer_id)
