"""In-process timer facility.

Keeps armed timers in a dict and fires the due ones when pumped, either
explicitly through fire_due() or by the background TimerPump thread.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime

from src.dosing.models import TimerEvent, TimerId
from src.dosing.timers.base import TimerFacility, TimerHandler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArmedEntry:
    """A timer waiting to fire."""

    timer_id: TimerId
    fire_at: datetime
    event: TimerEvent
    exact: bool


class InMemoryTimerFacility(TimerFacility):
    """Timer facility backed by process memory.

    Timers do not survive a restart; RebootRecovery re-arms the daily ones.
    """

    def __init__(self, exact_permitted: bool = True, handler: TimerHandler | None = None) -> None:
        """Initialise the facility.

        :param exact_permitted: Whether exact timers are permitted.
        :param handler: Callback for fired timers. Can be bound later.
        """
        self._timers: dict[TimerId, ArmedEntry] = {}
        self._lock = threading.Lock()
        self._exact_permitted = exact_permitted
        self._handler = handler

    def bind(self, handler: TimerHandler) -> None:
        """Set the callback invoked for fired timers.

        :param handler: Callback for fired timers.
        """
        self._handler = handler

    def arm(
        self, timer_id: TimerId, fire_at: datetime, event: TimerEvent, exact: bool = True
    ) -> None:
        """Arm a timer, replacing any timer with the same id."""
        entry = ArmedEntry(
            timer_id=timer_id, fire_at=fire_at.astimezone(UTC), event=event, exact=exact
        )
        with self._lock:
            replaced = timer_id in self._timers
            self._timers[timer_id] = entry
        logger.debug(
            f"Armed timer: owner={timer_id.owner}, key={timer_id.correlation_key}, "
            f"fire_at={entry.fire_at.isoformat()}, exact={exact}, replaced={replaced}"
        )

    def cancel(self, timer_id: TimerId) -> None:
        """Cancel a timer if it is armed."""
        with self._lock:
            removed = self._timers.pop(timer_id, None)
        if removed is not None:
            logger.debug(f"Cancelled timer: owner={timer_id.owner}, key={timer_id.correlation_key}")

    def can_schedule_exact(self) -> bool:
        """Check whether exact timers are permitted."""
        return self._exact_permitted

    def set_exact_permitted(self, permitted: bool) -> None:
        """Grant or revoke exact timer permission."""
        self._exact_permitted = permitted

    def get(self, timer_id: TimerId) -> ArmedEntry | None:
        """Get the armed entry for a timer id.

        :param timer_id: Timer id.
        :returns: The armed entry or None.
        """
        with self._lock:
            return self._timers.get(timer_id)

    def armed(self) -> list[ArmedEntry]:
        """List armed timers ordered by fire time."""
        with self._lock:
            return sorted(self._timers.values(), key=lambda entry: entry.fire_at)

    def next_fire_at(self) -> datetime | None:
        """Get the earliest fire time, if any timer is armed."""
        entries = self.armed()
        return entries[0].fire_at if entries else None

    def fire_due(self, now: datetime | None = None) -> int:
        """Fire every timer whose time has come.

        Each due timer is removed before its handler runs, so a handler that
        re-arms the same id schedules a fresh timer. Handler failures are logged
        and do not stop the remaining timers from firing.

        :param now: Current time (defaults to now).
        :returns: Number of timers fired.
        """
        if now is None:
            now = datetime.now(UTC)

        with self._lock:
            due = sorted(
                (entry for entry in self._timers.values() if entry.fire_at <= now),
                key=lambda entry: entry.fire_at,
            )
            for entry in due:
                del self._timers[entry.timer_id]

        if due and self._handler is None:
            logger.warning(f"Dropping {len(due)} due timers: no handler bound")
            return 0

        for entry in due:
            logger.debug(
                f"Firing timer: owner={entry.timer_id.owner}, key={entry.timer_id.correlation_key}"
            )
            try:
                self._handler(entry.event)  # type: ignore[misc]
            except Exception:
                logger.exception(
                    f"Timer handler failed: owner={entry.timer_id.owner}, "
                    f"key={entry.timer_id.correlation_key}"
                )
        return len(due)


class TimerPump:
    """Background thread that periodically fires due in-process timers."""

    def __init__(self, facility: InMemoryTimerFacility, interval_seconds: float = 1.0) -> None:
        """Initialise the pump.

        :param facility: Facility to pump.
        :param interval_seconds: Seconds between checks.
        """
        self._facility = facility
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        """Check whether the pump thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the pump thread. Starting a running pump is a no-op."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="timer-pump", daemon=True)
        self._thread.start()
        logger.info(f"Timer pump started: interval={self._interval}s")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the pump thread and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Timer pump stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._facility.fire_due()
            except Exception:
                logger.exception("Timer pump iteration failed")
