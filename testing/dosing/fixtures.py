"""Shared test fixtures for the reminder engine.

Builds a fully wired engine on an in-memory SQLite database with recording
feedback ports and the in-process timer facility, so tests can drive timers
at simulated times.
"""

from datetime import UTC, date, datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from src.database.core import Base
from src.database.medications import models  # noqa: F401
from src.dosing.config import ReminderConfig
from src.dosing.factory import ReminderRuntime, build_reminder_runtime
from src.dosing.feedback import Announcer, NotificationRequest, Notifier, Vibrator
from src.dosing.models import DoseKey, MedicinePayload
from src.dosing.service import ReminderService
from src.dosing.store import DoseStateStore
from src.dosing.timers.memory import ArmedEntry, InMemoryTimerFacility

# Monday 1 June 2026, 08:00 UTC
DOSE_DATE = date(2026, 6, 1)
DOSE_TIME = datetime(2026, 6, 1, 8, 0, tzinfo=UTC)


def make_session_factory() -> sessionmaker[Session]:
    """Create a session factory on a fresh in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def make_payload(
    reminder_id: str = "m1",
    name: str = "Metformin",
    dosage: str = "500mg",
    time_of_day: str = "08:00",
    is_critical: bool = False,
    voice_enabled: bool = True,
) -> MedicinePayload:
    """Build a medicine payload with sensible defaults."""
    return MedicinePayload(
        reminder_id=reminder_id,
        name=name,
        dosage=dosage,
        time_of_day=time_of_day,
        is_critical=is_critical,
        voice_enabled=voice_enabled,
    )


def make_key(reminder_id: str = "m1", time_of_day: str = "08:00") -> DoseKey:
    """Build the key of the default dose."""
    return DoseKey(reminder_id, time_of_day, DOSE_DATE)


class RecordingNotifier(Notifier):
    """Notifier that records every request and dismissal."""

    def __init__(self) -> None:
        """Initialise the recorder."""
        self.requests: list[NotificationRequest] = []
        self.dismissed: list[str] = []
        self.fail = False

    def notify(self, request: NotificationRequest) -> str | None:
        """Record the request."""
        if self.fail:
            raise RuntimeError("notification service down")
        self.requests.append(request)
        return f"ref-{len(self.requests)}"

    def dismiss(self, ref: str, key: DoseKey) -> None:
        """Record the dismissal."""
        self.dismissed.append(ref)


class RecordingAnnouncer(Announcer):
    """Announcer that records utterances."""

    def __init__(self) -> None:
        """Initialise the recorder."""
        self.utterances: list[tuple[str, str]] = []

    def speak(self, text: str, utterance_id: str) -> None:
        """Record the utterance."""
        self.utterances.append((utterance_id, text))


class RecordingVibrator(Vibrator):
    """Vibrator that records patterns."""

    def __init__(self) -> None:
        """Initialise the recorder."""
        self.patterns: list[tuple[int, ...]] = []

    def vibrate(self, pattern: tuple[int, ...]) -> None:
        """Record the pattern."""
        self.patterns.append(pattern)


class EngineHarness:
    """A wired engine plus its recording ports."""

    def __init__(
        self,
        timezone: str = "UTC",
        skip_cancels_escalation: bool = False,
        exact_timers_enabled: bool = True,
        snooze_minutes: int = 15,
    ) -> None:
        """Wire the engine on a fresh database."""
        self.session_factory = make_session_factory()
        self.timers = InMemoryTimerFacility(exact_permitted=exact_timers_enabled)
        self.notifier = RecordingNotifier()
        self.announcer = RecordingAnnouncer()
        self.vibrator = RecordingVibrator()
        self.config = ReminderConfig(
            timezone=timezone,
            skip_cancels_escalation=skip_cancels_escalation,
            exact_timers_enabled=exact_timers_enabled,
            snooze_minutes=snooze_minutes,
            _env_file=None,
        )
        self.runtime: ReminderRuntime = build_reminder_runtime(
            config=self.config,
            session_factory=self.session_factory,
            timers=self.timers,
            notifier=self.notifier,
            announcer=self.announcer,
            vibrator=self.vibrator,
            speech_in_background=False,
        )

    @property
    def store(self) -> DoseStateStore:
        """Dose state store of the engine."""
        return self.runtime.store

    @property
    def service(self) -> ReminderService:
        """Inbound service of the engine."""
        return self.runtime.service

    def fire(self, entry: ArmedEntry, now: datetime | None = None) -> None:
        """Fire one armed timer at its own fire time, or at `now`."""
        self.timers.cancel(entry.timer_id)
        self.runtime.dispatcher.dispatch(entry.event, now=now or entry.fire_at)

    def fire_next(self, owner: str | None = None) -> ArmedEntry:
        """Fire the earliest armed timer, optionally of one owner.

        :returns: The entry that fired.
        """
        entries = [e for e in self.timers.armed() if owner is None or e.timer_id.owner == owner]
        if not entries:
            raise AssertionError(f"No armed timer for owner={owner}")
        entry = entries[0]
        self.fire(entry)
        return entry

    def armed_owners(self) -> set[str]:
        """Owners of the armed timers."""
        return {entry.timer_id.owner for entry in self.timers.armed()}

    def dose_timer(self, key: DoseKey, owner: str) -> ArmedEntry | None:
        """Get an armed timer of a dose."""
        for entry in self.timers.armed():
            if entry.timer_id.owner == owner and entry.timer_id.correlation_key == key.encode():
                return entry
        return None
