"""Wiring of the reminder engine from configuration."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from src.database.connection import get_session_factory
from src.dosing.acknowledgement import AcknowledgmentHandler
from src.dosing.config import NotifierBackend, ReminderConfig, TimerBackend, get_reminder_settings
from src.dosing.dispatcher import TimerDispatcher
from src.dosing.escalation import EscalationEngine
from src.dosing.feedback import (
    Announcer,
    FeedbackDispatcher,
    LoggingAnnouncer,
    LoggingNotifier,
    LoggingVibrator,
    Notifier,
    Vibrator,
)
from src.dosing.recovery import RebootRecovery
from src.dosing.scheduler import ReminderScheduler
from src.dosing.service import ReminderService
from src.dosing.store import DoseStateStore
from src.dosing.timers.base import TimerFacility
from src.dosing.timers.memory import InMemoryTimerFacility, TimerPump

logger = logging.getLogger(__name__)


@dataclass
class ReminderRuntime:
    """Every component of a wired reminder engine."""

    config: ReminderConfig
    store: DoseStateStore
    timers: TimerFacility
    feedback: FeedbackDispatcher
    scheduler: ReminderScheduler
    engine: EscalationEngine
    acknowledgement: AcknowledgmentHandler
    recovery: RebootRecovery
    dispatcher: TimerDispatcher
    service: ReminderService
    pump: TimerPump | None = field(default=None)

    def start(self) -> None:
        """Re-arm stored reminders and start the in-process pump, if any.

        The durable backend keeps its timers in the broker, so only the
        worker re-arms on start (see the worker_ready hook).
        """
        if self.pump is None:
            return
        self.recovery.recover()
        self.pump.start()

    def stop(self) -> None:
        """Stop the pump and speech workers."""
        if self.pump is not None:
            self.pump.stop()
        self.feedback.shutdown()


def _build_notifier(config: ReminderConfig) -> Notifier:
    if config.notifier_backend == NotifierBackend.TELEGRAM:
        from src.messaging.telegram.client import TelegramClient
        from src.messaging.telegram.notifier import TelegramNotifier
        from src.messaging.telegram.utils.config import get_telegram_settings

        settings = get_telegram_settings()
        client = TelegramClient(bot_token=settings.bot_token, chat_id=settings.reminder_chat_id)
        return TelegramNotifier(client)
    return LoggingNotifier()


def _build_timers(config: ReminderConfig, session_factory: sessionmaker[Session]) -> TimerFacility:
    if config.timer_backend == TimerBackend.CELERY:
        from src.dosing.timers.celery import CeleryTimerFacility
        from src.orchestration.celery_app import celery_app

        return CeleryTimerFacility(
            celery_app,
            session_factory,
            exact_permitted=config.exact_timers_enabled,
        )
    return InMemoryTimerFacility(exact_permitted=config.exact_timers_enabled)


def build_reminder_runtime(  # noqa: PLR0913
    config: ReminderConfig | None = None,
    session_factory: sessionmaker[Session] | None = None,
    timers: TimerFacility | None = None,
    notifier: Notifier | None = None,
    announcer: Announcer | None = None,
    vibrator: Vibrator | None = None,
    speech_in_background: bool = True,
) -> ReminderRuntime:
    """Wire the reminder engine.

    Anything not passed in is built from configuration.

    :param config: Reminder configuration. Defaults to the cached settings.
    :param session_factory: Session factory. Defaults to the application database.
    :param timers: Timer facility. Defaults to the configured backend.
    :param notifier: Notification port. Defaults to the configured backend.
    :param announcer: Speech port. Defaults to logging.
    :param vibrator: Vibration port. Defaults to logging.
    :param speech_in_background: Run speech on a thread pool instead of inline.
    :returns: The wired runtime.
    """
    config = config or get_reminder_settings()
    session_factory = session_factory or get_session_factory()
    timers = timers or _build_timers(config, session_factory)

    store = DoseStateStore(session_factory)
    feedback = FeedbackDispatcher(
        notifier=notifier or _build_notifier(config),
        announcer=announcer or LoggingAnnouncer(),
        vibrator=vibrator or LoggingVibrator(),
        speech_executor=(
            ThreadPoolExecutor(max_workers=config.speech_workers, thread_name_prefix="speech")
            if speech_in_background
            else None
        ),
    )
    scheduler = ReminderScheduler(store, timers, config.tzinfo)
    engine = EscalationEngine(store, timers, feedback)
    acknowledgement = AcknowledgmentHandler(
        store,
        timers,
        feedback,
        snooze_minutes=config.snooze_minutes,
        skip_cancels_escalation=config.skip_cancels_escalation,
    )
    recovery = RebootRecovery(scheduler)
    dispatcher = TimerDispatcher(store, scheduler, engine)
    service = ReminderService(store, timers, scheduler, acknowledgement, recovery)

    pump = None
    if isinstance(timers, InMemoryTimerFacility):
        timers.bind(dispatcher.dispatch)
        pump = TimerPump(timers, interval_seconds=config.pump_interval_seconds)

    logger.info(
        f"Reminder engine wired: timers={type(timers).__name__}, "
        f"notifier={type(feedback.notifier).__name__}, timezone={config.timezone}"
    )
    return ReminderRuntime(
        config=config,
        store=store,
        timers=timers,
        feedback=feedback,
        scheduler=scheduler,
        engine=engine,
        acknowledgement=acknowledgement,
        recovery=recovery,
        dispatcher=dispatcher,
        service=service,
        pump=pump,
    )


@lru_cache
def get_reminder_runtime() -> ReminderRuntime:
    """Get the process-wide reminder runtime.

    :returns: The cached runtime built from configuration.
    """
    return build_reminder_runtime()
