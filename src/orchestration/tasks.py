"""Celery tasks that deliver reminder timers and mirror caregiver alerts."""

import logging
from typing import Any

from celery import Celery, Task
from celery.signals import worker_ready
from dotenv import load_dotenv

from src.dosing.factory import get_reminder_runtime
from src.dosing.timers.celery import FIRE_TIMER_TASK_NAME, CeleryTimerFacility
from src.messaging.telegram.client import TelegramClient
from src.messaging.telegram.notifier import CaregiverAlertMirror
from src.messaging.telegram.utils.config import get_telegram_settings
from src.orchestration.celery_app import celery_app
from src.utils.logging import configure_logging

load_dotenv()
configure_logging()

logger = logging.getLogger(__name__)

# Default retry settings for tasks
DEFAULT_RETRY_KWARGS = {
    "max_retries": 3,
    "default_retry_delay": 60,  # 1 minute
}

# How often queued caregiver alerts are mirrored to Telegram (seconds)
CAREGIVER_MIRROR_INTERVAL_SECONDS = 60.0


class BaseTask(Task):
    """Base task class with common retry and error handling."""

    autoretry_for = (Exception,)
    retry_backoff = True
    retry_backoff_max = 600  # Max 10 minutes between retries
    retry_jitter = True


@celery_app.task(bind=True, name=FIRE_TIMER_TASK_NAME)
def fire_timer_task(self: Task, *, owner: str, correlation_key: str, task_id: str) -> bool:
    """Deliver an armed reminder timer.

    Not retried: the dispatcher never raises, and a stale or duplicate
    delivery is discarded by the armed timer registry.

    :param self: The Celery task instance (bound).
    :param owner: Timer owner.
    :param correlation_key: Timer correlation key.
    :param task_id: Task id recorded when the timer was armed.
    :returns: True if the timer was dispatched.
    """
    runtime = get_reminder_runtime()
    if not isinstance(runtime.timers, CeleryTimerFacility):
        logger.error(
            f"Timer task received but the Celery timer backend is not configured: "
            f"owner={owner}, key={correlation_key}"
        )
        return False

    event = runtime.timers.claim(owner, correlation_key, task_id)
    if event is None:
        return False

    runtime.dispatcher.dispatch(event)
    return True


@celery_app.task(
    bind=True,
    base=BaseTask,
    name="src.orchestration.tasks.recover_reminders_task",
    **DEFAULT_RETRY_KWARGS,
)
def recover_reminders_task(self: Task) -> dict[str, int]:
    """Re-arm every stored reminder.

    :param self: The Celery task instance (bound).
    :returns: Dictionary with recovery statistics.
    """
    logger.info("Starting reminder recovery task")
    result = get_reminder_runtime().recovery.recover()
    return {"rearmed": result.rearmed, "failed": result.failed}


@celery_app.task(
    bind=True,
    base=BaseTask,
    name="src.orchestration.tasks.mirror_caregiver_alerts_task",
    **DEFAULT_RETRY_KWARGS,
)
def mirror_caregiver_alerts_task(self: Task) -> dict[str, int]:
    """Send queued caregiver alerts to the caregiver's Telegram chat.

    :param self: The Celery task instance (bound).
    :returns: Dictionary with mirroring statistics.
    """
    runtime = get_reminder_runtime()
    chat_id = runtime.config.caregiver_chat_id
    if not chat_id:
        logger.debug("Caregiver chat not configured, skipping alert mirror")
        return {"alerts_sent": 0}

    try:
        settings = get_telegram_settings()
        client = TelegramClient(bot_token=settings.bot_token)
        sent = CaregiverAlertMirror(runtime.store, client, chat_id).mirror_pending()
        return {"alerts_sent": sent}

    except Exception as exc:
        logger.exception(f"Caregiver alert mirror failed: {exc}")
        raise


@worker_ready.connect
def recover_on_worker_ready(sender: Any = None, **kwargs: Any) -> None:
    """Re-arm stored reminders once a worker is ready to receive timers."""
    recover_reminders_task.delay()


# Beat schedule for periodic tasks
@celery_app.on_after_configure.connect
def setup_periodic_tasks(sender: Celery, **kwargs: Any) -> None:
    """Set up periodic tasks."""
    sender.add_periodic_task(
        CAREGIVER_MIRROR_INTERVAL_SECONDS,
        mirror_caregiver_alerts_task.s(),
        name="mirror-caregiver-alerts",
    )
