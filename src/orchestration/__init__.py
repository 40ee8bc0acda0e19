"""Celery orchestration for durable reminder timers."""

from src.orchestration.celery_app import celery_app
from src.orchestration.tasks import (
    fire_timer_task,
    mirror_caregiver_alerts_task,
    recover_reminders_task,
)

__all__ = [
    "celery_app",
    "fire_timer_task",
    "mirror_caregiver_alerts_task",
    "recover_reminders_task",
]
