"""Celery application configuration."""

import os

from celery import Celery

from src.observability.sentry import init_sentry
from src.utils.logging import configure_logging

configure_logging()
init_sentry()

# Redis URL for broker and result backend
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

# Daily timers are armed up to a day ahead. Redis redelivers unacknowledged
# ETA tasks after the visibility timeout, so it must outlast the longest ETA.
VISIBILITY_TIMEOUT_SECONDS = 2 * 24 * 60 * 60

celery_app = Celery(
    "medication_reminders",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["src.orchestration.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task execution settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue="medication_reminders",
    task_default_routing_key="medication_reminders",
    # Retry settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    broker_transport_options={"visibility_timeout": VISIBILITY_TIMEOUT_SECONDS},
    # Result expiration (24 hours)
    result_expires=86400,
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
    # Worker logging
    worker_hijack_root_logger=False,
    worker_redirect_stdouts=False,
)
