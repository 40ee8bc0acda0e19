"""Notification, speech and vibration feedback for reminders."""

from src.dosing.feedback.adapters import LoggingAnnouncer, LoggingNotifier, LoggingVibrator
from src.dosing.feedback.base import (
    VIBRATION_NORMAL,
    VIBRATION_URGENT,
    Announcer,
    DoseAction,
    NotificationRequest,
    NotificationUrgency,
    Notifier,
    Vibrator,
)
from src.dosing.feedback.dispatcher import FeedbackDispatcher

__all__ = [
    "VIBRATION_NORMAL",
    "VIBRATION_URGENT",
    "Announcer",
    "DoseAction",
    "FeedbackDispatcher",
    "LoggingAnnouncer",
    "LoggingNotifier",
    "LoggingVibrator",
    "NotificationRequest",
    "NotificationUrgency",
    "Notifier",
    "Vibrator",
]
