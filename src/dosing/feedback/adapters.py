"""Feedback adapters that write to the application log.

Used when no device or chat integration is configured, so every side effect
still leaves a trace.
"""

import logging

from src.dosing.feedback.base import Announcer, NotificationRequest, Notifier, Vibrator
from src.dosing.models import DoseKey

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Notifier that logs notifications instead of displaying them."""

    def notify(self, request: NotificationRequest) -> str | None:
        """Log the notification and return a reference derived from its key."""
        logger.info(
            f"Notification [{request.urgency}] {request.title}: {request.body} "
            f"(actions={[action.value for action in request.actions]})"
        )
        return f"log:{request.key.encode()}"

    def dismiss(self, ref: str, key: DoseKey) -> None:
        """Log the dismissal."""
        logger.info(f"Dismissed notification: ref={ref}, key={key}")


class LoggingAnnouncer(Announcer):
    """Announcer that logs speech text."""

    def speak(self, text: str, utterance_id: str) -> None:
        """Log the utterance."""
        logger.info(f"Speak [{utterance_id}]: {text}")


class LoggingVibrator(Vibrator):
    """Vibrator that logs patterns."""

    def vibrate(self, pattern: tuple[int, ...]) -> None:
        """Log the pattern."""
        logger.debug(f"Vibrate: pattern={list(pattern)}")
