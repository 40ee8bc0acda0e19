"""Failure-isolating front for the feedback ports."""

import logging
from concurrent.futures import Executor

from src.dosing.feedback.base import Announcer, NotificationRequest, Notifier, Vibrator
from src.dosing.models import DoseKey

logger = logging.getLogger(__name__)


class FeedbackDispatcher:
    """Calls the feedback ports and contains their failures.

    Speech is handed to an executor and never awaited. Without an executor it
    runs inline, which keeps tests deterministic.
    """

    def __init__(
        self,
        notifier: Notifier,
        announcer: Announcer,
        vibrator: Vibrator,
        speech_executor: Executor | None = None,
    ) -> None:
        """Initialise the dispatcher.

        :param notifier: Notification port.
        :param announcer: Speech port.
        :param vibrator: Vibration port.
        :param speech_executor: Executor that runs speech. Inline when None.
        """
        self.notifier = notifier
        self.announcer = announcer
        self.vibrator = vibrator
        self._speech_executor = speech_executor

    def notify(self, request: NotificationRequest) -> str | None:
        """Show a notification, returning its reference or None on failure."""
        try:
            return self.notifier.notify(request)
        except Exception:
            logger.exception(f"Notification failed: key={request.key}, title={request.title!r}")
            return None

    def dismiss(self, ref: str | None, key: DoseKey) -> None:
        """Dismiss a notification if there is one."""
        if ref is None:
            return
        try:
            self.notifier.dismiss(ref, key)
        except Exception:
            logger.exception(f"Dismissing notification failed: ref={ref}, key={key}")

    def speak(self, text: str, utterance_id: str) -> None:
        """Speak text without waiting for it to finish."""
        if self._speech_executor is None:
            self._speak(text, utterance_id)
            return
        try:
            self._speech_executor.submit(self._speak, text, utterance_id)
        except RuntimeError:
            logger.warning(f"Speech executor unavailable, dropping utterance: id={utterance_id}")

    def vibrate(self, pattern: tuple[int, ...]) -> None:
        """Play a vibration pattern."""
        try:
            self.vibrator.vibrate(pattern)
        except Exception:
            logger.exception("Vibration failed")

    def shutdown(self) -> None:
        """Stop accepting speech work."""
        if self._speech_executor is not None:
            self._speech_executor.shutdown(wait=False)

    def _speak(self, text: str, utterance_id: str) -> None:
        try:
            self.announcer.speak(text, utterance_id)
        except Exception:
            logger.exception(f"Speech failed: id={utterance_id}")
