"""Abstract side-effect ports for reminder feedback.

Notification, speech and vibration are fire-and-forget. Implementations may
block or run asynchronously; the engine never waits on them for correctness.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum

from src.dosing.models import DoseKey


class NotificationUrgency(StrEnum):
    """How loudly a notification should present itself."""

    NORMAL = "normal"
    CRITICAL = "critical"
    OVERDUE = "overdue"
    URGENT = "urgent"
    MISSED = "missed"


class DoseAction(StrEnum):
    """Responses a notification can offer for its dose."""

    TAKEN = "taken"
    SNOOZE = "snooze"
    SKIP = "skip"


@dataclass(frozen=True)
class NotificationRequest:
    """A user-visible notification about a dose."""

    key: DoseKey
    title: str
    body: str
    urgency: NotificationUrgency = NotificationUrgency.NORMAL
    actions: tuple[DoseAction, ...] = field(default_factory=tuple)
    replaces: str | None = None


# Vibration patterns as alternating off/on durations in milliseconds
VIBRATION_NORMAL = (0, 300, 200, 300)
VIBRATION_URGENT = (0, 500, 200, 500, 200, 500, 200, 500)


class Notifier(ABC):
    """Abstract base class for notification delivery."""

    @abstractmethod
    def notify(self, request: NotificationRequest) -> str | None:
        """Show a notification.

        :param request: Notification to show.
        :returns: Opaque reference used to dismiss it later, if any.
        """
        ...

    @abstractmethod
    def dismiss(self, ref: str, key: DoseKey) -> None:
        """Dismiss a previously shown notification.

        :param ref: Reference returned by notify().
        :param key: Dose the notification belongs to.
        """
        ...


class Announcer(ABC):
    """Abstract base class for speech output."""

    @abstractmethod
    def speak(self, text: str, utterance_id: str) -> None:
        """Speak text aloud, interrupting any earlier utterance.

        :param text: Text to speak.
        :param utterance_id: Identifier of the utterance.
        """
        ...


class Vibrator(ABC):
    """Abstract base class for haptic output."""

    @abstractmethod
    def vibrate(self, pattern: tuple[int, ...]) -> None:
        """Play a vibration pattern once.

        :param pattern: Alternating off/on durations in milliseconds.
        """
        ...
