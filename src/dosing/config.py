"""Configuration for the medication reminder engine using pydantic-settings."""

from enum import StrEnum
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.paths import PROJECT_ROOT

_ENV_FILE = PROJECT_ROOT / ".env"


class TimerBackend(StrEnum):
    """Which timer facility delivers reminder timers."""

    MEMORY = "memory"
    CELERY = "celery"


class NotifierBackend(StrEnum):
    """Where dose notifications are delivered."""

    LOG = "log"
    TELEGRAM = "telegram"


class ReminderConfig(BaseSettings):
    """Configuration for the reminder engine.

    All settings are loaded from environment variables with the REMINDER_ prefix.

    :param timezone: IANA timezone that reminder times of day are expressed in.
    :param exact_timers_enabled: Whether exact timers may be armed.
    :param timer_backend: Timer facility (memory or celery).
    :param notifier_backend: Notification delivery (log or telegram).
    :param snooze_minutes: Minutes a snoozed dose waits before re-firing.
    :param skip_cancels_escalation: Whether skipping a dose cancels its pending timers.
    :param speech_workers: Worker threads used for speech output.
    :param pump_interval_seconds: How often the in-process facility checks for due timers.
    :param caregiver_chat_id: Telegram chat that caregiver alerts are mirrored to.
    """

    model_config = SettingsConfigDict(
        env_prefix="REMINDER_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timezone: str = Field(default="UTC", description="IANA timezone for times of day")
    exact_timers_enabled: bool = Field(
        default=True,
        description="Whether exact timers may be armed",
    )
    timer_backend: TimerBackend = Field(
        default=TimerBackend.MEMORY,
        description="Timer facility (memory or celery)",
    )
    notifier_backend: NotifierBackend = Field(
        default=NotifierBackend.LOG,
        description="Notification delivery (log or telegram)",
    )
    snooze_minutes: int = Field(
        default=15,
        ge=1,
        le=240,
        description="Minutes before a snoozed dose re-fires",
    )
    skip_cancels_escalation: bool = Field(
        default=False,
        description="Cancel pending escalation timers when a dose is skipped",
    )
    speech_workers: int = Field(
        default=2,
        ge=1,
        le=16,
        description="Worker threads for speech output",
    )
    pump_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        le=60,
        description="Polling interval of the in-process timer facility",
    )
    caregiver_chat_id: str | None = Field(
        default=None,
        description="Telegram chat that caregiver alerts are mirrored to",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that the timezone is a known IANA zone.

        :param v: Raw timezone name from environment.
        :returns: The validated name.
        :raises ValueError: If the zone is unknown.
        """
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        """Get the configured timezone."""
        return ZoneInfo(self.timezone)


@lru_cache
def get_reminder_settings() -> ReminderConfig:
    """Get cached reminder settings.

    Settings are loaded once and cached for the lifetime of the process.

    :returns: Configured ReminderConfig instance.
    """
    return ReminderConfig()
