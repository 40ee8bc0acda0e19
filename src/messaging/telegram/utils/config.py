"""Telegram settings for posting dose reminders and reading their buttons."""

from functools import cached_property, lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.paths import PROJECT_ROOT

_ENV_FILE = PROJECT_ROOT / ".env"


def _split_chat_ids(value: str) -> list[str]:
    return [chat_id.strip() for chat_id in value.split(",") if chat_id.strip()]


class TelegramConfig(BaseSettings):
    """Settings for the Telegram reminder chat.

    Reminders are posted as messages with Taken, Snooze and Skip buttons. Button
    presses are read back by long polling and only accepted from allowed chats.
    All settings are loaded from environment variables with the TELEGRAM_ prefix.

    :param bot_token: Telegram bot token from @BotFather.
    :param chat_id: Chat that dose reminders are posted to. Defaults to the
        allowed chat when exactly one is configured.
    :param poll_timeout: Long polling timeout in seconds when waiting for button presses.
    :param error_retry_delay: Delay in seconds before polling again after an error.
    :param max_consecutive_errors: Polling errors in a row before backing off.
    :param backoff_delay: Delay in seconds after max consecutive errors.
    :param allowed_chat_ids: Comma-separated chat IDs whose button presses are applied.
    """

    model_config = SettingsConfigDict(
        env_prefix="TELEGRAM_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    bot_token: str = Field(..., description="Bot token from @BotFather")
    chat_id: str | None = Field(
        default=None,
        description="Chat that dose reminders are posted to",
    )
    poll_timeout: int = Field(
        default=30,
        ge=1,
        le=60,
        description="Long polling timeout in seconds when waiting for dose button presses",
    )
    error_retry_delay: int = Field(
        default=5,
        ge=1,
        le=60,
        description="Delay in seconds before polling for button presses again after an error",
    )
    max_consecutive_errors: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Polling errors in a row before backing off",
    )
    backoff_delay: int = Field(
        default=30,
        ge=5,
        le=300,
        description="Delay in seconds after max consecutive polling errors",
    )
    allowed_chat_ids: str = Field(
        ...,
        description="Comma-separated chat IDs allowed to answer doses with the buttons",
    )

    @field_validator("chat_id")
    @classmethod
    def validate_chat_id(cls, v: str | None) -> str | None:
        """Normalise the reminder chat ID.

        :param v: Raw chat ID from environment.
        :returns: The stripped chat ID, or None when blank.
        """
        if v is None:
            return None
        return v.strip() or None

    @field_validator("allowed_chat_ids")
    @classmethod
    def validate_allowed_chat_ids(cls, v: str) -> str:
        """Validate that at least one chat may answer doses.

        :param v: Raw comma-separated string from environment.
        :returns: The validated string.
        :raises ValueError: If the value contains no chat IDs.
        """
        if not _split_chat_ids(v):
            raise ValueError(
                "At least one chat ID must be allowed to answer doses. "
                "Set TELEGRAM_ALLOWED_CHAT_IDS environment variable."
            )
        return v

    @model_validator(mode="after")
    def validate_reminder_chat_is_allowed(self) -> "TelegramConfig":
        """Reject a reminder chat whose button presses would be ignored.

        :returns: The validated settings.
        :raises ValueError: If chat_id is not one of the allowed chat IDs.
        """
        if self.chat_id is not None and self.chat_id not in self.allowed_chat_ids_set:
            raise ValueError(
                f"Reminder chat {self.chat_id} is not in TELEGRAM_ALLOWED_CHAT_IDS, "
                "so its dose buttons would be ignored."
            )
        return self

    @cached_property
    def allowed_chat_ids_set(self) -> frozenset[str]:
        """Get the chat IDs whose button presses are applied.

        :returns: Frozenset of allowed chat ID strings.
        """
        return frozenset(_split_chat_ids(self.allowed_chat_ids))

    @property
    def reminder_chat_id(self) -> str | None:
        """Get the chat that dose reminders are posted to.

        :returns: The configured chat_id, the only allowed chat when there is
            exactly one, otherwise None.
        """
        if self.chat_id is not None:
            return self.chat_id
        allowed = _split_chat_ids(self.allowed_chat_ids)
        return allowed[0] if len(allowed) == 1 else None


@lru_cache
def get_telegram_settings() -> TelegramConfig:
    """Get cached Telegram settings.

    Settings are loaded once and cached for the lifetime of the process.

    :returns: Configured TelegramConfig instance.
    """
    return TelegramConfig()  # type: ignore[call-arg]
