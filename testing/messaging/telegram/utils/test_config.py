"""Tests for Telegram configuration module."""

import unittest
from unittest.mock import patch

from pydantic import ValidationError

from src.messaging.telegram.utils.config import TelegramConfig, get_telegram_settings


class TestTelegramSettings(unittest.TestCase):
    """Tests for TelegramConfig class."""

    def test_valid_settings(self) -> None:
        """Test creating settings with valid values."""
        settings = TelegramConfig(
            bot_token="test-token",
            allowed_chat_ids="123,456",
            _env_file=None,
        )

        self.assertEqual(settings.bot_token, "test-token")
        self.assertIsNone(settings.chat_id)
        self.assertEqual(settings.poll_timeout, 30)
        self.assertEqual(settings.allowed_chat_ids_set, frozenset({"123", "456"}))

    def test_custom_values(self) -> None:
        """Test settings with custom values."""
        settings = TelegramConfig(
            bot_token="test-token",
            chat_id=" 456 ",
            poll_timeout=60,
            backoff_delay=60,
            allowed_chat_ids=" 123 , 456 ,,789",
            _env_file=None,
        )

        self.assertEqual(settings.chat_id, "456")
        self.assertEqual(settings.reminder_chat_id, "456")
        self.assertEqual(settings.poll_timeout, 60)
        self.assertEqual(settings.backoff_delay, 60)
        self.assertEqual(settings.allowed_chat_ids_set, frozenset({"123", "456", "789"}))

    def test_missing_bot_token_raises_error(self) -> None:
        """Test that missing bot_token raises validation error."""
        with self.assertRaises(ValidationError) as context:
            TelegramConfig(allowed_chat_ids="123", _env_file=None)

        errors = context.exception.errors()
        self.assertTrue(any(e["loc"] == ("bot_token",) for e in errors))

    def test_blank_allowed_chat_ids_raises_error(self) -> None:
        """Test that allowed_chat_ids without any id is rejected."""
        with self.assertRaises(ValidationError):
            TelegramConfig(bot_token="test-token", allowed_chat_ids=" , ", _env_file=None)

    def test_reminder_chat_outside_allowed_chats_raises_error(self) -> None:
        """Test reminders cannot be posted to a chat whose buttons would be ignored."""
        with self.assertRaises(ValidationError) as context:
            TelegramConfig(
                bot_token="test-token", chat_id="999", allowed_chat_ids="123", _env_file=None
            )

        self.assertIn("TELEGRAM_ALLOWED_CHAT_IDS", str(context.exception))

    def test_reminder_chat_defaults_to_single_allowed_chat(self) -> None:
        """Test the only allowed chat receives reminders when chat_id is unset."""
        settings = TelegramConfig(bot_token="test-token", allowed_chat_ids=" 123 ", _env_file=None)

        self.assertIsNone(settings.chat_id)
        self.assertEqual(settings.reminder_chat_id, "123")

    def test_reminder_chat_is_unset_with_several_allowed_chats(self) -> None:
        """Test no reminder chat is guessed when several chats are allowed."""
        settings = TelegramConfig(
            bot_token="test-token", chat_id="  ", allowed_chat_ids="123,456", _env_file=None
        )

        self.assertIsNone(settings.chat_id)
        self.assertIsNone(settings.reminder_chat_id)

    def test_poll_timeout_bounds(self) -> None:
        """Test poll_timeout must be between 1 and 60."""
        with self.assertRaises(ValidationError):
            TelegramConfig(
                bot_token="test-token", allowed_chat_ids="123", poll_timeout=0, _env_file=None
            )


class TestGetTelegramSettings(unittest.TestCase):
    """Tests for get_telegram_settings function."""

    def setUp(self) -> None:
        """Clear the settings cache."""
        get_telegram_settings.cache_clear()

    def tearDown(self) -> None:
        """Clear the settings cache."""
        get_telegram_settings.cache_clear()

    @patch.dict(
        "os.environ",
        {"TELEGRAM_BOT_TOKEN": "env-token", "TELEGRAM_ALLOWED_CHAT_IDS": "42"},
    )
    def test_loads_from_environment_and_caches(self) -> None:
        """Test settings are read from the environment once."""
        first = get_telegram_settings()
        second = get_telegram_settings()

        self.assertEqual(first.bot_token, "env-token")
        self.assertIs(first, second)


if __name__ == "__main__":
    unittest.main()
