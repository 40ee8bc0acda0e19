"""Tests for reminder engine configuration."""

import unittest
from unittest.mock import patch
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from src.dosing.config import NotifierBackend, ReminderConfig, TimerBackend, get_reminder_settings


class TestReminderConfig(unittest.TestCase):
    """Tests for ReminderConfig."""

    def test_defaults(self) -> None:
        """Test the default configuration."""
        config = ReminderConfig(_env_file=None)

        self.assertEqual(config.timezone, "UTC")
        self.assertEqual(config.snooze_minutes, 15)
        self.assertFalse(config.skip_cancels_escalation)
        self.assertTrue(config.exact_timers_enabled)
        self.assertEqual(config.timer_backend, TimerBackend.MEMORY)
        self.assertEqual(config.notifier_backend, NotifierBackend.LOG)

    def test_timezone_is_validated(self) -> None:
        """Test an unknown timezone is rejected."""
        with self.assertRaises(ValidationError):
            ReminderConfig(timezone="Mars/Olympus_Mons", _env_file=None)

    def test_tzinfo(self) -> None:
        """Test the configured timezone is exposed as a ZoneInfo."""
        config = ReminderConfig(timezone="Europe/London", _env_file=None)

        self.assertEqual(config.tzinfo, ZoneInfo("Europe/London"))

    def test_snooze_minutes_bounds(self) -> None:
        """Test the snooze period must be positive."""
        with self.assertRaises(ValidationError):
            ReminderConfig(snooze_minutes=0, _env_file=None)

    @patch.dict(
        "os.environ",
        {
            "REMINDER_TIMER_BACKEND": "celery",
            "REMINDER_SKIP_CANCELS_ESCALATION": "true",
            "REMINDER_SNOOZE_MINUTES": "10",
        },
    )
    def test_loads_from_environment(self) -> None:
        """Test settings are read from REMINDER_ variables."""
        config = ReminderConfig(_env_file=None)

        self.assertEqual(config.timer_backend, TimerBackend.CELERY)
        self.assertTrue(config.skip_cancels_escalation)
        self.assertEqual(config.snooze_minutes, 10)


class TestGetReminderSettings(unittest.TestCase):
    """Tests for get_reminder_settings."""

    def test_settings_are_cached(self) -> None:
        """Test the same instance is returned on every call."""
        get_reminder_settings.cache_clear()
        try:
            self.assertIs(get_reminder_settings(), get_reminder_settings())
        finally:
            get_reminder_settings.cache_clear()


if __name__ == "__main__":
    unittest.main()
