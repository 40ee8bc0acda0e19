"""Tests for the feedback dispatcher and message texts."""

import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime
from unittest.mock import MagicMock

from src.database.medications.models import CaregiverAlertType
from src.dosing import messages
from src.dosing.feedback import FeedbackDispatcher, LoggingNotifier, NotificationUrgency
from src.dosing.models import CaregiverAlertRecord, DoseKey
from testing.dosing.fixtures import make_payload

KEY = DoseKey("m1", "08:00", date(2026, 6, 1))


class TestFeedbackDispatcher(unittest.TestCase):
    """Tests for FeedbackDispatcher."""

    def setUp(self) -> None:
        """Set up a dispatcher with mock ports."""
        self.notifier = MagicMock()
        self.announcer = MagicMock()
        self.vibrator = MagicMock()
        self.dispatcher = FeedbackDispatcher(self.notifier, self.announcer, self.vibrator)

    def test_notify_returns_reference(self) -> None:
        """Test the notifier's reference is passed back."""
        self.notifier.notify.return_value = "ref-1"

        ref = self.dispatcher.notify(messages.due_notification(make_payload(), KEY))

        self.assertEqual(ref, "ref-1")

    def test_port_failures_are_contained(self) -> None:
        """Test no port failure escapes the dispatcher."""
        self.notifier.notify.side_effect = RuntimeError("down")
        self.notifier.dismiss.side_effect = RuntimeError("down")
        self.announcer.speak.side_effect = RuntimeError("down")
        self.vibrator.vibrate.side_effect = RuntimeError("down")

        self.assertIsNone(self.dispatcher.notify(messages.due_notification(make_payload(), KEY)))
        self.dispatcher.dismiss("ref-1", KEY)
        self.dispatcher.speak("hello", "u1")
        self.dispatcher.vibrate((0, 100))

    def test_dismiss_without_reference_is_skipped(self) -> None:
        """Test nothing is dismissed when no notification is showing."""
        self.dispatcher.dismiss(None, KEY)

        self.notifier.dismiss.assert_not_called()

    def test_speech_runs_on_executor(self) -> None:
        """Test speech is handed to the executor."""
        executor = ThreadPoolExecutor(max_workers=1)
        dispatcher = FeedbackDispatcher(self.notifier, self.announcer, self.vibrator, executor)

        dispatcher.speak("Time to take Metformin.", "due:m1")
        executor.shutdown(wait=True)

        self.announcer.speak.assert_called_once_with("Time to take Metformin.", "due:m1")

    def test_speech_after_shutdown_is_dropped(self) -> None:
        """Test speech submitted after shutdown is dropped quietly."""
        dispatcher = FeedbackDispatcher(
            self.notifier, self.announcer, self.vibrator, ThreadPoolExecutor(max_workers=1)
        )
        dispatcher.shutdown()

        dispatcher.speak("late", "u1")

        self.announcer.speak.assert_not_called()


class TestMessages(unittest.TestCase):
    """Tests for notification and speech texts."""

    def test_due_notification_includes_instructions(self) -> None:
        """Test instructions are shown under the dosage."""
        payload = make_payload().model_copy(update={"instructions": "Take with food"})

        request = messages.due_notification(payload, KEY)

        self.assertEqual(request.body, "500mg at 08:00\nTake with food")

    def test_missed_notification_offers_no_actions(self) -> None:
        """Test the missed notification cannot be answered."""
        request = messages.missed_notification(make_payload(), KEY, replaces="ref-3")

        self.assertEqual(request.actions, ())
        self.assertEqual(request.urgency, NotificationUrgency.MISSED)
        self.assertEqual(request.replaces, "ref-3")
        self.assertIn("caregiver has been notified", request.body)

    def test_speech_omits_empty_dosage(self) -> None:
        """Test speech reads naturally without a dosage."""
        text = messages.missed_speech(make_payload(dosage=""), urgent=True)

        self.assertEqual(text, "Urgent! You have missed your medicine. Please take Metformin now.")

    def test_caregiver_alert_text_escapes_html(self) -> None:
        """Test medicine names are escaped for HTML parse mode."""
        alert = CaregiverAlertRecord(
            id=1,
            alert_type=CaregiverAlertType.MEDICINE_MISSED,
            reminder_id="m1",
            medicine_name="<Insulin>",
            dosage="10 units",
            dose_date=date(2026, 6, 1),
            time_of_day="08:00",
            is_critical=True,
            created_at=datetime(2026, 6, 1, 9, 0, tzinfo=UTC),
        )

        text = messages.caregiver_alert_text(alert)

        self.assertIn("&lt;Insulin&gt;", text)
        self.assertIn("Critical medicine missed", text)
        self.assertIn("2026-06-01", text)


class TestLoggingNotifier(unittest.TestCase):
    """Tests for LoggingNotifier."""

    def test_reference_is_derived_from_key(self) -> None:
        """Test the log notifier returns a stable reference."""
        ref = LoggingNotifier().notify(messages.due_notification(make_payload(), KEY))

        self.assertEqual(ref, "log:m1|08:00|2026-06-01")


if __name__ == "__main__":
    unittest.main()
