"""Tests for re-arming reminders after a restart."""

import unittest
from datetime import UTC, datetime
from unittest.mock import MagicMock

from src.database.medications.models import DoseStatus
from src.dosing.factory import build_reminder_runtime
from src.dosing.models import TimerOwner, daily_timer_id
from src.dosing.recovery import RebootRecovery
from src.dosing.timers.memory import InMemoryTimerFacility
from testing.dosing.fixtures import DOSE_TIME, EngineHarness, make_key, make_payload


class TestRebootRecovery(unittest.TestCase):
    """Tests for RebootRecovery.recover."""

    def test_rearms_every_definition(self) -> None:
        """Test every stored reminder gets its daily timer back."""
        harness = EngineHarness()
        harness.store.save_definition(make_payload(time_of_day="08:00"))
        harness.store.save_definition(make_payload(time_of_day="20:00"))
        harness.store.save_definition(make_payload(reminder_id="m2", time_of_day="12:00"))

        result = harness.runtime.recovery.recover(now=DOSE_TIME)

        self.assertEqual(result.rearmed, 3)
        self.assertEqual(result.failed, 0)
        self.assertIsNotNone(harness.timers.get(daily_timer_id("m1", "20:00")))
        self.assertIsNotNone(harness.timers.get(daily_timer_id("m2", "12:00")))

    def test_recover_is_idempotent(self) -> None:
        """Test recovering twice leaves one daily timer per reminder."""
        harness = EngineHarness()
        harness.store.save_definition(make_payload())

        harness.runtime.recovery.recover(now=DOSE_TIME)
        harness.runtime.recovery.recover(now=DOSE_TIME)

        self.assertEqual(len(harness.timers.armed()), 1)

    def test_in_flight_escalation_is_not_restored(self) -> None:
        """Test a dose that was escalating before the restart is left as it was."""
        harness = EngineHarness()
        harness.runtime.scheduler.arm(make_payload(), now=DOSE_TIME)
        key = make_key()
        harness.runtime.engine.on_initial_fire(key, make_payload(), now=DOSE_TIME)

        # Simulate a restart: a fresh in-process facility on the same database
        timers = InMemoryTimerFacility()
        restarted = build_reminder_runtime(
            config=harness.config,
            session_factory=harness.session_factory,
            timers=timers,
            notifier=harness.notifier,
            speech_in_background=False,
        )
        restarted.recovery.recover(now=DOSE_TIME)

        self.assertEqual({e.timer_id.owner for e in timers.armed()}, {TimerOwner.DAILY.value})
        self.assertEqual(harness.store.get_dose(key).status, DoseStatus.PENDING)

    def test_failure_is_counted_and_others_continue(self) -> None:
        """Test one failing reminder does not stop the rest from re-arming."""
        scheduler = MagicMock()
        scheduler.list_definitions.return_value = [
            make_payload(time_of_day="08:00"),
            make_payload(time_of_day="20:00"),
        ]
        scheduler.arm.side_effect = [RuntimeError("broker down"), datetime.now(UTC)]

        result = RebootRecovery(scheduler).recover(now=DOSE_TIME)

        self.assertEqual(result.rearmed, 1)
        self.assertEqual(result.failed, 1)
        self.assertIn("m1@08:00", result.errors[0])


class TestRecoveryWithoutTimers(unittest.TestCase):
    """Tests for recovery on an empty store."""

    def test_nothing_to_recover(self) -> None:
        """Test recovering with no reminders stored."""
        harness = EngineHarness()

        result = harness.runtime.recovery.recover(now=DOSE_TIME)

        self.assertEqual(result.rearmed, 0)
        self.assertIsInstance(harness.timers, InMemoryTimerFacility)
        self.assertEqual(harness.timers.armed(), [])


if __name__ == "__main__":
    unittest.main()
