"""Tests for the in-process timer facility and pump."""

import threading
import unittest
from datetime import UTC, date, datetime, timedelta
from unittest.mock import MagicMock

from src.dosing.models import DoseKey, TimerEvent, TimerId, TimerKind, TimerOwner
from src.dosing.timers.memory import InMemoryTimerFacility, TimerPump

NOW = datetime(2026, 6, 1, 8, 0, tzinfo=UTC)
KEY = DoseKey("m1", "08:00", date(2026, 6, 1))


def make_event(kind: TimerKind = TimerKind.FOLLOW_UP, step: int = 0) -> TimerEvent:
    """Build a timer event for the default dose."""
    return TimerEvent.for_dose(kind, KEY, step=step)


class TestInMemoryTimerFacility(unittest.TestCase):
    """Tests for InMemoryTimerFacility."""

    def setUp(self) -> None:
        """Set up a facility with a mock handler."""
        self.handler = MagicMock()
        self.facility = InMemoryTimerFacility(handler=self.handler)
        self.timer_id = KEY.timer_id(TimerOwner.FOLLOW_UP)

    def test_fires_only_due_timers(self) -> None:
        """Test timers fire once their time has come."""
        self.facility.arm(self.timer_id, NOW + timedelta(minutes=30), make_event())

        self.assertEqual(self.facility.fire_due(NOW), 0)
        self.assertEqual(self.facility.fire_due(NOW + timedelta(minutes=30)), 1)
        self.handler.assert_called_once_with(make_event())
        self.assertEqual(self.facility.armed(), [])

    def test_rearm_replaces_timer(self) -> None:
        """Test arming an armed id replaces it."""
        self.facility.arm(self.timer_id, NOW + timedelta(minutes=30), make_event())
        self.facility.arm(self.timer_id, NOW + timedelta(minutes=45), make_event(step=2))

        armed = self.facility.armed()
        self.assertEqual(len(armed), 1)
        self.assertEqual(armed[0].fire_at, NOW + timedelta(minutes=45))
        self.assertEqual(self.facility.next_fire_at(), NOW + timedelta(minutes=45))

    def test_cancel(self) -> None:
        """Test a cancelled timer never fires and unknown ids are ignored."""
        self.facility.arm(self.timer_id, NOW, make_event())

        self.facility.cancel(self.timer_id)
        self.facility.cancel(TimerId("unknown", "key"))

        self.assertEqual(self.facility.fire_due(NOW + timedelta(hours=1)), 0)
        self.handler.assert_not_called()

    def test_fires_in_time_order(self) -> None:
        """Test due timers fire earliest first."""
        final_id = KEY.timer_id(TimerOwner.FINAL_CHECK)
        self.facility.arm(final_id, NOW + timedelta(minutes=60), make_event(TimerKind.FINAL_CHECK))
        self.facility.arm(self.timer_id, NOW + timedelta(minutes=30), make_event())

        self.facility.fire_due(NOW + timedelta(hours=2))

        kinds = [call.args[0].kind for call in self.handler.call_args_list]
        self.assertEqual(kinds, [TimerKind.FOLLOW_UP, TimerKind.FINAL_CHECK])

    def test_handler_may_rearm_same_id(self) -> None:
        """Test a handler can arm a fresh timer under the id that just fired."""

        def rearm(event: TimerEvent) -> None:
            self.facility.arm(self.timer_id, NOW + timedelta(days=1), event)

        self.facility.bind(rearm)
        self.facility.arm(self.timer_id, NOW, make_event())

        self.facility.fire_due(NOW)

        self.assertEqual(self.facility.get(self.timer_id).fire_at, NOW + timedelta(days=1))

    def test_handler_failure_does_not_stop_other_timers(self) -> None:
        """Test one failing handler call does not prevent the next."""
        self.handler.side_effect = [RuntimeError("boom"), None]
        self.facility.arm(self.timer_id, NOW, make_event())
        self.facility.arm(KEY.timer_id(TimerOwner.FINAL_CHECK), NOW, make_event())

        self.assertEqual(self.facility.fire_due(NOW), 2)
        self.assertEqual(self.handler.call_count, 2)

    def test_unbound_facility_drops_due_timers(self) -> None:
        """Test due timers are dropped when no handler is bound."""
        facility = InMemoryTimerFacility()
        facility.arm(self.timer_id, NOW, make_event())

        self.assertEqual(facility.fire_due(NOW), 0)
        self.assertEqual(facility.armed(), [])

    def test_arm_preferring_exact(self) -> None:
        """Test exact timers are used when permitted and inexact otherwise."""
        self.assertTrue(self.facility.arm_preferring_exact(self.timer_id, NOW, make_event()))
        self.assertTrue(self.facility.get(self.timer_id).exact)

        self.facility.set_exact_permitted(False)

        self.assertFalse(self.facility.can_schedule_exact())
        self.assertFalse(self.facility.arm_preferring_exact(self.timer_id, NOW, make_event()))
        self.assertFalse(self.facility.get(self.timer_id).exact)


class TestTimerPump(unittest.TestCase):
    """Tests for TimerPump."""

    def test_pump_fires_due_timers_in_background(self) -> None:
        """Test the pump thread delivers a due timer."""
        fired = threading.Event()
        facility = InMemoryTimerFacility(handler=lambda event: fired.set())
        facility.arm(KEY.timer_id(TimerOwner.SNOOZE), datetime.now(UTC), make_event())
        pump = TimerPump(facility, interval_seconds=0.01)

        pump.start()
        try:
            self.assertTrue(fired.wait(timeout=2))
            self.assertTrue(pump.is_running)
        finally:
            pump.stop()

        self.assertFalse(pump.is_running)

    def test_start_twice_is_a_no_op(self) -> None:
        """Test starting a running pump keeps the same thread."""
        pump = TimerPump(InMemoryTimerFacility(), interval_seconds=0.01)

        pump.start()
        thread = pump._thread
        pump.start()
        try:
            self.assertIs(pump._thread, thread)
        finally:
            pump.stop()


if __name__ == "__main__":
    unittest.main()
