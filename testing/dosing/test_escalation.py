"""Tests for the dose escalation state machine."""

import unittest
from datetime import timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from src.database.medications.models import DoseStatus, SyncStatus
from src.dosing.escalation import MAX_ESCALATIONS, minutes_overdue
from src.dosing.feedback.base import VIBRATION_NORMAL, VIBRATION_URGENT, NotificationUrgency
from src.dosing.models import TimerEvent, TimerKind, TimerOwner
from src.dosing.store import DoseTransaction
from testing.dosing.fixtures import DOSE_TIME, EngineHarness, make_key, make_payload


class TestMinutesOverdue(unittest.TestCase):
    """Tests for minutes_overdue."""

    def test_steps_follow_the_escalation_interval(self) -> None:
        """Test overdue minutes grow by 15 per step after the 30 minute follow-up."""
        self.assertEqual(minutes_overdue(1), 30)
        self.assertEqual(minutes_overdue(2), 45)
        self.assertEqual(minutes_overdue(3), 60)
        self.assertEqual(minutes_overdue(4), 75)


class TestInitialFire(unittest.TestCase):
    """Tests for EscalationEngine.on_initial_fire."""

    def setUp(self) -> None:
        """Set up a wired engine."""
        self.harness = EngineHarness()
        self.engine = self.harness.runtime.engine
        self.key = make_key()

    def test_creates_pending_dose_and_arms_follow_up(self) -> None:
        """Test the first fire materialises the dose and arms the follow-up check."""
        self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

        dose = self.harness.store.get_dose(self.key)
        self.assertIsNotNone(dose)
        self.assertEqual(dose.status, DoseStatus.PENDING)
        self.assertEqual(dose.escalation_step, 0)
        self.assertEqual(dose.first_fired_at, DOSE_TIME)

        follow_up = self.harness.dose_timer(self.key, TimerOwner.FOLLOW_UP)
        self.assertIsNotNone(follow_up)
        self.assertEqual(follow_up.fire_at, DOSE_TIME + timedelta(minutes=30))
        self.assertEqual(follow_up.event.kind, TimerKind.FOLLOW_UP)

    def test_notifies_speaks_and_vibrates(self) -> None:
        """Test a due dose triggers every feedback channel."""
        self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

        self.assertEqual(len(self.harness.notifier.requests), 1)
        request = self.harness.notifier.requests[0]
        self.assertEqual(request.title, "💊 Metformin")
        self.assertEqual(request.urgency, NotificationUrgency.NORMAL)
        self.assertEqual(len(request.actions), 3)
        self.assertEqual(len(self.harness.announcer.utterances), 1)
        self.assertIn("Time to take Metformin", self.harness.announcer.utterances[0][1])
        self.assertEqual(self.harness.vibrator.patterns, [VIBRATION_NORMAL])

    def test_critical_dose_uses_urgent_presentation(self) -> None:
        """Test critical medicines get the critical title and urgent vibration."""
        self.engine.on_initial_fire(self.key, make_payload(is_critical=True), now=DOSE_TIME)

        request = self.harness.notifier.requests[0]
        self.assertTrue(request.title.startswith("🔴 CRITICAL"))
        self.assertEqual(request.urgency, NotificationUrgency.CRITICAL)
        self.assertEqual(self.harness.vibrator.patterns, [VIBRATION_URGENT])
        self.assertIn("Critical medication alert", self.harness.announcer.utterances[0][1])

    def test_voice_disabled_skips_speech(self) -> None:
        """Test no speech is produced when voice is disabled."""
        self.engine.on_initial_fire(self.key, make_payload(voice_enabled=False), now=DOSE_TIME)

        self.assertEqual(self.harness.announcer.utterances, [])
        self.assertEqual(len(self.harness.notifier.requests), 1)

    def test_stores_notification_reference(self) -> None:
        """Test the visible notification is remembered on the dose."""
        self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

        self.assertEqual(self.harness.store.get_dose(self.key).notification_ref, "ref-1")

    def test_notification_failure_does_not_block_transition(self) -> None:
        """Test a failing notifier is contained and the dose still fires."""
        self.harness.notifier.fail = True

        self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

        self.assertEqual(self.harness.store.get_dose(self.key).status, DoseStatus.PENDING)
        self.assertIsNotNone(self.harness.dose_timer(self.key, TimerOwner.FOLLOW_UP))
        self.assertEqual(len(self.harness.announcer.utterances), 1)

    def test_notification_reference_failure_still_speaks_and_vibrates(self) -> None:
        """Test a failed write of the notification reference leaves the other channels alone."""
        locked = OperationalError("UPDATE", {}, Exception("database is locked"))

        with patch.object(DoseTransaction, "set_notification_ref", side_effect=locked):
            self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

        self.assertEqual(len(self.harness.notifier.requests), 1)
        self.assertEqual(len(self.harness.announcer.utterances), 1)
        self.assertEqual(self.harness.vibrator.patterns, [VIBRATION_NORMAL])
        dose = self.harness.store.get_dose(self.key)
        self.assertEqual(dose.status, DoseStatus.PENDING)
        self.assertIsNone(dose.notification_ref)

    def test_terminal_dose_is_not_refired(self) -> None:
        """Test a dose answered before it fired stays answered and stays quiet."""
        self.harness.runtime.acknowledgement.acknowledge(self.key, now=DOSE_TIME)

        self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

        self.assertEqual(self.harness.store.get_dose(self.key).status, DoseStatus.ACKNOWLEDGED)
        self.assertEqual(self.harness.notifier.requests, [])
        self.assertIsNone(self.harness.dose_timer(self.key, TimerOwner.FOLLOW_UP))


class TestEscalationChain(unittest.TestCase):
    """Tests for an unanswered dose running through its escalation chain."""

    def setUp(self) -> None:
        """Fire a dose and leave it unanswered."""
        self.harness = EngineHarness()
        self.engine = self.harness.runtime.engine
        self.key = make_key()
        self.engine.on_initial_fire(self.key, make_payload(), now=DOSE_TIME)

    def test_follow_up_starts_escalating(self) -> None:
        """Test the follow-up moves the dose to Escalating(1) and arms the next timers."""
        self.harness.fire_next(TimerOwner.FOLLOW_UP)

        dose = self.harness.store.get_dose(self.key)
        self.assertEqual(dose.status, DoseStatus.ESCALATING)
        self.assertEqual(dose.escalation_step, 1)

        escalate = self.harness.dose_timer(self.key, TimerOwner.ESCALATE)
        self.assertEqual(escalate.fire_at, DOSE_TIME + timedelta(minutes=45))
        self.assertEqual(escalate.event.step, 2)
        final = self.harness.dose_timer(self.key, TimerOwner.FINAL_CHECK)
        self.assertEqual(final.fire_at, DOSE_TIME + timedelta(minutes=60))

        overdue = self.harness.notifier.requests[-1]
        self.assertTrue(overdue.title.startswith("⚠️ Medicine Overdue"))
        self.assertEqual(overdue.replaces, "ref-1")

    def test_escalation_steps_then_final_check_marks_missed(self) -> None:
        """Test the full timeline ends Missed with exactly one caregiver alert."""
        self.harness.fire_next(TimerOwner.FOLLOW_UP)  # T+30
        step_two = self.harness.fire_next(TimerOwner.ESCALATE)  # T+45
        self.assertEqual(step_two.fire_at, DOSE_TIME + timedelta(minutes=45))
        self.assertEqual(self.harness.store.get_dose(self.key).escalation_step, 2)
        self.assertIn("45min overdue", self.harness.notifier.requests[-1].title)

        step_three = self.harness.fire_next(TimerOwner.ESCALATE)  # T+60
        self.assertEqual(step_three.fire_at, DOSE_TIME + timedelta(minutes=60))
        self.assertEqual(self.harness.store.get_dose(self.key).escalation_step, 3)

        final = self.harness.fire_next(TimerOwner.FINAL_CHECK)  # T+60
        self.assertEqual(final.fire_at, DOSE_TIME + timedelta(minutes=60))

        dose = self.harness.store.get_dose(self.key)
        self.assertEqual(dose.status, DoseStatus.MISSED)
        self.assertEqual(dose.resolved_at, DOSE_TIME + timedelta(minutes=60))
        self.assertLessEqual(dose.escalation_step, MAX_ESCALATIONS)

        alerts = self.harness.store.pending_caregiver_alerts()
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].medicine_name, "Metformin")
        self.assertEqual(alerts[0].time_of_day, "08:00")

        statuses = [action.status for action in self.harness.store.pending_sync_actions()]
        self.assertEqual(statuses, [SyncStatus.MISSED])

        # The pending Escalate(4) was cancelled along with every other dose timer
        self.assertEqual(self.harness.armed_owners(), set())
        self.assertTrue(self.harness.notifier.requests[-1].title.startswith("❌ MISSED"))

    def test_last_escalation_marks_missed_without_final_check(self) -> None:
        """Test escalation stops at the maximum step and marks the dose missed once."""
        self.harness.fire_next(TimerOwner.FOLLOW_UP)
        final = self.harness.dose_timer(self.key, TimerOwner.FINAL_CHECK)
        self.harness.timers.cancel(final.timer_id)

        for _ in range(MAX_ESCALATIONS - 1):
            self.harness.fire_next(TimerOwner.ESCALATE)

        dose = self.harness.store.get_dose(self.key)
        self.assertEqual(dose.status, DoseStatus.MISSED)
        self.assertEqual(dose.escalation_step, MAX_ESCALATIONS)
        self.assertEqual(len(self.harness.store.pending_caregiver_alerts()), 1)
        self.assertIsNone(self.harness.dose_timer(self.key, TimerOwner.ESCALATE))

        # A late final check finds the dose finished
        self.harness.fire(final)
        self.assertEqual(len(self.harness.store.pending_caregiver_alerts()), 1)

    def test_duplicate_delivery_after_missed_has_no_side_effects(self) -> None:
        """Test redelivering timers for a finished dose changes nothing."""
        self.harness.fire_next(TimerOwner.FOLLOW_UP)
        escalate = self.harness.dose_timer(self.key, TimerOwner.ESCALATE)
        final = self.harness.fire_next(TimerOwner.FINAL_CHECK)

        notifications = len(self.harness.notifier.requests)
        utterances = len(self.harness.announcer.utterances)
        vibrations = len(self.harness.vibrator.patterns)

        self.harness.fire(final)
        self.harness.fire(escalate)
        self.harness.runtime.dispatcher.dispatch(
            TimerEvent.for_dose(TimerKind.FOLLOW_UP, self.key), now=DOSE_TIME + timedelta(hours=2)
        )

        self.assertEqual(len(self.harness.notifier.requests), notifications)
        self.assertEqual(len(self.harness.announcer.utterances), utterances)
        self.assertEqual(len(self.harness.vibrator.patterns), vibrations)
        self.assertEqual(len(self.harness.store.pending_caregiver_alerts()), 1)
        self.assertEqual(len(self.harness.store.pending_sync_actions()), 1)
        self.assertEqual(self.harness.armed_owners(), set())

    def test_stale_escalation_step_is_ignored(self) -> None:
        """Test an escalation step at or below the current one does nothing."""
        self.harness.fire_next(TimerOwner.FOLLOW_UP)
        self.harness.fire_next(TimerOwner.ESCALATE)
        notifications = len(self.harness.notifier.requests)

        self.engine.on_escalate(self.key, step=2, now=DOSE_TIME + timedelta(minutes=50))

        self.assertEqual(self.harness.store.get_dose(self.key).escalation_step, 2)
        self.assertEqual(len(self.harness.notifier.requests), notifications)

    def test_escalation_before_follow_up_is_ignored(self) -> None:
        """Test an escalation for a Pending dose is not applied."""
        self.engine.on_escalate(self.key, step=2, now=DOSE_TIME + timedelta(minutes=45))

        dose = self.harness.store.get_dose(self.key)
        self.assertEqual(dose.status, DoseStatus.PENDING)
        self.assertEqual(dose.escalation_step, 0)

    def test_follow_up_without_payload_uses_stored_snapshot(self) -> None:
        """Test a timer without a payload falls back to the dose snapshot."""
        self.engine.on_follow_up(self.key, payload=None, now=DOSE_TIME + timedelta(minutes=30))

        self.assertIn("Metformin", self.harness.notifier.requests[-1].title)


class TestFinalCheck(unittest.TestCase):
    """Tests for EscalationEngine.on_final_check."""

    def test_unknown_dose_is_ignored(self) -> None:
        """Test a final check for a dose that never fired creates nothing."""
        harness = EngineHarness()
        key = make_key()

        harness.runtime.engine.on_final_check(key, now=DOSE_TIME)

        self.assertIsNone(harness.store.get_dose(key))
        self.assertEqual(harness.store.pending_caregiver_alerts(), [])

    def test_missed_speech_respects_voice_setting(self) -> None:
        """Test the missed announcement is not spoken when voice is disabled."""
        harness = EngineHarness()
        key = make_key()
        harness.runtime.engine.on_initial_fire(
            key, make_payload(voice_enabled=False), now=DOSE_TIME
        )

        harness.runtime.engine.on_final_check(key, now=DOSE_TIME + timedelta(hours=1))

        self.assertEqual(harness.store.get_dose(key).status, DoseStatus.MISSED)
        self.assertEqual(harness.announcer.utterances, [])

    def test_missed_alert_uses_placeholder_without_payload(self) -> None:
        """Test a dose with no known medicine is still alerted under a placeholder name."""
        harness = EngineHarness()
        key = make_key()
        harness.runtime.acknowledgement.snooze(key, now=DOSE_TIME)
        with harness.store.dose_transaction(key) as transaction:
            transaction.instance.payload = None

        harness.runtime.engine.on_final_check(key, now=DOSE_TIME + timedelta(hours=1))

        alerts = harness.store.pending_caregiver_alerts()
        self.assertEqual(len(alerts), 1)
        self.assertEqual(alerts[0].medicine_name, "Medicine")


if __name__ == "__main__":
    unittest.main()
