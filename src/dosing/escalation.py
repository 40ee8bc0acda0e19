"""Dose escalation state machine.

Each timer firing for a dose reads and updates the dose instance, arms the
next timer in the chain and then triggers feedback:

    InitialFire  -> Pending, follow-up armed 30 minutes later
    FollowUp     -> Escalating(1), Escalate(2) at +15m and FinalCheck at +30m
    Escalate(n)  -> Escalating(n), Escalate(n+1) at +15m, Missed at n == MAX
    FinalCheck   -> Missed, caregiver alert and MISSED sync action

Handlers tolerate duplicate and late deliveries: a dose that is already
terminal only has its leftover timers cancelled.
"""

import logging
from datetime import UTC, datetime, timedelta

from src.database.medications.models import DoseStatus, SyncStatus
from src.dosing import messages
from src.dosing.feedback.base import VIBRATION_NORMAL, VIBRATION_URGENT, NotificationRequest
from src.dosing.feedback.dispatcher import FeedbackDispatcher
from src.dosing.models import (
    DOSE_TIMER_OWNERS,
    DoseKey,
    MedicinePayload,
    TimerEvent,
    TimerKind,
    TimerOwner,
)
from src.dosing.store import DoseStateStore, DoseTransaction
from src.dosing.timers.base import TimerFacility

logger = logging.getLogger(__name__)

MAX_ESCALATIONS = 4
FOLLOW_UP_DELAY = timedelta(minutes=30)
ESCALATION_INTERVAL = timedelta(minutes=15)
GRACE_PERIOD = timedelta(minutes=60)

# Fallback name when neither the timer nor the dose carries a payload
UNKNOWN_MEDICINE_NAME = "Medicine"


def minutes_overdue(step: int) -> int:
    """Minutes a dose is overdue when escalation step `step` fires."""
    follow_up = int(FOLLOW_UP_DELAY.total_seconds() // 60)
    interval = int(ESCALATION_INTERVAL.total_seconds() // 60)
    return follow_up + (step - 1) * interval


def cancel_dose_timers(transaction: DoseTransaction, timers: TimerFacility) -> None:
    """Cancel every escalation and snooze timer of a dose after commit."""
    timer_ids = [transaction.key.timer_id(owner) for owner in DOSE_TIMER_OWNERS]
    transaction.defer(timers.cancel_all, timer_ids)


class EscalationEngine:
    """Drives a dose instance from its first fire to a terminal status."""

    def __init__(
        self,
        store: DoseStateStore,
        timers: TimerFacility,
        feedback: FeedbackDispatcher,
    ) -> None:
        """Initialise the engine.

        :param store: Dose state store.
        :param timers: Timer facility for the escalation chain.
        :param feedback: Notification, speech and vibration front.
        """
        self._store = store
        self._timers = timers
        self._feedback = feedback

    def on_initial_fire(
        self,
        key: DoseKey,
        payload: MedicinePayload,
        now: datetime | None = None,
    ) -> None:
        """Handle a dose becoming due, either from the daily timer or a snooze.

        :param key: Dose key.
        :param payload: Medicine payload carried by the timer.
        :param now: Current time (defaults to now).
        """
        if now is None:
            now = datetime.now(UTC)

        try:
            with self._store.dose_transaction(key) as transaction:
                if self._is_finished(transaction, TimerKind.DAILY):
                    return

                previous_ref = transaction.notification_ref
                transaction.mark_fired(payload, now)
                self._arm(
                    transaction,
                    TimerOwner.FOLLOW_UP,
                    TimerKind.FOLLOW_UP,
                    now + FOLLOW_UP_DELAY,
                    payload,
                )

            logger.info(f"Dose due: key={key}, name={payload.name!r}")
            self._notify(key, messages.due_notification(payload, key, replaces=previous_ref))
            if payload.voice_enabled:
                self._feedback.speak(messages.due_speech(payload), utterance_id=f"due:{key}")
            self._feedback.vibrate(VIBRATION_URGENT if payload.is_critical else VIBRATION_NORMAL)

        except Exception:
            logger.exception(f"Initial fire failed: key={key}")

    def on_follow_up(
        self,
        key: DoseKey,
        payload: MedicinePayload | None = None,
        now: datetime | None = None,
    ) -> None:
        """Handle the first overdue check of a dose.

        :param key: Dose key.
        :param payload: Medicine payload carried by the timer.
        :param now: Current time (defaults to now).
        """
        if now is None:
            now = datetime.now(UTC)

        try:
            with self._store.dose_transaction(key) as transaction:
                if self._is_finished(transaction, TimerKind.FOLLOW_UP):
                    return
                if transaction.status != DoseStatus.PENDING:
                    logger.debug(f"Ignoring follow-up: key={key}, status={transaction.status}")
                    return

                payload = self._resolve_payload(key, payload, transaction)
                previous_ref = transaction.notification_ref
                transaction.transition(DoseStatus.ESCALATING, now, step=1)
                self._arm(
                    transaction,
                    TimerOwner.ESCALATE,
                    TimerKind.ESCALATE,
                    now + ESCALATION_INTERVAL,
                    payload,
                    step=2,
                )
                self._arm(
                    transaction,
                    TimerOwner.FINAL_CHECK,
                    TimerKind.FINAL_CHECK,
                    now + GRACE_PERIOD - FOLLOW_UP_DELAY,
                    payload,
                )

            logger.info(f"Dose overdue: key={key}, name={payload.name!r}")
            self._notify(key, messages.overdue_notification(payload, key, replaces=previous_ref))
            if payload.voice_enabled:
                self._feedback.speak(
                    messages.missed_speech(payload, urgent=False), utterance_id=f"overdue:{key}"
                )
            self._feedback.vibrate(VIBRATION_URGENT)

        except Exception:
            logger.exception(f"Follow-up failed: key={key}")

    def on_escalate(
        self,
        key: DoseKey,
        step: int,
        payload: MedicinePayload | None = None,
        now: datetime | None = None,
    ) -> None:
        """Handle an escalation step of an overdue dose.

        Only moves the dose forward: a step at or below the current one, or
        beyond MAX_ESCALATIONS, is a late or duplicate delivery and is ignored.

        :param key: Dose key.
        :param step: Escalation step being delivered.
        :param payload: Medicine payload carried by the timer.
        :param now: Current time (defaults to now).
        """
        if now is None:
            now = datetime.now(UTC)

        try:
            with self._store.dose_transaction(key) as transaction:
                if self._is_finished(transaction, TimerKind.ESCALATE):
                    return
                if (
                    transaction.status != DoseStatus.ESCALATING
                    or step <= transaction.escalation_step
                    or step > MAX_ESCALATIONS
                ):
                    logger.debug(
                        f"Ignoring escalation: key={key}, step={step}, "
                        f"status={transaction.status}, current_step={transaction.escalation_step}"
                    )
                    return

                payload = self._resolve_payload(key, payload, transaction)
                previous_ref = transaction.notification_ref
                if step >= MAX_ESCALATIONS:
                    self._mark_missed(transaction, payload, now, step=step)
                    missed = True
                else:
                    transaction.transition(DoseStatus.ESCALATING, now, step=step)
                    self._arm(
                        transaction,
                        TimerOwner.ESCALATE,
                        TimerKind.ESCALATE,
                        now + ESCALATION_INTERVAL,
                        payload,
                        step=step + 1,
                    )
                    missed = False

            if missed:
                self._announce_missed(key, payload, previous_ref)
                return

            logger.info(f"Dose escalated: key={key}, step={step}")
            self._notify(
                key,
                messages.urgent_notification(
                    payload, key, minutes_overdue(step), replaces=previous_ref
                ),
            )
            if payload.voice_enabled:
                self._feedback.speak(
                    messages.missed_speech(payload, urgent=step >= 2),  # noqa: PLR2004
                    utterance_id=f"escalate:{step}:{key}",
                )
            self._feedback.vibrate(VIBRATION_URGENT)

        except Exception:
            logger.exception(f"Escalation failed: key={key}, step={step}")

    def on_final_check(
        self,
        key: DoseKey,
        payload: MedicinePayload | None = None,
        now: datetime | None = None,
    ) -> None:
        """Mark an unanswered dose as missed and alert the caregiver.

        :param key: Dose key.
        :param payload: Medicine payload carried by the timer.
        :param now: Current time (defaults to now).
        """
        if now is None:
            now = datetime.now(UTC)

        try:
            with self._store.dose_transaction(key) as transaction:
                if self._is_finished(transaction, TimerKind.FINAL_CHECK):
                    return
                if not transaction.exists:
                    logger.warning(f"Ignoring final check for unknown dose: key={key}")
                    return

                payload = self._resolve_payload(key, payload, transaction)
                previous_ref = transaction.notification_ref
                self._mark_missed(transaction, payload, now)

            self._announce_missed(key, payload, previous_ref)

        except Exception:
            logger.exception(f"Final check failed: key={key}")

    def handle(self, event: TimerEvent, now: datetime | None = None) -> None:
        """Route an escalation chain event to its handler.

        :param event: Fired timer event.
        :param now: Current time (defaults to now).
        """
        key = event.dose_key
        match event.kind:
            case TimerKind.FOLLOW_UP:
                self.on_follow_up(key, event.payload, now)
            case TimerKind.ESCALATE:
                self.on_escalate(key, event.step, event.payload, now)
            case TimerKind.FINAL_CHECK:
                self.on_final_check(key, event.payload, now)
            case _:
                logger.warning(f"Escalation engine cannot handle timer kind: {event.kind}")

    def _is_finished(self, transaction: DoseTransaction, kind: TimerKind) -> bool:
        if not transaction.is_terminal:
            return False
        logger.debug(
            f"Duplicate or late {kind} delivery for finished dose: "
            f"key={transaction.key}, status={transaction.status}"
        )
        cancel_dose_timers(transaction, self._timers)
        return True

    def _mark_missed(
        self,
        transaction: DoseTransaction,
        payload: MedicinePayload,
        now: datetime,
        step: int | None = None,
    ) -> None:
        transaction.transition(DoseStatus.MISSED, now, step=step)
        transaction.set_notification_ref(None)
        transaction.append_caregiver_alert(payload, now)
        transaction.append_sync_action(SyncStatus.MISSED, now)
        cancel_dose_timers(transaction, self._timers)

    def _announce_missed(
        self, key: DoseKey, payload: MedicinePayload, previous_ref: str | None
    ) -> None:
        logger.info(f"Dose missed, caregiver alert queued: key={key}, name={payload.name!r}")
        self._feedback.notify(messages.missed_notification(payload, key, replaces=previous_ref))
        if payload.voice_enabled:
            self._feedback.speak(
                messages.missed_speech(payload, urgent=True), utterance_id=f"missed:{key}"
            )

    def _arm(  # noqa: PLR0913
        self,
        transaction: DoseTransaction,
        owner: TimerOwner,
        kind: TimerKind,
        fire_at: datetime,
        payload: MedicinePayload,
        step: int = 0,
    ) -> None:
        event = TimerEvent.for_dose(kind, transaction.key, step=step, payload=payload)
        timer_id = transaction.key.timer_id(owner)
        transaction.defer(self._timers.arm_preferring_exact, timer_id, fire_at, event)

    def _notify(self, key: DoseKey, request: NotificationRequest) -> None:
        ref = self._feedback.notify(request)
        if ref is None:
            return

        try:
            with self._store.dose_transaction(key) as transaction:
                if not transaction.is_terminal:
                    transaction.set_notification_ref(ref)
                    return
        except Exception:
            logger.exception(f"Failed to store notification reference: key={key}, ref={ref}")
            return

        # Answered while the notification was being shown
        self._feedback.dismiss(ref, key)

    def _resolve_payload(
        self,
        key: DoseKey,
        payload: MedicinePayload | None,
        transaction: DoseTransaction,
    ) -> MedicinePayload:
        resolved = payload or transaction.payload()
        if resolved is not None:
            return resolved
        logger.warning(f"No medicine payload for dose, using placeholder: key={key}")
        return MedicinePayload(
            reminder_id=key.reminder_id,
            name=UNKNOWN_MEDICINE_NAME,
            time_of_day=key.time_of_day,
        )
