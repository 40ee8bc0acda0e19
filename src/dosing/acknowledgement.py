"""User responses to a dose: Taken, Snooze and Skip."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from src.database.medications.models import DoseStatus, SyncStatus
from src.dosing.escalation import UNKNOWN_MEDICINE_NAME, cancel_dose_timers
from src.dosing.feedback.dispatcher import FeedbackDispatcher
from src.dosing.models import (
    DoseKey,
    MedicinePayload,
    ResponseOutcome,
    TimerEvent,
    TimerKind,
    TimerOwner,
)
from src.dosing.store import DoseStateStore, DoseTransaction
from src.dosing.timers.base import TimerFacility

logger = logging.getLogger(__name__)

DEFAULT_SNOOZE_MINUTES = 15


class AcknowledgmentHandler:
    """Applies Taken, Snooze and Skip responses to dose instances."""

    def __init__(  # noqa: PLR0913
        self,
        store: DoseStateStore,
        timers: TimerFacility,
        feedback: FeedbackDispatcher,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        skip_cancels_escalation: bool = False,
    ) -> None:
        """Initialise the handler.

        :param store: Dose state store.
        :param timers: Timer facility holding the dose's timers.
        :param feedback: Notification front used to dismiss notifications.
        :param snooze_minutes: Minutes until a snoozed dose re-fires.
        :param skip_cancels_escalation: Cancel pending timers when a dose is skipped.
        """
        self._store = store
        self._timers = timers
        self._feedback = feedback
        self._snooze_delay = timedelta(minutes=snooze_minutes)
        self._skip_cancels_escalation = skip_cancels_escalation

    def acknowledge(self, key: DoseKey, now: datetime | None = None) -> ResponseOutcome:
        """Mark a dose as taken and stop its escalation chain.

        Works before the dose has fired: the dose is recorded as taken and the
        later initial fire becomes a no-op.

        :param key: Dose key.
        :param now: Current time (defaults to now).
        :returns: Whether the dose changed and its resulting status.
        """
        if now is None:
            now = datetime.now(UTC)

        with self._store.dose_transaction(key) as transaction:
            if transaction.is_terminal:
                logger.info(
                    f"Ignoring taken for finished dose: key={key}, status={transaction.status}"
                )
                return self._outcome(key, transaction, changed=False)

            ref = transaction.notification_ref
            transaction.transition(DoseStatus.ACKNOWLEDGED, now)
            transaction.set_notification_ref(None)
            transaction.append_sync_action(SyncStatus.TAKEN, now)
            cancel_dose_timers(transaction, self._timers)
            outcome = self._outcome(key, transaction, changed=True)

        logger.info(f"Dose taken: key={key}")
        self._feedback.dismiss(ref, key)
        return outcome

    def snooze(
        self,
        key: DoseKey,
        payload: MedicinePayload | None = None,
        now: datetime | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> ResponseOutcome:
        """Delay a dose so it fires again after the snooze period.

        The stored status is left as it is and the running escalation chain is
        not cancelled. The dose reports the effective status Snoozed until the
        snooze timer fires.

        :param key: Dose key.
        :param payload: Payload to re-fire with. Defaults to the dose snapshot,
            then the stored definition.
        :param now: Current time (defaults to now).
        :param overrides: Payload fields to replace on the resolved payload, leaving
            the rest of the stored medicine details in place.
        :returns: Whether the dose changed and when it re-fires.
        """
        if now is None:
            now = datetime.now(UTC)

        definition = None
        if payload is None:
            definition = self._store.get_definition(key.reminder_id, key.time_of_day)

        with self._store.dose_transaction(key) as transaction:
            if transaction.is_terminal:
                logger.info(
                    f"Ignoring snooze for finished dose: key={key}, status={transaction.status}"
                )
                return self._outcome(key, transaction, changed=False)

            payload = payload or transaction.payload() or definition or self._placeholder(key)
            if overrides:
                payload = payload.model_copy(update=overrides)
            until = now + self._snooze_delay
            ref = transaction.notification_ref
            transaction.record_snooze(until, payload, now)
            transaction.set_notification_ref(None)
            transaction.append_sync_action(SyncStatus.SNOOZED, now)
            event = TimerEvent.for_dose(TimerKind.SNOOZE, key, payload=payload)
            transaction.defer(
                self._timers.arm_preferring_exact,
                key.timer_id(TimerOwner.SNOOZE),
                until,
                event,
            )
            outcome = self._outcome(key, transaction, changed=True)

        logger.info(f"Dose snoozed: key={key}, until={until.isoformat()}")
        self._feedback.dismiss(ref, key)
        return outcome

    def skip(self, key: DoseKey, now: datetime | None = None) -> ResponseOutcome:
        """Mark a dose as deliberately skipped.

        Pending timers are only cancelled when skip_cancels_escalation is set;
        otherwise they fire later and stop at the finished-dose check.

        :param key: Dose key.
        :param now: Current time (defaults to now).
        :returns: Whether the dose changed and its resulting status.
        """
        if now is None:
            now = datetime.now(UTC)

        with self._store.dose_transaction(key) as transaction:
            if transaction.is_terminal:
                logger.info(
                    f"Ignoring skip for finished dose: key={key}, status={transaction.status}"
                )
                return self._outcome(key, transaction, changed=False)

            ref = transaction.notification_ref
            transaction.transition(DoseStatus.SKIPPED, now)
            transaction.set_notification_ref(None)
            transaction.append_sync_action(SyncStatus.SKIPPED, now)
            if self._skip_cancels_escalation:
                cancel_dose_timers(transaction, self._timers)
            outcome = self._outcome(key, transaction, changed=True)

        logger.info(f"Dose skipped: key={key}")
        self._feedback.dismiss(ref, key)
        return outcome

    @staticmethod
    def _outcome(key: DoseKey, transaction: DoseTransaction, changed: bool) -> ResponseOutcome:
        return ResponseOutcome(
            reminder_id=key.reminder_id,
            time_of_day=key.time_of_day,
            dose_date=key.dose_date,
            changed=changed,
            status=transaction.effective_status,
            snoozed_until=transaction.instance.snoozed_until if transaction.instance else None,
        )

    @staticmethod
    def _placeholder(key: DoseKey) -> MedicinePayload:
        logger.warning(f"No medicine payload for snoozed dose, using placeholder: key={key}")
        return MedicinePayload(
            reminder_id=key.reminder_id,
            name=UNKNOWN_MEDICINE_NAME,
            time_of_day=key.time_of_day,
        )
