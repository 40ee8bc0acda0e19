"""Durable dose state store.

Wraps the medication tables behind a small API used by the scheduler, the
escalation engine and the acknowledgment handler. Every read-modify-write of
one dose instance happens inside dose_transaction(), which holds a per-key
lock and a row lock for the duration of one database transaction.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.database.connection import session_scope
from src.database.medications import (
    DoseInstance,
    DoseStatus,
    PendingCaregiverAlert,
    PendingSyncAction,
    ReminderDefinition,
    SyncStatus,
    append_caregiver_alert,
    append_sync_action,
    clear_pending_caregiver_alerts,
    clear_pending_sync_actions,
    create_dose_instance,
    delete_reminder_definition,
    get_dose_instance,
    get_reminder_definition,
    list_pending_caregiver_alerts,
    list_pending_sync_actions,
    list_reminder_definitions,
    mark_caregiver_alert_mirrored,
    upsert_reminder_definition,
)
from src.database.medications.models import CaregiverAlertType
from src.dosing.models import (
    CaregiverAlertRecord,
    DoseKey,
    DoseSnapshot,
    MedicinePayload,
    SyncActionRecord,
)

logger = logging.getLogger(__name__)

# Number of lock stripes shared by all dose keys
_LOCK_STRIPES = 64


def _parse_status(instance: DoseInstance) -> DoseStatus:
    try:
        return DoseStatus(instance.status)
    except ValueError:
        logger.warning(
            f"Corrupt dose status treated as pending: reminder_id={instance.reminder_id}, "
            f"time={instance.time_of_day}, date={instance.dose_date}, status={instance.status!r}"
        )
        return DoseStatus.PENDING


def _effective_status(status: DoseStatus, snoozed_until: datetime | None) -> DoseStatus:
    if snoozed_until is not None and not status.is_terminal:
        return DoseStatus.SNOOZED
    return status


def _definition_to_payload(definition: ReminderDefinition) -> MedicinePayload | None:
    try:
        return MedicinePayload(
            reminder_id=definition.reminder_id,
            name=definition.name,
            dosage=definition.dosage_text or "",
            time_of_day=definition.time_of_day,
            is_critical=bool(definition.is_critical),
            instructions=definition.instructions,
            voice_enabled=bool(definition.voice_enabled),
        )
    except ValidationError:
        logger.exception(
            f"Skipping corrupt reminder definition: reminder_id={definition.reminder_id!r}, "
            f"time={definition.time_of_day!r}"
        )
        return None


def _sync_action_to_record(action: PendingSyncAction) -> SyncActionRecord | None:
    try:
        return SyncActionRecord(
            id=action.id,
            reminder_id=action.reminder_id,
            scheduled_time=action.scheduled_time,
            status=SyncStatus(action.status),
            timestamp=action.action_at,
            date=action.dose_date,
        )
    except (ValueError, ValidationError):
        logger.exception(f"Skipping corrupt sync action: id={action.id}")
        return None


def _alert_to_record(alert: PendingCaregiverAlert) -> CaregiverAlertRecord | None:
    try:
        return CaregiverAlertRecord(
            id=alert.id,
            alert_type=CaregiverAlertType(alert.alert_type),
            reminder_id=alert.reminder_id,
            medicine_name=alert.medicine_name,
            dosage=alert.dosage_text or "",
            dose_date=alert.dose_date,
            time_of_day=alert.time_of_day,
            is_critical=bool(alert.is_critical),
            created_at=alert.created_at,
            mirrored_at=alert.mirrored_at,
        )
    except (ValueError, ValidationError):
        logger.exception(f"Skipping corrupt caregiver alert: id={alert.id}")
        return None


class DoseTransaction:
    """Locked view of one dose instance inside a database transaction."""

    def __init__(self, session: Session, key: DoseKey, instance: DoseInstance | None) -> None:
        """Initialise the transaction view.

        :param session: Open database session.
        :param key: Dose key the transaction is for.
        :param instance: Locked row, or None if not yet materialised.
        """
        self.session = session
        self.key = key
        self.instance = instance
        self._deferred: list[tuple[Callable[..., Any], tuple[Any, ...]]] = []

    def defer(self, func: Callable[..., Any], *args: Any) -> None:
        """Run a callback once the transaction has committed.

        Deferred callbacks run in order while the dose key is still locked.
        They are dropped if the transaction rolls back.

        :param func: Callback to run.
        :param args: Positional arguments for the callback.
        """
        self._deferred.append((func, args))

    def run_deferred(self) -> None:
        """Run deferred callbacks, logging and skipping any that fail."""
        for func, args in self._deferred:
            try:
                func(*args)
            except Exception:
                logger.exception(f"Deferred dose action failed: key={self.key}, action={func!r}")
        self._deferred.clear()

    @property
    def exists(self) -> bool:
        """Check whether the dose instance has been materialised."""
        return self.instance is not None

    @property
    def status(self) -> DoseStatus | None:
        """Stored status, or None if the instance does not exist."""
        if self.instance is None:
            return None
        return _parse_status(self.instance)

    @property
    def effective_status(self) -> DoseStatus | None:
        """Status as reported to callers, with snoozes surfaced as Snoozed."""
        status = self.status
        if status is None:
            return None
        return _effective_status(status, self.instance.snoozed_until)  # type: ignore[union-attr]

    @property
    def is_terminal(self) -> bool:
        """Check whether the instance is in a terminal status."""
        status = self.status
        return status is not None and status.is_terminal

    @property
    def escalation_step(self) -> int:
        """Current escalation step (0 when not escalating)."""
        if self.instance is None:
            return 0
        return self.instance.escalation_step or 0

    @property
    def notification_ref(self) -> str | None:
        """Reference of the visible notification for the dose, if any."""
        return self.instance.notification_ref if self.instance is not None else None

    def payload(self) -> MedicinePayload | None:
        """Medicine payload snapshot stored on the instance.

        :returns: The snapshot, or None if absent or unreadable.
        """
        if self.instance is None or not self.instance.payload:
            return None
        try:
            return MedicinePayload.model_validate(self.instance.payload)
        except ValidationError:
            logger.exception(f"Ignoring corrupt dose payload: key={self.key}")
            return None

    def mark_fired(self, payload: MedicinePayload, now: datetime) -> DoseInstance:
        """Record an initial fire for the dose.

        Materialises a Pending instance if needed. An existing instance keeps
        its status and escalation step; any snooze is cleared.

        :param payload: Medicine payload to snapshot.
        :param now: Current time.
        :returns: The instance.
        """
        snapshot = payload.model_dump(mode="json")
        if self.instance is None:
            self.instance = create_dose_instance(
                self.session,
                reminder_id=self.key.reminder_id,
                time_of_day=self.key.time_of_day,
                dose_date=self.key.dose_date,
                status=DoseStatus.PENDING,
                payload=snapshot,
                now=now,
            )
            return self.instance

        if self.instance.first_fired_at is None:
            self.instance.first_fired_at = now
        self.instance.snoozed_until = None
        self.instance.payload = snapshot
        self.instance.last_transition_at = now
        self.session.flush()
        return self.instance

    def transition(
        self, status: DoseStatus, now: datetime, step: int | None = None
    ) -> DoseInstance:
        """Move the dose to a new status.

        Materialises the instance when it does not exist yet.

        :param status: New status.
        :param now: Current time.
        :param step: New escalation step, if it changes.
        :returns: The instance.
        :raises ValueError: If the instance is already terminal.
        """
        if self.instance is None:
            self.instance = create_dose_instance(
                self.session,
                reminder_id=self.key.reminder_id,
                time_of_day=self.key.time_of_day,
                dose_date=self.key.dose_date,
                status=status,
                now=now,
            )
        elif self.is_terminal:
            raise ValueError(f"Dose {self.key} is already {self.status}")
        else:
            self.instance.status = status.value
            self.instance.last_transition_at = now
            if status.is_terminal:
                self.instance.resolved_at = now
                self.instance.snoozed_until = None

        if step is not None:
            self.instance.escalation_step = step
        self.session.flush()
        logger.info(
            f"Dose transition: key={self.key}, status={status}, "
            f"step={self.instance.escalation_step}"
        )
        return self.instance

    def record_snooze(
        self, until: datetime, payload: MedicinePayload | None, now: datetime
    ) -> None:
        """Record a snooze without changing the stored status.

        :param until: When the snoozed dose re-fires.
        :param payload: Payload to snapshot if the instance is created here.
        :param now: Current time.
        """
        if self.instance is None:
            self.instance = create_dose_instance(
                self.session,
                reminder_id=self.key.reminder_id,
                time_of_day=self.key.time_of_day,
                dose_date=self.key.dose_date,
                status=DoseStatus.PENDING,
                payload=payload.model_dump(mode="json") if payload is not None else None,
                now=now,
            )
        self.instance.snoozed_until = until
        self.session.flush()

    def set_notification_ref(self, ref: str | None) -> None:
        """Remember the visible notification for the dose."""
        if self.instance is not None:
            self.instance.notification_ref = ref
            self.session.flush()

    def append_sync_action(self, status: SyncStatus, now: datetime) -> None:
        """Queue an outcome for the host application to sync."""
        append_sync_action(
            self.session,
            reminder_id=self.key.reminder_id,
            scheduled_time=self.key.time_of_day,
            status=status,
            dose_date=self.key.dose_date,
            now=now,
        )

    def append_caregiver_alert(self, payload: MedicinePayload, now: datetime) -> None:
        """Queue a missed-dose alert for the caregiver."""
        append_caregiver_alert(
            self.session,
            reminder_id=self.key.reminder_id,
            medicine_name=payload.name,
            dosage_text=payload.dosage,
            dose_date=self.key.dose_date,
            time_of_day=self.key.time_of_day,
            is_critical=payload.is_critical,
            now=now,
        )


class DoseStateStore:
    """Durable store for reminder definitions, dose state and outbound queues."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        """Initialise the store.

        :param session_factory: Factory for database sessions.
        """
        self._session_factory = session_factory
        self._locks = tuple(threading.RLock() for _ in range(_LOCK_STRIPES))

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Session factory the store writes through."""
        return self._session_factory

    def _lock_for(self, key: DoseKey) -> threading.RLock:
        return self._locks[hash(key) % _LOCK_STRIPES]

    @contextmanager
    def dose_transaction(self, key: DoseKey) -> Iterator[DoseTransaction]:
        """Open an atomic read-modify-write scope for one dose instance.

        Commits when the block exits normally, rolls back on exception. Actions
        deferred on the transaction run after the commit, under the same lock.

        :param key: Dose key.
        :yields: The locked transaction view.
        """
        with self._lock_for(key):
            with session_scope(self._session_factory) as session:
                instance = get_dose_instance(
                    session,
                    key.reminder_id,
                    key.time_of_day,
                    key.dose_date,
                    for_update=True,
                )
                transaction = DoseTransaction(session, key, instance)
                yield transaction
            transaction.run_deferred()

    def get_dose(self, key: DoseKey) -> DoseSnapshot | None:
        """Get a read-only snapshot of a dose instance.

        :param key: Dose key.
        :returns: The snapshot, or None if the instance does not exist.
        """
        with session_scope(self._session_factory) as session:
            instance = get_dose_instance(session, key.reminder_id, key.time_of_day, key.dose_date)
            if instance is None:
                return None
            status = _parse_status(instance)
            return DoseSnapshot(
                reminder_id=instance.reminder_id,
                time_of_day=instance.time_of_day,
                dose_date=instance.dose_date,
                status=status,
                effective_status=_effective_status(status, instance.snoozed_until),
                escalation_step=instance.escalation_step or 0,
                first_fired_at=instance.first_fired_at,
                last_transition_at=instance.last_transition_at,
                snoozed_until=instance.snoozed_until,
                resolved_at=instance.resolved_at,
                notification_ref=instance.notification_ref,
            )

    def save_definition(
        self, payload: MedicinePayload, now: datetime | None = None
    ) -> MedicinePayload:
        """Create or update a reminder definition.

        :param payload: Definition to store.
        :param now: Current time (defaults to now).
        :returns: The stored definition.
        """
        with session_scope(self._session_factory) as session:
            upsert_reminder_definition(
                session,
                reminder_id=payload.reminder_id,
                time_of_day=payload.time_of_day,
                name=payload.name,
                dosage_text=payload.dosage,
                is_critical=payload.is_critical,
                instructions=payload.instructions,
                voice_enabled=payload.voice_enabled,
                now=now or datetime.now(UTC),
            )
        return payload

    def get_definition(self, reminder_id: str, time_of_day: str) -> MedicinePayload | None:
        """Get a reminder definition.

        :param reminder_id: Medicine identifier.
        :param time_of_day: Time of day as HH:MM.
        :returns: The definition, or None if absent or unreadable.
        """
        with session_scope(self._session_factory) as session:
            definition = get_reminder_definition(session, reminder_id, time_of_day)
            return _definition_to_payload(definition) if definition is not None else None

    def list_definitions(self, reminder_id: str | None = None) -> list[MedicinePayload]:
        """List reminder definitions, skipping unreadable rows.

        :param reminder_id: Restrict to this medicine.
        :returns: Stored definitions.
        """
        with session_scope(self._session_factory) as session:
            definitions = list_reminder_definitions(session, reminder_id)
            payloads = [_definition_to_payload(definition) for definition in definitions]
        return [payload for payload in payloads if payload is not None]

    def delete_definition(self, reminder_id: str, time_of_day: str) -> bool:
        """Delete a reminder definition.

        :returns: True if a definition was deleted.
        """
        with session_scope(self._session_factory) as session:
            return delete_reminder_definition(session, reminder_id, time_of_day)

    def pending_sync_actions(self) -> list[SyncActionRecord]:
        """List queued sync actions. Returns an empty list if the queue is unreadable."""
        try:
            with session_scope(self._session_factory) as session:
                records = [_sync_action_to_record(a) for a in list_pending_sync_actions(session)]
        except SQLAlchemyError:
            logger.exception("Failed to read pending sync actions")
            return []
        return [record for record in records if record is not None]

    def clear_sync_actions(self, ids: list[int] | None = None) -> int:
        """Remove queued sync actions.

        :param ids: Only remove these actions. Removes all when None.
        :returns: Number of actions removed.
        """
        with session_scope(self._session_factory) as session:
            return clear_pending_sync_actions(session, ids)

    def pending_caregiver_alerts(self, unmirrored_only: bool = False) -> list[CaregiverAlertRecord]:
        """List queued caregiver alerts. Returns an empty list if the queue is unreadable.

        :param unmirrored_only: Only return alerts not yet mirrored outward.
        """
        try:
            with session_scope(self._session_factory) as session:
                alerts = list_pending_caregiver_alerts(session, unmirrored_only=unmirrored_only)
                records = [_alert_to_record(alert) for alert in alerts]
        except SQLAlchemyError:
            logger.exception("Failed to read pending caregiver alerts")
            return []
        return [record for record in records if record is not None]

    def clear_caregiver_alerts(self, ids: list[int] | None = None) -> int:
        """Remove queued caregiver alerts.

        :param ids: Only remove these alerts. Removes all when None.
        :returns: Number of alerts removed.
        """
        with session_scope(self._session_factory) as session:
            return clear_pending_caregiver_alerts(session, ids)

    def mark_caregiver_alert_mirrored(self, alert_id: int, now: datetime | None = None) -> bool:
        """Record that a caregiver alert was mirrored outward."""
        with session_scope(self._session_factory) as session:
            return mark_caregiver_alert_mirrored(session, alert_id, now)
