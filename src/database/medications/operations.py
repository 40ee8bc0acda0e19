"""Database operations for medication reminders and dose state."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy.orm import Session

from src.database.medications.models import (
    ArmedTimer,
    CaregiverAlertType,
    DoseInstance,
    DoseStatus,
    PendingCaregiverAlert,
    PendingSyncAction,
    ReminderDefinition,
    SyncStatus,
)

logger = logging.getLogger(__name__)


def upsert_reminder_definition(  # noqa: PLR0913
    session: Session,
    reminder_id: str,
    time_of_day: str,
    name: str,
    dosage_text: str,
    is_critical: bool = False,
    instructions: str | None = None,
    voice_enabled: bool = True,
    now: datetime | None = None,
) -> ReminderDefinition:
    """Create or update a reminder definition.

    :param session: Database session.
    :param reminder_id: Stable medicine identifier.
    :param time_of_day: Local time of day as HH:MM.
    :param name: Medicine name.
    :param dosage_text: Free-text dosage.
    :param is_critical: Whether the medicine is critical.
    :param instructions: Optional free-text instructions.
    :param voice_enabled: Whether reminders are spoken aloud.
    :param now: Current time (defaults to now).
    :returns: The stored definition.
    """
    if now is None:
        now = datetime.now(UTC)

    definition = get_reminder_definition(session, reminder_id, time_of_day)
    created = definition is None
    if definition is None:
        definition = ReminderDefinition(
            reminder_id=reminder_id,
            time_of_day=time_of_day,
            created_at=now,
        )
        session.add(definition)

    definition.name = name
    definition.dosage_text = dosage_text
    definition.is_critical = is_critical
    definition.instructions = instructions
    definition.voice_enabled = voice_enabled
    definition.updated_at = now
    session.flush()
    logger.info(
        f"{'Created' if created else 'Updated'} reminder definition: "
        f"reminder_id={reminder_id}, time={time_of_day}"
    )
    return definition


def get_reminder_definition(
    session: Session,
    reminder_id: str,
    time_of_day: str,
) -> ReminderDefinition | None:
    """Get a reminder definition by its key.

    :param session: Database session.
    :param reminder_id: Medicine identifier.
    :param time_of_day: Time of day as HH:MM.
    :returns: The definition or None if not found.
    """
    return session.get(ReminderDefinition, (reminder_id, time_of_day))


def list_reminder_definitions(
    session: Session,
    reminder_id: str | None = None,
) -> list[ReminderDefinition]:
    """List reminder definitions, optionally for a single medicine.

    :param session: Database session.
    :param reminder_id: Restrict to this medicine.
    :returns: Definitions ordered by medicine and time.
    """
    query = session.query(ReminderDefinition)
    if reminder_id is not None:
        query = query.filter(ReminderDefinition.reminder_id == reminder_id)
    return query.order_by(ReminderDefinition.reminder_id, ReminderDefinition.time_of_day).all()


def delete_reminder_definition(
    session: Session,
    reminder_id: str,
    time_of_day: str,
) -> bool:
    """Delete a reminder definition.

    :param session: Database session.
    :param reminder_id: Medicine identifier.
    :param time_of_day: Time of day as HH:MM.
    :returns: True if a row was deleted.
    """
    definition = get_reminder_definition(session, reminder_id, time_of_day)
    if definition is None:
        return False

    session.delete(definition)
    session.flush()
    logger.info(f"Deleted reminder definition: reminder_id={reminder_id}, time={time_of_day}")
    return True


def get_dose_instance(
    session: Session,
    reminder_id: str,
    time_of_day: str,
    dose_date: date,
    for_update: bool = False,
) -> DoseInstance | None:
    """Get a dose instance by its correlation key.

    :param session: Database session.
    :param reminder_id: Medicine identifier.
    :param time_of_day: Time of day as HH:MM.
    :param dose_date: Calendar date of the dose.
    :param for_update: Lock the row for the rest of the transaction.
    :returns: The dose instance or None if it has not been materialised.
    """
    query = session.query(DoseInstance).filter(
        DoseInstance.reminder_id == reminder_id,
        DoseInstance.time_of_day == time_of_day,
        DoseInstance.dose_date == dose_date,
    )
    if for_update:
        query = query.with_for_update()
    return query.first()


def create_dose_instance(  # noqa: PLR0913
    session: Session,
    reminder_id: str,
    time_of_day: str,
    dose_date: date,
    status: DoseStatus,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> DoseInstance:
    """Materialise a dose instance.

    :param session: Database session.
    :param reminder_id: Medicine identifier.
    :param time_of_day: Time of day as HH:MM.
    :param dose_date: Calendar date of the dose.
    :param status: Initial status.
    :param payload: Snapshot of the medicine payload.
    :param now: Current time (defaults to now).
    :returns: The created instance.
    """
    if now is None:
        now = datetime.now(UTC)

    instance = DoseInstance(
        reminder_id=reminder_id,
        time_of_day=time_of_day,
        dose_date=dose_date,
        status=status.value,
        escalation_step=0,
        last_transition_at=now,
        payload=payload,
    )
    if status == DoseStatus.PENDING:
        instance.first_fired_at = now
    if status.is_terminal:
        instance.resolved_at = now
    session.add(instance)
    session.flush()
    logger.info(
        f"Created dose instance: reminder_id={reminder_id}, time={time_of_day}, "
        f"date={dose_date}, status={status}"
    )
    return instance


def append_sync_action(  # noqa: PLR0913
    session: Session,
    reminder_id: str,
    scheduled_time: str,
    status: SyncStatus,
    dose_date: date,
    now: datetime | None = None,
) -> PendingSyncAction:
    """Append an outcome to the pending sync action queue.

    :param session: Database session.
    :param reminder_id: Medicine identifier.
    :param scheduled_time: Time of day as HH:MM.
    :param status: Outcome being recorded.
    :param dose_date: Calendar date of the dose.
    :param now: Current time (defaults to now).
    :returns: The queued action.
    """
    if now is None:
        now = datetime.now(UTC)

    action = PendingSyncAction(
        reminder_id=reminder_id,
        scheduled_time=scheduled_time,
        status=status.value,
        action_at=now,
        dose_date=dose_date,
    )
    session.add(action)
    session.flush()
    logger.debug(f"Queued sync action: reminder_id={reminder_id}, status={status}")
    return action


def list_pending_sync_actions(session: Session) -> list[PendingSyncAction]:
    """List queued sync actions in insertion order.

    :param session: Database session.
    :returns: Pending sync actions.
    """
    return session.query(PendingSyncAction).order_by(PendingSyncAction.id).all()


def clear_pending_sync_actions(session: Session, ids: list[int] | None = None) -> int:
    """Remove queued sync actions.

    :param session: Database session.
    :param ids: Only remove these actions. Removes all when None.
    :returns: Number of actions removed.
    """
    query = session.query(PendingSyncAction)
    if ids is not None:
        query = query.filter(PendingSyncAction.id.in_(ids))
    count = query.delete(synchronize_session=False)
    logger.info(f"Cleared pending sync actions: count={count}")
    return count


def append_caregiver_alert(  # noqa: PLR0913
    session: Session,
    reminder_id: str,
    medicine_name: str,
    dosage_text: str,
    dose_date: date,
    time_of_day: str,
    is_critical: bool,
    now: datetime | None = None,
) -> PendingCaregiverAlert:
    """Append a missed-dose alert to the caregiver alert queue.

    :param session: Database session.
    :param reminder_id: Medicine identifier.
    :param medicine_name: Medicine name.
    :param dosage_text: Free-text dosage.
    :param dose_date: Calendar date of the missed dose.
    :param time_of_day: Time of day as HH:MM.
    :param is_critical: Whether the medicine is critical.
    :param now: Current time (defaults to now).
    :returns: The queued alert.
    """
    if now is None:
        now = datetime.now(UTC)

    alert = PendingCaregiverAlert(
        alert_type=CaregiverAlertType.MEDICINE_MISSED.value,
        reminder_id=reminder_id,
        medicine_name=medicine_name,
        dosage_text=dosage_text,
        dose_date=dose_date,
        time_of_day=time_of_day,
        is_critical=is_critical,
        created_at=now,
    )
    session.add(alert)
    session.flush()
    logger.info(
        f"Queued caregiver alert: id={alert.id}, reminder_id={reminder_id}, "
        f"date={dose_date}, time={time_of_day}"
    )
    return alert


def list_pending_caregiver_alerts(
    session: Session,
    unmirrored_only: bool = False,
) -> list[PendingCaregiverAlert]:
    """List queued caregiver alerts in insertion order.

    :param session: Database session.
    :param unmirrored_only: Only return alerts not yet mirrored outward.
    :returns: Pending caregiver alerts.
    """
    query = session.query(PendingCaregiverAlert)
    if unmirrored_only:
        query = query.filter(PendingCaregiverAlert.mirrored_at.is_(None))
    return query.order_by(PendingCaregiverAlert.id).all()


def mark_caregiver_alert_mirrored(
    session: Session,
    alert_id: int,
    now: datetime | None = None,
) -> bool:
    """Record that an alert has been mirrored outward.

    :param session: Database session.
    :param alert_id: Alert ID.
    :param now: Current time (defaults to now).
    :returns: True if the alert exists.
    """
    if now is None:
        now = datetime.now(UTC)

    alert = session.get(PendingCaregiverAlert, alert_id)
    if alert is None:
        return False

    alert.mirrored_at = now
    session.flush()
    logger.debug(f"Marked caregiver alert mirrored: id={alert_id}")
    return True


def clear_pending_caregiver_alerts(session: Session, ids: list[int] | None = None) -> int:
    """Remove queued caregiver alerts.

    :param session: Database session.
    :param ids: Only remove these alerts. Removes all when None.
    :returns: Number of alerts removed.
    """
    query = session.query(PendingCaregiverAlert)
    if ids is not None:
        query = query.filter(PendingCaregiverAlert.id.in_(ids))
    count = query.delete(synchronize_session=False)
    logger.info(f"Cleared pending caregiver alerts: count={count}")
    return count


def upsert_armed_timer(  # noqa: PLR0913
    session: Session,
    owner: str,
    correlation_key: str,
    task_id: str,
    fire_at: datetime,
    event: dict[str, Any],
    exact: bool,
    now: datetime | None = None,
) -> tuple[ArmedTimer, str | None]:
    """Record the task currently armed for a timer id.

    :param session: Database session.
    :param owner: Timer owner.
    :param correlation_key: Timer correlation key.
    :param task_id: Celery task id of the new arming.
    :param fire_at: When the timer fires.
    :param event: Serialised timer event.
    :param exact: Whether the timer was armed exact.
    :param now: Current time (defaults to now).
    :returns: The stored row and the task id it replaced, if any.
    """
    if now is None:
        now = datetime.now(UTC)

    timer = session.get(ArmedTimer, (owner, correlation_key))
    previous_task_id = None
    if timer is None:
        timer = ArmedTimer(owner=owner, correlation_key=correlation_key)
        session.add(timer)
    else:
        previous_task_id = timer.task_id

    timer.task_id = task_id
    timer.fire_at = fire_at
    timer.event = event
    timer.exact = exact
    timer.armed_at = now
    session.flush()
    return timer, previous_task_id


def get_armed_timer(session: Session, owner: str, correlation_key: str) -> ArmedTimer | None:
    """Get the armed timer for a timer id.

    :param session: Database session.
    :param owner: Timer owner.
    :param correlation_key: Timer correlation key.
    :returns: The armed timer or None.
    """
    return session.get(ArmedTimer, (owner, correlation_key))


def delete_armed_timer(
    session: Session,
    owner: str,
    correlation_key: str,
    task_id: str | None = None,
) -> str | None:
    """Delete the armed timer for a timer id.

    :param session: Database session.
    :param owner: Timer owner.
    :param correlation_key: Timer correlation key.
    :param task_id: Only delete when this is still the armed task.
    :returns: The task id of the deleted row, or None if nothing was deleted.
    """
    timer = session.get(ArmedTimer, (owner, correlation_key))
    if timer is None:
        return None
    if task_id is not None and timer.task_id != task_id:
        return None

    deleted_task_id = timer.task_id
    session.delete(timer)
    session.flush()
    return deleted_task_id


def list_armed_timers(session: Session) -> list[ArmedTimer]:
    """List every armed timer ordered by fire time.

    :param session: Database session.
    :returns: Armed timers.
    """
    return session.query(ArmedTimer).order_by(ArmedTimer.fire_at).all()
