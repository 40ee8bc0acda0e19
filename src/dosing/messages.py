"""User-facing notification and speech text for dose reminders."""

import html

from src.dosing.feedback.base import DoseAction, NotificationRequest, NotificationUrgency
from src.dosing.models import CaregiverAlertRecord, DoseKey, MedicinePayload

_RESPONSE_ACTIONS = (DoseAction.TAKEN, DoseAction.SNOOZE, DoseAction.SKIP)


def due_notification(
    payload: MedicinePayload,
    key: DoseKey,
    replaces: str | None = None,
) -> NotificationRequest:
    """Build the "time to take" notification shown when a dose becomes due."""
    title = f"🔴 CRITICAL: {payload.name}" if payload.is_critical else f"💊 {payload.name}"
    body = f"{payload.dosage} at {key.time_of_day}".strip()
    if payload.instructions:
        body += f"\n{payload.instructions}"
    return NotificationRequest(
        key=key,
        title=title,
        body=body,
        urgency=NotificationUrgency.CRITICAL if payload.is_critical else NotificationUrgency.NORMAL,
        actions=_RESPONSE_ACTIONS,
        replaces=replaces,
    )


def due_speech(payload: MedicinePayload) -> str:
    """Build the spoken announcement for a due dose."""
    prefix = (
        "Attention! Critical medication alert. " if payload.is_critical else "Medicine reminder. "
    )
    text = f"{prefix}Time to take {payload.name}"
    if payload.dosage:
        text += f", {payload.dosage}"
    return f"{text}."


def overdue_notification(
    payload: MedicinePayload,
    key: DoseKey,
    replaces: str | None = None,
) -> NotificationRequest:
    """Build the first follow-up notification for an unanswered dose."""
    return NotificationRequest(
        key=key,
        title=f"⚠️ Medicine Overdue: {payload.name}",
        body=f"You haven't taken {payload.dosage} (scheduled at {key.time_of_day})",
        urgency=NotificationUrgency.OVERDUE,
        actions=_RESPONSE_ACTIONS,
        replaces=replaces,
    )


def urgent_notification(
    payload: MedicinePayload,
    key: DoseKey,
    minutes_overdue: int,
    replaces: str | None = None,
) -> NotificationRequest:
    """Build an escalated notification for a dose that is still unanswered."""
    return NotificationRequest(
        key=key,
        title=f"🔴 URGENT: {payload.name} - {minutes_overdue}min overdue!",
        body=f"Please take {payload.dosage} NOW or tap 'Take Now'",
        urgency=NotificationUrgency.URGENT,
        actions=_RESPONSE_ACTIONS,
        replaces=replaces,
    )


def missed_notification(
    payload: MedicinePayload,
    key: DoseKey,
    replaces: str | None = None,
) -> NotificationRequest:
    """Build the final, non-alarming notification for a missed dose."""
    return NotificationRequest(
        key=key,
        title=f"❌ MISSED: {payload.name}",
        body=(
            f"You missed {payload.dosage} scheduled at {key.time_of_day}. "
            "Your caregiver has been notified."
        ),
        urgency=NotificationUrgency.MISSED,
        replaces=replaces,
    )


def missed_speech(payload: MedicinePayload, urgent: bool) -> str:
    """Build the spoken reminder for an overdue or missed dose."""
    prefix = (
        "Urgent! You have missed your medicine. "
        if urgent
        else "Reminder. You haven't taken your medicine. "
    )
    text = f"{prefix}Please take {payload.name}"
    if payload.dosage:
        text += f", {payload.dosage}"
    return f"{text} now."


def caregiver_alert_text(alert: CaregiverAlertRecord) -> str:
    """Build the message mirrored to the caregiver chat for a missed dose."""
    severity = "🔴 Critical medicine missed" if alert.is_critical else "❌ Medicine missed"
    dosage = f" ({html.escape(alert.dosage)})" if alert.dosage else ""
    return (
        f"<b>{severity}</b>\n"
        f"{html.escape(alert.medicine_name)}{dosage} was scheduled at {alert.time_of_day} "
        f"on {alert.dose_date.isoformat()} and has not been taken."
    )
