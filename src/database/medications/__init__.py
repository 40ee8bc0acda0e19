"""Database models and operations for medication reminders."""

from src.database.medications.models import (
    TERMINAL_STATUSES,
    ArmedTimer,
    CaregiverAlertType,
    DoseInstance,
    DoseStatus,
    PendingCaregiverAlert,
    PendingSyncAction,
    ReminderDefinition,
    SyncStatus,
)
from src.database.medications.operations import (
    append_caregiver_alert,
    append_sync_action,
    clear_pending_caregiver_alerts,
    clear_pending_sync_actions,
    create_dose_instance,
    delete_armed_timer,
    delete_reminder_definition,
    get_armed_timer,
    get_dose_instance,
    get_reminder_definition,
    list_armed_timers,
    list_pending_caregiver_alerts,
    list_pending_sync_actions,
    list_reminder_definitions,
    mark_caregiver_alert_mirrored,
    upsert_armed_timer,
    upsert_reminder_definition,
)

__all__ = [
    # Models
    "TERMINAL_STATUSES",
    "ArmedTimer",
    "CaregiverAlertType",
    "DoseInstance",
    "DoseStatus",
    "PendingCaregiverAlert",
    "PendingSyncAction",
    "ReminderDefinition",
    "SyncStatus",
    # Operations
    "append_caregiver_alert",
    "append_sync_action",
    "clear_pending_caregiver_alerts",
    "clear_pending_sync_actions",
    "create_dose_instance",
    "delete_armed_timer",
    "delete_reminder_definition",
    "get_armed_timer",
    "get_dose_instance",
    "get_reminder_definition",
    "list_armed_timers",
    "list_pending_caregiver_alerts",
    "list_pending_sync_actions",
    "list_reminder_definitions",
    "mark_caregiver_alert_mirrored",
    "upsert_armed_timer",
    "upsert_reminder_definition",
]
