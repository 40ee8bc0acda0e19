"""Medication reminder scheduling and escalation engine.

Run maintenance commands with: python -m src.dosing
"""

from src.dosing.acknowledgement import AcknowledgmentHandler
from src.dosing.dispatcher import TimerDispatcher
from src.dosing.escalation import MAX_ESCALATIONS, EscalationEngine
from src.dosing.exceptions import (
    InvalidParameterError,
    MissingParameterError,
    ReminderEngineError,
    TimerFacilityError,
)
from src.dosing.models import DoseKey, MedicinePayload, TimerEvent, TimerKind
from src.dosing.recovery import RebootRecovery, RecoveryResult
from src.dosing.scheduler import ReminderScheduler
from src.dosing.service import ReminderService
from src.dosing.store import DoseStateStore

__all__ = [
    "MAX_ESCALATIONS",
    "AcknowledgmentHandler",
    "DoseKey",
    "DoseStateStore",
    "EscalationEngine",
    "InvalidParameterError",
    "MedicinePayload",
    "MissingParameterError",
    "RebootRecovery",
    "RecoveryResult",
    "ReminderEngineError",
    "ReminderScheduler",
    "ReminderService",
    "TimerDispatcher",
    "TimerEvent",
    "TimerFacilityError",
    "TimerKind",
]
