"""Domain models shared across the reminder engine."""

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from src.database.medications.models import CaregiverAlertType, DoseStatus, SyncStatus
from src.dosing.exceptions import InvalidParameterError

_TIME_OF_DAY_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")

# Separator used inside encoded correlation keys
KEY_SEPARATOR = "|"


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse an HH:MM time of day.

    :param value: Time string such as "08:30".
    :returns: Hour and minute.
    :raises InvalidParameterError: If the value is not a valid 24-hour time.
    """
    match = _TIME_OF_DAY_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise InvalidParameterError("time", value, "expected HH:MM")

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:  # noqa: PLR2004
        raise InvalidParameterError("time", value, "hour must be 0-23 and minute 0-59")
    return hour, minute


def normalise_time_of_day(value: str) -> str:
    """Return the canonical zero-padded HH:MM form of a time of day."""
    hour, minute = parse_time_of_day(value)
    return f"{hour:02d}:{minute:02d}"


class TimerKind(StrEnum):
    """Kinds of timer the engine arms."""

    DAILY = "daily"
    SNOOZE = "snooze"
    FOLLOW_UP = "follow_up"
    ESCALATE = "escalate"
    FINAL_CHECK = "final_check"


class TimerOwner(StrEnum):
    """Owner half of a timer id. One armed timer per owner and key."""

    DAILY = "daily"
    SNOOZE = "snooze"
    FOLLOW_UP = "followup"
    ESCALATE = "escalate"
    FINAL_CHECK = "final"


TIMER_OWNER_BY_KIND = {
    TimerKind.DAILY: TimerOwner.DAILY,
    TimerKind.SNOOZE: TimerOwner.SNOOZE,
    TimerKind.FOLLOW_UP: TimerOwner.FOLLOW_UP,
    TimerKind.ESCALATE: TimerOwner.ESCALATE,
    TimerKind.FINAL_CHECK: TimerOwner.FINAL_CHECK,
}

# Timers that belong to a dose instance's escalation chain
DOSE_TIMER_OWNERS = (
    TimerOwner.FOLLOW_UP,
    TimerOwner.ESCALATE,
    TimerOwner.FINAL_CHECK,
    TimerOwner.SNOOZE,
)


class TimerId(NamedTuple):
    """Opaque identifier of an armed timer."""

    owner: str
    correlation_key: str


@dataclass(frozen=True)
class DoseKey:
    """Correlation key of a dose instance: one reminder time on one date."""

    reminder_id: str
    time_of_day: str
    dose_date: date

    def encode(self) -> str:
        """Encode the key as a single string."""
        return KEY_SEPARATOR.join((self.reminder_id, self.time_of_day, self.dose_date.isoformat()))

    @classmethod
    def decode(cls, value: str) -> "DoseKey":
        """Decode a key produced by encode().

        Reminder ids may themselves contain the separator, so the key is split
        from the right.

        :param value: Encoded key.
        :returns: The decoded key.
        :raises ValueError: If the value is malformed.
        """
        parts = value.rsplit(KEY_SEPARATOR, 2)
        if len(parts) != 3:  # noqa: PLR2004
            raise ValueError(f"Malformed dose key: {value!r}")
        reminder_id, time_of_day, raw_date = parts
        return cls(reminder_id, time_of_day, date.fromisoformat(raw_date))

    def timer_id(self, owner: TimerOwner) -> TimerId:
        """Get the id of this dose's timer for an owner."""
        return TimerId(owner.value, self.encode())

    def __str__(self) -> str:
        """Return the encoded key."""
        return self.encode()


def daily_timer_id(reminder_id: str, time_of_day: str) -> TimerId:
    """Get the id of the recurring daily timer for a reminder time."""
    return TimerId(TimerOwner.DAILY.value, f"{reminder_id}{KEY_SEPARATOR}{time_of_day}")


class MedicinePayload(BaseModel):
    """Medicine details carried by a reminder and its timers.

    Also the in-memory form of a stored reminder definition.
    """

    model_config = ConfigDict(frozen=True)

    reminder_id: str = Field(..., min_length=1, description="Stable medicine identifier")
    name: str = Field(..., min_length=1, description="Medicine name")
    dosage: str = Field("", description="Free-text dosage")
    time_of_day: str = Field(..., description="Local time of day as HH:MM")
    is_critical: bool = Field(False, description="Whether the medicine is critical")
    instructions: str | None = Field(None, description="Free-text instructions")
    voice_enabled: bool = Field(True, description="Whether reminders are spoken aloud")


class TimerEvent(BaseModel):
    """What a timer delivers when it fires."""

    kind: TimerKind
    reminder_id: str
    time_of_day: str
    dose_date: date
    step: int = 0
    payload: MedicinePayload | None = None

    @property
    def dose_key(self) -> DoseKey:
        """Get the correlation key of the dose this event belongs to."""
        return DoseKey(self.reminder_id, self.time_of_day, self.dose_date)

    @classmethod
    def for_dose(
        cls,
        kind: TimerKind,
        key: DoseKey,
        step: int = 0,
        payload: MedicinePayload | None = None,
    ) -> "TimerEvent":
        """Build an event for a dose key."""
        return cls(
            kind=kind,
            reminder_id=key.reminder_id,
            time_of_day=key.time_of_day,
            dose_date=key.dose_date,
            step=step,
            payload=payload,
        )


class DoseSnapshot(BaseModel):
    """Read-only view of a dose instance."""

    reminder_id: str
    time_of_day: str
    dose_date: date
    status: DoseStatus
    effective_status: DoseStatus
    escalation_step: int
    first_fired_at: datetime | None = None
    last_transition_at: datetime | None = None
    snoozed_until: datetime | None = None
    resolved_at: datetime | None = None
    notification_ref: str | None = None


class SyncActionRecord(BaseModel):
    """A dose outcome waiting to be synced."""

    id: int
    reminder_id: str
    scheduled_time: str
    status: SyncStatus
    timestamp: datetime
    date: date


class CaregiverAlertRecord(BaseModel):
    """A missed-dose alert waiting to be delivered to a caregiver."""

    id: int
    alert_type: CaregiverAlertType
    reminder_id: str
    medicine_name: str
    dosage: str
    dose_date: date
    time_of_day: str
    is_critical: bool
    created_at: datetime
    mirrored_at: datetime | None = None


class ResponseOutcome(BaseModel):
    """Result of a Taken, Snooze or Skip response."""

    reminder_id: str
    time_of_day: str
    dose_date: date
    changed: bool
    status: DoseStatus | None = None
    snoozed_until: datetime | None = None


class ScheduleResult(BaseModel):
    """Result of scheduling one reminder time."""

    success: bool
    reminder_id: str
    time: str
    next_fire_at: datetime


class ScheduleMedicineResult(BaseModel):
    """Result of scheduling several reminder times for one medicine."""

    success: bool
    reminder_id: str
    scheduled_count: int
    times: list[str]


class CancelResult(BaseModel):
    """Result of cancelling reminder times."""

    success: bool
    reminder_id: str
    cancelled_count: int


class ScheduledReminders(BaseModel):
    """Registered reminder definitions and the exact timer capability."""

    reminders: list[MedicinePayload]
    can_schedule_exact: bool
