"""Pydantic models for medication reminder API endpoints.

Identifier and time fields are optional here so the reminder service reports
missing or malformed values with its own error messages.
"""

from pydantic import BaseModel, Field


class ScheduleReminderRequest(BaseModel):
    """Request model for scheduling one daily reminder time."""

    reminder_id: str | None = Field(None, description="Stable medicine identifier")
    name: str | None = Field(None, description="Medicine name")
    dosage: str = Field("", max_length=200, description="Free-text dosage")
    time: str | None = Field(None, description="Local time of day as HH:MM")
    is_critical: bool = Field(False, description="Whether the medicine is critical")
    instructions: str | None = Field(None, max_length=500, description="Free-text instructions")
    voice_enabled: bool = Field(True, description="Whether reminders are spoken aloud")


class ScheduleMedicineRequest(BaseModel):
    """Request model for scheduling several daily reminder times."""

    reminder_id: str | None = Field(None, description="Stable medicine identifier")
    name: str | None = Field(None, description="Medicine name")
    dosage: str = Field("", max_length=200, description="Free-text dosage")
    times: list[str] | None = Field(None, description="Local times of day as HH:MM")
    is_critical: bool = Field(False, description="Whether the medicine is critical")
    instructions: str | None = Field(None, max_length=500, description="Free-text instructions")
    voice_enabled: bool = Field(True, description="Whether reminders are spoken aloud")


class DoseRequest(BaseModel):
    """Request model identifying one dose."""

    reminder_id: str | None = Field(None, description="Stable medicine identifier")
    time: str | None = Field(None, description="Scheduled local time as HH:MM")
    date: str | None = Field(None, description="Dose date as YYYY-MM-DD (defaults to today)")


class SnoozeDoseRequest(DoseRequest):
    """Request model for snoozing a dose."""

    name: str | None = Field(None, description="Medicine name used for the re-reminder")
    dosage: str | None = Field(None, description="Dosage used for the re-reminder")
    is_critical: bool | None = Field(None, description="Criticality used for the re-reminder")


class ClearQueueRequest(BaseModel):
    """Request model for clearing a pending queue."""

    ids: list[int] | None = Field(None, description="Entries to remove (all when omitted)")


class ClearQueueResponse(BaseModel):
    """Response model for clearing a pending queue."""

    cleared: int = Field(..., description="Number of entries removed")


class ExactTimersResponse(BaseModel):
    """Response model for the exact timer capability."""

    can_schedule_exact: bool = Field(..., description="Whether exact timers are permitted")


class RecoveryResponse(BaseModel):
    """Response model for re-arming stored reminders."""

    rearmed: int = Field(..., description="Reminders re-armed")
    failed: int = Field(..., description="Reminders that could not be re-armed")
    errors: list[str] = Field(default_factory=list, description="Failure details")


class ErrorResponse(BaseModel):
    """Error body returned when a reminder request is rejected."""

    detail: str = Field(..., description="Why the request was rejected")
