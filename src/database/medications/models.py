"""SQLAlchemy ORM models for medication reminders and dose state."""

from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Boolean, Date, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.database.core import Base, UTCDateTime


class DoseStatus(StrEnum):
    """Status of a single dose instance."""

    PENDING = "pending"  # Fired, awaiting a response
    ACKNOWLEDGED = "acknowledged"  # Taken
    SNOOZED = "snoozed"  # Effective status only, derived from snoozed_until
    SKIPPED = "skipped"  # User chose to skip
    ESCALATING = "escalating"  # Overdue, follow-ups in progress
    MISSED = "missed"  # Never acknowledged, caregiver alerted

    @property
    def is_terminal(self) -> bool:
        """Check whether no further transition is allowed."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({DoseStatus.ACKNOWLEDGED, DoseStatus.SKIPPED, DoseStatus.MISSED})


class SyncStatus(StrEnum):
    """Outcome recorded in the pending sync action queue."""

    TAKEN = "TAKEN"
    SNOOZED = "SNOOZED"
    SKIPPED = "SKIPPED"
    MISSED = "MISSED"


class CaregiverAlertType(StrEnum):
    """Kinds of caregiver alert."""

    MEDICINE_MISSED = "MEDICINE_MISSED"


class ReminderDefinition(Base):
    """ORM model for a recurring daily medication reminder.

    One row per (medicine, time of day). The daily timer for the row is
    re-armed from here after a restart.
    """

    __tablename__ = "reminder_definitions"

    reminder_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    time_of_day: Mapped[str] = mapped_column(String(5), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    dosage_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    voice_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        """Return string representation of the definition."""
        return (
            f"<ReminderDefinition(reminder_id={self.reminder_id!r}, "
            f"time_of_day={self.time_of_day}, name={self.name!r})>"
        )


class DoseInstance(Base):
    """ORM model for one occurrence of a reminder on one calendar date.

    Created the first time a timer fires for the dose, or when the user
    responds before that. Rows in a terminal status are never modified.
    """

    __tablename__ = "dose_instances"

    reminder_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    time_of_day: Mapped[str] = mapped_column(String(5), primary_key=True)
    dose_date: Mapped[date] = mapped_column(Date, primary_key=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DoseStatus.PENDING.value,
    )
    escalation_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_fired_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_transition_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    snoozed_until: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    notification_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (Index("idx_dose_instances_status", "status"),)

    def __repr__(self) -> str:
        """Return string representation of the dose instance."""
        return (
            f"<DoseInstance(reminder_id={self.reminder_id!r}, time_of_day={self.time_of_day}, "
            f"dose_date={self.dose_date}, status={self.status}, step={self.escalation_step})>"
        )


class PendingSyncAction(Base):
    """ORM model for a dose outcome waiting to be synced by the host application."""

    __tablename__ = "pending_sync_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reminder_id: Mapped[str] = mapped_column(String(100), nullable=False)
    scheduled_time: Mapped[str] = mapped_column(String(5), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    action_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    dose_date: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the sync action."""
        return (
            f"<PendingSyncAction(id={self.id}, reminder_id={self.reminder_id!r}, "
            f"status={self.status})>"
        )


class PendingCaregiverAlert(Base):
    """ORM model for a caregiver alert waiting to be drained.

    Appended when a dose is missed. Only mirrored_at changes after insert.
    """

    __tablename__ = "pending_caregiver_alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alert_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        default=CaregiverAlertType.MEDICINE_MISSED.value,
    )
    reminder_id: Mapped[str] = mapped_column(String(100), nullable=False)
    medicine_name: Mapped[str] = mapped_column(Text, nullable=False)
    dosage_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dose_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_of_day: Mapped[str] = mapped_column(String(5), nullable=False)
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    mirrored_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (Index("idx_pending_caregiver_alerts_mirrored_at", "mirrored_at"),)

    def __repr__(self) -> str:
        """Return string representation of the alert."""
        return (
            f"<PendingCaregiverAlert(id={self.id}, reminder_id={self.reminder_id!r}, "
            f"dose_date={self.dose_date}, time_of_day={self.time_of_day})>"
        )


class ArmedTimer(Base):
    """ORM model for a timer armed on the durable (Celery) timer facility.

    Holds the id of the task that is currently allowed to fire for the timer.
    """

    __tablename__ = "armed_timers"

    owner: Mapped[str] = mapped_column(String(20), primary_key=True)
    correlation_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    task_id: Mapped[str] = mapped_column(String(64), nullable=False)
    fire_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    event: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    exact: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    armed_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self) -> str:
        """Return string representation of the armed timer."""
        return (
            f"<ArmedTimer(owner={self.owner}, key={self.correlation_key!r}, "
            f"fire_at={self.fire_at}, task_id={self.task_id})>"
        )
