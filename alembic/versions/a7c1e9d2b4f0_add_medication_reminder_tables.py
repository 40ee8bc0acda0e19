"""Add medication reminder tables

Revision ID: a7c1e9d2b4f0
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a7c1e9d2b4f0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "reminder_definitions",
        sa.Column("reminder_id", sa.String(length=100), nullable=False),
        sa.Column("time_of_day", sa.String(length=5), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("dosage_text", sa.Text(), nullable=False),
        sa.Column("is_critical", sa.Boolean(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("voice_enabled", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("reminder_id", "time_of_day"),
    )

    op.create_table(
        "dose_instances",
        sa.Column("reminder_id", sa.String(length=100), nullable=False),
        sa.Column("time_of_day", sa.String(length=5), nullable=False),
        sa.Column("dose_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("escalation_step", sa.Integer(), nullable=False),
        sa.Column("first_fired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_transition_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("snoozed_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("notification_ref", sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint("reminder_id", "time_of_day", "dose_date"),
    )
    op.create_index("idx_dose_instances_status", "dose_instances", ["status"], unique=False)

    op.create_table(
        "pending_sync_actions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("reminder_id", sa.String(length=100), nullable=False),
        sa.Column("scheduled_time", sa.String(length=5), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("action_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("dose_date", sa.Date(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "pending_caregiver_alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("alert_type", sa.String(length=40), nullable=False),
        sa.Column("reminder_id", sa.String(length=100), nullable=False),
        sa.Column("medicine_name", sa.Text(), nullable=False),
        sa.Column("dosage_text", sa.Text(), nullable=False),
        sa.Column("dose_date", sa.Date(), nullable=False),
        sa.Column("time_of_day", sa.String(length=5), nullable=False),
        sa.Column("is_critical", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("mirrored_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_pending_caregiver_alerts_mirrored_at",
        "pending_caregiver_alerts",
        ["mirrored_at"],
        unique=False,
    )

    op.create_table(
        "armed_timers",
        sa.Column("owner", sa.String(length=20), nullable=False),
        sa.Column("correlation_key", sa.String(length=200), nullable=False),
        sa.Column("task_id", sa.String(length=64), nullable=False),
        sa.Column("fire_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event", sa.JSON(), nullable=False),
        sa.Column("exact", sa.Boolean(), nullable=False),
        sa.Column("armed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("owner", "correlation_key"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("armed_timers")
    op.drop_index(
        "idx_pending_caregiver_alerts_mirrored_at", table_name="pending_caregiver_alerts"
    )
    op.drop_table("pending_caregiver_alerts")
    op.drop_table("pending_sync_actions")
    op.drop_index("idx_dose_instances_status", table_name="dose_instances")
    op.drop_table("dose_instances")
    op.drop_table("reminder_definitions")
