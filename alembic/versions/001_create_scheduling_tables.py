"""Create doctor_schedules and appointments tables

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the scheduling tables."""
    op.create_table(
        "doctor_schedules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("doctor_id", sa.Integer(), nullable=False),
        sa.Column("clinic_id", sa.Integer(), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column(
            "slot_duration_minutes",
            sa.Integer(),
            server_default=sa.text("30"),
            nullable=False,
        ),
        sa.Column("is_available", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "doctor_id",
            "clinic_id",
            "day_of_week",
            name="uq_doctor_schedules_doctor_clinic_day",
        ),
        sa.CheckConstraint(
            "day_of_week BETWEEN 0 AND 6",
            name="doctor_schedules_day_of_week_check",
        ),
        sa.CheckConstraint(
            "slot_duration_minutes > 0",
            name="doctor_schedules_slot_duration_check",
        ),
        sa.CheckConstraint(
            "start_time IS NULL OR end_time IS NULL OR end_time > start_time",
            name="doctor_schedules_time_range_check",
        ),
    )

    op.create_index("idx_doctor_schedules_doctor_id", "doctor_schedules", ["doctor_id"])
    op.create_index(
        "idx_doctor_schedules_doctor_clinic",
        "doctor_schedules",
        ["doctor_id", "clinic_id"],
    )

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("uuid", sa.String(length=36), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("clinic_id", sa.Integer(), nullable=False),
        sa.Column("doctor_id", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.Integer(), nullable=True),
        sa.Column("appointment_type", sa.Text(), server_default="in_person", nullable=False),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_start", sa.DateTime(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("patient_notes", sa.Text(), nullable=True),
        sa.Column("doctor_notes", sa.Text(), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid", name="uq_appointments_uuid"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
            name="appointments_status_check",
        ),
        sa.CheckConstraint(
            "appointment_type IN ('in_person', 'telemedicine')",
            name="appointments_type_check",
        ),
        sa.CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
    )

    op.create_index(
        "idx_appointments_clinic_doctor_date",
        "appointments",
        ["clinic_id", "doctor_id", "appointment_date"],
    )
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index("idx_appointments_patient_id", "appointments", ["patient_id"])

    # At most one active appointment per doctor, clinic and start time
    op.create_index(
        "uq_appointments_active_slot",
        "appointments",
        ["doctor_id", "clinic_id", "appointment_start"],
        unique=True,
        postgresql_where=sa.text(
            "status IN ('pending', 'confirmed') AND deleted_at IS NULL"
        ),
    )


def downgrade() -> None:
    """Drop the scheduling tables."""
    op.drop_index("uq_appointments_active_slot", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("idx_doctor_schedules_doctor_clinic", table_name="doctor_schedules")
    op.drop_index("idx_doctor_schedules_doctor_id", table_name="doctor_schedules")
    op.drop_table("doctor_schedules")
