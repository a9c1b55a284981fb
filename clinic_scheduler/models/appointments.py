"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    text,
)

# Metadata for all tables
metadata = MetaData()

# Statuses that occupy a slot
ACTIVE_STATUS_SQL = "status IN ('pending', 'confirmed') AND deleted_at IS NULL"

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Opaque public identifier
    Column(
        "uuid",
        String(36),
        nullable=False,
        unique=True,
        default=lambda: str(uuid4()),
    ),
    # Ownership / references
    Column("patient_id", Integer, nullable=False),
    Column("clinic_id", Integer, nullable=False),
    Column("doctor_id", Integer, nullable=False),
    Column("service_id", Integer, nullable=True),
    # Appointment details
    Column("appointment_type", Text, nullable=False, server_default="in_person"),
    Column("appointment_date", Date, nullable=False),
    Column("appointment_start", DateTime, nullable=False),
    # Slot length in effect when the appointment was booked
    Column("duration_minutes", Integer, nullable=False),
    # Status management
    Column("status", Text, nullable=False, server_default="pending"),
    Column("reason", Text, nullable=True),
    Column("patient_notes", Text, nullable=True),
    Column("doctor_notes", Text, nullable=True),
    Column("cancelled_by", Integer, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    # Audit fields
    Column(
        "created_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    ),
    Column(
        "updated_at",
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    ),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Soft delete (healthcare compliance)
    Column("deleted_at", DateTime(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "appointment_type IN ('in_person', 'telemedicine')",
        name="appointments_type_check",
    ),
    CheckConstraint("duration_minutes > 0", name="appointments_duration_check"),
)

Index(
    "idx_appointments_clinic_doctor_date",
    appointments.c.clinic_id,
    appointments.c.doctor_id,
    appointments.c.appointment_date,
)
Index("idx_appointments_status", appointments.c.status)
Index("idx_appointments_patient_id", appointments.c.patient_id)

# A second writer racing past the availability check trips this index
Index(
    "uq_appointments_active_slot",
    appointments.c.doctor_id,
    appointments.c.clinic_id,
    appointments.c.appointment_start,
    unique=True,
    postgresql_where=text(ACTIVE_STATUS_SQL),
    sqlite_where=text(ACTIVE_STATUS_SQL),
)
