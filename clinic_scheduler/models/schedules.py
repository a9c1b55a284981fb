"""Doctor weekly schedule table: one row per doctor, clinic and weekday."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    SmallInteger,
    Table,
    Time,
    UniqueConstraint,
    text,
)

metadata = MetaData()

doctor_schedules = Table(
    "doctor_schedules",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # References (validated by the clinic/doctor collaborators)
    Column("doctor_id", Integer, nullable=False),
    Column("clinic_id", Integer, nullable=False),
    # 0 = Sunday ... 6 = Saturday
    Column("day_of_week", SmallInteger, nullable=False),
    # Wall-clock bounds; a row missing either is not bookable
    Column("start_time", Time, nullable=True),
    Column("end_time", Time, nullable=True),
    Column("slot_duration_minutes", Integer, nullable=False, server_default=text("30")),
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    # Metadata
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
    # Constraints
    UniqueConstraint(
        "doctor_id",
        "clinic_id",
        "day_of_week",
        name="uq_doctor_schedules_doctor_clinic_day",
    ),
    CheckConstraint(
        "day_of_week BETWEEN 0 AND 6",
        name="doctor_schedules_day_of_week_check",
    ),
    CheckConstraint(
        "slot_duration_minutes > 0",
        name="doctor_schedules_slot_duration_check",
    ),
    CheckConstraint(
        "start_time IS NULL OR end_time IS NULL OR end_time > start_time",
        name="doctor_schedules_time_range_check",
    ),
)

Index("idx_doctor_schedules_doctor_id", doctor_schedules.c.doctor_id)
Index(
    "idx_doctor_schedules_doctor_clinic",
    doctor_schedules.c.doctor_id,
    doctor_schedules.c.clinic_id,
)
