"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

    @property
    def is_active(self) -> bool:
        """Active appointments occupy a slot."""
        return self in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    IN_PERSON = "in_person"
    TELEMEDICINE = "telemedicine"


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    doctor_id: int = Field(..., ge=1)
    clinic_id: int = Field(..., ge=1)
    patient_id: int = Field(..., ge=1)
    service_id: int | None = Field(None, ge=1)
    appointment_start: datetime
    appointment_date: date | None = None
    appointment_type: AppointmentType = AppointmentType.IN_PERSON
    reason: str | None = Field(None, max_length=1000)
    patient_notes: str | None = Field(None, max_length=1000)

    @field_validator("appointment_start")
    @classmethod
    def validate_wall_clock(cls, v: datetime) -> datetime:
        """Appointments are booked in the clinic's local wall-clock time."""
        if v.tzinfo is not None:
            return v.replace(tzinfo=None)
        return v

    @model_validator(mode="after")
    def validate_date_matches_start(self) -> "AppointmentCreate":
        """Validate the optional date agrees with the start time."""
        if self.appointment_date and self.appointment_date != self.appointment_start.date():
            raise ValueError("appointment_date must match the date of appointment_start")
        return self


class AppointmentUpdate(BaseModel):
    """Schema for updating descriptive fields of an appointment."""

    appointment_type: AppointmentType | None = None
    reason: str | None = Field(None, max_length=1000)
    patient_notes: str | None = Field(None, max_length=1000)
    doctor_notes: str | None = Field(None, max_length=1000)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=500)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to another slot."""

    appointment_date: date
    appointment_time: time


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: int
    uuid: UUID
    patient_id: int
    clinic_id: int
    doctor_id: int
    service_id: int | None = None
    appointment_type: AppointmentType
    appointment_date: date
    appointment_start: datetime
    duration_minutes: int
    status: AppointmentStatus
    reason: str | None = None
    patient_notes: str | None = None
    doctor_notes: str | None = None
    cancelled_by: int | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    doctor_id: int | None = None
    clinic_id: int | None = None
    patient_id: int | None = None
    from_date: date | None = None
    to_date: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=15, ge=1, le=100)


class BulkCancelRequest(BaseModel):
    """Schema for cancelling several appointments at once."""

    appointment_ids: list[int] = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=500)


class BulkRescheduleRequest(BaseModel):
    """Schema for moving a doctor's active appointments in a date range."""

    doctor_id: int = Field(..., ge=1)
    clinic_id: int = Field(..., ge=1)
    date_from: date
    date_to: date
    new_date: date
    new_time: time

    @model_validator(mode="after")
    def validate_range(self) -> "BulkRescheduleRequest":
        """Validate the date range is not inverted."""
        if self.date_to < self.date_from:
            raise ValueError("date_to must be on or after date_from")
        return self


class BulkOutcome(str, Enum):
    """Aggregate outcome of a bulk operation."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class BulkResult(BaseModel):
    """Per-item results of a bulk operation."""

    succeeded: int = 0
    failed: int = 0
    errors: dict[int, str] = Field(default_factory=dict)

    @property
    def outcome(self) -> BulkOutcome:
        if self.failed == 0:
            return BulkOutcome.SUCCESS
        if self.succeeded > 0:
            return BulkOutcome.PARTIAL
        return BulkOutcome.FAILED

    def record_success(self) -> None:
        self.succeeded += 1

    def record_failure(self, appointment_id: int, message: str) -> None:
        self.failed += 1
        self.errors[appointment_id] = message


class BulkResponse(BaseModel):
    """Bulk operation response body."""

    message: str
    outcome: BulkOutcome
    data: BulkResult
