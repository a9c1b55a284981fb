"""Doctor schedule and slot schemas for request/response validation."""

from datetime import date, datetime, time
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class DayOfWeek(IntEnum):
    """Day of week, numbered from Sunday."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        """Weekday of a calendar date (``isoweekday`` counts Monday as 1)."""
        return cls(value.isoweekday() % 7)


class ScheduleBase(BaseModel):
    """Base schedule schema with common fields."""

    doctor_id: int = Field(..., ge=1)
    clinic_id: int = Field(..., ge=1)
    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(default=30, ge=15, le=480)
    is_available: bool = True

    @model_validator(mode="after")
    def validate_time_range(self) -> "ScheduleBase":
        """Validate end time is after start time."""
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ScheduleCreate(ScheduleBase):
    """Schema for creating a new schedule."""


class ScheduleUpdate(BaseModel):
    """Schema for partially updating a schedule."""

    doctor_id: int | None = Field(None, ge=1)
    clinic_id: int | None = Field(None, ge=1)
    day_of_week: DayOfWeek | None = None
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = Field(None, ge=15, le=480)
    is_available: bool | None = None


class ScheduleResponse(BaseModel):
    """Schema for schedule response."""

    id: int
    doctor_id: int
    clinic_id: int
    day_of_week: DayOfWeek
    start_time: time | None
    end_time: time | None
    slot_duration_minutes: int
    is_available: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScheduleListResponse(BaseModel):
    """Schema for paginated schedule list response."""

    total: int
    page: int
    page_size: int
    items: list[ScheduleResponse]


class ScheduleFilters(BaseModel):
    """Schema for schedule filtering."""

    doctor_id: int | None = None
    clinic_id: int | None = None
    day_of_week: DayOfWeek | None = None
    is_available: bool | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=15, ge=1, le=100)


class ClinicSchedules(BaseModel):
    """A doctor's schedules at one clinic."""

    clinic_id: int
    schedules: list[ScheduleResponse]


class ScheduleAvailabilityResponse(BaseModel):
    """Result of toggling a schedule's availability."""

    schedule_id: int
    is_available: bool


class ScheduleBulkItem(BaseModel):
    """One weekday entry of a bulk schedule upsert."""

    day_of_week: DayOfWeek
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(default=30, ge=15, le=480)
    is_available: bool = True

    @model_validator(mode="after")
    def validate_time_range(self) -> "ScheduleBulkItem":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class ScheduleBulkUpsert(BaseModel):
    """Create-or-update several weekdays for one doctor at one clinic."""

    doctor_id: int = Field(..., ge=1)
    clinic_id: int = Field(..., ge=1)
    schedules: list[ScheduleBulkItem] = Field(..., min_length=1, max_length=7)


class ScheduleBulkResult(BaseModel):
    """Outcome of a bulk schedule upsert, keyed by item index."""

    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: dict[int, str] = Field(default_factory=dict)


class ScheduleConflictCheck(BaseModel):
    """A proposed schedule change to check for conflicts."""

    schedule_id: int | None = None
    doctor_id: int | None = None
    clinic_id: int | None = None
    day_of_week: DayOfWeek | None = None


class ScheduleConflict(BaseModel):
    """A single detected conflict."""

    type: str
    message: str
    conflicting_schedule_id: int | None = None
    appointment_count: int | None = None
    appointment_ids: list[int] | None = None


class ScheduleConflictReport(BaseModel):
    """Conflict check result."""

    has_conflicts: bool
    conflicts: list[ScheduleConflict]


class ScheduleUtilization(BaseModel):
    """Share of a schedule's daily slots held by active appointments."""

    schedule_id: int
    total_slots: int
    booked_slots: int
    utilization_rate: float


class TimeSlot(BaseModel):
    """A bookable half-open interval ``[start, end)``."""

    date: date
    start: datetime
    end: datetime

    def to_cache(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class AvailableSlotsResponse(BaseModel):
    """Available slots for a doctor at a clinic over a date range."""

    doctor_id: int
    clinic_id: int
    date_from: date
    date_to: date
    total_slots: int
    slots: list[TimeSlot]
