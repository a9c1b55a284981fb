"""Availability checks for candidate appointment times."""

from datetime import date, datetime, timedelta
from typing import NamedTuple

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import ConflictException
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import ACTIVE_STATUSES
from clinic_scheduler.schemas.schedules import DayOfWeek
from clinic_scheduler.services.schedule_service import resolve_schedule

logger = structlog.get_logger(__name__)

DOCTOR_UNAVAILABLE = "Doctor not available on selected date."
SCHEDULE_NOT_CONFIGURED = "Schedule not properly configured."
OUTSIDE_SCHEDULE = "Selected time is outside the doctor's schedule."
SLOT_OVERLAP = "Selected time overlaps another appointment."


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open ``[start, end)`` overlap; touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


class BookedInterval(NamedTuple):
    appointment_id: int
    start: datetime
    end: datetime


class AvailabilityResult(NamedTuple):
    ok: bool
    reason: str | None = None


async def booked_intervals(
    db: AsyncSession,
    doctor_id: int,
    clinic_id: int,
    day: date,
    ignore_appointment_id: int | None = None,
) -> list[BookedInterval]:
    """
    Intervals held by active appointments of a doctor at a clinic on a date.

    Each interval spans the appointment's own snapshotted duration.
    """
    conditions = [
        appointments.c.doctor_id == doctor_id,
        appointments.c.clinic_id == clinic_id,
        appointments.c.appointment_date == day,
        appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
        appointments.c.deleted_at.is_(None),
    ]
    if ignore_appointment_id is not None:
        conditions.append(appointments.c.id != ignore_appointment_id)

    stmt = (
        select(
            appointments.c.id,
            appointments.c.appointment_start,
            appointments.c.duration_minutes,
        )
        .where(and_(*conditions))
        .order_by(appointments.c.appointment_start)
    )
    result = await db.execute(stmt)

    return [
        BookedInterval(
            appointment_id=row.id,
            start=row.appointment_start,
            end=row.appointment_start + timedelta(minutes=row.duration_minutes),
        )
        for row in result.fetchall()
    ]


class AvailabilityService:
    """Decides whether a doctor can take an appointment at a given time."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_available(
        self,
        doctor_id: int,
        clinic_id: int,
        candidate_start: datetime,
        duration_minutes: int,
        ignore_appointment_id: int | None = None,
    ) -> AvailabilityResult:
        """
        Check a candidate interval against the schedule and existing bookings.

        The checks run in order and the first failure wins: the weekday must
        have an available schedule, the schedule must have a window, the
        interval must lie inside that window, and it must not overlap any
        active appointment other than ``ignore_appointment_id``.

        Args:
            doctor_id: Doctor ID
            clinic_id: Clinic ID
            candidate_start: Wall-clock start of the candidate interval
            duration_minutes: Length of the candidate interval
            ignore_appointment_id: Appointment being moved, if any

        Returns:
            AvailabilityResult with a reason when not available
        """
        day = candidate_start.date()
        candidate_end = candidate_start + timedelta(minutes=duration_minutes)

        schedule = await resolve_schedule(
            self.db, doctor_id, clinic_id, DayOfWeek.from_date(day)
        )
        if schedule is None or not schedule["is_available"]:
            return AvailabilityResult(False, DOCTOR_UNAVAILABLE)

        if schedule["start_time"] is None or schedule["end_time"] is None:
            return AvailabilityResult(False, SCHEDULE_NOT_CONFIGURED)

        window_start = datetime.combine(day, schedule["start_time"])
        window_end = datetime.combine(day, schedule["end_time"])
        if candidate_start < window_start or candidate_end > window_end:
            return AvailabilityResult(False, OUTSIDE_SCHEDULE)

        for booked in await booked_intervals(
            self.db, doctor_id, clinic_id, day, ignore_appointment_id
        ):
            if intervals_overlap(candidate_start, candidate_end, booked.start, booked.end):
                return AvailabilityResult(False, SLOT_OVERLAP)

        return AvailabilityResult(True)

    async def ensure_available(
        self,
        doctor_id: int,
        clinic_id: int,
        candidate_start: datetime,
        duration_minutes: int,
        ignore_appointment_id: int | None = None,
    ) -> None:
        """
        Raise if the candidate interval is not bookable.

        Raises:
            ConflictException: With the first failing check's reason
        """
        result = await self.is_available(
            doctor_id,
            clinic_id,
            candidate_start,
            duration_minutes,
            ignore_appointment_id,
        )
        if not result.ok:
            logger.info(
                "availability_rejected",
                doctor_id=doctor_id,
                clinic_id=clinic_id,
                candidate_start=candidate_start.isoformat(),
                reason=result.reason,
            )
            raise ConflictException(result.reason or SLOT_OVERLAP)
