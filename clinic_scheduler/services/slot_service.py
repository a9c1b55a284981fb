"""Slot generation from weekly schedules."""

from collections.abc import Iterator, Mapping, Sequence
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import settings
from clinic_scheduler.core.exceptions import ValidationException
from clinic_scheduler.core.redis_client import CacheManager, slot_cache_key
from clinic_scheduler.schemas.schedules import AvailableSlotsResponse, DayOfWeek, TimeSlot
from clinic_scheduler.services.availability_service import (
    BookedInterval,
    booked_intervals,
    intervals_overlap,
)
from clinic_scheduler.services.schedule_service import resolve_schedule

logger = structlog.get_logger(__name__)


def generate_day_slots(
    day: date,
    schedule: Mapping[str, Any] | None,
    booked: Sequence[BookedInterval] = (),
) -> list[TimeSlot]:
    """
    Step through a schedule's window and keep the free slots.

    Args:
        day: Calendar date to generate for
        schedule: Schedule row for the date's weekday
        booked: Intervals held by active appointments on that date

    Returns:
        Ordered list of free slots
    """
    if schedule is None or not schedule["is_available"]:
        return []

    if schedule["start_time"] is None or schedule["end_time"] is None:
        return []

    step = timedelta(minutes=schedule["slot_duration_minutes"])
    cursor = datetime.combine(day, schedule["start_time"])
    window_end = datetime.combine(day, schedule["end_time"])

    slots = []
    while cursor + step <= window_end:
        slot_end = cursor + step
        if not any(intervals_overlap(cursor, slot_end, b.start, b.end) for b in booked):
            slots.append(TimeSlot(date=day, start=cursor, end=slot_end))
        cursor = slot_end

    return slots


def iter_dates(date_from: date, date_to: date) -> Iterator[date]:
    """Yield every date from ``date_from`` to ``date_to`` inclusive."""
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


class SlotService:
    """Lists bookable slots for doctors at clinics."""

    def __init__(self, db: AsyncSession, cache: CacheManager | None = None):
        self.db = db
        self.cache = cache

    async def generate_slots(self, doctor_id: int, clinic_id: int, day: date) -> list[TimeSlot]:
        """
        Free slots of a doctor at a clinic on one date.

        Results are cached per date when a cache is configured. The slot
        version is read before the bookings, so a write that lands in between
        leaves this listing under a key no later read uses.
        """
        key = None
        if self.cache:
            version = self.cache.slot_version(doctor_id, clinic_id)
            if version is not None:
                key = slot_cache_key(doctor_id, clinic_id, day, version)
                cached = self.cache.get_json(key)
                if cached is not None:
                    return [TimeSlot.model_validate(item) for item in cached]

        schedule = await resolve_schedule(self.db, doctor_id, clinic_id, DayOfWeek.from_date(day))
        booked = []
        if schedule is not None and schedule["is_available"]:
            booked = await booked_intervals(self.db, doctor_id, clinic_id, day)

        slots = generate_day_slots(day, schedule, booked)

        if self.cache and key is not None:
            self.cache.set_json(
                key,
                [slot.to_cache() for slot in slots],
                ttl=settings.slot_cache_ttl_seconds,
            )

        return slots

    async def list_available_slots(
        self,
        doctor_id: int,
        clinic_id: int,
        date_from: date,
        date_to: date,
    ) -> AvailableSlotsResponse:
        """
        Free slots over an inclusive date range, date by date.

        Raises:
            ValidationException: If the range is inverted or too long
        """
        if date_to < date_from:
            raise ValidationException("date_to must be on or after date_from")

        span = (date_to - date_from).days + 1
        if span > settings.slot_range_max_days:
            raise ValidationException(
                f"Date range cannot exceed {settings.slot_range_max_days} days"
            )

        slots: list[TimeSlot] = []
        for day in iter_dates(date_from, date_to):
            slots.extend(await self.generate_slots(doctor_id, clinic_id, day))

        logger.debug(
            "slots_listed",
            doctor_id=doctor_id,
            clinic_id=clinic_id,
            date_from=date_from.isoformat(),
            date_to=date_to.isoformat(),
            total=len(slots),
        )

        return AvailableSlotsResponse(
            doctor_id=doctor_id,
            clinic_id=clinic_id,
            date_from=date_from,
            date_to=date_to,
            total_slots=len(slots),
            slots=slots,
        )
