"""Schedule service: doctors' recurring weekly availability."""

from collections.abc import Mapping
from itertools import groupby
from typing import Any

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy import delete as sql_delete
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.database import unit_of_work
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.schedules import doctor_schedules
from clinic_scheduler.schemas.appointments import ACTIVE_STATUSES
from clinic_scheduler.schemas.schedules import (
    ClinicSchedules,
    DayOfWeek,
    ScheduleAvailabilityResponse,
    ScheduleBulkResult,
    ScheduleBulkUpsert,
    ScheduleConflict,
    ScheduleConflictCheck,
    ScheduleConflictReport,
    ScheduleCreate,
    ScheduleFilters,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpdate,
    ScheduleUtilization,
)

logger = structlog.get_logger(__name__)

DUPLICATE_SCHEDULE = "A schedule already exists for this doctor at this clinic on this day."
KEY_FIELDS = ("doctor_id", "clinic_id", "day_of_week")


async def resolve_schedule(
    db: AsyncSession,
    doctor_id: int,
    clinic_id: int,
    day_of_week: int,
    *,
    lock: bool = False,
) -> RowMapping | None:
    """
    Find the schedule governing a doctor at a clinic on a weekday.

    Args:
        db: Database session
        doctor_id: Doctor ID
        clinic_id: Clinic ID
        day_of_week: 0 (Sunday) to 6 (Saturday)
        lock: Lock the row until the surrounding transaction ends

    Returns:
        Schedule row or None
    """
    stmt = select(doctor_schedules).where(
        and_(
            doctor_schedules.c.doctor_id == doctor_id,
            doctor_schedules.c.clinic_id == clinic_id,
            doctor_schedules.c.day_of_week == int(day_of_week),
        )
    )
    if lock:
        stmt = stmt.with_for_update()

    result = await db.execute(stmt)
    return result.mappings().first()


async def active_weekday_appointment_ids(
    db: AsyncSession,
    doctor_id: int,
    clinic_id: int,
    day_of_week: int,
) -> list[int]:
    """
    IDs of active appointments of a doctor at a clinic falling on a weekday.

    Every date counts, past ones included.
    """
    stmt = (
        select(appointments.c.id, appointments.c.appointment_date)
        .where(
            and_(
                appointments.c.doctor_id == doctor_id,
                appointments.c.clinic_id == clinic_id,
                appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
                appointments.c.deleted_at.is_(None),
            )
        )
        .order_by(appointments.c.id)
    )
    result = await db.execute(stmt)

    return [
        row.id
        for row in result.fetchall()
        if DayOfWeek.from_date(row.appointment_date) == day_of_week
    ]


class ScheduleService:
    """Service for managing doctor schedules."""

    def __init__(self, db: AsyncSession, cache: CacheManager | None = None):
        """Initialize service with database session and optional cache."""
        self.db = db
        self.cache = cache

    def _invalidate(self, doctor_id: int, clinic_id: int) -> None:
        if self.cache:
            self.cache.invalidate_slots(doctor_id, clinic_id)

    async def _get_row(self, schedule_id: int, *, lock: bool = False) -> RowMapping:
        stmt = select(doctor_schedules).where(doctor_schedules.c.id == schedule_id)
        if lock:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Schedule not found")

        return row

    async def _guard_active_appointments(self, schedule: Mapping[str, Any], action: str) -> None:
        conflicting = await active_weekday_appointment_ids(
            self.db,
            schedule["doctor_id"],
            schedule["clinic_id"],
            schedule["day_of_week"],
        )
        if conflicting:
            logger.info(
                "schedule_mutation_blocked",
                schedule_id=schedule.get("id"),
                action=action,
                conflicting_appointments=len(conflicting),
            )
            raise ConflictException(
                f"Cannot {action} schedule: existing appointments found",
                conflicting_ids=conflicting,
            )

    async def has_active_appointments(
        self,
        doctor_id: int,
        clinic_id: int,
        day_of_week: int,
    ) -> bool:
        """Whether any active appointment falls on the weekday for the pair."""
        ids = await active_weekday_appointment_ids(self.db, doctor_id, clinic_id, day_of_week)
        return bool(ids)

    async def get_schedule(self, schedule_id: int) -> ScheduleResponse:
        """
        Get schedule by ID.

        Raises:
            NotFoundException: If schedule not found
        """
        row = await self._get_row(schedule_id)
        return ScheduleResponse.model_validate(dict(row))

    async def list_schedules(self, filters: ScheduleFilters) -> ScheduleListResponse:
        """
        List schedules with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of schedules ordered by doctor and weekday
        """
        conditions = []

        if filters.doctor_id is not None:
            conditions.append(doctor_schedules.c.doctor_id == filters.doctor_id)

        if filters.clinic_id is not None:
            conditions.append(doctor_schedules.c.clinic_id == filters.clinic_id)

        if filters.day_of_week is not None:
            conditions.append(doctor_schedules.c.day_of_week == int(filters.day_of_week))

        if filters.is_available is not None:
            conditions.append(doctor_schedules.c.is_available == filters.is_available)

        count_stmt = select(func.count()).select_from(doctor_schedules).where(and_(True, *conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size
        stmt = (
            select(doctor_schedules)
            .where(and_(True, *conditions))
            .order_by(doctor_schedules.c.doctor_id, doctor_schedules.c.day_of_week)
            .limit(filters.page_size)
            .offset(offset)
        )
        result = await self.db.execute(stmt)

        return ScheduleListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[ScheduleResponse.model_validate(dict(row)) for row in result.mappings().all()],
        )

    async def get_doctor_schedules(
        self,
        doctor_id: int,
        clinic_id: int | None = None,
    ) -> list[ClinicSchedules]:
        """Get a doctor's schedules grouped by clinic."""
        stmt = select(doctor_schedules).where(doctor_schedules.c.doctor_id == doctor_id)
        if clinic_id is not None:
            stmt = stmt.where(doctor_schedules.c.clinic_id == clinic_id)
        stmt = stmt.order_by(doctor_schedules.c.clinic_id, doctor_schedules.c.day_of_week)

        rows = (await self.db.execute(stmt)).mappings().all()

        return [
            ClinicSchedules(
                clinic_id=key,
                schedules=[ScheduleResponse.model_validate(dict(row)) for row in group],
            )
            for key, group in groupby(rows, key=lambda row: row["clinic_id"])
        ]

    async def create_schedule(self, data: ScheduleCreate) -> ScheduleResponse:
        """
        Create a new weekly schedule row.

        Raises:
            ConflictException: If the doctor already has a schedule at the
                clinic on that weekday
        """
        async with unit_of_work(self.db, DUPLICATE_SCHEDULE):
            existing = await resolve_schedule(
                self.db, data.doctor_id, data.clinic_id, data.day_of_week
            )
            if existing:
                raise ConflictException(DUPLICATE_SCHEDULE)

            stmt = (
                insert(doctor_schedules)
                .values(
                    doctor_id=data.doctor_id,
                    clinic_id=data.clinic_id,
                    day_of_week=int(data.day_of_week),
                    start_time=data.start_time,
                    end_time=data.end_time,
                    slot_duration_minutes=data.slot_duration_minutes,
                    is_available=data.is_available,
                )
                .returning(doctor_schedules)
            )
            row = (await self.db.execute(stmt)).mappings().one()

        self._invalidate(data.doctor_id, data.clinic_id)
        logger.info(
            "schedule_created",
            schedule_id=row["id"],
            doctor_id=data.doctor_id,
            clinic_id=data.clinic_id,
            day_of_week=int(data.day_of_week),
        )

        return ScheduleResponse.model_validate(dict(row))

    async def update_schedule(self, schedule_id: int, data: ScheduleUpdate) -> ScheduleResponse:
        """
        Partially update a schedule.

        Moving the schedule to another doctor, clinic or weekday re-checks
        uniqueness. Moving or disabling it is refused while active
        appointments fall on its current weekday.

        Raises:
            NotFoundException: If schedule not found
            ConflictException: On a uniqueness clash or active appointments
            ValidationException: If the resulting window is empty
        """
        patch = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
        if "day_of_week" in patch:
            patch["day_of_week"] = int(patch["day_of_week"])

        async with unit_of_work(self.db, DUPLICATE_SCHEDULE):
            current = await self._get_row(schedule_id, lock=True)

            target = {key: patch.get(key, current[key]) for key in KEY_FIELDS}
            key_changed = any(target[key] != current[key] for key in KEY_FIELDS)

            if key_changed:
                clash = await resolve_schedule(self.db, **target)
                if clash and clash["id"] != schedule_id:
                    raise ConflictException(DUPLICATE_SCHEDULE)

            if patch.get("is_available") is False:
                await self._guard_active_appointments(current, "disable")
            elif key_changed:
                await self._guard_active_appointments(current, "move")

            start_time = patch.get("start_time", current["start_time"])
            end_time = patch.get("end_time", current["end_time"])
            if start_time and end_time and end_time <= start_time:
                raise ValidationException("End time must be after start time")

            if not patch:
                return ScheduleResponse.model_validate(dict(current))

            stmt = (
                update(doctor_schedules)
                .where(doctor_schedules.c.id == schedule_id)
                .values(**patch, updated_at=func.now())
                .returning(doctor_schedules)
            )
            row = (await self.db.execute(stmt)).mappings().one()

        self._invalidate(current["doctor_id"], current["clinic_id"])
        if key_changed:
            self._invalidate(row["doctor_id"], row["clinic_id"])

        logger.info("schedule_updated", schedule_id=schedule_id, fields=sorted(patch))

        return ScheduleResponse.model_validate(dict(row))

    async def delete_schedule(self, schedule_id: int) -> None:
        """
        Delete a schedule.

        Raises:
            NotFoundException: If schedule not found
            ConflictException: If active appointments fall on its weekday
        """
        async with unit_of_work(self.db):
            current = await self._get_row(schedule_id, lock=True)
            await self._guard_active_appointments(current, "delete")

            await self.db.execute(
                sql_delete(doctor_schedules).where(doctor_schedules.c.id == schedule_id)
            )

        self._invalidate(current["doctor_id"], current["clinic_id"])
        logger.info("schedule_deleted", schedule_id=schedule_id)

    async def toggle_availability(self, schedule_id: int) -> ScheduleAvailabilityResponse:
        """
        Flip a schedule between available and unavailable.

        Raises:
            NotFoundException: If schedule not found
            ConflictException: When disabling while active appointments
                fall on its weekday
        """
        async with unit_of_work(self.db):
            current = await self._get_row(schedule_id, lock=True)

            if current["is_available"]:
                await self._guard_active_appointments(current, "disable")

            stmt = (
                update(doctor_schedules)
                .where(doctor_schedules.c.id == schedule_id)
                .values(is_available=not current["is_available"], updated_at=func.now())
                .returning(doctor_schedules.c.is_available)
            )
            is_available = (await self.db.execute(stmt)).scalar_one()

        self._invalidate(current["doctor_id"], current["clinic_id"])
        logger.info("schedule_availability_toggled", schedule_id=schedule_id, is_available=is_available)

        return ScheduleAvailabilityResponse(schedule_id=schedule_id, is_available=is_available)

    async def bulk_upsert_schedules(self, data: ScheduleBulkUpsert) -> ScheduleBulkResult:
        """
        Create or update one schedule per weekday for a doctor at a clinic.

        Items that would disable a weekday holding active appointments are
        reported as failures; the rest are committed together.
        """
        result = ScheduleBulkResult()

        async with unit_of_work(self.db, DUPLICATE_SCHEDULE):
            for index, item in enumerate(data.schedules):
                values = item.model_dump()
                values["day_of_week"] = int(item.day_of_week)

                existing = await resolve_schedule(
                    self.db, data.doctor_id, data.clinic_id, item.day_of_week, lock=True
                )

                if existing is None:
                    await self.db.execute(
                        insert(doctor_schedules).values(
                            doctor_id=data.doctor_id,
                            clinic_id=data.clinic_id,
                            **values,
                        )
                    )
                    result.created += 1
                    continue

                if not item.is_available:
                    try:
                        await self._guard_active_appointments(existing, "disable")
                    except ConflictException as exc:
                        result.failed += 1
                        result.errors[index] = exc.message
                        continue

                await self.db.execute(
                    update(doctor_schedules)
                    .where(doctor_schedules.c.id == existing["id"])
                    .values(**values, updated_at=func.now())
                )
                result.updated += 1

        self._invalidate(data.doctor_id, data.clinic_id)
        logger.info(
            "schedules_bulk_upserted",
            doctor_id=data.doctor_id,
            clinic_id=data.clinic_id,
            created=result.created,
            updated=result.updated,
            failed=result.failed,
        )

        return result

    async def check_conflicts(self, data: ScheduleConflictCheck) -> ScheduleConflictReport:
        """Report what a proposed schedule change would collide with."""
        schedule = None
        proposed = data.model_dump(include=set(KEY_FIELDS))
        if data.schedule_id is not None:
            try:
                schedule = await self._get_row(data.schedule_id)
            except NotFoundException:
                return ScheduleConflictReport(has_conflicts=False, conflicts=[])
            proposed = {
                key: schedule[key] if value is None else value for key, value in proposed.items()
            }

        if any(value is None for value in proposed.values()):
            return ScheduleConflictReport(has_conflicts=False, conflicts=[])

        doctor_id = proposed["doctor_id"]
        clinic_id = proposed["clinic_id"]
        day_of_week = int(proposed["day_of_week"])

        conflicts: list[ScheduleConflict] = []

        existing = await resolve_schedule(self.db, doctor_id, clinic_id, day_of_week)
        if existing and (schedule is None or existing["id"] != schedule["id"]):
            conflicts.append(
                ScheduleConflict(
                    type="schedule_conflict",
                    message="Schedule already exists for this day",
                    conflicting_schedule_id=existing["id"],
                )
            )

        appointment_ids = await active_weekday_appointment_ids(
            self.db, doctor_id, clinic_id, day_of_week
        )
        if appointment_ids:
            conflicts.append(
                ScheduleConflict(
                    type="appointment_conflict",
                    message=f"Found {len(appointment_ids)} appointments on this day",
                    appointment_count=len(appointment_ids),
                    appointment_ids=appointment_ids,
                )
            )

        return ScheduleConflictReport(has_conflicts=bool(conflicts), conflicts=conflicts)

    async def utilization(self, schedule_id: int) -> ScheduleUtilization:
        """
        Booked active weekday appointments as a percentage of one day's slots.

        Raises:
            NotFoundException: If schedule not found
        """
        schedule = await self._get_row(schedule_id)

        total_slots = 0
        if schedule["start_time"] and schedule["end_time"]:
            start = schedule["start_time"]
            end = schedule["end_time"]
            minutes = (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
            total_slots = max(minutes, 0) // schedule["slot_duration_minutes"]

        booked = 0
        rate = 0.0
        if total_slots:
            booked = len(
                await active_weekday_appointment_ids(
                    self.db,
                    schedule["doctor_id"],
                    schedule["clinic_id"],
                    schedule["day_of_week"],
                )
            )
            rate = round(booked / total_slots * 100, 2)

        return ScheduleUtilization(
            schedule_id=schedule_id,
            total_slots=total_slots,
            booked_slots=booked,
            utilization_rate=rate,
        )
