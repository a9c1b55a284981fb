"""Appointment service: booking and the appointment lifecycle."""

from datetime import UTC, date, datetime, time
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.config import settings
from clinic_scheduler.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    TransitionException,
    ValidationException,
)
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.database import parse_row_id, unit_of_work
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
)
from clinic_scheduler.schemas.auth import Caller
from clinic_scheduler.schemas.schedules import DayOfWeek
from clinic_scheduler.services.appointment_events import AppointmentEventBus, appointment_events
from clinic_scheduler.services.availability_service import SLOT_OVERLAP, AvailabilityService
from clinic_scheduler.services.schedule_service import resolve_schedule

logger = structlog.get_logger(__name__)

# Every status change not listed here is rejected
ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

PUBLISHED_STATUSES = frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED})


def can_transition(current: AppointmentStatus, requested: AppointmentStatus) -> bool:
    """Whether the lifecycle allows moving from ``current`` to ``requested``."""
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: AppointmentStatus, requested: AppointmentStatus) -> None:
    """
    Raise if the status change is not allowed.

    Raises:
        TransitionException: Carrying both statuses
    """
    if not can_transition(current, requested):
        raise TransitionException(current.value, requested.value)


def _now() -> datetime:
    return datetime.now(UTC)


class AppointmentService:
    """Service for managing appointments."""

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheManager | None = None,
        events: AppointmentEventBus | None = None,
    ):
        """Initialize service with database session, optional cache and event bus."""
        self.db = db
        self.cache = cache
        self.events = events if events is not None else appointment_events
        self.availability = AvailabilityService(db)

    def _invalidate(self, doctor_id: int, clinic_id: int) -> None:
        if self.cache:
            self.cache.invalidate_slots(doctor_id, clinic_id)

    async def _fetch(
        self,
        identifier: int | str | UUID,
        *,
        lock: bool = False,
        include_deleted: bool = False,
    ) -> RowMapping:
        """
        Load an appointment row by numeric id or public uuid.

        Raises:
            NotFoundException: If no matching appointment exists
        """
        if isinstance(identifier, int):
            condition = appointments.c.id == identifier
        elif isinstance(identifier, str) and identifier.isdigit():
            row_id = parse_row_id(identifier)
            if row_id is None:
                raise NotFoundException("Appointment not found")
            condition = appointments.c.id == row_id
        else:
            try:
                public_id = identifier if isinstance(identifier, UUID) else UUID(identifier)
            except ValueError:
                raise NotFoundException("Appointment not found") from None
            condition = appointments.c.uuid == str(public_id)

        stmt = select(appointments).where(condition)
        if not include_deleted:
            stmt = stmt.where(appointments.c.deleted_at.is_(None))
        if lock:
            stmt = stmt.with_for_update()

        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found")

        return row

    @staticmethod
    def _authorize(row: RowMapping, caller: Caller | None) -> None:
        if caller is not None and not caller.can_manage(row["patient_id"]):
            raise ForbiddenException("Access denied to this appointment")

    async def _lock_slot_duration(self, doctor_id: int, clinic_id: int, day: date) -> int:
        """
        Lock the governing schedule row and return its slot duration.

        Bookings for the same doctor, clinic and weekday queue up behind the
        lock until the surrounding transaction ends.
        """
        schedule = await resolve_schedule(
            self.db, doctor_id, clinic_id, DayOfWeek.from_date(day), lock=True
        )
        if schedule is None:
            return settings.default_slot_duration_minutes
        return schedule["slot_duration_minutes"]

    async def create_appointment(
        self,
        data: AppointmentCreate,
        caller: Caller | None = None,
    ) -> AppointmentResponse:
        """
        Book a new appointment in ``pending`` status.

        Args:
            data: Appointment creation data
            caller: Identity booking the appointment; None for internal calls

        Returns:
            Created appointment

        Raises:
            ForbiddenException: If the caller books for another patient
            ConflictException: If the slot is not available
        """
        if caller is not None and not caller.can_manage(data.patient_id):
            raise ForbiddenException("Cannot book appointments for another patient")

        start = data.appointment_start

        async with unit_of_work(self.db, SLOT_OVERLAP):
            duration = await self._lock_slot_duration(data.doctor_id, data.clinic_id, start.date())
            await self.availability.ensure_available(
                data.doctor_id, data.clinic_id, start, duration
            )

            stmt = (
                insert(appointments)
                .values(
                    patient_id=data.patient_id,
                    doctor_id=data.doctor_id,
                    clinic_id=data.clinic_id,
                    service_id=data.service_id,
                    appointment_type=data.appointment_type.value,
                    appointment_date=start.date(),
                    appointment_start=start,
                    duration_minutes=duration,
                    status=AppointmentStatus.PENDING.value,
                    reason=data.reason,
                    patient_notes=data.patient_notes,
                )
                .returning(appointments)
            )
            row = (await self.db.execute(stmt)).mappings().one()

        self._invalidate(data.doctor_id, data.clinic_id)
        logger.info(
            "appointment_created",
            appointment_id=row["id"],
            doctor_id=data.doctor_id,
            clinic_id=data.clinic_id,
            appointment_start=start.isoformat(),
            duration_minutes=duration,
        )

        return AppointmentResponse.model_validate(dict(row))

    async def get_appointment(
        self,
        identifier: int | str | UUID,
        caller: Caller | None = None,
    ) -> AppointmentResponse:
        """
        Get appointment by id or uuid.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
        """
        row = await self._fetch(identifier)
        self._authorize(row, caller)
        return AppointmentResponse.model_validate(dict(row))

    async def list_appointments(
        self,
        filters: AppointmentFilters,
        caller: Caller | None = None,
    ) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Patients only ever see their own appointments.

        Args:
            filters: Filter and pagination parameters
            caller: Requesting identity; None for internal calls

        Returns:
            Paginated list of appointments
        """
        conditions = [appointments.c.deleted_at.is_(None)]

        if caller is not None and not caller.is_elevated:
            conditions.append(appointments.c.patient_id == caller.user_id)
        elif filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.clinic_id:
            conditions.append(appointments.c.clinic_id == filters.clinic_id)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        count_stmt = select(func.count()).select_from(appointments).where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(and_(*conditions))
            .order_by(appointments.c.appointment_start.desc(), appointments.c.id.desc())
            .limit(filters.page_size)
            .offset(offset)
        )
        rows = (await self.db.execute(stmt)).mappings().all()

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(dict(row)) for row in rows],
        )

    async def update_appointment(
        self,
        identifier: int | str | UUID,
        data: AppointmentUpdate,
        caller: Caller | None = None,
    ) -> AppointmentResponse:
        """
        Update descriptive fields of an appointment.

        Scheduling fields and status only change through reschedule and the
        status transitions.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
        """
        update_values: dict[str, Any] = {}
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                update_values[field] = value.value if field == "appointment_type" else value

        if "doctor_notes" in update_values and caller is not None and not caller.is_elevated:
            raise ForbiddenException("Only clinic staff can edit doctor notes")

        async with unit_of_work(self.db):
            row = await self._fetch(identifier, lock=True)
            self._authorize(row, caller)

            if not update_values:
                return AppointmentResponse.model_validate(dict(row))

            stmt = (
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(**update_values, updated_at=_now())
                .returning(appointments)
            )
            row = (await self.db.execute(stmt)).mappings().one()

        logger.info("appointment_updated", appointment_id=row["id"], fields=sorted(update_values))

        return AppointmentResponse.model_validate(dict(row))

    async def transition_to(
        self,
        identifier: int | str | UUID,
        new_status: AppointmentStatus,
        *,
        caller: Caller | None = None,
        cancellation_reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new status.

        Args:
            identifier: Appointment id or uuid
            new_status: Requested status
            caller: Acting identity; None for internal calls
            cancellation_reason: Stored when cancelling

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
            TransitionException: If the change is not allowed; nothing is
                persisted
        """
        async with unit_of_work(self.db):
            row = await self._fetch(identifier, lock=True)
            self._authorize(row, caller)

            old_status = AppointmentStatus(row["status"])
            ensure_transition(old_status, new_status)

            values: dict[str, Any] = {"status": new_status.value, "updated_at": _now()}
            if new_status == AppointmentStatus.CANCELLED:
                values["cancelled_at"] = _now()
                values["cancellation_reason"] = cancellation_reason
                values["cancelled_by"] = caller.user_id if caller else None

            stmt = (
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(**values)
                .returning(appointments)
            )
            row = (await self.db.execute(stmt)).mappings().one()

        self._invalidate(row["doctor_id"], row["clinic_id"])
        logger.info(
            "appointment_status_changed",
            appointment_id=row["id"],
            old_status=old_status.value,
            new_status=new_status.value,
        )

        appointment = AppointmentResponse.model_validate(dict(row))
        if new_status in PUBLISHED_STATUSES:
            await self.events.publish_status_change(appointment, old_status)

        return appointment

    async def confirm(
        self, identifier: int | str | UUID, caller: Caller | None = None
    ) -> AppointmentResponse:
        return await self.transition_to(identifier, AppointmentStatus.CONFIRMED, caller=caller)

    async def complete(
        self, identifier: int | str | UUID, caller: Caller | None = None
    ) -> AppointmentResponse:
        return await self.transition_to(identifier, AppointmentStatus.COMPLETED, caller=caller)

    async def cancel(
        self,
        identifier: int | str | UUID,
        reason: str | None = None,
        caller: Caller | None = None,
    ) -> AppointmentResponse:
        return await self.transition_to(
            identifier,
            AppointmentStatus.CANCELLED,
            caller=caller,
            cancellation_reason=reason,
        )

    async def reschedule(
        self,
        identifier: int | str | UUID,
        new_date: date,
        new_start: time | datetime,
        caller: Caller | None = None,
    ) -> AppointmentResponse:
        """
        Move an active appointment to another slot.

        The appointment's own interval is ignored by the overlap check. On
        success the date, start and duration snapshot are replaced and the
        appointment returns to ``pending``.

        Args:
            identifier: Appointment id or uuid
            new_date: Target date
            new_start: Target wall-clock time, or a datetime on ``new_date``
            caller: Acting identity; None for internal calls

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
            TransitionException: If the appointment is completed, cancelled
                or no-show
            ConflictException: If the target slot is not available
        """
        if isinstance(new_start, datetime):
            if new_start.date() != new_date:
                raise ValidationException("New start time must fall on the new date")
            start = new_start.replace(tzinfo=None)
        else:
            start = datetime.combine(new_date, new_start)

        async with unit_of_work(self.db, SLOT_OVERLAP):
            row = await self._fetch(identifier, lock=True)
            self._authorize(row, caller)

            current = AppointmentStatus(row["status"])
            if current.is_terminal:
                raise TransitionException(
                    current.value,
                    AppointmentStatus.PENDING.value,
                    f"Cannot reschedule an appointment that is '{current.value}'.",
                )

            duration = await self._lock_slot_duration(row["doctor_id"], row["clinic_id"], new_date)
            await self.availability.ensure_available(
                row["doctor_id"],
                row["clinic_id"],
                start,
                duration,
                ignore_appointment_id=row["id"],
            )

            stmt = (
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(
                    appointment_date=new_date,
                    appointment_start=start,
                    duration_minutes=duration,
                    status=AppointmentStatus.PENDING.value,
                    updated_at=_now(),
                )
                .returning(appointments)
            )
            updated = (await self.db.execute(stmt)).mappings().one()

        self._invalidate(updated["doctor_id"], updated["clinic_id"])
        logger.info(
            "appointment_rescheduled",
            appointment_id=updated["id"],
            old_start=row["appointment_start"].isoformat(),
            new_start=start.isoformat(),
            old_status=current.value,
        )

        return AppointmentResponse.model_validate(dict(updated))

    async def delete_appointment(
        self,
        identifier: int | str | UUID,
        caller: Caller | None = None,
    ) -> None:
        """
        Soft delete an appointment, releasing its slot.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
        """
        async with unit_of_work(self.db):
            row = await self._fetch(identifier, lock=True)
            self._authorize(row, caller)

            await self.db.execute(
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(deleted_at=_now(), updated_at=_now())
            )

        self._invalidate(row["doctor_id"], row["clinic_id"])
        logger.info("appointment_deleted", appointment_id=row["id"])

    async def restore_appointment(
        self,
        identifier: int | str | UUID,
        caller: Caller | None = None,
    ) -> AppointmentResponse:
        """
        Undo a soft delete.

        An active appointment only comes back if its slot is still free.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If caller doesn't have access
            ValidationException: If the appointment is not deleted
            ConflictException: If the slot has been taken since
        """
        async with unit_of_work(self.db, SLOT_OVERLAP):
            row = await self._fetch(identifier, lock=True, include_deleted=True)
            self._authorize(row, caller)

            if row["deleted_at"] is None:
                raise ValidationException("Appointment is not deleted")

            if AppointmentStatus(row["status"]).is_active:
                await self._lock_slot_duration(
                    row["doctor_id"], row["clinic_id"], row["appointment_date"]
                )
                await self.availability.ensure_available(
                    row["doctor_id"],
                    row["clinic_id"],
                    row["appointment_start"],
                    row["duration_minutes"],
                    ignore_appointment_id=row["id"],
                )

            stmt = (
                update(appointments)
                .where(appointments.c.id == row["id"])
                .values(deleted_at=None, updated_at=_now())
                .returning(appointments)
            )
            row = (await self.db.execute(stmt)).mappings().one()

        self._invalidate(row["doctor_id"], row["clinic_id"])
        logger.info("appointment_restored", appointment_id=row["id"])

        return AppointmentResponse.model_validate(dict(row))
