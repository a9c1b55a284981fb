"""Bulk operations over many appointments."""

from datetime import date, time

import structlog
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.core.exceptions import AppException
from clinic_scheduler.core.redis_client import CacheManager
from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.schemas.appointments import ACTIVE_STATUSES, BulkResult
from clinic_scheduler.services.appointment_events import AppointmentEventBus
from clinic_scheduler.services.appointment_service import AppointmentService

logger = structlog.get_logger(__name__)


class BulkOperationsService:
    """
    Applies lifecycle operations to many appointments.

    Items are handled one at a time in ascending id order and each commits
    on its own, so a failing item never undoes the ones before it.
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheManager | None = None,
        events: AppointmentEventBus | None = None,
    ):
        self.db = db
        self.appointments = AppointmentService(db, cache=cache, events=events)

    async def _existing_ids(self, appointment_ids: list[int]) -> list[int]:
        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    appointments.c.id.in_(sorted(set(appointment_ids))),
                    appointments.c.deleted_at.is_(None),
                )
            )
            .order_by(appointments.c.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def bulk_cancel(
        self,
        appointment_ids: list[int],
        reason: str | None = None,
    ) -> BulkResult:
        """
        Cancel several appointments.

        Ids that do not exist are left out of the result entirely.

        Args:
            appointment_ids: Appointments to cancel
            reason: Cancellation reason stored on each cancelled appointment

        Returns:
            Per-item results keyed by appointment id
        """
        result = BulkResult()

        for appointment_id in await self._existing_ids(appointment_ids):
            try:
                await self.appointments.cancel(appointment_id, reason=reason)
            except AppException as e:
                result.record_failure(appointment_id, e.message)
            else:
                result.record_success()

        logger.info(
            "bulk_cancel_completed",
            requested=len(appointment_ids),
            succeeded=result.succeeded,
            failed=result.failed,
        )

        return result

    async def bulk_reschedule_conflicts(
        self,
        doctor_id: int,
        clinic_id: int,
        date_from: date,
        date_to: date,
        new_date: date,
        new_time: time,
    ) -> BulkResult:
        """
        Move a doctor's active appointments in a date range to one target slot.

        Appointments are moved sequentially, so once one lands on the target
        slot the rest fail with the overlap reason.

        Returns:
            Per-item results keyed by appointment id
        """
        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.clinic_id == clinic_id,
                    appointments.c.appointment_date >= date_from,
                    appointments.c.appointment_date <= date_to,
                    appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
                    appointments.c.deleted_at.is_(None),
                )
            )
            .order_by(appointments.c.id)
        )
        appointment_ids = list((await self.db.execute(stmt)).scalars().all())

        result = BulkResult()

        for appointment_id in appointment_ids:
            try:
                await self.appointments.reschedule(appointment_id, new_date, new_time)
            except AppException as e:
                result.record_failure(appointment_id, e.message)
            else:
                result.record_success()

        logger.info(
            "bulk_reschedule_completed",
            doctor_id=doctor_id,
            clinic_id=clinic_id,
            matched=len(appointment_ids),
            succeeded=result.succeeded,
            failed=result.failed,
        )

        return result
