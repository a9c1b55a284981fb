"""Appointment endpoints."""

from datetime import date

from fastapi import APIRouter, Query, Response, status

from clinic_scheduler.dependencies import (
    CurrentCaller,
    DatabaseSession,
    ElevatedCaller,
    EventBus,
    SlotCache,
)
from clinic_scheduler.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    BulkCancelRequest,
    BulkOutcome,
    BulkResponse,
    BulkResult,
    BulkRescheduleRequest,
)
from clinic_scheduler.services.appointment_service import AppointmentService
from clinic_scheduler.services.bulk_service import BulkOperationsService

router = APIRouter()

BULK_STATUS_CODES = {
    BulkOutcome.SUCCESS: status.HTTP_200_OK,
    BulkOutcome.PARTIAL: status.HTTP_207_MULTI_STATUS,
    BulkOutcome.FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def _bulk_response(response: Response, action: str, result: BulkResult) -> BulkResponse:
    response.status_code = BULK_STATUS_CODES[result.outcome]
    return BulkResponse(
        message=f"{result.succeeded} appointments {action}, {result.failed} failed",
        outcome=result.outcome,
        data=result,
    )


@router.post(
    "/bulk-cancel",
    response_model=BulkResponse,
    tags=["Appointments"],
    summary="Cancel several appointments",
)
async def bulk_cancel(
    data: BulkCancelRequest,
    response: Response,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
) -> BulkResponse:
    """
    Cancel appointments one by one.

    Responds 200 when every appointment was cancelled, 207 when only some
    were and 422 when none were.
    """
    service = BulkOperationsService(db, cache=cache, events=events)
    result = await service.bulk_cancel(data.appointment_ids, reason=data.reason)
    return _bulk_response(response, "cancelled", result)


@router.post(
    "/bulk-reschedule-conflicts",
    response_model=BulkResponse,
    tags=["Appointments"],
    summary="Move appointments in a date range to one slot",
)
async def bulk_reschedule_conflicts(
    data: BulkRescheduleRequest,
    response: Response,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
) -> BulkResponse:
    """Reschedule a doctor's active appointments in a date range, in id order."""
    service = BulkOperationsService(db, cache=cache, events=events)
    result = await service.bulk_reschedule_conflicts(
        data.doctor_id,
        data.clinic_id,
        data.date_from,
        data.date_to,
        data.new_date,
        data.new_time,
    )
    return _bulk_response(response, "rescheduled", result)


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
) -> AppointmentResponse:
    """
    Book an appointment.

    Args:
        data: Appointment creation data
        caller: Authenticated caller
        db: Database session
        cache: Slot cache
        events: Status change subscribers

    Returns:
        Created appointment in pending status
    """
    service = AppointmentService(db, cache=cache, events=events)
    return await service.create_appointment(data, caller=caller)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    caller: CurrentCaller,
    db: DatabaseSession,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    doctor_id: int | None = Query(None),
    clinic_id: int | None = Query(None),
    patient_id: int | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(15, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Patients only see their own appointments; staff may filter by patient.
    """
    filters = AppointmentFilters(
        status=status_filter,
        doctor_id=doctor_id,
        clinic_id=clinic_id,
        patient_id=patient_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )

    service = AppointmentService(db)
    return await service.list_appointments(filters, caller=caller)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID or UUID",
)
async def get_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
) -> AppointmentResponse:
    service = AppointmentService(db)
    return await service.get_appointment(appointment_id, caller=caller)


@router.patch(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment details",
)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    caller: CurrentCaller,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Update reason, notes or type. Use reschedule to move the appointment."""
    service = AppointmentService(db)
    return await service.update_appointment(appointment_id, data, caller=caller)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
) -> AppointmentResponse:
    service = AppointmentService(db, cache=cache, events=events)
    return await service.confirm(appointment_id, caller=caller)


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Complete appointment",
)
async def complete_appointment(
    appointment_id: str,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
) -> AppointmentResponse:
    service = AppointmentService(db, cache=cache, events=events)
    return await service.complete(appointment_id, caller=caller)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
    data: AppointmentCancel | None = None,
) -> AppointmentResponse:
    """
    Cancel an appointment.

    Args:
        appointment_id: Appointment ID or UUID
        caller: Authenticated caller
        db: Database session
        cache: Slot cache
        events: Status change subscribers
        data: Optional cancellation reason

    Returns:
        Cancelled appointment
    """
    service = AppointmentService(db, cache=cache, events=events)
    return await service.cancel(
        appointment_id,
        reason=data.reason if data else None,
        caller=caller,
    )


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: str,
    data: AppointmentReschedule,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: SlotCache,
    events: EventBus,
) -> AppointmentResponse:
    """
    Move an appointment to another slot.

    The appointment returns to pending and must be confirmed again.
    """
    service = AppointmentService(db, cache=cache, events=events)
    return await service.reschedule(
        appointment_id,
        data.appointment_date,
        data.appointment_time,
        caller=caller,
    )


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: str,
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: SlotCache,
) -> None:
    """Soft delete an appointment, releasing its slot."""
    service = AppointmentService(db, cache=cache)
    await service.delete_appointment(appointment_id, caller=caller)


@router.post(
    "/{appointment_id}/restore",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Restore deleted appointment",
)
async def restore_appointment(
    appointment_id: str,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
) -> AppointmentResponse:
    service = AppointmentService(db, cache=cache)
    return await service.restore_appointment(appointment_id, caller=caller)
