"""Doctor schedule and slot endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from clinic_scheduler.dependencies import CurrentCaller, DatabaseSession, ElevatedCaller, SlotCache
from clinic_scheduler.schemas.schedules import (
    AvailableSlotsResponse,
    ClinicSchedules,
    DayOfWeek,
    ScheduleAvailabilityResponse,
    ScheduleBulkResult,
    ScheduleBulkUpsert,
    ScheduleConflictCheck,
    ScheduleConflictReport,
    ScheduleCreate,
    ScheduleFilters,
    ScheduleListResponse,
    ScheduleResponse,
    ScheduleUpdate,
    ScheduleUtilization,
)
from clinic_scheduler.services.schedule_service import ScheduleService
from clinic_scheduler.services.slot_service import SlotService

router = APIRouter()


# ============================================================================
# Schedule collection endpoints
# ============================================================================


@router.get("/", response_model=ScheduleListResponse)
async def list_schedules(
    caller: CurrentCaller,
    db: DatabaseSession,
    doctor_id: int | None = Query(None),
    clinic_id: int | None = Query(None),
    day_of_week: DayOfWeek | None = Query(None),
    is_available: bool | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(15, ge=1, le=100),
):
    """List schedules, optionally filtered by doctor, clinic, weekday or availability."""
    filters = ScheduleFilters(
        doctor_id=doctor_id,
        clinic_id=clinic_id,
        day_of_week=day_of_week,
        is_available=is_available,
        page=page,
        page_size=page_size,
    )
    return await ScheduleService(db).list_schedules(filters)


@router.post("/", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    data: ScheduleCreate,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
):
    """
    Create a weekly schedule for a doctor at a clinic.

    - **day_of_week**: 0 (Sunday) to 6 (Saturday)
    - **start_time / end_time**: Working window, end after start
    - **slot_duration_minutes**: Length of each bookable slot (15-480)
    """
    return await ScheduleService(db, cache).create_schedule(data)


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def list_available_slots(
    caller: CurrentCaller,
    db: DatabaseSession,
    cache: SlotCache,
    doctor_id: int = Query(..., ge=1),
    clinic_id: int = Query(..., ge=1),
    date_from: date = Query(...),
    date_to: date | None = Query(None, description="Defaults to date_from"),
):
    """Free slots of a doctor at a clinic, date by date."""
    return await SlotService(db, cache).list_available_slots(
        doctor_id, clinic_id, date_from, date_to or date_from
    )


@router.post("/bulk", response_model=ScheduleBulkResult)
async def bulk_upsert_schedules(
    data: ScheduleBulkUpsert,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
):
    """Create or update several weekdays of a doctor's schedule at a clinic."""
    return await ScheduleService(db, cache).bulk_upsert_schedules(data)


@router.post("/check-conflicts", response_model=ScheduleConflictReport)
async def check_conflicts(
    data: ScheduleConflictCheck,
    caller: ElevatedCaller,
    db: DatabaseSession,
):
    """Report what a proposed schedule change would collide with."""
    return await ScheduleService(db).check_conflicts(data)


@router.get("/doctors/{doctor_id}", response_model=list[ClinicSchedules])
async def get_doctor_schedules(
    doctor_id: int,
    caller: CurrentCaller,
    db: DatabaseSession,
    clinic_id: int | None = Query(None),
):
    """A doctor's schedules grouped by clinic."""
    return await ScheduleService(db).get_doctor_schedules(doctor_id, clinic_id)


# ============================================================================
# Single schedule endpoints
# ============================================================================


@router.get("/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(schedule_id: int, caller: CurrentCaller, db: DatabaseSession):
    return await ScheduleService(db).get_schedule(schedule_id)


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
async def update_schedule(
    schedule_id: int,
    data: ScheduleUpdate,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
):
    """
    Partially update a schedule.

    Disabling the schedule or moving it to another doctor, clinic or weekday
    is refused with 409 while active appointments fall on its weekday.
    """
    return await ScheduleService(db, cache).update_schedule(schedule_id, data)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_schedule(
    schedule_id: int,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
):
    """Delete a schedule that has no active appointments on its weekday."""
    await ScheduleService(db, cache).delete_schedule(schedule_id)


@router.patch("/{schedule_id}/toggle-availability", response_model=ScheduleAvailabilityResponse)
async def toggle_availability(
    schedule_id: int,
    caller: ElevatedCaller,
    db: DatabaseSession,
    cache: SlotCache,
):
    return await ScheduleService(db, cache).toggle_availability(schedule_id)


@router.get("/{schedule_id}/utilization", response_model=ScheduleUtilization)
async def get_utilization(
    schedule_id: int,
    caller: ElevatedCaller,
    db: DatabaseSession,
):
    """Share of one day's slots held by active appointments on the weekday."""
    return await ScheduleService(db).utilization(schedule_id)
