"""Tests for the schedule service."""

from datetime import time, timedelta

import pytest
from pydantic import ValidationError

from clinic_scheduler.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from clinic_scheduler.schemas.schedules import (
    DayOfWeek,
    ScheduleBulkItem,
    ScheduleBulkUpsert,
    ScheduleConflictCheck,
    ScheduleCreate,
    ScheduleFilters,
    ScheduleUpdate,
)
from clinic_scheduler.services.schedule_service import ScheduleService
from tests.conftest import CLINIC_ID, DOCTOR_ID, at, upcoming


def _create(day: DayOfWeek = DayOfWeek.MONDAY, **overrides) -> ScheduleCreate:
    values = {
        "doctor_id": DOCTOR_ID,
        "clinic_id": CLINIC_ID,
        "day_of_week": day,
        "start_time": time(9, 0),
        "end_time": time(17, 0),
    }
    values.update(overrides)
    return ScheduleCreate(**values)


def test_schedule_requires_end_after_start():
    with pytest.raises(ValidationError):
        _create(start_time=time(12, 0), end_time=time(9, 0))


@pytest.mark.asyncio
async def test_create_and_get_schedule(db_session):
    service = ScheduleService(db_session)

    created = await service.create_schedule(_create())
    fetched = await service.get_schedule(created.id)

    assert fetched.day_of_week == DayOfWeek.MONDAY
    assert fetched.slot_duration_minutes == 30
    assert fetched.is_available is True


@pytest.mark.asyncio
async def test_duplicate_weekday_is_rejected(db_session):
    service = ScheduleService(db_session)
    await service.create_schedule(_create())

    with pytest.raises(ConflictException):
        await service.create_schedule(_create(start_time=time(13, 0)))

    # Another clinic on the same weekday is fine
    await service.create_schedule(_create(clinic_id=CLINIC_ID + 1))


@pytest.mark.asyncio
async def test_list_and_group_schedules(db_session):
    service = ScheduleService(db_session)
    await service.create_schedule(_create(DayOfWeek.TUESDAY))
    await service.create_schedule(_create(DayOfWeek.MONDAY))
    await service.create_schedule(_create(DayOfWeek.MONDAY, clinic_id=CLINIC_ID + 1))

    listing = await service.list_schedules(ScheduleFilters(clinic_id=CLINIC_ID))
    grouped = await service.get_doctor_schedules(DOCTOR_ID)

    assert listing.total == 2
    assert [item.day_of_week for item in listing.items] == [DayOfWeek.MONDAY, DayOfWeek.TUESDAY]
    assert [group.clinic_id for group in grouped] == [CLINIC_ID, CLINIC_ID + 1]
    assert len(grouped[0].schedules) == 2


@pytest.mark.asyncio
async def test_delete_blocked_by_active_appointment(db_session, make_appointment):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create())
    appointment_id = await make_appointment(at(upcoming(DayOfWeek.MONDAY), 10))

    with pytest.raises(ConflictException) as exc_info:
        await service.delete_schedule(schedule.id)

    assert exc_info.value.conflicting_ids == [appointment_id]
    assert exc_info.value.extra()["conflicting_appointments"] == 1
    assert (await service.get_schedule(schedule.id)).id == schedule.id


@pytest.mark.asyncio
async def test_past_appointments_still_block(db_session, make_appointment):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create())
    await make_appointment(at(upcoming(DayOfWeek.MONDAY) - timedelta(days=21), 10))

    assert await service.has_active_appointments(DOCTOR_ID, CLINIC_ID, DayOfWeek.MONDAY)

    with pytest.raises(ConflictException):
        await service.delete_schedule(schedule.id)


@pytest.mark.asyncio
async def test_delete_allowed_after_cancellation(db_session, make_appointment):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create())
    await make_appointment(at(upcoming(DayOfWeek.MONDAY), 10), status="cancelled")
    # Other weekdays never count
    await make_appointment(at(upcoming(DayOfWeek.TUESDAY), 10))

    await service.delete_schedule(schedule.id)

    with pytest.raises(NotFoundException):
        await service.get_schedule(schedule.id)


@pytest.mark.asyncio
async def test_disable_and_move_are_guarded(db_session, make_appointment):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create())
    await make_appointment(at(upcoming(DayOfWeek.MONDAY), 10))

    with pytest.raises(ConflictException):
        await service.update_schedule(schedule.id, ScheduleUpdate(is_available=False))

    with pytest.raises(ConflictException):
        await service.update_schedule(schedule.id, ScheduleUpdate(day_of_week=DayOfWeek.FRIDAY))

    with pytest.raises(ConflictException):
        await service.toggle_availability(schedule.id)

    # Window edits are allowed
    updated = await service.update_schedule(schedule.id, ScheduleUpdate(end_time=time(18, 0)))
    assert updated.end_time == time(18, 0)


@pytest.mark.asyncio
async def test_update_checks_merged_window(db_session):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create())

    with pytest.raises(ValidationException):
        await service.update_schedule(schedule.id, ScheduleUpdate(end_time=time(8, 0)))


@pytest.mark.asyncio
async def test_move_onto_existing_weekday_conflicts(db_session):
    service = ScheduleService(db_session)
    monday = await service.create_schedule(_create(DayOfWeek.MONDAY))
    await service.create_schedule(_create(DayOfWeek.TUESDAY))

    with pytest.raises(ConflictException):
        await service.update_schedule(monday.id, ScheduleUpdate(day_of_week=DayOfWeek.TUESDAY))


@pytest.mark.asyncio
async def test_toggle_availability_round_trip(db_session):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create())

    off = await service.toggle_availability(schedule.id)
    on = await service.toggle_availability(schedule.id)

    assert off.is_available is False
    assert on.is_available is True


@pytest.mark.asyncio
async def test_bulk_upsert_creates_updates_and_reports(db_session, make_appointment):
    service = ScheduleService(db_session)
    await service.create_schedule(_create(DayOfWeek.MONDAY))
    await service.create_schedule(_create(DayOfWeek.TUESDAY))
    await make_appointment(at(upcoming(DayOfWeek.TUESDAY), 10))

    result = await service.bulk_upsert_schedules(
        ScheduleBulkUpsert(
            doctor_id=DOCTOR_ID,
            clinic_id=CLINIC_ID,
            schedules=[
                ScheduleBulkItem(day_of_week=DayOfWeek.MONDAY, start_time=time(8), end_time=time(12)),
                ScheduleBulkItem(
                    day_of_week=DayOfWeek.TUESDAY,
                    start_time=time(9),
                    end_time=time(17),
                    is_available=False,
                ),
                ScheduleBulkItem(day_of_week=DayOfWeek.WEDNESDAY, start_time=time(9), end_time=time(13)),
            ],
        )
    )

    assert (result.created, result.updated, result.failed) == (1, 1, 1)
    assert list(result.errors) == [1]

    grouped = await service.get_doctor_schedules(DOCTOR_ID, CLINIC_ID)
    by_day = {s.day_of_week: s for s in grouped[0].schedules}
    assert by_day[DayOfWeek.MONDAY].start_time == time(8, 0)
    assert by_day[DayOfWeek.TUESDAY].is_available is True
    assert DayOfWeek.WEDNESDAY in by_day


@pytest.mark.asyncio
async def test_check_conflicts(db_session, make_appointment):
    service = ScheduleService(db_session)
    monday = await service.create_schedule(_create(DayOfWeek.MONDAY))
    await make_appointment(at(upcoming(DayOfWeek.MONDAY), 10))

    clash = await service.check_conflicts(
        ScheduleConflictCheck(doctor_id=DOCTOR_ID, clinic_id=CLINIC_ID, day_of_week=DayOfWeek.MONDAY)
    )
    own = await service.check_conflicts(ScheduleConflictCheck(schedule_id=monday.id))
    free = await service.check_conflicts(
        ScheduleConflictCheck(doctor_id=DOCTOR_ID, clinic_id=CLINIC_ID, day_of_week=DayOfWeek.SUNDAY)
    )

    assert {c.type for c in clash.conflicts} == {"schedule_conflict", "appointment_conflict"}
    assert [c.type for c in own.conflicts] == ["appointment_conflict"]
    assert free.has_conflicts is False


@pytest.mark.asyncio
async def test_utilization(db_session, make_appointment):
    service = ScheduleService(db_session)
    schedule = await service.create_schedule(_create(end_time=time(11, 0)))
    monday = upcoming(DayOfWeek.MONDAY)
    await make_appointment(at(monday, 9))
    await make_appointment(at(monday + timedelta(days=7), 9))
    await make_appointment(at(monday, 10), status="cancelled")

    report = await service.utilization(schedule.id)

    assert report.total_slots == 4
    assert report.booked_slots == 2
    assert report.utilization_rate == 50.0
