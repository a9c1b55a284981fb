"""Tests for the availability checker."""

from datetime import datetime, time

import pytest

from clinic_scheduler.core.exceptions import ConflictException
from clinic_scheduler.schemas.schedules import DayOfWeek
from clinic_scheduler.services.availability_service import (
    DOCTOR_UNAVAILABLE,
    OUTSIDE_SCHEDULE,
    SCHEDULE_NOT_CONFIGURED,
    SLOT_OVERLAP,
    AvailabilityService,
    intervals_overlap,
)
from tests.conftest import CLINIC_ID, DOCTOR_ID, at, upcoming


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ((9, 0, 9, 30), (9, 30, 10, 0), False),
        ((9, 0, 10, 0), (9, 30, 10, 30), True),
        ((9, 0, 12, 0), (10, 0, 10, 30), True),
        ((10, 0, 10, 30), (9, 0, 9, 30), False),
    ],
)
def test_intervals_overlap_is_half_open(a, b, expected):
    day = datetime(2026, 10, 19)

    def span(h1, m1, h2, m2):
        return day.replace(hour=h1, minute=m1), day.replace(hour=h2, minute=m2)

    assert intervals_overlap(*span(*a), *span(*b)) is expected
    assert intervals_overlap(*span(*b), *span(*a)) is expected


@pytest.mark.asyncio
async def test_available_inside_free_window(db_session, make_schedule):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, 11, 30), 30
    )

    assert result.ok
    assert result.reason is None


@pytest.mark.asyncio
async def test_no_schedule_means_unavailable(db_session):
    day = upcoming(DayOfWeek.WEDNESDAY)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, 9), 30
    )

    assert not result.ok
    assert result.reason == DOCTOR_UNAVAILABLE


@pytest.mark.asyncio
async def test_disabled_schedule_means_unavailable(db_session, make_schedule):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY, is_available=False)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, 9), 30
    )

    assert result.reason == DOCTOR_UNAVAILABLE


@pytest.mark.asyncio
async def test_schedule_without_times_is_not_configured(db_session, make_schedule):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY, start_time=None, end_time=None)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, 9), 30
    )

    assert result.reason == SCHEDULE_NOT_CONFIGURED


@pytest.mark.parametrize(("hour", "minute"), [(8, 30), (8, 45), (11, 45), (12, 0)])
@pytest.mark.asyncio
async def test_outside_window_is_rejected(db_session, make_schedule, hour, minute):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, hour, minute), 30
    )

    assert result.reason == OUTSIDE_SCHEDULE


@pytest.mark.asyncio
async def test_overlap_with_active_appointment(db_session, make_schedule, make_appointment):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY)
    await make_appointment(at(day, 10), duration_minutes=60)

    service = AvailabilityService(db_session)

    assert (await service.is_available(DOCTOR_ID, CLINIC_ID, at(day, 10, 30), 30)).reason == SLOT_OVERLAP
    assert (await service.is_available(DOCTOR_ID, CLINIC_ID, at(day, 9, 45), 30)).reason == SLOT_OVERLAP
    assert (await service.is_available(DOCTOR_ID, CLINIC_ID, at(day, 11), 30)).ok
    assert (await service.is_available(DOCTOR_ID, CLINIC_ID, at(day, 9, 30), 30)).ok


@pytest.mark.asyncio
async def test_terminal_and_deleted_appointments_do_not_block(
    db_session, make_schedule, make_appointment
):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY)
    for status in ("cancelled", "completed", "no_show"):
        await make_appointment(at(day, 10), status=status)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, 10), 30
    )

    assert result.ok


@pytest.mark.asyncio
async def test_ignored_appointment_does_not_block_itself(
    db_session, make_schedule, make_appointment
):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY)
    appointment_id = await make_appointment(at(day, 10))

    service = AvailabilityService(db_session)

    assert not (await service.is_available(DOCTOR_ID, CLINIC_ID, at(day, 10, 15), 30)).ok
    assert (
        await service.is_available(
            DOCTOR_ID, CLINIC_ID, at(day, 10, 15), 30, ignore_appointment_id=appointment_id
        )
    ).ok


@pytest.mark.asyncio
async def test_other_doctor_does_not_block(db_session, make_schedule, make_appointment):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY)
    await make_appointment(at(day, 10), doctor_id=DOCTOR_ID + 1)

    result = await AvailabilityService(db_session).is_available(
        DOCTOR_ID, CLINIC_ID, at(day, 10), 30
    )

    assert result.ok


@pytest.mark.asyncio
async def test_ensure_available_raises_with_reason(db_session, make_schedule):
    day = upcoming(DayOfWeek.WEDNESDAY)
    await make_schedule(DayOfWeek.WEDNESDAY, end_time=time(10, 0))

    with pytest.raises(ConflictException) as exc_info:
        await AvailabilityService(db_session).ensure_available(
            DOCTOR_ID, CLINIC_ID, at(day, 9, 45), 30
        )

    assert exc_info.value.message == OUTSIDE_SCHEDULE
    assert exc_info.value.status_code == 409
