"""Tests for slot generation."""

from datetime import date, time, timedelta

import pytest

from clinic_scheduler.core.exceptions import ValidationException
from clinic_scheduler.schemas.schedules import DayOfWeek
from clinic_scheduler.services.availability_service import BookedInterval
from clinic_scheduler.services.slot_service import SlotService, generate_day_slots, iter_dates
from tests.conftest import CLINIC_ID, DOCTOR_ID, at, upcoming

MONDAY = date(2026, 10, 19)


def _schedule(**overrides) -> dict:
    schedule = {
        "start_time": time(9, 0),
        "end_time": time(12, 0),
        "slot_duration_minutes": 30,
        "is_available": True,
    }
    schedule.update(overrides)
    return schedule


def test_day_of_week_counts_from_sunday():
    assert DayOfWeek.from_date(date(2026, 10, 18)) == DayOfWeek.SUNDAY
    assert DayOfWeek.from_date(MONDAY) == DayOfWeek.MONDAY
    assert DayOfWeek.from_date(date(2026, 10, 24)) == DayOfWeek.SATURDAY


def test_generate_day_slots_steps_through_window():
    slots = generate_day_slots(MONDAY, _schedule())

    assert len(slots) == 6
    assert slots[0].start == at(MONDAY, 9)
    assert slots[-1].end == at(MONDAY, 12)
    for slot in slots:
        assert slot.date == MONDAY
        assert slot.end - slot.start == timedelta(minutes=30)
    for earlier, later in zip(slots, slots[1:]):
        assert earlier.end == later.start


def test_generate_day_slots_drops_partial_tail():
    slots = generate_day_slots(MONDAY, _schedule(end_time=time(10, 40)))

    assert [slot.start.time() for slot in slots] == [time(9, 0), time(9, 30), time(10, 0)]
    assert slots[-1].end <= at(MONDAY, 10, 40)


@pytest.mark.parametrize(
    "schedule",
    [
        None,
        _schedule(is_available=False),
        _schedule(start_time=None),
        _schedule(end_time=None),
    ],
)
def test_generate_day_slots_empty_without_usable_schedule(schedule):
    assert generate_day_slots(MONDAY, schedule) == []


def test_generate_day_slots_excludes_overlapping_bookings():
    booked = [
        BookedInterval(1, at(MONDAY, 9, 30), at(MONDAY, 10)),
        # A 45 minute booking blocks two 30 minute slots
        BookedInterval(2, at(MONDAY, 10, 45), at(MONDAY, 11, 30)),
    ]

    starts = [slot.start.time() for slot in generate_day_slots(MONDAY, _schedule(), booked)]

    assert starts == [time(9, 0), time(10, 0), time(11, 30)]


def test_touching_booking_does_not_block_neighbours():
    booked = [BookedInterval(1, at(MONDAY, 10), at(MONDAY, 10, 30))]

    starts = [slot.start.time() for slot in generate_day_slots(MONDAY, _schedule(), booked)]

    assert time(9, 30) in starts
    assert time(10, 30) in starts
    assert time(10, 0) not in starts


def test_iter_dates_is_inclusive():
    days = list(iter_dates(MONDAY, MONDAY + timedelta(days=2)))
    assert days == [MONDAY, MONDAY + timedelta(days=1), MONDAY + timedelta(days=2)]


@pytest.mark.asyncio
async def test_generate_slots_skips_active_appointments(db_session, make_schedule, make_appointment):
    day = upcoming(DayOfWeek.MONDAY)
    await make_schedule(DayOfWeek.MONDAY)
    await make_appointment(at(day, 9, 30))
    await make_appointment(at(day, 10, 0), status="cancelled")

    slots = await SlotService(db_session).generate_slots(DOCTOR_ID, CLINIC_ID, day)

    starts = [slot.start.time() for slot in slots]
    assert time(9, 30) not in starts
    assert time(10, 0) in starts
    assert len(slots) == 5


@pytest.mark.asyncio
async def test_generate_slots_uses_each_booking_duration(db_session, make_schedule, make_appointment):
    day = upcoming(DayOfWeek.MONDAY)
    await make_schedule(DayOfWeek.MONDAY, slot_duration_minutes=15)
    # Booked while the schedule still used 60 minute slots
    await make_appointment(at(day, 9, 0), duration_minutes=60)

    slots = await SlotService(db_session).generate_slots(DOCTOR_ID, CLINIC_ID, day)

    assert slots[0].start == at(day, 10, 0)


@pytest.mark.asyncio
async def test_list_available_slots_concatenates_days(db_session, make_schedule):
    monday = upcoming(DayOfWeek.MONDAY)
    await make_schedule(DayOfWeek.MONDAY)
    await make_schedule(DayOfWeek.TUESDAY, start_time=time(14, 0), end_time=time(15, 0))

    result = await SlotService(db_session).list_available_slots(
        DOCTOR_ID, CLINIC_ID, monday, monday + timedelta(days=2)
    )

    assert result.total_slots == 8
    assert [slot.date for slot in result.slots] == [monday] * 6 + [monday + timedelta(days=1)] * 2


@pytest.mark.asyncio
async def test_list_available_slots_is_repeatable(db_session, make_schedule):
    monday = upcoming(DayOfWeek.MONDAY)
    await make_schedule(DayOfWeek.MONDAY)
    service = SlotService(db_session)

    first = await service.list_available_slots(DOCTOR_ID, CLINIC_ID, monday, monday)
    second = await service.list_available_slots(DOCTOR_ID, CLINIC_ID, monday, monday)

    assert first == second


@pytest.mark.asyncio
async def test_list_available_slots_rejects_bad_ranges(db_session):
    service = SlotService(db_session)
    monday = upcoming(DayOfWeek.MONDAY)

    with pytest.raises(ValidationException):
        await service.list_available_slots(DOCTOR_ID, CLINIC_ID, monday, monday - timedelta(days=1))

    with pytest.raises(ValidationException):
        await service.list_available_slots(DOCTOR_ID, CLINIC_ID, monday, monday + timedelta(days=60))
