import os
from collections.abc import AsyncGenerator
from datetime import date, datetime, time, timedelta

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Load environment variables from .env file, then pin the test configuration
load_dotenv()
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["CACHE_ENABLED"] = "false"

from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clinic_scheduler.core.security import create_access_token
from clinic_scheduler.database import get_db
from clinic_scheduler.dependencies import get_cache_manager, get_event_bus
from clinic_scheduler.main import app
from clinic_scheduler.models import appointments, doctor_schedules, metadata
from clinic_scheduler.schemas.schedules import DayOfWeek
from clinic_scheduler.services.appointment_events import AppointmentEventBus

DOCTOR_ID = 7
CLINIC_ID = 3
PATIENT_ID = 42
OTHER_PATIENT_ID = 43
STAFF_ID = 900


def upcoming(weekday: DayOfWeek, weeks_ahead: int = 0) -> date:
    """Next date strictly after today falling on ``weekday``."""
    today = date.today()
    days = (int(weekday) - DayOfWeek.from_date(today)) % 7 or 7
    return today + timedelta(days=days + 7 * weeks_ahead)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute))


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def event_bus() -> AppointmentEventBus:
    return AppointmentEventBus()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    event_bus: AppointmentEventBus,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None
    app.dependency_overrides[get_event_bus] = lambda: event_bus

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_schedule(db_session: AsyncSession):
    """Insert a schedule row directly."""

    async def _make(
        day_of_week: DayOfWeek,
        start_time: time | None = time(9, 0),
        end_time: time | None = time(12, 0),
        slot_duration_minutes: int = 30,
        is_available: bool = True,
        doctor_id: int = DOCTOR_ID,
        clinic_id: int = CLINIC_ID,
    ) -> int:
        result = await db_session.execute(
            insert(doctor_schedules)
            .values(
                doctor_id=doctor_id,
                clinic_id=clinic_id,
                day_of_week=int(day_of_week),
                start_time=start_time,
                end_time=end_time,
                slot_duration_minutes=slot_duration_minutes,
                is_available=is_available,
            )
            .returning(doctor_schedules.c.id)
        )
        await db_session.commit()
        return result.scalar_one()

    return _make


@pytest_asyncio.fixture
async def make_appointment(db_session: AsyncSession):
    """Insert an appointment row directly, bypassing availability checks."""

    async def _make(
        start: datetime,
        duration_minutes: int = 30,
        status: str = "pending",
        patient_id: int = PATIENT_ID,
        doctor_id: int = DOCTOR_ID,
        clinic_id: int = CLINIC_ID,
    ) -> int:
        result = await db_session.execute(
            insert(appointments)
            .values(
                patient_id=patient_id,
                doctor_id=doctor_id,
                clinic_id=clinic_id,
                appointment_date=start.date(),
                appointment_start=start,
                duration_minutes=duration_minutes,
                status=status,
            )
            .returning(appointments.c.id)
        )
        await db_session.commit()
        return result.scalar_one()

    return _make


def _headers(user_id: int, role: str) -> dict:
    token = create_access_token(
        data={"sub": str(user_id), "role": role},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def patient_headers() -> dict:
    return _headers(PATIENT_ID, "patient")


@pytest.fixture
def other_patient_headers() -> dict:
    return _headers(OTHER_PATIENT_ID, "patient")


@pytest.fixture
def staff_headers() -> dict:
    return _headers(STAFF_ID, "staff")
