import os
import sys
import tempfile
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from clinic_scheduler.config import settings
from clinic_scheduler.core.clock import FrozenClock, get_clock
from clinic_scheduler.core.redis_client import get_cache_manager
from clinic_scheduler.core.security import create_access_token
from clinic_scheduler.database import get_db, to_async_url
from clinic_scheduler.main import app
from clinic_scheduler.models import (
    appointments,
    doctor_patients,
    doctors,
    metadata,
    payments,
    room_rentals,
    rooms,
)
from clinic_scheduler.schemas.auth import Principal, Role

CLINIC_TZ = ZoneInfo(settings.clinic_timezone)

# Sunday 2025-06-01 09:00 in clinic time, the day before the scenario week starts
NOW = datetime(2025, 6, 1, 9, 0, tzinfo=CLINIC_TZ)

# Test database URL - MUST be different from production
# Without TEST_DATABASE_URL the suite runs on a throwaway SQLite file
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if not TEST_DATABASE_URL:
    db_path = Path(tempfile.mkdtemp(prefix="clinic_scheduler_")) / "test.db"
    TEST_DATABASE_URL = f"sqlite+aiosqlite:///{db_path}"

# Additional safety: ensure we're not using production database
if to_async_url(settings.database_url) == to_async_url(TEST_DATABASE_URL):
    print("\n❌ CRITICAL ERROR: Test database URL is same as production database!")
    print("This would DROP all production data during tests.")
    print("Please set TEST_DATABASE_URL to a separate test database in .env")
    sys.exit(1)

# Use NullPool so each session gets its own connection, as concurrent requests would
test_engine = create_async_engine(
    to_async_url(TEST_DATABASE_URL),
    echo=False,
    poolclass=NullPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def local(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    """Aware datetime in clinic time."""
    return datetime(year, month, day, hour, minute, tzinfo=CLINIC_TZ)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on freshly created tables."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Factory for extra sessions sharing the test database."""
    return TestSessionLocal


@pytest.fixture
def clock() -> FrozenClock:
    """Clock pinned to NOW."""
    return FrozenClock(NOW)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    clock: FrozenClock,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with the test database, frozen clock and no cache."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# Directory and ledger rows


@pytest.fixture
def make_doctor(db_session: AsyncSession) -> Callable:
    """Insert a doctor and return its ID."""

    async def _make(
        consultation_fee: Decimal | None = Decimal("100000"),
        is_active: bool = True,
        full_name: str = "Dra. Ana Gómez",
        consultation_fee_virtual: Decimal | None = None,
    ) -> UUID:
        doctor_id = uuid4()
        await db_session.execute(
            insert(doctors).values(
                id=doctor_id,
                full_name=full_name,
                specialization="Medicina general",
                consultation_fee=consultation_fee,
                consultation_fee_virtual=consultation_fee_virtual,
                is_active=is_active,
            )
        )
        await db_session.commit()
        return doctor_id

    return _make


@pytest.fixture
def make_room(db_session: AsyncSession) -> Callable:
    """Insert a room and return its ID."""

    async def _make(
        room_type: str = "consultation",
        is_active: bool = True,
        name: str = "Consultorio 1",
    ) -> UUID:
        room_id = uuid4()
        await db_session.execute(
            insert(rooms).values(
                id=room_id,
                name=name,
                type=room_type,
                hourly_rate=Decimal("20000"),
                is_active=is_active,
            )
        )
        await db_session.commit()
        return room_id

    return _make


@pytest.fixture
def assign(db_session: AsyncSession) -> Callable:
    """Create an active doctor-patient relationship."""

    async def _assign(doctor_id: UUID, patient_id: UUID, status: str = "active") -> None:
        await db_session.execute(
            insert(doctor_patients).values(
                id=uuid4(),
                doctor_id=doctor_id,
                patient_id=patient_id,
                status=status,
            )
        )
        await db_session.commit()

    return _assign


@pytest.fixture
def record_payment(db_session: AsyncSession) -> Callable:
    """Insert a payment row for an appointment."""

    async def _record(
        appointment_id: UUID,
        amount: Decimal = Decimal("100000"),
        status: str = "paid",
    ) -> UUID:
        payment_id = uuid4()
        await db_session.execute(
            insert(payments).values(
                id=payment_id,
                appointment_id=appointment_id,
                amount=amount,
                status=status,
                paid_at=NOW if status == "paid" else None,
            )
        )
        await db_session.commit()
        return payment_id

    return _record


@pytest.fixture
def record_rental(db_session: AsyncSession) -> Callable:
    """Insert a room rental linked to an appointment."""

    async def _record(
        room_id: UUID,
        doctor_id: UUID,
        appointment_id: UUID,
        start_time: datetime,
        total_price: Decimal,
        status: str = "active",
    ) -> UUID:
        rental_id = uuid4()
        await db_session.execute(
            insert(room_rentals).values(
                id=rental_id,
                room_id=room_id,
                doctor_id=doctor_id,
                appointment_id=appointment_id,
                start_time=start_time,
                end_time=start_time + timedelta(hours=1),
                total_price=total_price,
                status=status,
            )
        )
        await db_session.commit()
        return rental_id

    return _record


@pytest.fixture
def insert_appointment(db_session: AsyncSession) -> Callable:
    """Insert an appointment row directly, bypassing the booking rules."""

    async def _insert(
        doctor_id: UUID,
        patient_id: UUID,
        start_time: datetime,
        status: str = "pending",
        room_id: UUID | None = None,
    ) -> UUID:
        appointment_id = uuid4()
        await db_session.execute(
            insert(appointments).values(
                id=appointment_id,
                doctor_id=doctor_id,
                patient_id=patient_id,
                room_id=room_id,
                is_virtual=room_id is None,
                start_time=start_time,
                end_time=start_time + timedelta(hours=1),
                status=status,
                created_at=NOW,
                updated_at=NOW,
            )
        )
        await db_session.commit()
        return appointment_id

    return _insert


# Principals and tokens


@pytest.fixture
def patient_id() -> UUID:
    """ID of the patient under test."""
    return uuid4()


@pytest.fixture
def patient(patient_id: UUID) -> Principal:
    """Patient principal."""
    return Principal(id=patient_id, roles=frozenset({Role.PATIENT}))


@pytest.fixture
def receptionist() -> Principal:
    """Front-desk principal."""
    return Principal(id=uuid4(), roles=frozenset({Role.RECEPTIONIST}))


@pytest.fixture
def admin() -> Principal:
    """Administrator principal."""
    return Principal(id=uuid4(), roles=frozenset({Role.ADMIN}))


def doctor_principal(doctor_id: UUID) -> Principal:
    """Doctor principal; doctors authenticate with their directory ID."""
    return Principal(id=doctor_id, roles=frozenset({Role.DOCTOR}))


def headers_for(principal: Principal) -> dict:
    """Create authentication headers for a principal."""
    token_data = {
        "sub": str(principal.id),
        "roles": [role.value for role in principal.roles],
    }
    token = create_access_token(data=token_data, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(patient: Principal) -> dict:
    """Authentication headers for the patient under test."""
    return headers_for(patient)
