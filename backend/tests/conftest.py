"""
MathMentor Scheduling Backend — Test Configuration (conftest.py)
==================================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own SQLite database file (aiosqlite) with the full
       schema, a clock pinned to 2025-01-15 09:00 UTC, and seeded profiles.

Fixture Hierarchy (all function-scoped):
    ├── db_engine / session_factory: fresh temp-file database
    ├── db_session: one session for service-level tests
    ├── clock: FixedClock, advance() to move time
    ├── people: seeded tutor/student/admin profile ids
    ├── make_class / make_booking: insert rows directly, bypassing rules
    ├── class_service / booking_service / scheduling_service
    ├── runner: TransactionRunner bound to the temp database
    ├── mock_db_session: AsyncMock session for pure unit tests
    └── test_client: HTTPX AsyncClient with dependencies overridden
"""

import os

# Override settings BEFORE any app imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_mathmentor.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SCHEDULING_TIMEZONE"] = "UTC"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

from datetime import date, datetime, time, timezone  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.database import Base, TransactionRunner  # noqa: E402
from app.models.booking import Booking  # noqa: E402
from app.models.class_instance import ClassInstance  # noqa: E402
from app.models.enums import BookingStatus, BookingType, ClassStatus, UserRole  # noqa: E402
from app.models.profile import Profile  # noqa: E402
from app.services.booking_service import BookingService  # noqa: E402
from app.services.class_service import ClassService  # noqa: E402
from app.services.clock import FixedClock  # noqa: E402
from app.services.scheduling_service import SchedulingService  # noqa: E402

# "Now" for every test, and a class day comfortably after it
NOW = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)
CLASS_DATE = date(2025, 1, 20)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduling.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def runner(session_factory):
    return TransactionRunner(
        session_factory=session_factory, attempts=10, initial_wait=0.01, max_wait=0.1
    )


@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession behavior.

    Usage:
        mock_db_session.execute.side_effect = OperationalError(...)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# Domain fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest_asyncio.fixture
async def people(db_session):
    """Seeds profiles: two tutors, five students, one admin."""
    ids = SimpleNamespace(
        tutor=uuid4(),
        other_tutor=uuid4(),
        students=[uuid4() for _ in range(5)],
        admin=uuid4(),
    )
    db_session.add(Profile(id=ids.tutor, role=UserRole.TUTOR, full_name="Ada Tutor"))
    db_session.add(Profile(id=ids.other_tutor, role=UserRole.TUTOR, full_name="Ben Tutor"))
    for i, student_id in enumerate(ids.students):
        db_session.add(Profile(id=student_id, role=UserRole.STUDENT, full_name=f"Student {i}"))
    db_session.add(Profile(id=ids.admin, role=UserRole.ADMIN, full_name="Admin"))
    await db_session.commit()
    return ids


@pytest.fixture
def make_class(db_session, people):
    """Inserts a class row directly (no lifecycle rules applied) and commits."""

    async def _make(**overrides) -> ClassInstance:
        fields = dict(
            tutor_id=people.tutor,
            title="Algebra I",
            scheduled_date=CLASS_DATE,
            start_time=time(10, 0),
            end_time=time(11, 0),
            duration_minutes=60,
            capacity=3,
            occupied=0,
            is_full=False,
            status=ClassStatus.SCHEDULED,
        )
        fields.update(overrides)
        cls = ClassInstance(**fields)
        db_session.add(cls)
        await db_session.commit()
        return cls

    return _make


@pytest.fixture
def make_booking(db_session, people):
    """Inserts a direct booking row directly and commits."""

    async def _make(**overrides) -> Booking:
        fields = dict(
            student_id=people.students[0],
            tutor_id=people.tutor,
            class_id=None,
            booking_type=BookingType.SESSION,
            title="Tutoring session",
            scheduled_date=CLASS_DATE,
            start_time=time(10, 0),
            end_time=time(11, 0),
            duration_minutes=60,
            status=BookingStatus.CONFIRMED,
            created_by=people.students[0],
        )
        fields.update(overrides)
        booking = Booking(**fields)
        db_session.add(booking)
        await db_session.commit()
        return booking

    return _make


@pytest.fixture
def class_service(clock):
    return ClassService(clock=clock)


@pytest.fixture
def booking_service(clock):
    return BookingService(clock=clock)


@pytest.fixture
def scheduling_service(clock):
    return SchedulingService(clock=clock)


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, runner, scheduling_service, people):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport,
    with the session, transaction runner and service bound to the test
    database and clock.

    Usage:
        response = await test_client.get("/health")
    """
    from app.database import get_db_session, get_transaction_runner
    from app.main import app
    from app.services.scheduling_service import get_scheduling_service

    async def override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_transaction_runner] = lambda: runner
    app.dependency_overrides[get_scheduling_service] = lambda: scheduling_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
