"""
Shared fixtures: an in-memory document store and the demo users.
"""

from datetime import UTC, datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hostel_pass.core import rate_limit
from hostel_pass.core import redis as redis_module
from hostel_pass.core import store
from hostel_pass.core.auth import CurrentUser
from hostel_pass.core.database import Base
from hostel_pass.modules.directory.models import UserRole


@pytest_asyncio.fixture
async def session_maker():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    """A database session on the in-memory store."""
    async with session_maker() as session:
        yield session


@pytest.fixture(autouse=True)
def isolated_process_state(monkeypatch):
    """No Redis, and no debounce, rate limit or subscriber state leaking between tests."""
    monkeypatch.setattr(redis_module, "redis_client", None)
    rate_limit.reset_memory_state()
    store._subscriptions.clear()
    yield
    rate_limit.reset_memory_state()
    store._subscriptions.clear()


@pytest.fixture
def now():
    """A fixed evaluation time."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def student():
    return CurrentUser(
        username="REG001",
        role=UserRole.STUDENT,
        name="John Doe",
        department="CSE",
        block="A(Boys)",
    )


@pytest.fixture
def warden():
    return CurrentUser(username="warden", role=UserRole.WARDEN, name="Dr. Smith", block="A(Boys)")


@pytest.fixture
def other_warden():
    return CurrentUser(username="warden2", role=UserRole.WARDEN, name="Dr. Brown", block="B(Girls)")


@pytest.fixture
def hod():
    return CurrentUser(username="hod", role=UserRole.HOD, name="Prof. Johnson", department="CSE")


@pytest_asyncio.fixture
async def directory_data(db):
    """Write a small directory: two wardens, two HODs and two students."""
    await store.set(
        db,
        "warden",
        {
            "W001": {
                "username": "warden",
                "password": "warden123",
                "name": "Dr. Smith",
                "block": "A(Boys)",
            },
            "W002": {
                "username": "warden2",
                "password": "warden123",
                "name": "Dr. Brown",
                "block": "B(Girls)",
            },
        },
    )
    await store.set(
        db,
        "hod",
        {
            "HOD006": {
                "username": "hod",
                "password": "hod123",
                "name": "Prof. Johnson",
                "department": "CSE",
            },
            "HOD001": {"username": "hod_ece", "password": "hod123", "department": "ECE"},
        },
    )
    await store.set(
        db,
        "students",
        {
            "CSE": {
                "REG001": {
                    "emp_code": "REG001",
                    "birthday": "2003-05-14",
                    "first_name": "John Doe",
                    "block": "A(Boys)",
                },
            },
            "ECE": {
                "REG002": {"username": "REG002", "password": "pw", "Name": "Jane Roe"},
            },
        },
    )
