"""
Fixtures for pass request tests.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from hostel_pass.modules.pass_requests.models import format_timestamp


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def make_document(now):
    """Build a stored request document created ``age`` before ``now``."""

    def _make(
        pass_type: str = "outing",
        status: str = "pending",
        age: timedelta = timedelta(hours=1),
        emp_code: str = "REG001",
        **extra,
    ) -> dict:
        document = {
            "type": pass_type,
            "emp_code": emp_code,
            "first_name": "John Doe",
            "department": "CSE",
            "date": "2026-03-11",
            "reason": "Family function",
            "block": "A(Boys)",
            "status": status,
            "createdAt": format_timestamp(now - age),
        }
        document.update(extra)
        return document

    return _make


@pytest.fixture
def assigned_to_warden():
    return {"assignedWarden": {"username": "warden", "name": "Dr. Smith", "block": "A(Boys)"}}


@pytest.fixture
def assigned_to_hod():
    return {"assignedHod": {"username": "hod", "name": "Prof. Johnson", "department": "CSE"}}
