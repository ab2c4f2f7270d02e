"""
Pass Requests Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from hostel_pass.modules.pass_requests import expiry
from hostel_pass.modules.pass_requests.expiry import UrgencyBand
from hostel_pass.modules.pass_requests.models import (
    AssignedHod,
    AssignedWarden,
    DecisionAction,
    DeclinedBy,
    PassStatus,
    PassType,
    StorageLayout,
)
from hostel_pass.modules.pass_requests.repository import StoredPassRequest

# ============================================
# Student Request Schemas
# ============================================


class PassRequestCreate(BaseModel):
    """
    Request body for submitting a pass request.

    The requester is taken from the access token. Name, department and block
    default to the requester's directory entry when omitted.
    """

    type: PassType
    date: str = Field(..., min_length=1, max_length=50, description="Date of leave")
    reason: str = Field(..., min_length=1, max_length=1000)
    first_name: str | None = Field(None, max_length=200)
    department: str | None = Field(None, max_length=100)
    year: str | None = Field(None, max_length=20)
    block: str | None = Field(None, max_length=100, description="Hostel block, e.g. 'A(Boys)'")
    room_number: str | None = Field(None, max_length=20)
    mobile_number: str | None = Field(None, max_length=20)
    number_of_days_leave: str | None = Field(None, max_length=20)
    no_of_working_days: str | None = Field(None, max_length=20)
    arrival_time: str | None = Field(None, max_length=50)
    register_number: str | None = Field(None, max_length=50)

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "home_visit",
                "date": "2024-01-20",
                "reason": "Family function",
                "block": "A(Boys)",
                "room_number": "101",
                "number_of_days_leave": "3",
            }
        }
    }


# ============================================
# Response Schemas
# ============================================


class ExpiryInfo(BaseModel):
    """Computed expiry information for a request."""

    expired: bool = Field(..., description="Past the 3 day lifetime")
    time_remaining: str = Field(..., description="Time left until deletion, e.g. '2d 5h'")
    percentage_remaining: float = Field(..., ge=0, le=100)
    band: UrgencyBand
    is_urgent: bool = Field(..., description="Less than 24 hours left to live")
    pass_expired: bool = Field(..., description="Granted pass is past its 24 hour validity")
    pass_time_remaining: str = Field(..., description="Time left on a granted pass")
    pass_percentage_remaining: float = Field(..., ge=0, le=100)

    @classmethod
    def compute(
        cls,
        created_at: datetime | None,
        expires_at: datetime | None,
        now: datetime | None = None,
        expires_at_unreadable: bool = False,
    ) -> "ExpiryInfo":
        lifetime = expiry.time_until_expiry(created_at, now)
        validity = expiry.time_until_pass_expiry(expires_at, now, expires_at_unreadable)
        return cls(
            expired=lifetime.expired,
            time_remaining=lifetime.text,
            percentage_remaining=lifetime.percentage,
            band=lifetime.band,
            is_urgent=expiry.is_expiring_within_24_hours(created_at, now),
            pass_expired=validity.expired,
            pass_time_remaining=validity.text,
            pass_percentage_remaining=validity.percentage,
        )


class PassRequestResponse(BaseModel):
    """A pass request as returned by the API."""

    id: str
    type: PassType
    status: PassStatus
    emp_code: str | None = None
    first_name: str | None = None
    department: str | None = None
    year: str | None = None
    date: str | None = None
    reason: str | None = None
    block: str | None = None
    room_number: str | None = None
    mobile_number: str | None = None
    number_of_days_leave: str | None = None
    no_of_working_days: str | None = None
    arrival_time: str | None = None
    register_number: str | None = None

    created_at: datetime | None = None
    granted_at: datetime | None = None
    expires_at: datetime | None = None
    declined_at: datetime | None = None

    assigned_warden: AssignedWarden | None = None
    assigned_hod: AssignedHod | None = None
    hod_approved_by: AssignedHod | None = None
    warden_approved_by: AssignedWarden | None = None
    declined_by: DeclinedBy | None = None

    layout: StorageLayout
    expiry: ExpiryInfo

    @classmethod
    def from_stored(
        cls,
        stored: StoredPassRequest,
        now: datetime | None = None,
    ) -> "PassRequestResponse":
        request = stored.request
        return cls(
            id=stored.id,
            type=request.type,
            status=request.status,
            emp_code=request.emp_code,
            first_name=request.first_name,
            department=request.department,
            year=request.year,
            date=request.date,
            reason=request.reason,
            block=request.block,
            room_number=request.room_number,
            mobile_number=request.mobile_number,
            number_of_days_leave=request.number_of_days_leave,
            no_of_working_days=request.no_of_working_days,
            arrival_time=request.arrival_time,
            register_number=request.register_number,
            created_at=request.created_at,
            granted_at=request.granted_at,
            expires_at=request.expires_at,
            declined_at=request.declined_at,
            assigned_warden=request.assigned_warden,
            assigned_hod=request.assigned_hod,
            hod_approved_by=request.hod_approved_by,
            warden_approved_by=request.warden_approved_by,
            declined_by=request.declined_by,
            layout=stored.layout,
            expiry=ExpiryInfo.compute(
                request.created_at,
                request.expires_at,
                now,
                expires_at_unreadable=request.expires_at_unreadable,
            ),
        )


class PassRequestListResponse(BaseModel):
    """List of pass requests, newest first."""

    items: list[PassRequestResponse]
    total: int


class DeletePassRequestResponse(BaseModel):
    """Response after deleting a pending request."""

    id: str
    message: str = Field(default="Pass request deleted")


class UrgentStatsResponse(BaseModel):
    """Requests with less than 24 hours left to live."""

    total_urgent: int
    urgent_outing: int
    urgent_home_visit: int


class BulkItemResult(BaseModel):
    """Outcome of one request in a bulk action."""

    id: str
    status: Literal["success", "error"]
    new_status: PassStatus | None = None
    error: str | None = None


class BulkDecisionResponse(BaseModel):
    """Response after approving or declining every actionable request of a type."""

    action: DecisionAction
    type: PassType
    processed: int
    succeeded: int
    failed: int
    results: list[BulkItemResult]
