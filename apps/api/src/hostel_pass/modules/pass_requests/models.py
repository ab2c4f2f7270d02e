"""
Pass Request Models

Enums and the stored document shape of a pass request.

Documents live in the document store as camelCase JSON, the format the
existing data was written in. Unknown keys on old documents are preserved
when a document is written back.
"""

import enum
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)


class PassType(str, enum.Enum):
    """Kinds of pass a student can request."""

    OUTING = "outing"
    HOME_VISIT = "home_visit"


class PassStatus(str, enum.Enum):
    """Status of a pass request."""

    PENDING = "pending"
    HOD_APPROVED = "hod_approved"
    WARDEN_APPROVED = "warden_approved"
    DECLINED = "declined"


class DecisionAction(str, enum.Enum):
    """Decisions a reviewer can take on a request."""

    APPROVE = "approve"
    DECLINE = "decline"


class StorageLayout(str, enum.Enum):
    """Where a request document is stored under ``passRequests``."""

    LEGACY = "legacy"  # passRequests/{id}
    CURRENT = "current"  # passRequests/{sanitized_requester_id}/{id}


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a stored timestamp.

    Accepts ISO-8601 strings (with or without a "Z" suffix) and datetimes.
    Naive values are taken as UTC. Anything unreadable yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as stored: UTC, millisecond precision, "Z" suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _to_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


Timestamp = Annotated[
    datetime | None,
    BeforeValidator(parse_timestamp),
    PlainSerializer(
        lambda v: format_timestamp(v) if v is not None else None,
        return_type=str | None,
        when_used="json",
    ),
]

LenientStr = Annotated[str | None, BeforeValidator(_to_optional_str)]


class AssignedWarden(BaseModel):
    """Warden stamp: assignment or final approval."""

    model_config = ConfigDict(extra="allow")

    username: str
    name: str = Field("", validation_alias=AliasChoices("name", "first_name"))
    block: str = ""


class AssignedHod(BaseModel):
    """HOD stamp: assignment or first-level approval."""

    model_config = ConfigDict(extra="allow")

    username: str
    name: str = Field("", validation_alias=AliasChoices("name", "first_name"))
    department: str = ""


class DeclinedBy(BaseModel):
    """Reviewer who declined a request."""

    username: str
    name: str = ""
    role: str


class PassRequest(BaseModel):
    """A pass request document as stored."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str | None = None
    type: PassType
    emp_code: LenientStr = None
    first_name: LenientStr = None
    department: LenientStr = None
    year: LenientStr = None
    date: LenientStr = None
    reason: LenientStr = None
    block: LenientStr = None
    room_number: LenientStr = Field(None, alias="roomNumber")
    mobile_number: LenientStr = Field(None, alias="mobileNumber")
    number_of_days_leave: LenientStr = Field(None, alias="numberOfDaysLeave")
    no_of_working_days: LenientStr = Field(None, alias="noOfWorkingDays")
    arrival_time: LenientStr = Field(None, alias="arrivalTime")
    register_number: LenientStr = Field(None, alias="registerNumber")

    status: PassStatus = PassStatus.PENDING
    created_at: Timestamp = Field(None, alias="createdAt")
    granted_at: Timestamp = Field(None, alias="grantedAt")
    expires_at: Timestamp = Field(None, alias="expiresAt")
    declined_at: Timestamp = Field(None, alias="declinedAt")

    assigned_warden: AssignedWarden | None = Field(None, alias="assignedWarden")
    assigned_hod: AssignedHod | None = Field(None, alias="assignedHod")
    hod_approved_by: AssignedHod | None = Field(None, alias="hodApprovedBy")
    warden_approved_by: AssignedWarden | None = Field(None, alias="wardenApprovedBy")
    declined_by: DeclinedBy | None = Field(None, alias="declinedBy")

    # Set when expiresAt is present but cannot be parsed
    expires_at_unreadable: bool = Field(False, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _flag_unreadable_expiry(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw = data.get("expiresAt", data.get("expires_at"))
            if raw not in (None, "") and parse_timestamp(raw) is None:
                data = {**data, "expires_at_unreadable": True}
        return data

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored camelCase JSON form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
