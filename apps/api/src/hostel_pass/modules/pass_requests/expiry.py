"""
Pass Request Expiry Policies

Pure functions over request timestamps. Nothing here touches the store.

Two clocks apply to a request:
1. Request lifetime: every request is deleted 3 days after ``createdAt``,
   whatever its status. Requests inside the last 24 hours of that window
   are flagged urgent.
2. Pass validity: a granted pass is valid for 24 hours after ``grantedAt``
   (``expiresAt``). Past that it is shown as expired but is not deleted
   until the 3 day rule removes the request.
"""

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from hostel_pass.modules.pass_requests.models import PassRequest, PassType

REQUEST_LIFETIME = timedelta(days=3)
PASS_VALIDITY = timedelta(hours=24)
URGENT_WINDOW = timedelta(hours=24)


class UrgencyBand(str, enum.Enum):
    """How much of a window is left, for display."""

    OK = "ok"  # more than 75%
    NOTICE = "notice"  # 75% or less
    WARNING = "warning"  # 50% or less
    CRITICAL = "critical"  # 25% or less


@dataclass(frozen=True)
class TimeRemaining:
    """Time left in a window, formatted for display."""

    expired: bool
    text: str
    percentage: float
    band: UrgencyBand


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def band_for(percentage: float) -> UrgencyBand:
    """Map the percentage of a window left to an urgency band."""
    if percentage <= 25:
        return UrgencyBand.CRITICAL
    if percentage <= 50:
        return UrgencyBand.WARNING
    if percentage <= 75:
        return UrgencyBand.NOTICE
    return UrgencyBand.OK


def _format_remaining(remaining: timedelta, with_days: bool) -> str:
    total_minutes = int(remaining.total_seconds() // 60)
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)

    if not with_days:
        hours += days * 24
        days = 0

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _remaining(
    deadline: datetime,
    window: timedelta,
    now: datetime,
    with_days: bool,
) -> TimeRemaining:
    remaining = deadline - now
    if remaining <= timedelta(0):
        return TimeRemaining(True, "Expired", 0.0, UrgencyBand.CRITICAL)

    percentage = max(0.0, min(100.0, remaining / window * 100))
    return TimeRemaining(
        expired=False,
        text=_format_remaining(remaining, with_days),
        percentage=percentage,
        band=band_for(percentage),
    )


def is_expired(created_at: datetime | None, now: datetime | None = None) -> bool:
    """
    Check whether a request is past its 3 day lifetime.

    A request without a readable creation time counts as expired, so read
    paths hide it. The sweep uses is_due_for_deletion() instead.
    """
    if created_at is None:
        return True
    return _now(now) - created_at > REQUEST_LIFETIME


def is_due_for_deletion(created_at: datetime | None, now: datetime | None = None) -> bool:
    """Check whether the sweep should delete a request."""
    return created_at is not None and _now(now) - created_at > REQUEST_LIFETIME


def filter_out_expired(
    requests: Iterable[PassRequest],
    now: datetime | None = None,
) -> list[PassRequest]:
    """Drop requests past their lifetime (or without a creation time)."""
    now = _now(now)
    return [request for request in requests if not is_expired(request.created_at, now)]


def time_until_expiry(created_at: datetime | None, now: datetime | None = None) -> TimeRemaining:
    """Time left until the 3 day deletion mark."""
    if created_at is None:
        return TimeRemaining(True, "Unknown", 0.0, UrgencyBand.CRITICAL)
    return _remaining(created_at + REQUEST_LIFETIME, REQUEST_LIFETIME, _now(now), with_days=True)


def time_until_pass_expiry(
    expires_at: datetime | None,
    now: datetime | None = None,
    unreadable: bool = False,
) -> TimeRemaining:
    """
    Time left on a granted pass, relative to its 24 hour validity.

    A pass that has not been granted has no expiry and is reported as
    not expired with the full window left. A stored expiry that cannot be
    read (``unreadable``) counts as expired.
    """
    if unreadable:
        return TimeRemaining(True, "Expired", 0.0, UrgencyBand.CRITICAL)
    if expires_at is None:
        return TimeRemaining(False, "-", 100.0, UrgencyBand.OK)
    return _remaining(expires_at, PASS_VALIDITY, _now(now), with_days=False)


def is_pass_expired(
    expires_at: datetime | None,
    now: datetime | None = None,
    unreadable: bool = False,
) -> bool:
    """Check whether a granted pass is past its validity, or has an unreadable expiry."""
    if unreadable:
        return True
    return expires_at is not None and _now(now) > expires_at


def is_expiring_within_24_hours(created_at: datetime | None, now: datetime | None = None) -> bool:
    """A request is urgent when it has between 0 and 24 hours left to live."""
    if created_at is None:
        return False
    remaining = created_at + REQUEST_LIFETIME - _now(now)
    return timedelta(0) < remaining <= URGENT_WINDOW


def urgent_stats(requests: Iterable[PassRequest], now: datetime | None = None) -> dict[str, int]:
    """Count urgent requests in total and per type."""
    now = _now(now)
    urgent = [r for r in requests if is_expiring_within_24_hours(r.created_at, now)]
    return {
        "total_urgent": len(urgent),
        "urgent_outing": sum(1 for r in urgent if r.type == PassType.OUTING),
        "urgent_home_visit": sum(1 for r in urgent if r.type == PassType.HOME_VISIT),
    }
