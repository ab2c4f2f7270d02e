"""
Pass Requests Service Layer

Business logic for the pass request workflow.
Orchestrates assignment, the status state machine and expiry filtering on
top of the repository.

This module implements:
1. Submission:
   - Debounce identical submissions for 5 seconds
   - Assign a warden by block and, for home visits, an HOD by department
   - Store the request in the current layout with status pending

2. Student views:
   - List own requests from both layouts, newest first, expired hidden
   - Delete own request while it is still pending

3. Reviewer actions:
   - Role queues (HOD: home visits; warden: outings and HOD-approved
     home visits), each limited to requests assigned to the reviewer or
     unassigned
   - Approve/decline single requests through the role-gated transitions
   - Bulk approve/decline per request type, each item independent
   - Urgent statistics for the queue
"""

import logging
from datetime import UTC, datetime
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.core import store
from hostel_pass.core.auth import CurrentUser
from hostel_pass.core.rate_limit import claim_debounce
from hostel_pass.modules.pass_requests import assignment, expiry, repository, workflow
from hostel_pass.modules.pass_requests.models import (
    DecisionAction,
    PassStatus,
    PassType,
    format_timestamp,
)
from hostel_pass.modules.pass_requests.repository import StoredPassRequest
from hostel_pass.modules.pass_requests.schemas import PassRequestCreate

logger = logging.getLogger(__name__)

# Constants
DEBOUNCE_WINDOW_SECONDS = 5
SIGNATURE_REASON_LENGTH = 50


class PassRequestServiceError(Exception):
    """Base exception for pass request service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class PassRequestNotFoundError(PassRequestServiceError):
    """Raised when a request does not exist or is not visible to the caller."""

    def __init__(self, request_id: str | None = None):
        message = f"Pass request {request_id} not found" if request_id else "Pass request not found"
        super().__init__(
            message=message,
            error_code="PASS_REQUEST_NOT_FOUND",
            status_code=404,
        )


class DuplicateSubmissionError(PassRequestServiceError):
    """Raised when the same request is submitted twice within the debounce window."""

    def __init__(self):
        super().__init__(
            message=(
                f"Please wait {DEBOUNCE_WINDOW_SECONDS} seconds before submitting "
                "another similar request"
            ),
            error_code="DUPLICATE_SUBMISSION",
            status_code=429,
        )


class CannotDeleteRequestError(PassRequestServiceError):
    """Raised when a student tries to delete a request that is no longer pending."""

    def __init__(self, status: PassStatus):
        super().__init__(
            message=f"Only pending requests can be deleted (current status: {status.value})",
            error_code="CANNOT_DELETE_REQUEST",
            status_code=409,
        )


class InvalidTransitionError(PassRequestServiceError):
    """Raised when a reviewer action is not allowed in the request's state."""

    def __init__(self, reviewer: CurrentUser, pass_type: PassType, status: PassStatus, action: str):
        super().__init__(
            message=(
                f"A {reviewer.role.value} cannot {action} a {pass_type.value} request "
                f"in status {status.value}"
            ),
            error_code="INVALID_TRANSITION",
            status_code=409,
        )


class RequestNotAssignedError(PassRequestServiceError):
    """Raised when a reviewer acts on a request assigned to someone else."""

    def __init__(self, request_id: str):
        super().__init__(
            message=f"Pass request {request_id} is assigned to another reviewer",
            error_code="NOT_ASSIGNED",
            status_code=403,
        )


# ============================================
# Helpers
# ============================================


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def submission_signature(requester_id: str, pass_type: PassType, date: str, reason: str) -> str:
    """Key identifying 'the same request' for the submission debounce."""
    sanitized = store.sanitize_key(requester_id)
    return f"{sanitized}-{pass_type.value}-{date}-{reason[:SIGNATURE_REASON_LENGTH]}"


def _newest_first(requests: list[StoredPassRequest]) -> list[StoredPassRequest]:
    oldest = datetime.min.replace(tzinfo=UTC)
    return sorted(requests, key=lambda s: s.request.created_at or oldest, reverse=True)


def _visible(requests: list[StoredPassRequest], now: datetime) -> list[StoredPassRequest]:
    return [s for s in requests if not expiry.is_expired(s.request.created_at, now)]


# ============================================
# Student operations
# ============================================


async def submit_request(
    db: AsyncSession,
    student: CurrentUser,
    data: PassRequestCreate,
    redis: Redis | None = None,
    now: datetime | None = None,
) -> StoredPassRequest:
    """
    Submit a new pass request.

    Args:
        db: Database session
        student: The authenticated student (the requester)
        data: Submitted form data
        redis: Redis client for the directory cache (optional)
        now: Submission time (defaults to the current time)

    Returns:
        The stored request

    Raises:
        DuplicateSubmissionError: If the same request was submitted within
            the last 5 seconds
    """
    now = _now(now)
    signature = submission_signature(student.username, data.type, data.date, data.reason)

    if not await claim_debounce(signature, DEBOUNCE_WINDOW_SECONDS):
        logger.warning(f"Duplicate submission blocked for {student.username} ({data.type.value})")
        raise DuplicateSubmissionError()

    block = data.block or student.block or None
    department = data.department or student.department or None

    assigned_warden = None
    if block:
        assigned_warden = await assignment.assign_warden(db, block, redis)

    assigned_hod = None
    if data.type == PassType.HOME_VISIT and department:
        assigned_hod = await assignment.assign_hod(db, department, redis)

    document: dict[str, Any] = {
        "type": data.type.value,
        "emp_code": student.username,
        "first_name": data.first_name or student.name,
        "department": department,
        "year": data.year,
        "date": data.date,
        "reason": data.reason,
        "block": block,
        "roomNumber": data.room_number,
        "mobileNumber": data.mobile_number,
        "numberOfDaysLeave": data.number_of_days_leave,
        "noOfWorkingDays": data.no_of_working_days,
        "arrivalTime": data.arrival_time,
        "registerNumber": data.register_number,
        "status": PassStatus.PENDING.value,
        "createdAt": format_timestamp(now),
        "assignedWarden": assigned_warden.model_dump() if assigned_warden else None,
        "assignedHod": assigned_hod.model_dump() if assigned_hod else None,
    }

    stored = await repository.create(db, student.username, document)
    logger.info(
        f"Created {data.type.value} request {stored.id} for {student.username} "
        f"(warden: {assigned_warden.username if assigned_warden else 'unassigned'}, "
        f"hod: {assigned_hod.username if assigned_hod else 'n/a'})"
    )
    return stored


async def list_my_requests(
    db: AsyncSession,
    requester_id: str,
    now: datetime | None = None,
) -> list[StoredPassRequest]:
    """List a student's requests from both layouts, newest first, expired hidden."""
    requests = await repository.fetch_for_requester(db, requester_id)
    return _newest_first(_visible(requests, _now(now)))


def requests_for_requester(
    tree: Any,
    requester_id: str,
    now: datetime | None = None,
) -> list[StoredPassRequest]:
    """Same as list_my_requests() but over an already-read ``passRequests`` snapshot."""
    requests = repository.filter_for_requester(repository.collect_requests(tree), requester_id)
    return _newest_first(_visible(requests, _now(now)))


async def delete_my_request(
    db: AsyncSession,
    requester_id: str,
    request_id: str,
) -> None:
    """
    Delete a student's own request.

    Raises:
        PassRequestNotFoundError: If the request does not exist or belongs to
            someone else
        CannotDeleteRequestError: If the request is no longer pending
    """
    stored = await repository.get_by_id(db, request_id, requester_id)

    if stored is None or not repository.filter_for_requester([stored], requester_id):
        logger.warning(f"Delete requested for unknown request {request_id} by {requester_id}")
        raise PassRequestNotFoundError(request_id)

    if stored.request.status != PassStatus.PENDING:
        raise CannotDeleteRequestError(stored.request.status)

    deleted = await repository.delete(db, request_id, requester_id)
    if not deleted:
        raise PassRequestNotFoundError(request_id)

    logger.info(f"Request {request_id} deleted by {requester_id}")


# ============================================
# Reviewer operations
# ============================================


def _queue(
    requests: list[StoredPassRequest],
    reviewer: CurrentUser,
    now: datetime,
    pass_type: PassType | None = None,
    status: PassStatus | None = None,
) -> list[StoredPassRequest]:
    queue = [
        s
        for s in _visible(requests, now)
        if workflow.is_visible_to(s.request, reviewer)
        and (pass_type is None or s.request.type == pass_type)
        and (status is None or s.request.status == status)
    ]
    return _newest_first(queue)


async def list_queue(
    db: AsyncSession,
    reviewer: CurrentUser,
    pass_type: PassType | None = None,
    status: PassStatus | None = None,
    now: datetime | None = None,
) -> list[StoredPassRequest]:
    """
    List the requests in a reviewer's queue, newest first.

    Args:
        db: Database session
        reviewer: The authenticated HOD or warden
        pass_type: Optional filter by request type
        status: Optional filter by status
        now: Evaluation time (defaults to the current time)
    """
    requests = await repository.fetch_all(db)
    return _queue(requests, reviewer, _now(now), pass_type, status)


async def get_urgent_stats(
    db: AsyncSession,
    reviewer: CurrentUser,
    now: datetime | None = None,
) -> dict[str, int]:
    """Count requests in the reviewer's queue with less than 24 hours left."""
    now = _now(now)
    queue = _queue(await repository.fetch_all(db), reviewer, now)
    return expiry.urgent_stats((s.request for s in queue), now)


async def _apply_decision(
    db: AsyncSession,
    reviewer: CurrentUser,
    stored: StoredPassRequest,
    action: DecisionAction,
    now: datetime,
) -> StoredPassRequest:
    request = stored.request
    new_status = workflow.next_status(reviewer.role, request.type, request.status, action)

    if new_status is None:
        logger.warning(
            f"Rejected {action.value} of {stored.id} by {reviewer.username}: "
            f"{request.type.value} in status {request.status.value}"
        )
        raise InvalidTransitionError(reviewer, request.type, request.status, action.value)

    if not workflow.is_visible_to(request, reviewer):
        logger.warning(
            f"{reviewer.username} tried to {action.value} {stored.id} assigned elsewhere"
        )
        raise RequestNotAssignedError(stored.id)

    fields = workflow.decision_fields(request, reviewer, new_status, now)

    try:
        updated = await repository.update_status(db, stored, new_status, fields)
    except repository.InvalidStatusTransitionError as e:
        # Status changed since it was read
        logger.error(f"Status transition error: {e}")
        raise InvalidTransitionError(
            reviewer, request.type, e.current_status, action.value
        ) from e
    except ValueError as e:
        raise PassRequestNotFoundError(stored.id) from e

    logger.info(
        f"{reviewer.role.value} {reviewer.username} {action.value}d request {stored.id}: "
        f"{request.status.value} -> {new_status.value}"
    )
    return updated


async def decide(
    db: AsyncSession,
    reviewer: CurrentUser,
    request_id: str,
    action: DecisionAction,
    now: datetime | None = None,
) -> StoredPassRequest:
    """
    Approve or decline a single request.

    Raises:
        PassRequestNotFoundError: If the request does not exist or has expired
        InvalidTransitionError: If the reviewer's role cannot take the action
            on this request type in its current status
        RequestNotAssignedError: If the request is assigned to another reviewer
    """
    now = _now(now)
    stored = await repository.get_by_id(db, request_id)

    if stored is None or expiry.is_expired(stored.request.created_at, now):
        raise PassRequestNotFoundError(request_id)

    return await _apply_decision(db, reviewer, stored, action, now)


async def bulk_decide(
    db: AsyncSession,
    reviewer: CurrentUser,
    pass_type: PassType,
    action: DecisionAction,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Apply one decision to every actionable request of a type in the queue.

    Each request is processed independently; a failure is recorded and the
    rest continue.

    Returns:
        Dict with processed/succeeded/failed counts and per-request results
    """
    now = _now(now)
    queue = [
        s
        for s in _queue(await repository.fetch_all(db), reviewer, now, pass_type)
        if workflow.is_actionable_by(s.request, reviewer)
    ]

    logger.info(
        f"{reviewer.username} bulk {action.value} of {len(queue)} {pass_type.value} requests"
    )

    results: list[dict[str, Any]] = []
    for stored in queue:
        try:
            updated = await _apply_decision(db, reviewer, stored, action, now)
            results.append(
                {"id": stored.id, "status": "success", "new_status": updated.request.status}
            )
        except PassRequestServiceError as e:
            results.append({"id": stored.id, "status": "error", "error": e.message})
        except Exception as e:
            logger.error(f"Bulk {action.value} failed for request {stored.id}: {e}", exc_info=True)
            await db.rollback()
            results.append({"id": stored.id, "status": "error", "error": str(e)})

    succeeded = sum(1 for r in results if r["status"] == "success")
    return {
        "action": action,
        "type": pass_type,
        "processed": len(results),
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "results": results,
    }
