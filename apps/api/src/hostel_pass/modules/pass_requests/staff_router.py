"""
Pass Requests Staff Router

API endpoints for HODs and wardens reviewing pass requests.
All endpoints require an access token with the hod or warden role.

Endpoints:
- GET /staff/pass-requests - List the reviewer's queue
- GET /staff/pass-requests/urgent-stats - Requests with under 24h left
- POST /staff/pass-requests/{id}/approve - Approve a request
- POST /staff/pass-requests/{id}/decline - Decline a request
- POST /staff/pass-requests/approve-all?type= - Approve every actionable request
- POST /staff/pass-requests/decline-all?type= - Decline every actionable request

Security:
- Role-gated transitions: HODs act on home visits in pending, wardens act
  on outings in pending and home visits in hod_approved
- Rate limiting per reviewer on action endpoints
- Audit logging for all decisions
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.core.auth import CurrentUser, require_roles
from hostel_pass.core.database import get_db
from hostel_pass.core.rate_limit import RateLimitExceeded, check_rate_limit
from hostel_pass.modules.directory.models import UserRole
from hostel_pass.modules.pass_requests import service
from hostel_pass.modules.pass_requests.models import DecisionAction, PassStatus, PassType
from hostel_pass.modules.pass_requests.schemas import (
    BulkDecisionResponse,
    PassRequestListResponse,
    PassRequestResponse,
    UrgentStatsResponse,
)
from hostel_pass.modules.pass_requests.service import PassRequestServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

require_staff = require_roles(UserRole.HOD, UserRole.WARDEN)


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_SINGLE_ACTION = (30, 60)  # 30 approvals/declines per minute
RATE_LIMIT_BULK_ACTION = (5, 60)  # 5 bulk actions per minute


async def _check_staff_rate_limit(
    reviewer: CurrentUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Check rate limit for a reviewer action.

    Raises:
        RateLimitExceeded: If rate limit is exceeded
    """
    key = f"staff:{action}:{reviewer.username}"
    allowed = await check_rate_limit(key, limit, window_seconds)

    if not allowed:
        logger.warning(
            f"Rate limit exceeded for {reviewer.username} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


def _handle_service_error(e: PassRequestServiceError) -> HTTPException:
    """Convert service errors to HTTPExceptions."""
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# Queue Endpoints
# ============================================


@router.get(
    "",
    response_model=PassRequestListResponse,
    summary="List Review Queue",
    description="""
List the requests in the reviewer's queue, newest first.

- **HOD**: home visits assigned to the HOD or unassigned
- **Warden**: outings, and home visits that passed HOD approval, assigned to
  the warden or unassigned

Requests older than 3 days are filtered out.
""",
)
async def list_review_queue(
    pass_type: PassType | None = Query(None, alias="type", description="Filter by type"),
    status_filter: PassStatus | None = Query(None, alias="status", description="Filter by status"),
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_staff),
) -> PassRequestListResponse:
    """
    List the reviewer's queue.
    """
    try:
        requests = await service.list_queue(db, reviewer, pass_type, status_filter)
    except Exception as e:
        logger.exception(f"Error listing queue for {reviewer.username}: {e}")
        raise _internal_error() from e

    items = [PassRequestResponse.from_stored(stored) for stored in requests]
    return PassRequestListResponse(items=items, total=len(items))


@router.get(
    "/urgent-stats",
    response_model=UrgentStatsResponse,
    summary="Urgent Request Statistics",
    description="Count requests in the queue with less than 24 hours before deletion.",
)
async def get_urgent_stats(
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_staff),
) -> UrgentStatsResponse:
    """
    Get urgent counts for the reviewer's queue.
    """
    try:
        stats = await service.get_urgent_stats(db, reviewer)
    except Exception as e:
        logger.exception(f"Error computing urgent stats for {reviewer.username}: {e}")
        raise _internal_error() from e

    return UrgentStatsResponse(**stats)


# ============================================
# Bulk Endpoints
# ============================================


async def _bulk(
    db: AsyncSession,
    reviewer: CurrentUser,
    pass_type: PassType,
    action: DecisionAction,
) -> BulkDecisionResponse:
    await _check_staff_rate_limit(reviewer, f"bulk_{action.value}", *RATE_LIMIT_BULK_ACTION)

    try:
        result = await service.bulk_decide(db, reviewer, pass_type, action)
    except PassRequestServiceError as e:
        raise _handle_service_error(e) from e
    except Exception as e:
        logger.exception(f"Error in bulk {action.value}: {e}")
        raise _internal_error() from e

    logger.info(
        f"{reviewer.username} bulk {action.value} {pass_type.value}: "
        f"{result['succeeded']} succeeded, {result['failed']} failed"
    )
    return BulkDecisionResponse(**result)


@router.post(
    "/approve-all",
    response_model=BulkDecisionResponse,
    summary="Approve All Actionable Requests",
    description="""
Approve every request of the given type the reviewer can act on.

Each request is processed independently; failures are reported per item.
""",
)
async def approve_all(
    pass_type: PassType = Query(..., alias="type"),
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_staff),
) -> BulkDecisionResponse:
    """
    Approve all actionable requests of a type.
    """
    return await _bulk(db, reviewer, pass_type, DecisionAction.APPROVE)


@router.post(
    "/decline-all",
    response_model=BulkDecisionResponse,
    summary="Decline All Actionable Requests",
    description="""
Decline every request of the given type the reviewer can act on.

Each request is processed independently; failures are reported per item.
""",
)
async def decline_all(
    pass_type: PassType = Query(..., alias="type"),
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_staff),
) -> BulkDecisionResponse:
    """
    Decline all actionable requests of a type.
    """
    return await _bulk(db, reviewer, pass_type, DecisionAction.DECLINE)


# ============================================
# Single Decision Endpoints
# ============================================


async def _decide(
    db: AsyncSession,
    reviewer: CurrentUser,
    request_id: str,
    action: DecisionAction,
) -> PassRequestResponse:
    await _check_staff_rate_limit(reviewer, action.value, *RATE_LIMIT_SINGLE_ACTION)

    try:
        stored = await service.decide(db, reviewer, request_id, action)
    except PassRequestServiceError as e:
        logger.warning(f"Cannot {action.value} request {request_id}: {e.message}")
        raise _handle_service_error(e) from e
    except Exception as e:
        logger.exception(f"Error during {action.value} of request {request_id}: {e}")
        raise _internal_error() from e

    return PassRequestResponse.from_stored(stored)


@router.post(
    "/{request_id}/approve",
    response_model=PassRequestResponse,
    summary="Approve Request",
    description="""
Approve a request.

- **HOD** on a pending home visit: status becomes `hod_approved`
- **Warden** on a pending outing or an `hod_approved` home visit: status
  becomes `warden_approved`, and the pass is granted for 24 hours

Any other combination is rejected with `INVALID_TRANSITION`.
""",
    responses={
        403: {"description": "Request assigned to another reviewer"},
        404: {"description": "Request not found or expired"},
        409: {"description": "Action not allowed in the request's state"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def approve_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_staff),
) -> PassRequestResponse:
    """
    Approve a request.
    """
    return await _decide(db, reviewer, request_id, DecisionAction.APPROVE)


@router.post(
    "/{request_id}/decline",
    response_model=PassRequestResponse,
    summary="Decline Request",
    description="""
Decline a request. Available to the reviewer whose step the request is
waiting on: from `pending` or `hod_approved` only.
""",
    responses={
        403: {"description": "Request assigned to another reviewer"},
        404: {"description": "Request not found or expired"},
        409: {"description": "Action not allowed in the request's state"},
        429: {"description": "Rate limit exceeded"},
    },
)
async def decline_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    reviewer: CurrentUser = Depends(require_staff),
) -> PassRequestResponse:
    """
    Decline a request.
    """
    return await _decide(db, reviewer, request_id, DecisionAction.DECLINE)
