"""
Pass Requests Student Router

API endpoints for students managing their own pass requests.
All HTTP endpoints require a student access token.

Endpoints:
- POST /pass-requests - Submit a pass request
- GET /pass-requests/mine - List own requests, newest first
- DELETE /pass-requests/{id} - Delete own request while pending
- WS /pass-requests/stream?token=... - Live list of own requests

Expired requests (older than 3 days) are never returned.
"""

import asyncio
import logging
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.core import store
from hostel_pass.core.auth import CurrentUser, authenticate_websocket_token, require_roles
from hostel_pass.core.database import async_session_maker, get_db
from hostel_pass.core.redis import get_redis
from hostel_pass.modules.directory.models import UserRole
from hostel_pass.modules.pass_requests import repository, service
from hostel_pass.modules.pass_requests.schemas import (
    DeletePassRequestResponse,
    PassRequestCreate,
    PassRequestListResponse,
    PassRequestResponse,
)
from hostel_pass.modules.pass_requests.service import (
    CannotDeleteRequestError,
    DuplicateSubmissionError,
    PassRequestNotFoundError,
    PassRequestServiceError,
)

logger = logging.getLogger(__name__)

router = APIRouter()

require_student = require_roles(UserRole.STUDENT)


def _service_error(e: PassRequestServiceError) -> HTTPException:
    """Convert a service error to an HTTPException."""
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
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.post(
    "",
    response_model=PassRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Pass Request",
    description="""
Submit an outing or home visit request.

The request is routed on submission:
- a warden is assigned when the request (or the student's profile) has a block
- for home visits, an HOD is assigned from the student's department

Requests without a match are stored unassigned and are visible to every
reviewer of the role.

**Duplicate Prevention:**
An identical submission (same type, date and reason) within 5 seconds is
rejected with `DUPLICATE_SUBMISSION`.
""",
    responses={
        201: {"description": "Request created", "model": PassRequestResponse},
        401: {"description": "Unauthorized - invalid or missing token"},
        403: {"description": "Forbidden - not a student"},
        429: {
            "description": "Identical request submitted within 5 seconds",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "DUPLICATE_SUBMISSION",
                            "message": (
                                "Please wait 5 seconds before submitting another "
                                "similar request"
                            ),
                        }
                    }
                }
            },
        },
    },
)
async def submit_pass_request(
    data: PassRequestCreate,
    db: AsyncSession = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
    student: CurrentUser = Depends(require_student),
) -> PassRequestResponse:
    """
    Submit a pass request for the authenticated student.
    """
    try:
        stored = await service.submit_request(db, student, data, redis)
        return PassRequestResponse.from_stored(stored)

    except DuplicateSubmissionError as e:
        raise _service_error(e) from e
    except PassRequestServiceError as e:
        logger.error(f"Pass request service error: {e.message}")
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error submitting pass request: {e}")
        raise _internal_error() from e


@router.get(
    "/mine",
    response_model=PassRequestListResponse,
    summary="List My Pass Requests",
    description="""
List the authenticated student's requests, newest first.

Both storage layouts are merged. Requests older than 3 days are filtered
out. Each item carries computed expiry information.
""",
)
async def list_my_pass_requests(
    db: AsyncSession = Depends(get_db),
    student: CurrentUser = Depends(require_student),
) -> PassRequestListResponse:
    """
    List own pass requests.
    """
    try:
        requests = await service.list_my_requests(db, student.username)
    except Exception as e:
        logger.exception(f"Error listing pass requests for {student.username}: {e}")
        raise _internal_error() from e

    items = [PassRequestResponse.from_stored(stored) for stored in requests]
    return PassRequestListResponse(items=items, total=len(items))


@router.delete(
    "/{request_id}",
    response_model=DeletePassRequestResponse,
    summary="Delete My Pass Request",
    description="""
Delete one of the authenticated student's requests.

Only `pending` requests can be deleted. The current storage layout is
tried first, then the legacy path.
""",
    responses={
        404: {"description": "Request not found or not owned by the student"},
        409: {"description": "Request is no longer pending"},
    },
)
async def delete_my_pass_request(
    request_id: str,
    db: AsyncSession = Depends(get_db),
    student: CurrentUser = Depends(require_student),
) -> DeletePassRequestResponse:
    """
    Delete own pending request.
    """
    try:
        await service.delete_my_request(db, student.username, request_id)
        return DeletePassRequestResponse(id=request_id)

    except PassRequestNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": e.error_code, "message": e.message},
        ) from e
    except CannotDeleteRequestError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": e.error_code, "message": e.message},
        ) from e
    except PassRequestServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error deleting pass request {request_id}: {e}")
        raise _internal_error() from e


def _list_payload(tree: Any, requester_id: str) -> dict[str, Any]:
    items = [
        PassRequestResponse.from_stored(stored)
        for stored in service.requests_for_requester(tree, requester_id)
    ]
    return PassRequestListResponse(items=items, total=len(items)).model_dump(mode="json")


def _offer_latest(queue: asyncio.Queue[Any], snapshot: Any) -> None:
    """Put a snapshot on a single-slot queue, replacing any unsent one."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(snapshot)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/stream")
async def stream_my_pass_requests(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    """
    Push the student's request list on connect and after every change.

    The token is passed as a query parameter since browsers cannot set
    headers on websocket connections.
    """
    user = authenticate_websocket_token(token)
    if user is None or user.role != UserRole.STUDENT:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    # Only the newest snapshot matters; a slow client skips stale ones
    snapshots: asyncio.Queue[Any] = asyncio.Queue(maxsize=1)

    async def on_change(tree: Any) -> None:
        _offer_latest(snapshots, tree)

    subscription = store.subscribe(repository.PASS_REQUESTS_PATH, on_change)
    disconnect = asyncio.create_task(_wait_for_disconnect(websocket))
    logger.info(f"Request stream opened for {user.username}")

    try:
        async with async_session_maker() as db:
            initial = await repository.fetch_tree(db)
        # A change pushed while reading is newer than the read
        if snapshots.empty():
            _offer_latest(snapshots, initial)

        while not disconnect.done():
            next_snapshot = asyncio.create_task(snapshots.get())
            done, _ = await asyncio.wait(
                {next_snapshot, disconnect},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if next_snapshot not in done:
                next_snapshot.cancel()
                break
            await websocket.send_json(_list_payload(next_snapshot.result(), user.username))

    except WebSocketDisconnect:
        logger.debug(f"Client disconnected from request stream: {user.username}")
    finally:
        subscription.cancel()
        disconnect.cancel()
        logger.info(f"Request stream closed for {user.username}")
