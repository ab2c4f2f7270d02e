"""
Pass Requests Repository

Store operations for pass request documents.

Storage Layouts:
    Two layouts coexist under ``passRequests`` and every read merges them:
    - legacy:  passRequests/{id}
    - current: passRequests/{sanitized_requester_id}/{id}

    Each child of ``passRequests`` is classified on its own: an object with a
    string ``type`` or a ``createdAt``, or one holding only scalars, is a
    legacy request; any other object is a requester bucket. New requests are
    always written in the current layout.

Design Principles:
- Single responsibility - only store operations, no business logic
- Documents that fail validation are logged and skipped, never raised
- Status changes are checked against the state machine before writing
"""

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.core import store
from hostel_pass.modules.pass_requests.models import (
    PassRequest,
    PassStatus,
    StorageLayout,
)

logger = logging.getLogger(__name__)

PASS_REQUESTS_PATH = "passRequests"


@dataclass
class StoredPassRequest:
    """
    A request together with where it lives.

    Attributes:
        id: Key of the request document
        path: Full store path of the document
        layout: Legacy flat or current nested layout
        request: Parsed document
    """

    id: str
    path: str
    layout: StorageLayout
    request: PassRequest


def requester_bucket_key(requester_id: str) -> str:
    """Key of a requester's bucket in the current layout."""
    return store.sanitize_key(requester_id)


def is_legacy_request(value: Any) -> bool:
    """
    Check whether a ``passRequests`` child is a request in the legacy layout.

    An object with a string ``type`` or a ``createdAt`` key is a request. Any
    other object is a requester bucket only when it holds at least one
    object; a flat object of scalars is a malformed legacy request.
    """
    if not isinstance(value, dict):
        return False
    if isinstance(value.get("type"), str) or "createdAt" in value:
        return True
    return not any(isinstance(child, dict) for child in value.values())


@dataclass
class RequestNode:
    """A request-shaped document as stored, before validation."""

    id: str
    path: str
    layout: StorageLayout
    raw: dict[str, Any]


def collect_request_nodes(tree: Any) -> list[RequestNode]:
    """
    Find every request-shaped document in a ``passRequests`` snapshot.

    Documents are returned whether or not they validate, so the sweep can
    age out requests the API can no longer read.
    """
    if not isinstance(tree, dict):
        return []

    nodes: list[RequestNode] = []
    for key, child in tree.items():
        if is_legacy_request(child):
            path = f"{PASS_REQUESTS_PATH}/{key}"
            nodes.append(RequestNode(key, path, StorageLayout.LEGACY, child))
        elif isinstance(child, dict):
            nodes.extend(
                RequestNode(
                    request_id,
                    f"{PASS_REQUESTS_PATH}/{key}/{request_id}",
                    StorageLayout.CURRENT,
                    raw,
                )
                for request_id, raw in child.items()
                if isinstance(raw, dict)
            )
    return nodes


def _parse(
    request_id: str,
    raw: dict[str, Any],
    path: str,
    layout: StorageLayout,
) -> StoredPassRequest | None:
    try:
        request = PassRequest.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Skipping unreadable pass request at '{path}': {e.error_count()} errors")
        return None

    if request.id is None:
        request.id = request_id
    return StoredPassRequest(id=request_id, path=path, layout=layout, request=request)


def collect_requests(tree: Any) -> list[StoredPassRequest]:
    """
    Flatten a ``passRequests`` snapshot into requests from both layouts.

    Args:
        tree: Snapshot of the ``passRequests`` node (may be None)

    Returns:
        Requests in store key order; unreadable entries are skipped
    """
    requests: list[StoredPassRequest] = []
    for node in collect_request_nodes(tree):
        parsed = _parse(node.id, node.raw, node.path, node.layout)
        if parsed is not None:
            requests.append(parsed)
    return requests


def find_garbage_paths(tree: Any) -> list[str]:
    """
    Find non-object entries under ``passRequests``.

    Garbage is a scalar directly under ``passRequests`` or a scalar inside a
    requester bucket. Fields of a request, readable or not, never are.
    """
    if not isinstance(tree, dict):
        return []

    paths: list[str] = []
    for key, child in tree.items():
        if not isinstance(child, dict):
            paths.append(f"{PASS_REQUESTS_PATH}/{key}")
        elif not is_legacy_request(child):
            paths.extend(
                f"{PASS_REQUESTS_PATH}/{key}/{request_id}"
                for request_id, raw in child.items()
                if not isinstance(raw, dict)
            )
    return paths


async def fetch_tree(db: AsyncSession) -> Any:
    """Read the raw ``passRequests`` snapshot."""
    return await store.get(db, PASS_REQUESTS_PATH)


async def fetch_all(db: AsyncSession) -> list[StoredPassRequest]:
    """Fetch every request from both layouts."""
    return collect_requests(await fetch_tree(db))


def filter_for_requester(
    requests: list[StoredPassRequest],
    requester_id: str,
) -> list[StoredPassRequest]:
    """Keep a requester's requests: their bucket plus matching legacy entries."""
    bucket_prefix = f"{PASS_REQUESTS_PATH}/{requester_bucket_key(requester_id)}/"
    return [
        stored
        for stored in requests
        if stored.path.startswith(bucket_prefix)
        or (stored.layout == StorageLayout.LEGACY and stored.request.emp_code == requester_id)
    ]


async def fetch_for_requester(db: AsyncSession, requester_id: str) -> list[StoredPassRequest]:
    """Fetch one requester's requests from both layouts."""
    return filter_for_requester(await fetch_all(db), requester_id)


async def get_by_id(
    db: AsyncSession,
    request_id: str,
    requester_id: str | None = None,
) -> StoredPassRequest | None:
    """
    Get a request by ID.

    With a requester, the current-layout path is tried directly before
    falling back to a scan of both layouts.
    """
    if requester_id is not None:
        path = f"{PASS_REQUESTS_PATH}/{requester_bucket_key(requester_id)}/{request_id}"
        raw = await store.get(db, path)
        if isinstance(raw, dict):
            return _parse(request_id, raw, path, StorageLayout.CURRENT)

    for stored in await fetch_all(db):
        if stored.id == request_id:
            return stored
    return None


async def create(
    db: AsyncSession,
    requester_id: str,
    document: dict[str, Any],
) -> StoredPassRequest:
    """
    Create a request in the current layout.

    The generated key is also written into the document as ``id``.
    """
    request_id = store.generate_push_id()
    path = f"{PASS_REQUESTS_PATH}/{requester_bucket_key(requester_id)}/{request_id}"

    request = PassRequest.model_validate({**document, "id": request_id})
    await store.set(db, path, request.to_document())

    return StoredPassRequest(
        id=request_id,
        path=path,
        layout=StorageLayout.CURRENT,
        request=request,
    )


# Valid status transitions - prevents invalid state changes
VALID_STATUS_TRANSITIONS: dict[PassStatus, set[PassStatus]] = {
    PassStatus.PENDING: {
        PassStatus.HOD_APPROVED,  # HOD approved a home visit
        PassStatus.WARDEN_APPROVED,  # Warden approved an outing
        PassStatus.DECLINED,
    },
    PassStatus.HOD_APPROVED: {
        PassStatus.WARDEN_APPROVED,
        PassStatus.DECLINED,
    },
    # Terminal states - no transitions allowed
    PassStatus.WARDEN_APPROVED: set(),
    PassStatus.DECLINED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: PassStatus, new_status: PassStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


async def update_status(
    db: AsyncSession,
    stored: StoredPassRequest,
    status: PassStatus,
    fields: dict[str, Any],
) -> StoredPassRequest:
    """
    Update a request's status and related fields.

    The document is re-read from its path so the transition is validated
    against the stored status, not a possibly stale copy.

    Args:
        db: Database session
        stored: The request to update
        status: New status
        fields: Stored (camelCase) fields to merge, e.g. approver stamps

    Returns:
        The updated request

    Raises:
        ValueError: If the request no longer exists
        InvalidStatusTransitionError: If the transition is not allowed
    """
    raw = await store.get(db, stored.path)
    if not isinstance(raw, dict):
        raise ValueError(f"Pass request {stored.id} not found")

    current = PassRequest.model_validate(raw)
    if status not in VALID_STATUS_TRANSITIONS.get(current.status, set()):
        raise InvalidStatusTransitionError(current.status, status)

    await store.update(db, stored.path, {**fields, "status": status.value})

    updated = PassRequest.model_validate({**raw, **fields, "status": status.value})
    if updated.id is None:
        updated.id = stored.id
    return StoredPassRequest(id=stored.id, path=stored.path, layout=stored.layout, request=updated)


async def delete(db: AsyncSession, request_id: str, requester_id: str | None = None) -> bool:
    """
    Delete a request, trying the current layout first and then the legacy path.

    Returns:
        True if a document was removed
    """
    if requester_id is not None:
        path = f"{PASS_REQUESTS_PATH}/{requester_bucket_key(requester_id)}/{request_id}"
        if await store.get(db, path) is not None:
            await store.remove(db, path)
            return True

    legacy_path = f"{PASS_REQUESTS_PATH}/{request_id}"
    if is_legacy_request(await store.get(db, legacy_path)):
        await store.remove(db, legacy_path)
        return True

    return False


async def delete_at(db: AsyncSession, path: str) -> None:
    """Delete whatever is stored at a path under ``passRequests``."""
    if not path.startswith(f"{PASS_REQUESTS_PATH}/"):
        raise store.InvalidPathError(path)
    await store.remove(db, path)
