"""
Document Store

A path-addressed JSON tree with the primitives of a hosted real-time
database: get, set, push, update, remove and subscribe.

Storage:
    Every write lands in the ``document_nodes`` table as one row holding the
    JSON value of a path. Rows never overlap: a path is stored either inside
    an ancestor row's value or as its own row, never both. Reads assemble the
    subtree from the covering ancestor row or from all descendant rows.

Semantics:
    - Paths are "/"-separated keys; the root itself is not addressable
    - Setting a path to None removes it
    - Empty objects are pruned, so removing the last child removes the parent
    - Every write commits immediately; last writer wins
    - Subscribers are notified in-process after the commit

Usage:
    from hostel_pass.core import store

    key = await store.push(db, "passRequests/REG001", {"type": "outing"})
    requests = await store.get(db, "passRequests/REG001")
    await store.update(db, f"passRequests/REG001/{key}", {"status": "declined"})
"""

import copy
import itertools
import logging
import re
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from hostel_pass.core.database import Base

logger = logging.getLogger(__name__)

# Characters a hosted real-time database refuses in keys
_FORBIDDEN_KEY_CHARS = re.compile(r"[.#$\[\]/]")

# Alphabet of time-ordered push keys (lexicographic order == creation order)
PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"

Listener = Callable[[Any], Awaitable[None]]


class DocumentNode(Base):
    """One stored JSON value and the path it lives at."""

    __tablename__ = "document_nodes"

    path: Mapped[str] = mapped_column(String(512), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DocumentNode(path={self.path})>"


class StoreError(Exception):
    """Base exception for document store errors."""


class InvalidPathError(StoreError, ValueError):
    """Raised when a path is empty or malformed."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Invalid document path: '{path}'")


# ============================================
# Path helpers
# ============================================


def sanitize_key(value: str) -> str:
    """Replace characters that are not allowed in a key with underscores."""
    return _FORBIDDEN_KEY_CHARS.sub("_", value)


def generate_push_id(now_ms: int | None = None) -> str:
    """
    Generate a 20 character, time-ordered unique key.

    The first 8 characters encode the millisecond timestamp so keys sort
    chronologically; the remaining 12 are random.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)

    timestamp_chars = []
    for _ in range(8):
        timestamp_chars.append(PUSH_CHARS[now_ms % 64])
        now_ms //= 64

    random_chars = "".join(secrets.choice(PUSH_CHARS) for _ in range(12))
    return "".join(reversed(timestamp_chars)) + random_chars


def _split(path: str) -> list[str]:
    parts = [part for part in path.strip("/").split("/") if part]
    if not parts:
        raise InvalidPathError(path)
    return parts


def _join(parts: list[str]) -> str:
    return "/".join(parts)


def _strict_ancestors(parts: list[str]) -> list[str]:
    return [_join(parts[:i]) for i in range(1, len(parts))]


def _descend(value: Any, keys: list[str]) -> Any:
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            return None
        value = value[key]
    return value


def _place(tree: dict[str, Any], keys: list[str], value: Any) -> dict[str, Any]:
    node = tree
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value
    return tree


def _prune(value: Any) -> Any:
    """Drop None leaves and empty objects; an empty result becomes None."""
    if isinstance(value, dict):
        pruned = {}
        for key, child in value.items():
            child = _prune(child)
            if child is not None:
                pruned[str(key)] = child
        return pruned or None
    return value


def _is_related(a: str, b: str) -> bool:
    return a == b or a.startswith(b + "/") or b.startswith(a + "/")


# ============================================
# Primitives
# ============================================


async def _find_covering_row(db: AsyncSession, parts: list[str]) -> DocumentNode | None:
    """Return the row stored at a strict ancestor of the path, if any."""
    ancestors = _strict_ancestors(parts)
    if not ancestors:
        return None

    result = await db.execute(select(DocumentNode).where(DocumentNode.path.in_(ancestors)))
    rows = list(result.scalars().all())
    if not rows:
        return None
    # Rows never overlap, so at most one ancestor row exists
    return max(rows, key=lambda row: len(row.path))


async def get(db: AsyncSession, path: str) -> Any:
    """
    Read the subtree at a path.

    Args:
        db: Database session
        path: "/"-separated path, e.g. "passRequests/REG001"

    Returns:
        A deep copy of the stored JSON value, or None if nothing is stored
    """
    parts = _split(path)
    key = _join(parts)

    result = await db.execute(
        select(DocumentNode).where(DocumentNode.path.in_([*_strict_ancestors(parts), key]))
    )
    rows = list(result.scalars().all())
    if rows:
        row = max(rows, key=lambda r: len(r.path))
        relative = parts[len(_split(row.path)) :]
        return copy.deepcopy(_descend(row.value, relative))

    result = await db.execute(
        select(DocumentNode)
        .where(DocumentNode.path.startswith(key + "/", autoescape=True))
        .order_by(DocumentNode.path)
    )
    tree: dict[str, Any] | None = None
    for row in result.scalars().all():
        relative = _split(row.path)[len(parts) :]
        tree = _place(tree if tree is not None else {}, relative, copy.deepcopy(row.value))
    return tree


async def set(db: AsyncSession, path: str, value: Any) -> None:  # noqa: A001
    """
    Replace the subtree at a path.

    Args:
        db: Database session
        path: Target path
        value: JSON-compatible value; None removes the path
    """
    parts = _split(path)
    key = _join(parts)
    value = _prune(copy.deepcopy(value))

    covering = await _find_covering_row(db, parts)

    if covering is not None:
        relative = parts[len(_split(covering.path)) :]
        tree = copy.deepcopy(covering.value)
        if not isinstance(tree, dict):
            tree = {}
        if value is None:
            parent = _descend(tree, relative[:-1])
            if isinstance(parent, dict):
                parent.pop(relative[-1], None)
        else:
            _place(tree, relative, value)

        tree = _prune(tree)
        if tree is None:
            await db.delete(covering)
        else:
            covering.value = tree
    else:
        result = await db.execute(
            select(DocumentNode).where(
                or_(
                    DocumentNode.path == key,
                    DocumentNode.path.startswith(key + "/", autoescape=True),
                )
            )
        )
        existing: DocumentNode | None = None
        for row in result.scalars().all():
            if row.path == key:
                existing = row
            else:
                await db.delete(row)

        if value is None:
            if existing is not None:
                await db.delete(existing)
        elif existing is not None:
            existing.value = value
        else:
            db.add(DocumentNode(path=key, value=value))

    await db.commit()
    await _notify(db, key)


async def remove(db: AsyncSession, path: str) -> None:
    """Delete the subtree at a path. Removing a missing path is a no-op."""
    await set(db, path, None)


async def update(db: AsyncSession, path: str, fields: dict[str, Any]) -> None:
    """
    Shallow-merge fields into the object at a path.

    Keys mapped to None are deleted. A missing object is created.

    Raises:
        InvalidPathError: If a field name contains a path separator
    """
    for field in fields:
        if not field or "/" in field:
            raise InvalidPathError(f"{path}/{field}")

    current = await get(db, path)
    merged = dict(current) if isinstance(current, dict) else {}
    for field, value in fields.items():
        if value is None:
            merged.pop(field, None)
        else:
            merged[field] = value

    await set(db, path, merged)


async def push(db: AsyncSession, path: str, value: Any) -> str:
    """
    Store a value under a new time-ordered child key.

    Returns:
        The generated key
    """
    key = generate_push_id()
    await set(db, f"{_join(_split(path))}/{key}", value)
    return key


# ============================================
# Subscriptions
# ============================================

_subscriptions: dict[int, tuple[str, Listener]] = {}
_subscription_ids = itertools.count(1)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); call cancel() to stop notifications."""

    id: int
    path: str

    def cancel(self) -> None:
        _subscriptions.pop(self.id, None)


def subscribe(path: str, callback: Listener) -> Subscription:
    """
    Register a callback for changes at or below a path.

    The callback receives the fresh snapshot of the subscribed path after
    every committed write that touches it (including writes to ancestors).
    Subscriptions live in this process only.
    """
    key = _join(_split(path))
    subscription_id = next(_subscription_ids)
    _subscriptions[subscription_id] = (key, callback)
    logger.debug(f"Subscription {subscription_id} registered on '{key}'")
    return Subscription(id=subscription_id, path=key)


async def _notify(db: AsyncSession, changed_path: str) -> None:
    for subscription_id, (path, callback) in list(_subscriptions.items()):
        if not _is_related(path, changed_path):
            continue
        try:
            snapshot = await get(db, path)
            await callback(snapshot)
        except Exception as e:
            logger.error(
                f"Subscriber {subscription_id} on '{path}' failed: {e}",
                exc_info=True,
            )


__all__ = [
    "DocumentNode",
    "InvalidPathError",
    "StoreError",
    "Subscription",
    "generate_push_id",
    "get",
    "push",
    "remove",
    "sanitize_key",
    "set",
    "subscribe",
    "update",
]
