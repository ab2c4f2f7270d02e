"""
Directory Repository

Read access to the three user tables stored in the document store.

Stored entries were written by several generations of tooling, so each
mapper accepts the field spellings found in the wild and normalizes them
into a DirectoryUser.

Lookups used for request routing are cached in Redis for five minutes with
passwords stripped. Login always reads the store directly.
"""

import json
import logging
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.core import store
from hostel_pass.modules.directory.models import DirectoryUser, UserRole

logger = logging.getLogger(__name__)

STUDENTS_PATH = "students"
WARDENS_PATH = "warden"
HODS_PATH = "hod"

CACHE_TTL_SECONDS = 5 * 60
CACHE_KEY_PREFIX = "directory:"

DEFAULT_STUDENT_POSITION = "HOSTELLER"


def _first(raw: dict[str, Any], *fields: str, default: str = "") -> str:
    """Return the first non-empty field value as a string."""
    for field in fields:
        value = raw.get(field)
        if value not in (None, ""):
            return str(value)
    return default


def map_student(department: str, key: str, raw: dict[str, Any]) -> DirectoryUser:
    """Normalize a ``students/{department}/{key}`` entry."""
    year = raw.get("year")
    return DirectoryUser(
        key=key,
        username=_first(raw, "emp_code", "username", "roll_no", "register_no", default=key),
        password=_first(raw, "birthday", "password", "dob", "birth_date") or None,
        role=UserRole.STUDENT,
        name=_first(raw, "first_name", "Name", "name", "full_name"),
        department=department,
        block=_first(raw, "block", "hostel_block"),
        contact_no=_first(raw, "contact_no", "parentsMobileNumber", "mobile", "phone"),
        room_no=_first(raw, "room_no", "room_number"),
        position=_first(raw, "position", "hostel_status", default=DEFAULT_STUDENT_POSITION),
        year=str(year) if year is not None else None,
    )


def map_warden(key: str, raw: dict[str, Any]) -> DirectoryUser:
    """Normalize a ``warden/{key}`` entry."""
    username = _first(raw, "username", default=key)
    return DirectoryUser(
        key=key,
        username=username,
        password=_first(raw, "password") or None,
        role=UserRole.WARDEN,
        name=_first(raw, "name", default=username),
        block=_first(raw, "block"),
    )


def map_hod(key: str, raw: dict[str, Any]) -> DirectoryUser:
    """Normalize a ``hod/{key}`` entry."""
    username = _first(raw, "username", default=key)
    return DirectoryUser(
        key=key,
        username=username,
        password=_first(raw, "password") or None,
        role=UserRole.HOD,
        name=_first(raw, "name", default=username),
        department=_first(raw, "department"),
    )


def _strip_passwords(tree: dict[str, Any]) -> dict[str, Any]:
    stripped: dict[str, Any] = {}
    for key, value in tree.items():
        if isinstance(value, dict):
            stripped[key] = _strip_passwords(value)
        elif key not in {"password", "birthday", "dob", "birth_date"}:
            stripped[key] = value
    return stripped


async def _read_tree(
    db: AsyncSession,
    path: str,
    redis: Redis | None = None,
) -> dict[str, Any]:
    """
    Read a directory tree, going through the Redis cache when one is given.

    Cache failures are logged and fall through to the store.
    """
    cache_key = f"{CACHE_KEY_PREFIX}{path}"

    if redis is not None:
        try:
            cached = await redis.get(cache_key)
            if cached:
                return json.loads(cached)
        except Exception as e:
            logger.warning(f"Directory cache read failed for '{path}': {e}")

    tree = await store.get(db, path)
    if not isinstance(tree, dict):
        logger.warning(f"No {path} data found in the directory")
        tree = {}

    if redis is not None:
        tree = _strip_passwords(tree)
        try:
            await redis.set(cache_key, json.dumps(tree), ex=CACHE_TTL_SECONDS)
        except Exception as e:
            logger.warning(f"Directory cache write failed for '{path}': {e}")

    return tree


async def fetch_students(db: AsyncSession, redis: Redis | None = None) -> list[DirectoryUser]:
    """Fetch all students across departments."""
    tree = await _read_tree(db, STUDENTS_PATH, redis)
    students = []
    for department, entries in tree.items():
        if not isinstance(entries, dict):
            continue
        for key, raw in entries.items():
            if isinstance(raw, dict):
                students.append(map_student(department, key, raw))
    return students


async def fetch_wardens(db: AsyncSession, redis: Redis | None = None) -> list[DirectoryUser]:
    """Fetch all wardens in stored key order."""
    tree = await _read_tree(db, WARDENS_PATH, redis)
    return [map_warden(key, raw) for key, raw in tree.items() if isinstance(raw, dict)]


async def fetch_hods(db: AsyncSession, redis: Redis | None = None) -> list[DirectoryUser]:
    """Fetch all HODs in stored key order."""
    tree = await _read_tree(db, HODS_PATH, redis)
    return [map_hod(key, raw) for key, raw in tree.items() if isinstance(raw, dict)]


async def find_login_candidates(db: AsyncSession, username: str) -> list[DirectoryUser]:
    """
    Find every directory entry with a username, checking students, then
    wardens, then HODs.

    Reads bypass the cache since the result is compared against passwords.
    """
    candidates: list[DirectoryUser] = []
    for fetch in (fetch_students, fetch_wardens, fetch_hods):
        candidates.extend(user for user in await fetch(db) if user.username == username)
    return candidates


async def invalidate_cache(redis: Redis | None) -> None:
    """Drop cached directory trees, e.g. after seeding."""
    if redis is None:
        return
    paths = (STUDENTS_PATH, WARDENS_PATH, HODS_PATH)
    await redis.delete(*(f"{CACHE_KEY_PREFIX}{path}" for path in paths))
