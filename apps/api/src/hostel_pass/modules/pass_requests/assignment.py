"""
Request Assignment

Routes a new request to its reviewers:
- the warden whose block matches the request's block (first match wins)
- for home visits, the HOD mapped from the request's department

A request with no match is stored unassigned and shows up in every queue of
the reviewer's role. Lookup failures are logged and treated as no match.
"""

import logging

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from hostel_pass.modules.directory import repository as directory
from hostel_pass.modules.directory.models import DirectoryUser
from hostel_pass.modules.pass_requests.models import AssignedHod, AssignedWarden

logger = logging.getLogger(__name__)

# Department (upper-cased) -> key in the ``hod`` tree
DEPARTMENT_TO_HOD_ID: dict[str, str] = {
    "AIDS": "HOD006",
    "AIML": "HOD006",
    "CYBER SECURITY": "HOD006",
    "CSE": "HOD006",
    "IT": "HOD006",
    "ECE": "HOD001",
    "EEE": "HOD002",
    "CIVIL": "HOD003",
    "MECH": "HOD004",
}


def resolve_warden(wardens: list[DirectoryUser], block: str) -> AssignedWarden | None:
    """Return the first warden whose block equals the given block exactly."""
    for warden in wardens:
        if warden.block == block:
            return AssignedWarden(
                username=warden.username,
                name=warden.name or warden.username,
                block=warden.block,
            )
    return None


def resolve_hod(hods: list[DirectoryUser], department: str) -> AssignedHod | None:
    """Return the HOD mapped to a department, if the department and HOD exist."""
    hod_id = DEPARTMENT_TO_HOD_ID.get(department.upper())
    if hod_id is None:
        return None

    for hod in hods:
        if hod.key == hod_id:
            return AssignedHod(
                username=hod.username,
                name=hod.name or hod.username,
                department=hod.department or department,
            )
    return None


async def assign_warden(
    db: AsyncSession,
    block: str,
    redis: Redis | None = None,
) -> AssignedWarden | None:
    """Look up the warden for a block."""
    try:
        wardens = await directory.fetch_wardens(db, redis)
    except Exception as e:
        logger.error(f"Warden lookup failed for block '{block}': {e}", exc_info=True)
        return None

    assigned = resolve_warden(wardens, block)
    if assigned is None:
        logger.info(f"No warden found for block '{block}'")
    return assigned


async def assign_hod(
    db: AsyncSession,
    department: str,
    redis: Redis | None = None,
) -> AssignedHod | None:
    """Look up the HOD for a department."""
    try:
        hods = await directory.fetch_hods(db, redis)
    except Exception as e:
        logger.error(f"HOD lookup failed for department '{department}': {e}", exc_info=True)
        return None

    assigned = resolve_hod(hods, department)
    if assigned is None:
        logger.info(f"No HOD found for department '{department}'")
    return assigned
