"""
Pass Requests Background Jobs

Scheduled tasks that enforce the request lifetime:
1. Delete requests older than 3 days (every 2 minutes)
2. General cleanup: the same deletion plus removal of garbage entries
   under ``passRequests`` (every 10 minutes)

Design Principles:
- Jobs are idempotent (safe to run multiple times)
- Jobs handle their own database sessions
- Jobs log all operations for auditing
- Jobs continue processing even if individual items fail

Schedule:
- Both jobs also run once at startup
- Jobs can also be triggered manually via the debug endpoints

Requests without a readable ``createdAt`` are never deleted here; read
paths hide them instead.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from hostel_pass.core.database import async_session_maker
from hostel_pass.core.scheduler import register_job
from hostel_pass.modules.pass_requests import expiry, repository
from hostel_pass.modules.pass_requests.models import PassType, parse_timestamp

logger = logging.getLogger(__name__)

# Job configuration constants
DELETE_EXPIRED_INTERVAL_MINUTES = 2
CLEANUP_INTERVAL_MINUTES = 10

# Job IDs for registration and manual triggering
JOB_ID_DELETE_EXPIRED = "pass_requests_delete_expired"
JOB_ID_CLEANUP = "pass_requests_cleanup"


def _empty_results(executed_at: datetime) -> dict[str, Any]:
    return {
        "executed_at": executed_at.isoformat(),
        "total_deleted": 0,
        "home_visit_deleted": 0,
        "outing_deleted": 0,
        "total_errors": 0,
    }


async def sweep_expired_requests(
    now: datetime | None = None,
    remove_garbage: bool = False,
) -> dict[str, Any]:
    """
    Delete every request older than 3 days, whatever its status.

    Age is read from the raw ``createdAt``, so documents that no longer
    validate are still removed. Deletions of an unrecognised type only count
    towards ``total_deleted``.

    Args:
        now: Evaluation time (defaults to the current time)
        remove_garbage: Also remove non-object entries under ``passRequests``

    Returns:
        Dict with job execution summary including:
        - executed_at: When the job ran
        - total_deleted: Requests deleted
        - home_visit_deleted / outing_deleted: Deletions per type
        - total_errors: Number of items that failed
        - garbage_removed: Garbage entries removed (only with remove_garbage)
    """
    executed_at = now if now is not None else datetime.now(UTC)
    results = _empty_results(executed_at)

    logger.info(
        f"Starting expired request sweep. Threshold: "
        f"{(executed_at - expiry.REQUEST_LIFETIME).isoformat()}"
    )

    async with async_session_maker() as db:
        tree = await repository.fetch_tree(db)
        expired = [
            node
            for node in repository.collect_request_nodes(tree)
            if expiry.is_due_for_deletion(parse_timestamp(node.raw.get("createdAt")), executed_at)
        ]

        logger.info(f"Found {len(expired)} expired requests to delete")

        for node in expired:
            pass_type = node.raw.get("type")
            try:
                await repository.delete_at(db, node.path)
                results["total_deleted"] += 1
                if pass_type == PassType.HOME_VISIT.value:
                    results["home_visit_deleted"] += 1
                elif pass_type == PassType.OUTING.value:
                    results["outing_deleted"] += 1
                logger.info(
                    f"Deleted expired {pass_type or 'unknown'} request {node.id} "
                    f"({node.layout.value} layout)"
                )
            except Exception as e:
                logger.error(f"Error deleting expired request {node.id}: {e}", exc_info=True)
                await db.rollback()
                results["total_errors"] += 1

        if remove_garbage:
            results["garbage_removed"] = 0
            for path in repository.find_garbage_paths(tree):
                try:
                    await repository.delete_at(db, path)
                    results["garbage_removed"] += 1
                    logger.info(f"Removed garbage entry at '{path}'")
                except Exception as e:
                    logger.error(f"Error removing garbage entry '{path}': {e}", exc_info=True)
                    await db.rollback()
                    results["total_errors"] += 1

    logger.info(
        f"Expired request sweep completed. "
        f"Deleted: {results['total_deleted']} "
        f"(home_visit: {results['home_visit_deleted']}, outing: {results['outing_deleted']}), "
        f"Errors: {results['total_errors']}"
    )

    return results


async def delete_expired_pass_requests() -> dict[str, Any]:
    """Hard-delete requests past the 3 day mark."""
    return await sweep_expired_requests()


async def cleanup_old_pass_requests() -> dict[str, Any]:
    """Hard-delete requests past the 3 day mark and remove garbage entries."""
    return await sweep_expired_requests(remove_garbage=True)


def register_pass_request_jobs() -> None:
    """
    Register all pass request background jobs with the scheduler.

    This function should be called during application startup, before
    the scheduler is started.

    Registered jobs:
    1. delete_expired_pass_requests - Runs at startup, then every 2 minutes
    2. cleanup_old_pass_requests - Runs at startup, then every 10 minutes
    """
    logger.info("Registering pass request background jobs...")

    register_job(
        job_id=JOB_ID_DELETE_EXPIRED,
        func=delete_expired_pass_requests,
        trigger=IntervalTrigger(minutes=DELETE_EXPIRED_INTERVAL_MINUTES),
        run_immediately=True,
    )
    logger.info(
        f"Registered job: {JOB_ID_DELETE_EXPIRED} "
        f"(interval: {DELETE_EXPIRED_INTERVAL_MINUTES} minutes)"
    )

    register_job(
        job_id=JOB_ID_CLEANUP,
        func=cleanup_old_pass_requests,
        trigger=IntervalTrigger(minutes=CLEANUP_INTERVAL_MINUTES),
        run_immediately=True,
    )
    logger.info(f"Registered job: {JOB_ID_CLEANUP} (interval: {CLEANUP_INTERVAL_MINUTES} minutes)")

    logger.info("Pass request background jobs registered successfully")
