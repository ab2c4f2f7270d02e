"""
Background Job Scheduler

Runs the periodic pass request sweeps on an APScheduler AsyncIOScheduler
inside the API process.

Jobs are plain async functions returning a summary dict. They are kept in a
registry so they can be scheduled when the scheduler starts, triggered from
the debug endpoints, and listed with the outcome of their last run. A failing
job is logged by the execution listener and runs again on its next tick.

Usage:
    from hostel_pass.core.scheduler import register_job, start_scheduler, stop_scheduler

    register_job("pass_requests_delete_expired", sweep, IntervalTrigger(minutes=2),
                 run_immediately=True)

    async def lifespan(app):
        await start_scheduler()
        yield
        await stop_scheduler()
"""

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]


@dataclass
class RegisteredJob:
    """A registered job and the outcome of its most recent run."""

    func: JobFunc
    trigger: BaseTrigger
    run_immediately: bool = False
    last_run_at: datetime | None = None
    last_error: str | None = None


_scheduler: AsyncIOScheduler | None = None

_job_registry: dict[str, RegisteredJob] = {}


class SchedulerConfig:
    """Configuration for the background scheduler."""

    TIMEZONE = "UTC"

    # Sweeps are idempotent, so piled-up runs collapse into one
    JOB_COALESCE = True
    JOB_MAX_INSTANCES = 1
    JOB_MISFIRE_GRACE_TIME = 60  # seconds

    EXECUTORS = {
        "default": {"type": "asyncio"},
    }

    JOB_DEFAULTS = {
        "coalesce": JOB_COALESCE,
        "max_instances": JOB_MAX_INSTANCES,
        "misfire_grace_time": JOB_MISFIRE_GRACE_TIME,
    }


def _record_run(job_id: str, error: BaseException | None) -> None:
    job = _job_registry.get(job_id)
    if job is None:
        return
    job.last_run_at = datetime.now(UTC)
    job.last_error = str(error) if error is not None else None


def _on_job_event(event: JobExecutionEvent) -> None:
    _record_run(event.job_id, event.exception)

    if event.exception:
        logger.error(f"Job {event.job_id} raised: {event.exception}", exc_info=event.exception)
        return

    logger.info(f"Job {event.job_id} finished: {event.retval}")


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler


def _add_to_scheduler(scheduler: AsyncIOScheduler, job_id: str, job: RegisteredJob) -> None:
    options: dict[str, Any] = {"id": job_id, "replace_existing": True}
    if job.run_immediately:
        options["next_run_time"] = datetime.now(UTC)

    scheduler.add_job(job.func, trigger=job.trigger, **options)
    logger.info(f"Scheduled job {job_id} ({job.trigger})")


async def start_scheduler() -> AsyncIOScheduler:
    """
    Create and start the scheduler, then schedule every registered job.

    Jobs registered with ``run_immediately`` get a first run right away,
    which is how the sweeps run once at startup.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return _scheduler

    _scheduler = AsyncIOScheduler(
        timezone=SchedulerConfig.TIMEZONE,
        executors=SchedulerConfig.EXECUTORS,
        job_defaults=SchedulerConfig.JOB_DEFAULTS,
    )
    _scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, job in _job_registry.items():
        _add_to_scheduler(_scheduler, job_id, job)

    _scheduler.start()
    logger.info(f"Scheduler started with {len(_job_registry)} jobs")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut the scheduler down, letting running jobs finish."""
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")

    _scheduler = None


def register_job(
    job_id: str,
    func: JobFunc,
    trigger: BaseTrigger,
    run_immediately: bool = False,
) -> None:
    """
    Add a job to the registry.

    If the scheduler is already running the job is scheduled at once,
    otherwise on the next start_scheduler() call.

    Args:
        job_id: Unique identifier, also used by the debug endpoints
        func: Async function returning a summary dict
        trigger: APScheduler trigger
        run_immediately: Give the job a first run as soon as it is scheduled
    """
    job = RegisteredJob(func=func, trigger=trigger, run_immediately=run_immediately)
    _job_registry[job_id] = job

    if _scheduler is not None:
        _add_to_scheduler(_scheduler, job_id, job)


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside the schedule.

    Errors are caught and reported in the returned dict under ``error``;
    on success the job's own summary is returned under ``result``.

    Raises:
        ValueError: If no job is registered under ``job_id``
    """
    job = _job_registry.get(job_id)
    if job is None:
        raise ValueError(f"Unknown job {job_id!r}. Registered jobs: {sorted(_job_registry)}")

    executed_at = datetime.now(UTC)
    logger.info(f"Running job {job_id} on demand")
    outcome: dict[str, Any] = {"job_id": job_id, "executed_at": executed_at.isoformat()}

    try:
        outcome["result"] = await job.func()
    except Exception as e:
        logger.error(f"On-demand run of job {job_id} failed: {e}", exc_info=True)
        _record_run(job_id, e)
        return {**outcome, "status": "error", "error": str(e)}

    _record_run(job_id, None)
    return {**outcome, "status": "success"}


def list_registered_jobs() -> list[dict[str, Any]]:
    """
    Describe every registered job.

    Scheduling details (``next_run_time``, ``is_paused``) are only present
    while the scheduler is running; a paused job has no next run time.
    """
    described = []

    for job_id, job in _job_registry.items():
        info: dict[str, Any] = {
            "job_id": job_id,
            "registered": True,
            "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
            "last_error": job.last_error,
        }

        if _scheduler is not None:
            scheduled = _scheduler.get_job(job_id)
            next_run = scheduled.next_run_time if scheduled else None
            info["next_run_time"] = next_run.isoformat() if next_run else None
            info["is_paused"] = next_run is None

        described.append(info)

    return described


def _set_paused(job_id: str, paused: bool) -> bool:
    verb = "pause" if paused else "resume"

    if _scheduler is None or _scheduler.get_job(job_id) is None:
        logger.warning(f"Cannot {verb} job {job_id}: not scheduled")
        return False

    if paused:
        _scheduler.pause_job(job_id)
    else:
        _scheduler.resume_job(job_id)
    logger.info(f"Job {job_id}: {verb}d")
    return True


def pause_job(job_id: str) -> bool:
    """Pause a scheduled job. Returns False if it is not scheduled."""
    return _set_paused(job_id, True)


def resume_job(job_id: str) -> bool:
    """Resume a paused job. Returns False if it is not scheduled."""
    return _set_paused(job_id, False)
