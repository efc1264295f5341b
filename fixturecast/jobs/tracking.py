"""Job run tracking.

Every triggered run is persisted to `job_runs`, so the last outcome of each
job is visible without Prometheus (cold start after deploy).

Usage:
    from fixturecast.jobs.tracking import record_job_run

    start = datetime.now(timezone.utc)
    try:
        # ... job logic ...
        await record_job_run(session, "ingest_upcoming", "ok", start, metrics={"created": 5})
    except Exception as e:
        await record_job_run(session, "ingest_upcoming", "error", start, error=str(e))
        raise
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fixturecast.etl.dates import to_naive_utc
from fixturecast.models import JobRun

logger = logging.getLogger(__name__)


async def record_job_run(
    session: AsyncSession,
    job_name: str,
    status: str,
    started_at: datetime,
    error: Optional[str] = None,
    metrics: Optional[dict] = None,
) -> JobRun:
    """
    Record a job execution in the database.

    Args:
        session: Database session.
        job_name: Job identifier (ingest_upcoming, forecast, grade, ...).
        status: Execution status (ok, error, failed).
        started_at: When the job started.
        error: Error message if failed.
        metrics: Optional job-specific metrics dict.
    """
    finished_at = datetime.now(timezone.utc)
    duration_ms = int((finished_at - started_at).total_seconds() * 1000)

    job_run = JobRun(
        job_name=job_name,
        status=status,
        started_at=to_naive_utc(started_at),
        finished_at=to_naive_utc(finished_at),
        duration_ms=duration_ms,
        error_message=error,
        metrics=metrics,
    )

    session.add(job_run)
    await session.commit()

    logger.debug(f"[JOB_TRACKING] Recorded {job_name} run: {status} in {duration_ms}ms")
    return job_run


async def get_last_success_at(
    session: AsyncSession,
    job_name: str,
) -> Optional[datetime]:
    """
    Get the last successful run timestamp for a job from DB.

    Returns:
        Datetime of last successful run (naive UTC), or None if no successful runs.
    """
    result = await session.execute(
        select(JobRun.finished_at)
        .where(JobRun.job_name == job_name)
        .where(JobRun.status == "ok")
        .order_by(JobRun.finished_at.desc())
        .limit(1)
    )
    row = result.first()
    return row[0] if row else None


async def get_recent_runs(session: AsyncSession, limit: int = 20) -> list[JobRun]:
    """Most recent runs across all jobs."""
    result = await session.execute(
        select(JobRun).order_by(JobRun.finished_at.desc()).limit(limit)
    )
    return list(result.scalars().all())
