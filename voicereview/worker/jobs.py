"""
RQ job functions for the review auditor.
These are the entry points that the worker calls.
"""

from datetime import timedelta
from typing import Optional

import structlog
from redis import Redis
from rq import Queue, get_current_job

from voicereview.config import settings

logger = structlog.get_logger(__name__)


def get_queue() -> Queue:
    """Get the audit job queue."""
    conn = Redis.from_url(settings.REDIS_URL)
    return Queue(settings.QUEUE_NAME, connection=conn)


def enqueue_audit(
    dry_run: bool = False,
    reset_unbacked: bool = False,
    delay_seconds: Optional[int] = None,
) -> str:
    """
    Enqueue an audit run, immediately or after `delay_seconds`.
    Returns the job ID.
    """
    q = get_queue()
    kwargs = {
        "job_timeout": settings.JOB_TIMEOUT_SECONDS,
        "result_ttl": 86400,  # Keep reports for 24 hours
        "failure_ttl": 604800,  # Keep failures for 7 days
    }
    if delay_seconds:
        job = q.enqueue_in(
            timedelta(seconds=delay_seconds), run_audit_job, dry_run, reset_unbacked, **kwargs
        )
    else:
        job = q.enqueue(run_audit_job, dry_run, reset_unbacked, **kwargs)
    logger.info("audit_enqueued", job_id=job.id, dry_run=dry_run, delay_seconds=delay_seconds)
    return job.id


def run_audit_job(dry_run: bool = False, reset_unbacked: bool = False) -> dict:
    """
    Main job function: reconcile duplicate reviews and recording status.
    This runs inside the RQ worker process.
    """
    import asyncio

    job = get_current_job()
    structlog.contextvars.bind_contextvars(job_id=job.id if job else None)
    logger.info("audit_job_started", dry_run=dry_run, reset_unbacked=reset_unbacked)

    try:
        report = asyncio.run(_run_audit_async(dry_run, reset_unbacked))
        logger.info(
            "audit_job_completed",
            recordings_fixed=report["recordings_fixed"],
            reviews_deleted=report["reviews_deleted"],
        )
        return report
    except Exception as e:
        logger.error("audit_job_failed", error=str(e))
        raise


def run_periodic_audit() -> dict:
    """Run an audit, then schedule the next one even if this run failed."""
    try:
        return run_audit_job()
    finally:
        enqueue_periodic_audit()


def enqueue_periodic_audit() -> str:
    q = get_queue()
    job = q.enqueue_in(
        timedelta(seconds=settings.AUDIT_INTERVAL_SECONDS),
        run_periodic_audit,
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
    )
    logger.info("periodic_audit_scheduled", job_id=job.id,
                interval_seconds=settings.AUDIT_INTERVAL_SECONDS)
    return job.id


async def _run_audit_async(dry_run: bool, reset_unbacked: bool) -> dict:
    from voicereview.models.database import async_session_factory, close_db
    from voicereview.review.auditor import reconcile_reviews

    try:
        async with async_session_factory() as session:
            report = await reconcile_reviews(
                session, dry_run=dry_run, reset_unbacked=reset_unbacked
            )
            await session.commit()
        return report.model_dump(mode="json")
    finally:
        # asyncio.run closes the loop; pooled connections must not outlive it
        await close_db()
