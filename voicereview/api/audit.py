"""
/api/v1/admin endpoints.
Duplicate review statistics, inline cleanup, and queued audit jobs.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from redis import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.config import settings
from voicereview.dependencies import get_db, verify_api_key
from voicereview.review.auditor import AuditReport, DuplicateReviewStats, duplicate_review_stats, reconcile_reviews
from voicereview.schemas.jobs import AuditJobQueued, AuditJobRequest, JobStatus

router = APIRouter(prefix="/api/v1/admin", tags=["admin"], dependencies=[Depends(verify_api_key)])


def _get_redis() -> Redis:
    """Get a Redis connection."""
    return Redis.from_url(settings.REDIS_URL)


@router.get("/duplicate-reviews", response_model=DuplicateReviewStats)
async def get_duplicate_review_stats(session: AsyncSession = Depends(get_db)):
    """Count recordings that carry more than one review."""
    return await duplicate_review_stats(session)


@router.post("/duplicate-reviews/cleanup", response_model=AuditReport)
async def cleanup_duplicate_reviews(
    dry_run: bool = Query(False),
    reset_unbacked: bool = Query(False),
    session: AsyncSession = Depends(get_db),
):
    """Run the auditor inline. The request session commits the repairs."""
    return await reconcile_reviews(session, dry_run=dry_run, reset_unbacked=reset_unbacked)


@router.post("/audit-jobs", response_model=AuditJobQueued, status_code=202)
async def queue_audit(body: AuditJobRequest):
    """Queue an audit run on the worker."""
    try:
        from voicereview.worker.jobs import enqueue_audit

        job_id = enqueue_audit(
            dry_run=body.dry_run,
            reset_unbacked=body.reset_unbacked,
            delay_seconds=body.delay_seconds,
        )
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Queue unavailable: {str(e)}")
    return AuditJobQueued(job_id=job_id)


@router.get("/audit-jobs/{job_id}", response_model=JobStatus)
async def get_audit_job(job_id: str):
    """Get the status and report of an audit job."""
    try:
        from rq.job import Job

        conn = _get_redis()
        job = Job.fetch(job_id, connection=conn)

        return JobStatus(
            job_id=job_id,
            status=job.get_status(),
            enqueued_at=job.enqueued_at,
            started_at=job.started_at,
            ended_at=job.ended_at,
            error_message=str(job.exc_info) if job.exc_info else None,
            result=job.result if job.is_finished else None,
        )
    except Exception as e:
        raise HTTPException(status_code=404, detail=f"Job not found: {str(e)}")
