"""
/api/v1/reviews endpoints.
Reviewer work queue and review commits.
"""

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.dependencies import get_db, verify_api_key
from voicereview.models.enums import CommitOutcome, RecordingStatus
from voicereview.review.commit import commit_review
from voicereview.review.eligibility import eligible_for
from voicereview.review.errors import StoreUnavailable, UnknownAccount
from voicereview.schemas.reviews import (
    CommitRefusal,
    RecordingSummary,
    ReviewCommitRequest,
    ReviewQueueResponse,
    ReviewResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/reviews", tags=["reviews"], dependencies=[Depends(verify_api_key)])

_REFUSAL_STATUS = {
    CommitOutcome.ALREADY_RESOLVED: status.HTTP_409_CONFLICT,
    CommitOutcome.ALREADY_REVIEWED: status.HTTP_409_CONFLICT,
    CommitOutcome.SELF_REVIEW: status.HTTP_403_FORBIDDEN,
    CommitOutcome.RECORDING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CommitOutcome.UNKNOWN_REVIEWER: status.HTTP_404_NOT_FOUND,
    CommitOutcome.WRITE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.get("/queue", response_model=ReviewQueueResponse)
async def review_queue(
    reviewer_id: uuid.UUID = Query(...),
    status_filter: RecordingStatus = Query(RecordingStatus.PENDING, alias="status"),
    language: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    session: AsyncSession = Depends(get_db),
):
    """Recordings this reviewer may act on right now, oldest first."""
    try:
        recordings = await eligible_for(
            session, reviewer_id, status=status_filter.value, language=language
        )
    except UnknownAccount as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

    total = len(recordings)
    if limit is not None:
        recordings = recordings[:limit]

    return ReviewQueueResponse(
        reviewer_id=reviewer_id,
        status=status_filter.value,
        recordings=[RecordingSummary.model_validate(r) for r in recordings],
        total=total,
    )


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": CommitRefusal},
        403: {"model": CommitRefusal},
        404: {"model": CommitRefusal},
        503: {"model": CommitRefusal},
    },
)
async def submit_review(
    body: ReviewCommitRequest,
    session: AsyncSession = Depends(get_db),
):
    """
    Commit a review decision.
    A 409 means another reviewer got there first: refresh the queue.
    """
    result = await commit_review(
        session,
        body.recording_id,
        body.reviewer_id,
        body.decision,
        body.confidence,
        time_spent_seconds=body.time_spent_seconds,
        notes=body.notes,
    )

    if result.created:
        return ReviewResponse.model_validate(result.review)

    refusal = CommitRefusal(
        outcome=result.outcome.value,
        message=result.message,
        recording_id=result.recording_id,
        current_status=result.current_status,
        refresh_queue=result.lost_race,
        retryable=result.retryable,
    )
    return JSONResponse(
        status_code=_REFUSAL_STATUS[result.outcome],
        content=refusal.model_dump(mode="json"),
    )
