"""
/api/v1/sentences and /api/v1/recordings endpoints.
Sentence availability under the contributor cap, and recording submission.
"""

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.config import settings
from voicereview.dependencies import get_contribution_cache, get_db, verify_api_key
from voicereview.review.contributions import (
    ContributionCache,
    SentenceStats,
    available_sentences_for,
    sentence_stats,
    submit_recording,
)
from voicereview.review.errors import ContributionRejected, StoreUnavailable, UnknownAccount
from voicereview.schemas.sentences import (
    AvailableSentencesResponse,
    RecordingSubmitRequest,
    RecordingSubmitResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["sentences"], dependencies=[Depends(verify_api_key)])


@router.get("/sentences/available", response_model=AvailableSentencesResponse)
async def available_sentences(
    user_id: uuid.UUID = Query(...),
    limit: Optional[int] = Query(None, ge=1, le=5000),
    language: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_db),
    cache: ContributionCache = Depends(get_contribution_cache),
):
    """Sentences this contributor may still record."""
    try:
        contributors = await cache.get(session)
        sentences = await available_sentences_for(
            session,
            user_id,
            limit=limit or settings.AVAILABLE_SENTENCES_BATCH,
            language=language,
            contributors=contributors,
        )
    except UnknownAccount as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except StoreUnavailable as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)

    return AvailableSentencesResponse(user_id=user_id, sentences=sentences, count=len(sentences))


@router.get("/sentences/stats", response_model=SentenceStats)
async def get_sentence_stats(
    text: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_db),
):
    """Recording count and distinct contributors for one sentence."""
    return await sentence_stats(session, text)


@router.post("/recordings", response_model=RecordingSubmitResponse, status_code=status.HTTP_201_CREATED)
async def create_recording(
    body: RecordingSubmitRequest,
    session: AsyncSession = Depends(get_db),
    cache: ContributionCache = Depends(get_contribution_cache),
):
    """Register a new pending recording if the contribution rules allow it."""
    try:
        recording = await submit_recording(
            session,
            body.user_id,
            body.sentence,
            body.duration_seconds,
            language=body.language,
            cache=cache,
        )
    except UnknownAccount as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except ContributionRejected as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"reason": e.reason, "message": e.message},
        )

    return RecordingSubmitResponse.model_validate(recording)
