"""
Reviewer eligibility filter.

Computes, for one reviewer at one moment, the recordings that reviewer may act
on. Status is read fresh on every call; nothing here is cached across calls.
The result is advisory: the commit protocol re-checks everything atomically.
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.models.enums import RecordingStatus
from voicereview.models.tables import Recording, Review
from voicereview.observability.metrics import eligible_queue_size
from voicereview.review.identity import AccountId, accounts_of, get_account
from voicereview.review.pagination import fetch_all

logger = structlog.get_logger(__name__)


async def eligible_for(
    session: AsyncSession,
    reviewer_id: AccountId,
    status: str = RecordingStatus.PENDING.value,
    language: Optional[str] = None,
    page_size: Optional[int] = None,
) -> list[Recording]:
    """
    Recordings in `status` that `reviewer_id` may review, oldest first.

    Excludes recordings owned by any account of the same person and recordings
    the person has already reviewed. When `language` is not given, the
    reviewer's primary language (first entry of `languages`) applies.
    """
    status = RecordingStatus(status).value
    reviewer = await get_account(session, reviewer_id)
    own_accounts = accounts_of(reviewer.person_id)

    if language is None and reviewer.languages:
        language = reviewer.languages[0]

    stmt = select(Recording).where(
        Recording.status == status,
        Recording.user_id.not_in(own_accounts),
    )
    if language:
        stmt = stmt.where(Recording.language == language)
    stmt = stmt.execution_options(populate_existing=True)
    candidates = await fetch_all(
        session, stmt, [Recording.created_at, Recording.recording_id],
        page_size=page_size, label="recordings_by_status",
    )

    reviewed_stmt = select(Review.recording_id).where(Review.reviewer_id.in_(own_accounts))
    already_reviewed = set(
        await fetch_all(
            session, reviewed_stmt, [Review.review_id],
            page_size=page_size, label="reviews_by_reviewer",
        )
    )

    eligible = [r for r in candidates if r.recording_id not in already_reviewed]

    eligible_queue_size.observe(len(eligible))
    logger.info(
        "eligible_recordings_computed",
        reviewer_id=str(reviewer.user_id),
        status=status,
        language=language,
        candidates=len(candidates),
        already_reviewed=len(already_reviewed),
        eligible=len(eligible),
    )
    return eligible
