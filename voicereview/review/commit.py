"""
Review commit protocol.

A recording receives at most one binding review, however many reviewers act
on it at once. The claim is a single conditional UPDATE on the recording row
(status must still be pending, owner must not be the reviewer); only the
caller whose UPDATE touched exactly one row goes on to insert the review, in
the same transaction. The unique index on reviews.recording_id backs this up.

Losing a race is an expected outcome and is returned, not raised.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.models.enums import CommitOutcome, RecordingStatus, ReviewDecision
from voicereview.models.tables import Recording, Review, User, utcnow
from voicereview.observability.metrics import (
    review_commit_duration_seconds,
    review_commits_total,
)
from voicereview.review.errors import UnknownAccount
from voicereview.review.identity import AccountId, accounts_of, as_uuid, get_account

logger = structlog.get_logger(__name__)

LOST_RACE_OUTCOMES = frozenset({CommitOutcome.ALREADY_RESOLVED, CommitOutcome.ALREADY_REVIEWED})

_MESSAGES = {
    CommitOutcome.ALREADY_RESOLVED: "This recording was already resolved by another reviewer. Refresh your queue.",
    CommitOutcome.ALREADY_REVIEWED: "This recording has already been reviewed. Refresh your queue.",
    CommitOutcome.SELF_REVIEW: "You cannot review your own recordings.",
    CommitOutcome.RECORDING_NOT_FOUND: "Recording not found.",
    CommitOutcome.UNKNOWN_REVIEWER: "Reviewer account not found.",
    CommitOutcome.WRITE_FAILED: "The review could not be saved. Please retry.",
}


@dataclass
class CommitResult:
    """Outcome of one commit attempt. `review` is set only when created."""
    outcome: CommitOutcome
    recording_id: Optional[uuid.UUID] = None
    review: Optional[Review] = None
    current_status: Optional[str] = None
    message: str = ""

    @property
    def created(self) -> bool:
        return self.outcome == CommitOutcome.CREATED

    @property
    def lost_race(self) -> bool:
        """Someone else resolved the recording first; refresh and move on."""
        return self.outcome in LOST_RACE_OUTCOMES

    @property
    def retryable(self) -> bool:
        return self.outcome == CommitOutcome.WRITE_FAILED


def _result(
    outcome: CommitOutcome,
    recording_id: Optional[uuid.UUID],
    review: Optional[Review] = None,
    current_status: Optional[str] = None,
    detail: Optional[str] = None,
) -> CommitResult:
    return CommitResult(
        outcome=outcome,
        recording_id=recording_id,
        review=review,
        current_status=current_status,
        message=detail or _MESSAGES.get(outcome, ""),
    )


async def commit_review(
    session: AsyncSession,
    recording_id: AccountId,
    reviewer_id: AccountId,
    decision: str,
    confidence: int,
    time_spent_seconds: int = 0,
    notes: Optional[str] = None,
) -> CommitResult:
    """
    Record `reviewer_id`'s decision on `recording_id` exactly once.

    Commits (or rolls back) the session's transaction itself. Safe to call
    again after a timeout: if the first attempt was stored, the retry returns
    ALREADY_REVIEWED instead of writing a second review.

    Raises ValueError for a decision other than approved/rejected, a
    confidence outside 0-100 or a negative time spent.
    """
    decision = ReviewDecision(decision).value
    if not 0 <= confidence <= 100:
        raise ValueError(f"confidence must be within 0-100, got {confidence}")
    if time_spent_seconds < 0:
        raise ValueError(f"time_spent_seconds must not be negative, got {time_spent_seconds}")

    started = time.perf_counter()
    result = await _commit(session, recording_id, reviewer_id, decision, confidence,
                           time_spent_seconds, notes)
    review_commit_duration_seconds.observe(time.perf_counter() - started)
    review_commits_total.labels(outcome=result.outcome.value).inc()

    log_fields = {
        "recording_id": str(result.recording_id) if result.recording_id else str(recording_id),
        "reviewer_id": str(reviewer_id),
        "outcome": result.outcome.value,
    }
    if result.created:
        logger.info("review_committed", review_id=str(result.review.review_id),
                    decision=decision, **log_fields)
    elif result.lost_race:
        logger.info("review_commit_lost_race", current_status=result.current_status, **log_fields)
    elif result.retryable:
        logger.warning("review_commit_failed", detail=result.message, **log_fields)
    else:
        logger.info("review_commit_refused", **log_fields)
    return result


async def _commit(
    session: AsyncSession,
    recording_id: AccountId,
    reviewer_id: AccountId,
    decision: str,
    confidence: int,
    time_spent_seconds: int,
    notes: Optional[str],
) -> CommitResult:
    try:
        rid = as_uuid(recording_id)
    except ValueError:
        return _result(CommitOutcome.RECORDING_NOT_FOUND, None)

    try:
        try:
            reviewer = await get_account(session, reviewer_id)
        except UnknownAccount as e:
            return _result(CommitOutcome.UNKNOWN_REVIEWER, rid, detail=e.message)
        # Rollback expires ORM state; keep plain values
        reviewer_user_id = reviewer.user_id
        reviewer_person_id = reviewer.person_id

        existing = await session.execute(
            select(Review.review_id).where(Review.recording_id == rid).limit(1)
        )
        if existing.first() is not None:
            await session.rollback()
            return _result(CommitOutcome.ALREADY_REVIEWED, rid)

        now = utcnow()
        claim = await session.execute(
            update(Recording)
            .where(
                Recording.recording_id == rid,
                Recording.status == RecordingStatus.PENDING.value,
                Recording.user_id.not_in(accounts_of(reviewer_person_id)),
            )
            .values(status=decision, reviewed_by=reviewer_user_id, reviewed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount != 1:
            await session.rollback()
            return await _explain_unclaimed(session, rid, reviewer_person_id)

        review = Review(
            recording_id=rid,
            reviewer_id=reviewer_user_id,
            decision=decision,
            confidence=confidence,
            time_spent_seconds=time_spent_seconds,
            notes=notes,
            created_at=now,
        )
        session.add(review)
        try:
            await session.flush()
            await session.commit()
        except IntegrityError:
            # Unique index on reviews.recording_id: a review slipped in first
            await session.rollback()
            return _result(CommitOutcome.ALREADY_REVIEWED, rid)

        await session.refresh(review)
        return _result(CommitOutcome.CREATED, rid, review=review, current_status=decision)

    except SQLAlchemyError as e:
        await session.rollback()
        return _result(CommitOutcome.WRITE_FAILED, rid, detail=f"{_MESSAGES[CommitOutcome.WRITE_FAILED]} ({e.__class__.__name__})")


async def _explain_unclaimed(
    session: AsyncSession, recording_id: uuid.UUID, reviewer_person_id: uuid.UUID
) -> CommitResult:
    """Work out why the conditional update matched no row."""
    recording = await session.get(Recording, recording_id, populate_existing=True)
    if recording is None:
        return _result(CommitOutcome.RECORDING_NOT_FOUND, recording_id)

    owner = await session.get(User, recording.user_id)
    if owner is not None and owner.person_id == reviewer_person_id:
        return _result(CommitOutcome.SELF_REVIEW, recording_id, current_status=recording.status)

    if recording.status != RecordingStatus.PENDING.value:
        return _result(CommitOutcome.ALREADY_RESOLVED, recording_id, current_status=recording.status)

    # Still pending: the competing claim was rolled back after ours was evaluated
    return _result(
        CommitOutcome.WRITE_FAILED,
        recording_id,
        current_status=recording.status,
        detail="Claim was not applied. Please retry.",
    )
