"""
Sentence contribution aggregation and the per-sentence contributor cap.

A sentence accepts recordings from at most SENTENCE_CONTRIBUTOR_CAP distinct
people. A pending recording already claims its slot, so the aggregation counts
recordings of every status.
"""

import asyncio
import time
import uuid
from collections import defaultdict
from typing import Callable, Iterable, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.config import settings
from voicereview.models.enums import RecordingStatus
from voicereview.models.tables import Recording, Sentence, User
from voicereview.observability.metrics import (
    contribution_cache_refresh_total,
    recordings_submitted_total,
)
from voicereview.review.errors import ContributionRejected
from voicereview.review.identity import AccountId, accounts_of, get_account
from voicereview.review.pagination import fetch_all, iter_pages

logger = structlog.get_logger(__name__)

SentenceContributors = dict[str, set[uuid.UUID]]


class SentenceStats(BaseModel):
    """Recording statistics for one sentence."""
    sentence: str
    total_recordings: int
    unique_contributors: int
    is_full: bool


# ── Aggregation ──────────────────────────────────────────────

def aggregate_contributors(rows: Iterable[tuple[str, uuid.UUID]]) -> SentenceContributors:
    """Group (sentence, person_id) pairs into sentence -> set of people."""
    contributors: SentenceContributors = defaultdict(set)
    for sentence, person_id in rows:
        contributors[sentence].add(person_id)
    return dict(contributors)


def contributor_count(contributors: SentenceContributors, sentence: str) -> int:
    return len(contributors.get(sentence, ()))


def is_sentence_full(contributors: SentenceContributors, sentence: str) -> bool:
    return contributor_count(contributors, sentence) >= settings.SENTENCE_CONTRIBUTOR_CAP


async def load_sentence_contributors(
    session: AsyncSession,
    page_size: Optional[int] = None,
) -> SentenceContributors:
    """Scan every recording and build the sentence -> contributors mapping."""
    stmt = (
        select(Recording.recording_id, Recording.sentence, User.person_id)
        .join(User, Recording.user_id == User.user_id)
    )
    rows = await fetch_all(
        session, stmt, [Recording.recording_id],
        page_size=page_size, scalars=False, label="recordings",
    )
    contributors = aggregate_contributors((row.sentence, row.person_id) for row in rows)
    logger.info(
        "sentence_contributors_built",
        recordings=len(rows),
        sentences=len(contributors),
        full_sentences=sum(1 for s in contributors if is_sentence_full(contributors, s)),
    )
    return contributors


class ContributionCache:
    """
    Time-bounded cache of the sentence -> contributors mapping.

    Only listings read from it. Recording submission and the review commit
    protocol always query the store directly.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = (
            settings.CONTRIBUTION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._clock = clock
        self._value: Optional[SentenceContributors] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return self._value is not None and self._clock() - self._loaded_at < self.ttl_seconds

    async def get(self, session: AsyncSession) -> SentenceContributors:
        if self._is_fresh():
            return self._value
        async with self._lock:
            if not self._is_fresh():
                self._value = await load_sentence_contributors(session)
                self._loaded_at = self._clock()
                contribution_cache_refresh_total.inc()
        return self._value

    def invalidate(self) -> None:
        self._value = None


# ── Per-contributor queries ──────────────────────────────────

async def approved_recording_seconds(session: AsyncSession, person_id: uuid.UUID) -> float:
    """Total duration of a person's approved recordings."""
    result = await session.execute(
        select(func.coalesce(func.sum(Recording.duration_seconds), 0.0)).where(
            Recording.user_id.in_(accounts_of(person_id)),
            Recording.status == RecordingStatus.APPROVED.value,
        )
    )
    return float(result.scalar() or 0.0)


async def has_completed_recording_target(session: AsyncSession, person_id: uuid.UUID) -> bool:
    total = await approved_recording_seconds(session, person_id)
    return total >= settings.RECORDING_TARGET_SECONDS


async def recorded_sentences(
    session: AsyncSession,
    person_id: uuid.UUID,
    page_size: Optional[int] = None,
) -> set[str]:
    """Every sentence text this person has recorded under any account."""
    stmt = select(Recording.sentence).where(Recording.user_id.in_(accounts_of(person_id)))
    return set(
        await fetch_all(
            session, stmt, [Recording.recording_id], page_size=page_size, label="own_recordings"
        )
    )


async def available_sentences_for(
    session: AsyncSession,
    user_id: AccountId,
    limit: Optional[int] = None,
    language: Optional[str] = None,
    contributors: Optional[SentenceContributors] = None,
    page_size: Optional[int] = None,
) -> list[str]:
    """
    Active sentences this contributor may still record, in catalogue order.

    Excludes sentences the person already recorded and sentences that have
    reached the contributor cap. Returns an empty list once the person has
    reached the recording-time target. With `limit`, stops reading sentence
    pages as soon as enough sentences are collected.
    """
    user = await get_account(session, user_id)
    if await has_completed_recording_target(session, user.person_id):
        logger.info("recording_target_reached", user_id=str(user.user_id))
        return []

    already_recorded = await recorded_sentences(session, user.person_id, page_size=page_size)
    if contributors is None:
        contributors = await load_sentence_contributors(session, page_size=page_size)

    stmt = select(Sentence.text).where(Sentence.is_active.is_(True))
    if language:
        stmt = stmt.where(Sentence.language_code == language)

    available: list[str] = []
    pages = iter_pages(
        session, stmt, [Sentence.created_at, Sentence.sentence_id],
        page_size=page_size, label="sentences",
    )
    async for page in pages:
        for text in page:
            if text in already_recorded or is_sentence_full(contributors, text):
                continue
            available.append(text)
            if limit is not None and len(available) >= limit:
                return available
    return available


async def can_record_sentence(session: AsyncSession, user_id: AccountId, sentence: str) -> bool:
    """True if the person has not recorded `sentence` and it is below the cap."""
    user = await get_account(session, user_id)
    return await _rejection_reason(session, user.person_id, sentence) is None


async def sentence_stats(session: AsyncSession, sentence: str) -> SentenceStats:
    result = await session.execute(
        select(func.count(Recording.recording_id), func.count(distinct(User.person_id)))
        .join(User, Recording.user_id == User.user_id)
        .where(Recording.sentence == sentence)
    )
    total, unique = result.one()
    return SentenceStats(
        sentence=sentence,
        total_recordings=total or 0,
        unique_contributors=unique or 0,
        is_full=(unique or 0) >= settings.SENTENCE_CONTRIBUTOR_CAP,
    )


async def _rejection_reason(
    session: AsyncSession, person_id: uuid.UUID, sentence: str
) -> Optional[str]:
    own = await session.execute(
        select(Recording.recording_id)
        .where(Recording.sentence == sentence, Recording.user_id.in_(accounts_of(person_id)))
        .limit(1)
    )
    if own.first() is not None:
        return "already_recorded"

    stats = await sentence_stats(session, sentence)
    if stats.is_full:
        return "sentence_full"
    return None


# ── Submission ───────────────────────────────────────────────

async def submit_recording(
    session: AsyncSession,
    user_id: AccountId,
    sentence: str,
    duration_seconds: float,
    language: Optional[str] = None,
    cache: Optional[ContributionCache] = None,
) -> Recording:
    """
    Insert a pending recording after checking every contribution rule.

    The sentence row is locked for the rest of the caller's transaction, so
    two contributors racing for the last slot of a sentence are serialised.
    The caller owns the transaction and commits it.
    """
    if duration_seconds < 0:
        raise ValueError(f"duration_seconds must not be negative, got {duration_seconds}")

    user = await get_account(session, user_id)

    locked = await session.execute(
        select(Sentence).where(Sentence.text == sentence).with_for_update()
    )
    row = locked.scalar_one_or_none()
    if row is None or not row.is_active:
        recordings_submitted_total.labels(result="unknown_sentence").inc()
        raise ContributionRejected("unknown_sentence", "Sentence is not in the active catalogue")

    total = await approved_recording_seconds(session, user.person_id)
    target = settings.RECORDING_TARGET_SECONDS
    if total >= target:
        recordings_submitted_total.labels(result="target_reached").inc()
        raise ContributionRejected(
            "target_reached",
            f"Recording target of {target:.0f} seconds already completed",
        )
    if total + duration_seconds > target:
        recordings_submitted_total.labels(result="target_exceeded").inc()
        raise ContributionRejected(
            "target_exceeded",
            f"Recording would exceed the target; {target - total:.1f} seconds remaining",
        )

    reason = await _rejection_reason(session, user.person_id, sentence)
    if reason is not None:
        recordings_submitted_total.labels(result=reason).inc()
        raise ContributionRejected(reason, f"Sentence cannot be recorded: {reason}")

    recording = Recording(
        user_id=user.user_id,
        sentence=sentence,
        language=language or row.language_code,
        duration_seconds=duration_seconds,
        status=RecordingStatus.PENDING.value,
    )
    session.add(recording)
    await session.flush()

    if cache is not None:
        cache.invalidate()

    recordings_submitted_total.labels(result="accepted").inc()
    logger.info(
        "recording_submitted",
        recording_id=str(recording.recording_id),
        user_id=str(user.user_id),
        duration_seconds=duration_seconds,
    )
    return recording
