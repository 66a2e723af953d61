"""
Duplicate/consistency auditor.

Offline safety net for the at-most-one-review invariant. Scans every review,
keeps the earliest review of any recording that has several, deletes the rest
and brings the recording row back in line with the kept review. It never
makes a review decision of its own.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.models.enums import RecordingStatus
from voicereview.models.tables import Recording, Review
from voicereview.observability.metrics import (
    audit_duplicate_reviews_deleted_total,
    audit_last_duplicate_recordings,
    audit_recordings_fixed_total,
)
from voicereview.review.pagination import fetch_all

logger = structlog.get_logger(__name__)

UNIQUE_REVIEW_INDEX = "uq_reviews_recording"


class DuplicateReviewStats(BaseModel):
    total_reviews: int
    unique_recordings_with_reviews: int
    duplicate_recordings: int
    total_duplicate_reviews: int


class InvariantViolation(BaseModel):
    """A recording found with more than one review. The first id is kept."""
    recording_id: uuid.UUID
    review_ids: list[uuid.UUID]


class AuditReport(BaseModel):
    dry_run: bool
    reviews_scanned: int = 0
    recordings_scanned: int = 0
    recordings_fixed: int = 0
    reviews_deleted: int = 0
    statuses_restored: int = 0
    unbacked_resolutions: int = 0
    unbacked_reset: int = 0
    remaining_duplicate_recordings: int = 0
    unique_index_ensured: bool = False
    violations: list[InvariantViolation] = []


@dataclass
class _Plan:
    delete_review_ids: list[uuid.UUID] = field(default_factory=list)
    restore: dict[uuid.UUID, Review] = field(default_factory=dict)
    unbacked: list[uuid.UUID] = field(default_factory=list)
    fixed: set[uuid.UUID] = field(default_factory=set)
    violations: list[InvariantViolation] = field(default_factory=list)


def group_reviews(reviews: Iterable[Review]) -> dict[uuid.UUID, list[Review]]:
    """Group reviews by recording, each group ordered earliest first."""
    groups: dict[uuid.UUID, list[Review]] = defaultdict(list)
    for review in reviews:
        groups[review.recording_id].append(review)
    for group in groups.values():
        group.sort(key=lambda r: (r.created_at, str(r.review_id)))
    return dict(groups)


async def duplicate_review_stats(
    session: AsyncSession, page_size: Optional[int] = None
) -> DuplicateReviewStats:
    total = (await session.execute(select(func.count(Review.review_id)))).scalar() or 0
    recording_ids = await fetch_all(
        session,
        select(Review.recording_id),
        [Review.review_id],
        page_size=page_size,
        label="reviews",
    )

    counts: dict[uuid.UUID, int] = defaultdict(int)
    for recording_id in recording_ids:
        counts[recording_id] += 1

    duplicated = [c for c in counts.values() if c > 1]
    return DuplicateReviewStats(
        total_reviews=total,
        unique_recordings_with_reviews=len(counts),
        duplicate_recordings=len(duplicated),
        total_duplicate_reviews=sum(c - 1 for c in duplicated),
    )


def _plan(
    recordings: dict[uuid.UUID, tuple[str, Optional[uuid.UUID], Optional[datetime]]],
    groups: dict[uuid.UUID, list[Review]],
) -> _Plan:
    plan = _Plan()

    for recording_id, group in groups.items():
        keep = group[0]
        if len(group) > 1:
            violation = InvariantViolation(
                recording_id=recording_id,
                review_ids=[r.review_id for r in group],
            )
            plan.violations.append(violation)
            plan.delete_review_ids.extend(r.review_id for r in group[1:])
            plan.fixed.add(recording_id)
            logger.warning(
                "invariant_violation_duplicate_reviews",
                recording_id=str(recording_id),
                review_ids=[str(r) for r in violation.review_ids],
                kept_review_id=str(keep.review_id),
            )

        snapshot = recordings.get(recording_id)
        if snapshot is None:
            logger.warning("review_without_recording", recording_id=str(recording_id))
            continue
        status, reviewed_by, reviewed_at = snapshot
        if (
            status != keep.decision
            or reviewed_by != keep.reviewer_id
            or reviewed_at != keep.created_at
        ):
            plan.restore[recording_id] = keep
            plan.fixed.add(recording_id)

    for recording_id, (status, _, _) in recordings.items():
        if status != RecordingStatus.PENDING.value and recording_id not in groups:
            plan.unbacked.append(recording_id)

    return plan


async def reconcile_reviews(
    session: AsyncSession,
    dry_run: bool = False,
    reset_unbacked: bool = False,
    ensure_unique_index: bool = True,
    page_size: Optional[int] = None,
) -> AuditReport:
    """
    Detect and repair review-set inconsistencies.

    Recordings are scanned before reviews, so a commit landing mid-audit can
    only ever look like a pending recording with a review (restored to the
    same values), never like a decision with no review behind it.

    Resolved recordings without any review are reported; they are reset to
    pending only with `reset_unbacked`. The caller commits the session.
    """
    recording_rows = await fetch_all(
        session,
        select(
            Recording.recording_id, Recording.status, Recording.reviewed_by, Recording.reviewed_at
        ),
        [Recording.recording_id],
        page_size=page_size,
        scalars=False,
        label="recordings",
    )
    recordings = {
        row.recording_id: (row.status, row.reviewed_by, row.reviewed_at) for row in recording_rows
    }

    reviews = await fetch_all(
        session,
        select(Review).execution_options(populate_existing=True),
        [Review.created_at, Review.review_id],
        page_size=page_size,
        label="reviews",
    )
    groups = group_reviews(reviews)
    plan = _plan(recordings, groups)

    report = AuditReport(
        dry_run=dry_run,
        reviews_scanned=len(reviews),
        recordings_scanned=len(recordings),
        recordings_fixed=len(plan.fixed),
        reviews_deleted=len(plan.delete_review_ids),
        statuses_restored=len(plan.restore),
        unbacked_resolutions=len(plan.unbacked),
        violations=plan.violations,
    )
    audit_last_duplicate_recordings.set(len(plan.violations))
    if plan.violations:
        logger.warning(
            "duplicate_reviews_detected",
            recordings=len(plan.violations),
            surplus_reviews=len(plan.delete_review_ids),
        )

    if dry_run:
        report.remaining_duplicate_recordings = len(plan.violations)
        logger.info("audit_dry_run_completed", **report.model_dump(exclude={"violations"}))
        return report

    if plan.delete_review_ids:
        await session.execute(
            delete(Review)
            .where(Review.review_id.in_(plan.delete_review_ids))
            .execution_options(synchronize_session=False)
        )

    for recording_id, keep in plan.restore.items():
        await session.execute(
            update(Recording)
            .where(Recording.recording_id == recording_id)
            .values(
                status=keep.decision,
                reviewed_by=keep.reviewer_id,
                reviewed_at=keep.created_at,
            )
            .execution_options(synchronize_session=False)
        )

    if reset_unbacked and plan.unbacked:
        reset = await session.execute(
            update(Recording)
            .where(
                Recording.recording_id.in_(plan.unbacked),
                Recording.recording_id.not_in(select(Review.recording_id)),
            )
            .values(status=RecordingStatus.PENDING.value, reviewed_by=None, reviewed_at=None)
            .execution_options(synchronize_session=False)
        )
        # A review committed since the scan keeps its recording resolved
        report.unbacked_reset = reset.rowcount
        report.recordings_fixed += reset.rowcount
    elif plan.unbacked:
        logger.warning("unbacked_resolutions_found", count=len(plan.unbacked))

    await session.flush()

    remaining = await duplicate_review_stats(session, page_size=page_size)
    report.remaining_duplicate_recordings = remaining.duplicate_recordings
    if ensure_unique_index and remaining.duplicate_recordings == 0:
        await ensure_review_uniqueness(session)
        report.unique_index_ensured = True

    audit_duplicate_reviews_deleted_total.inc(report.reviews_deleted)
    audit_recordings_fixed_total.inc(report.recordings_fixed)
    logger.info("audit_completed", **report.model_dump(exclude={"violations"}))
    return report


async def ensure_review_uniqueness(session: AsyncSession) -> None:
    """Create the unique index on reviews.recording_id if it is missing."""
    index = next(i for i in Review.__table__.indexes if i.name == UNIQUE_REVIEW_INDEX)
    await session.run_sync(lambda sync_session: index.create(sync_session.connection(), checkfirst=True))
