"""
Pydantic request/response schemas for the /api/v1/reviews endpoints.
"""

from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime
import uuid


# ── Request Schemas ──────────────────────────────────────────

class ReviewCommitRequest(BaseModel):
    """A reviewer's decision on one recording."""
    recording_id: uuid.UUID
    reviewer_id: uuid.UUID
    decision: Literal["approved", "rejected"]
    confidence: int = Field(ge=0, le=100)
    time_spent_seconds: int = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=2000)


# ── Response Schemas ─────────────────────────────────────────

class RecordingSummary(BaseModel):
    """One entry of a reviewer's work queue."""
    recording_id: uuid.UUID
    user_id: uuid.UUID
    sentence: str
    language: Optional[str] = None
    duration_seconds: float
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ReviewQueueResponse(BaseModel):
    reviewer_id: uuid.UUID
    status: str
    recordings: list[RecordingSummary]
    total: int


class ReviewResponse(BaseModel):
    review_id: uuid.UUID
    recording_id: uuid.UUID
    reviewer_id: uuid.UUID
    decision: str
    confidence: int
    time_spent_seconds: int
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CommitRefusal(BaseModel):
    """Body returned when a commit did not create a review."""
    outcome: str
    message: str
    recording_id: Optional[uuid.UUID] = None
    current_status: Optional[str] = None
    refresh_queue: bool = False
    retryable: bool = False
