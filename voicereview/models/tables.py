"""
SQLAlchemy ORM models.
Table and column names match the tables the web application writes to.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Boolean,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from voicereview.models.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


RECORDING_STATUS = Enum("pending", "approved", "rejected", name="recording_status_enum")
REVIEW_DECISION = Enum("approved", "rejected", name="review_decision_enum")
USER_ROLE = Enum("contributor", "reviewer", "admin", name="user_role_enum")


# ────────────────────────────────────────────────────────────
# USERS
# ────────────────────────────────────────────────────────────
class User(Base):
    """
    One account. A person may hold several accounts (contributor, reviewer,
    admin) that all share the same person_id.
    """
    __tablename__ = "users"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    person_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(USER_ROLE, nullable=False, default="contributor")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    languages: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_users_person", "person_id"),
        Index("idx_users_email_role", "email", "role", unique=True),
    )


# ────────────────────────────────────────────────────────────
# SENTENCES
# ────────────────────────────────────────────────────────────
class Sentence(Base):
    __tablename__ = "sentences"

    sentence_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    language_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("uq_sentences_text", "text", unique=True),
        Index("idx_sentences_active", "is_active", "language_code"),
    )


# ────────────────────────────────────────────────────────────
# RECORDINGS
# ────────────────────────────────────────────────────────────
class Recording(Base):
    __tablename__ = "recordings"

    recording_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    sentence: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    duration_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(RECORDING_STATUS, nullable=False, default="pending")
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=True
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'pending' AND reviewed_by IS NULL AND reviewed_at IS NULL)"
            " OR (status <> 'pending' AND reviewed_by IS NOT NULL AND reviewed_at IS NOT NULL)",
            name="ck_recordings_review_fields",
        ),
        Index("idx_recordings_status", "status", "created_at"),
        Index("idx_recordings_user", "user_id"),
        Index("idx_recordings_sentence", "sentence"),
    )


# ────────────────────────────────────────────────────────────
# REVIEWS
# ────────────────────────────────────────────────────────────
class Review(Base):
    __tablename__ = "reviews"

    review_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recording_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("recordings.recording_id", ondelete="CASCADE"), nullable=False
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id"), nullable=False
    )
    decision: Mapped[str] = mapped_column(REVIEW_DECISION, nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="ck_reviews_confidence"),
        CheckConstraint("time_spent_seconds >= 0", name="ck_reviews_time_spent"),
        # At most one review per recording
        Index("uq_reviews_recording", "recording_id", unique=True),
        Index("idx_reviews_reviewer", "reviewer_id"),
        Index("idx_reviews_created", "created_at"),
    )
