"""
Python enums matching the values stored in the database.
Values are lower-case to match the rows written by the web application.
"""

from enum import Enum


class RecordingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReviewDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, Enum):
    CONTRIBUTOR = "contributor"
    REVIEWER = "reviewer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    SUSPENDED = "suspended"


class CommitOutcome(str, Enum):
    """Result of a single review commit attempt."""
    CREATED = "created"
    ALREADY_RESOLVED = "already_resolved"
    ALREADY_REVIEWED = "already_reviewed"
    SELF_REVIEW = "self_review"
    RECORDING_NOT_FOUND = "recording_not_found"
    UNKNOWN_REVIEWER = "unknown_reviewer"
    WRITE_FAILED = "write_failed"
