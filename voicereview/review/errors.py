"""
Exceptions raised by the review core.

Lost races during a review commit are not exceptions; they come back as a
CommitResult (see voicereview.review.commit).
"""

from typing import Optional


class ReviewCoreError(Exception):
    """Base class for review core failures."""

    error_code = "REVIEW_CORE_ERROR"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(f"{self.error_code}: {message}")


class StoreUnavailable(ReviewCoreError):
    """A read against the backing store failed. Retryable."""

    error_code = "STORE_UNAVAILABLE"


class UnknownAccount(ReviewCoreError):
    """The referenced user account does not exist."""

    error_code = "UNKNOWN_ACCOUNT"


class ContributionRejected(ReviewCoreError):
    """A recording submission breaks a contribution rule."""

    error_code = "CONTRIBUTION_REJECTED"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)
