"""
FastAPI dependency injection.
Provides DB sessions, the contribution cache, and API key validation.
"""

from typing import Optional

from fastapi import Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from voicereview.config import settings
from voicereview.models.database import get_session
from voicereview.review.contributions import ContributionCache


# ── Singleton instances ──────────────────────────────────────
_contribution_cache: Optional[ContributionCache] = None


def get_contribution_cache() -> ContributionCache:
    """Get or create the contribution cache singleton."""
    global _contribution_cache
    if _contribution_cache is None:
        _contribution_cache = ContributionCache()
    return _contribution_cache


async def get_db() -> AsyncSession:
    """Yield an async DB session."""
    async for session in get_session():
        yield session


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify API key if configured.
    If API_KEY is not set, all requests are allowed (dev mode).
    """
    if settings.API_KEY is None:
        return None

    if x_api_key is None or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return x_api_key
