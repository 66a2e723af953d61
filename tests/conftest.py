"""
Shared test fixtures.

Every test gets its own SQLite file through aiosqlite. Sessions from the same
factory use separate connections, so concurrent commits really contend.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from voicereview.models.database import Base
from voicereview.models.tables import Recording, Review, Sentence, User


class Seeder:
    """Writes fixture rows, each call in its own committed transaction."""

    def __init__(self, session_factory):
        self._factory = session_factory
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def save(self, *objs):
        async with self._factory() as session:
            session.add_all(objs)
            await session.commit()
        return objs[0] if len(objs) == 1 else objs

    async def account(
        self,
        role: str = "contributor",
        person_id: Optional[uuid.UUID] = None,
        email: Optional[str] = None,
        languages: Optional[list] = None,
    ) -> User:
        person_id = person_id or uuid.uuid4()
        return await self.save(User(
            person_id=person_id,
            email=email or f"{person_id.hex[:12]}@example.org",
            role=role,
            languages=languages,
        ))

    async def sentence(self, text: str, language_code: str = "luo", is_active: bool = True) -> Sentence:
        return await self.save(Sentence(
            text=text, language_code=language_code, is_active=is_active, created_at=self.tick(),
        ))

    async def recording(
        self,
        owner: User,
        sentence: str = "Nyathi ni e ot",
        status: str = "pending",
        reviewer: Optional[User] = None,
        language: Optional[str] = "luo",
        duration_seconds: float = 5.0,
    ) -> Recording:
        created_at = self.tick()
        resolved = status != "pending"
        return await self.save(Recording(
            user_id=owner.user_id,
            sentence=sentence,
            language=language,
            duration_seconds=duration_seconds,
            status=status,
            reviewed_by=(reviewer or owner).user_id if resolved else None,
            reviewed_at=created_at if resolved else None,
            created_at=created_at,
        ))

    async def review(
        self,
        recording: Recording,
        reviewer: User,
        decision: str = "approved",
        confidence: int = 80,
        created_at: Optional[datetime] = None,
    ) -> Review:
        return await self.save(Review(
            recording_id=recording.recording_id,
            reviewer_id=reviewer.user_id,
            decision=decision,
            confidence=confidence,
            time_spent_seconds=12,
            created_at=created_at or self.tick(),
        ))


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'review.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)
