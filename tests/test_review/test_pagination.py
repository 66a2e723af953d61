"""
Tests for the paginated full-scan reader.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from voicereview.models.tables import Recording
from voicereview.review.commit import commit_review
from voicereview.review.errors import StoreUnavailable
from voicereview.review.pagination import fetch_all, iter_pages

BY_ID = [Recording.recording_id]
BY_AGE = [Recording.created_at, Recording.recording_id]


class CountingSession:
    """Proxy that counts execute() calls and can fail one of them."""

    def __init__(self, session, fail_on_call=None):
        self.session = session
        self.calls = 0
        self.fail_on_call = fail_on_call

    async def execute(self, stmt, *args, **kwargs):
        self.calls += 1
        if self.calls == self.fail_on_call:
            raise OperationalError("SELECT", {}, Exception("connection reset"))
        return await self.session.execute(stmt, *args, **kwargs)


async def _insert_recordings(session_factory, owner, count, **fields):
    async with session_factory() as s:
        s.add_all(
            Recording(user_id=owner.user_id, sentence=f"sentence {i}", **fields) for i in range(count)
        )
        await s.commit()


class TestFetchAll:

    @pytest.mark.asyncio
    async def test_returns_every_row_past_the_page_size(self, session, session_factory, seed):
        owner = await seed.account()
        await _insert_recordings(session_factory, owner, 2500)

        counting = CountingSession(session)
        rows = await fetch_all(counting, select(Recording), BY_ID, page_size=1000)

        assert len(rows) == 2500
        assert len({r.recording_id for r in rows}) == 2500
        assert counting.calls == 3

    @pytest.mark.asyncio
    async def test_exact_multiple_of_page_size_reads_one_empty_page(self, session, session_factory, seed):
        owner = await seed.account()
        await _insert_recordings(session_factory, owner, 20)

        counting = CountingSession(session)
        rows = await fetch_all(counting, select(Recording.recording_id), BY_ID, page_size=10)

        assert len(rows) == 20
        assert counting.calls == 3

    @pytest.mark.asyncio
    async def test_empty_table(self, session):
        rows = await fetch_all(session, select(Recording), BY_ID)
        assert rows == []

    @pytest.mark.asyncio
    async def test_rows_mode_returns_tuples(self, session, seed):
        owner = await seed.account()
        await seed.recording(owner, sentence="Chiemo ni mit")

        rows = await fetch_all(
            session,
            select(Recording.recording_id, Recording.sentence, Recording.user_id),
            BY_ID,
            scalars=False,
        )

        assert rows[0].sentence == "Chiemo ni mit"
        assert rows[0].user_id == owner.user_id

    @pytest.mark.asyncio
    async def test_rows_mode_pages_on_selected_key(self, session, session_factory, seed):
        owner = await seed.account()
        await _insert_recordings(session_factory, owner, 7)

        rows = await fetch_all(
            session, select(Recording.recording_id, Recording.sentence), BY_ID,
            page_size=3, scalars=False,
        )

        ids = [row.recording_id for row in rows]
        assert len(set(ids)) == 7
        assert ids == sorted(ids)

    @pytest.mark.asyncio
    async def test_page_failure_aborts_the_whole_scan(self, session, session_factory, seed):
        owner = await seed.account()
        await _insert_recordings(session_factory, owner, 25)

        failing = CountingSession(session, fail_on_call=2)
        with pytest.raises(StoreUnavailable) as excinfo:
            await fetch_all(failing, select(Recording), BY_ID, page_size=10)

        assert excinfo.value.error_code == "STORE_UNAVAILABLE"
        assert "page 1" in excinfo.value.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page_size", [0, -5])
    async def test_rejects_non_positive_page_size(self, session, page_size):
        with pytest.raises(ValueError):
            await fetch_all(session, select(Recording), BY_ID, page_size=page_size)

    @pytest.mark.asyncio
    async def test_requires_an_ordering_key(self, session):
        with pytest.raises(ValueError):
            await fetch_all(session, select(Recording), [])


class TestIterPages:

    @pytest.mark.asyncio
    async def test_yields_pages_in_order(self, session, session_factory, seed):
        owner = await seed.account()
        await _insert_recordings(session_factory, owner, 7)

        pages = [page async for page in iter_pages(session, select(Recording.recording_id), BY_ID, page_size=3)]

        assert [len(p) for p in pages] == [3, 3, 1]
        flattened = [rid for page in pages for rid in page]
        assert flattened == sorted(flattened)

    @pytest.mark.asyncio
    async def test_ties_on_first_key_are_split_by_the_second(self, session, session_factory, seed):
        owner = await seed.account()
        same_instant = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)
        await _insert_recordings(session_factory, owner, 5, created_at=same_instant)

        pages = [page async for page in iter_pages(session, select(Recording), BY_AGE, page_size=2)]

        ids = [r.recording_id for page in pages for r in page]
        assert [len(p) for p in pages] == [2, 2, 1]
        assert len(set(ids)) == 5

    @pytest.mark.asyncio
    async def test_resolution_between_pages_skips_no_pending_row(self, session, session_factory, seed):
        owner = await seed.account()
        reviewer = await seed.account(role="reviewer")
        recordings = [await seed.recording(owner, sentence=f"s{i}") for i in range(4)]
        pending = select(Recording).where(Recording.status == "pending")

        seen = []
        async for page in iter_pages(session, pending, BY_AGE, page_size=2):
            if not seen:
                # Another reviewer resolves a row the scan has already passed
                async with session_factory() as other:
                    result = await commit_review(
                        other, recordings[0].recording_id, reviewer.user_id, "approved", 80
                    )
                assert result.created
            seen.extend(r.recording_id for r in page)

        assert seen == [r.recording_id for r in recordings]
