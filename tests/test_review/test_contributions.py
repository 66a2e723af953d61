"""
Tests for sentence contribution aggregation and the contributor cap.
"""

import uuid

import pytest
from sqlalchemy import func, select

from voicereview.config import settings
from voicereview.models.tables import Recording
from voicereview.review.contributions import (
    ContributionCache,
    aggregate_contributors,
    available_sentences_for,
    can_record_sentence,
    contributor_count,
    is_sentence_full,
    load_sentence_contributors,
    sentence_stats,
    submit_recording,
)
from voicereview.review.errors import ContributionRejected, UnknownAccount


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestAggregateContributors:

    def test_groups_people_by_sentence(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        contributors = aggregate_contributors([("one", a), ("one", b), ("two", a), ("one", a)])
        assert contributors == {"one": {a, b}, "two": {a}}

    def test_cap_boundaries(self):
        people = [uuid.uuid4() for _ in range(3)]
        contributors = aggregate_contributors(
            [("full", p) for p in people] + [("open", p) for p in people[:2]]
        )
        assert contributor_count(contributors, "full") == 3
        assert is_sentence_full(contributors, "full")
        assert not is_sentence_full(contributors, "open")
        assert contributor_count(contributors, "never recorded") == 0


class TestLoadSentenceContributors:

    @pytest.mark.asyncio
    async def test_counts_every_status_and_merges_accounts_of_one_person(self, session, seed):
        alice = await seed.account()
        alice_reviewer = await seed.account(role="reviewer", person_id=alice.person_id, email=alice.email)
        bob = await seed.account()
        await seed.recording(alice, sentence="s1")
        await seed.recording(alice_reviewer, sentence="s1")
        await seed.recording(bob, sentence="s1", status="rejected", reviewer=alice_reviewer)
        await seed.recording(bob, sentence="s2", status="approved", reviewer=alice_reviewer)

        contributors = await load_sentence_contributors(session, page_size=2)

        assert contributors == {
            "s1": {alice.person_id, bob.person_id},
            "s2": {bob.person_id},
        }


class TestAvailableSentences:

    @pytest.mark.asyncio
    async def test_excludes_full_and_already_recorded_sentences(self, session, seed):
        for text in ("full", "two", "mine", "fresh"):
            await seed.sentence(text)
        await seed.sentence("inactive", is_active=False)

        others = [await seed.account() for _ in range(3)]
        me = await seed.account()
        for person in others:
            await seed.recording(person, sentence="full")
        for person in others[:2]:
            await seed.recording(person, sentence="two")
        await seed.recording(me, sentence="mine")

        available = await available_sentences_for(session, me.user_id, page_size=2)

        assert available == ["two", "fresh"]

    @pytest.mark.asyncio
    async def test_limit_returns_first_batch(self, session, seed):
        for i in range(5):
            await seed.sentence(f"sentence {i}")
        me = await seed.account()

        available = await available_sentences_for(session, me.user_id, limit=2, page_size=2)

        assert available == ["sentence 0", "sentence 1"]

    @pytest.mark.asyncio
    async def test_language_filter(self, session, seed):
        await seed.sentence("luo sentence", language_code="luo")
        await seed.sentence("somali sentence", language_code="so")
        me = await seed.account()

        available = await available_sentences_for(session, me.user_id, language="so")

        assert available == ["somali sentence"]

    @pytest.mark.asyncio
    async def test_empty_once_recording_target_is_reached(self, session, seed):
        await seed.sentence("still open")
        me = await seed.account()
        reviewer = await seed.account(role="reviewer")
        await seed.recording(
            me, sentence="done", status="approved", reviewer=reviewer,
            duration_seconds=settings.RECORDING_TARGET_SECONDS,
        )

        assert await available_sentences_for(session, me.user_id) == []

    @pytest.mark.asyncio
    async def test_unknown_account(self, session):
        with pytest.raises(UnknownAccount):
            await available_sentences_for(session, uuid.uuid4())


class TestSentenceChecks:

    @pytest.mark.asyncio
    async def test_can_record_sentence(self, session, seed):
        first, second, third, fourth = [await seed.account() for _ in range(4)]
        await seed.recording(first, sentence="s")
        await seed.recording(second, sentence="s")

        assert not await can_record_sentence(session, first.user_id, "s")
        assert await can_record_sentence(session, third.user_id, "s")

        await seed.recording(third, sentence="s")
        assert not await can_record_sentence(session, fourth.user_id, "s")

    @pytest.mark.asyncio
    async def test_sentence_stats(self, session, seed):
        first, second = await seed.account(), await seed.account()
        await seed.recording(first, sentence="s")
        await seed.recording(second, sentence="s")

        stats = await sentence_stats(session, "s")

        assert stats.total_recordings == 2
        assert stats.unique_contributors == 2
        assert not stats.is_full


class TestSubmitRecording:

    @pytest.mark.asyncio
    async def test_accepts_and_invalidates_cache(self, session, seed):
        await seed.sentence("open")
        me = await seed.account()
        cache = ContributionCache(ttl_seconds=3600)
        await cache.get(session)

        recording = await submit_recording(session, me.user_id, "open", 4.5, cache=cache)
        await session.commit()

        assert recording.status == "pending"
        assert recording.language == "luo"
        contributors = await cache.get(session)
        assert contributors["open"] == {me.person_id}

    @pytest.mark.asyncio
    async def test_rejects_full_sentence(self, session, seed):
        await seed.sentence("full")
        for _ in range(settings.SENTENCE_CONTRIBUTOR_CAP):
            await seed.recording(await seed.account(), sentence="full")
        me = await seed.account()

        with pytest.raises(ContributionRejected) as excinfo:
            await submit_recording(session, me.user_id, "full", 3.0)

        assert excinfo.value.reason == "sentence_full"

    @pytest.mark.asyncio
    async def test_rejects_second_recording_by_same_person(self, session, seed):
        await seed.sentence("again")
        me = await seed.account()
        my_reviewer_account = await seed.account(role="reviewer", person_id=me.person_id, email=me.email)
        await seed.recording(me, sentence="again")

        with pytest.raises(ContributionRejected) as excinfo:
            await submit_recording(session, my_reviewer_account.user_id, "again", 3.0)

        assert excinfo.value.reason == "already_recorded"

    @pytest.mark.asyncio
    async def test_rejects_unknown_or_inactive_sentence(self, session, seed):
        await seed.sentence("retired", is_active=False)
        me = await seed.account()

        for text in ("retired", "not in catalogue"):
            with pytest.raises(ContributionRejected) as excinfo:
                await submit_recording(session, me.user_id, text, 3.0)
            assert excinfo.value.reason == "unknown_sentence"

    @pytest.mark.asyncio
    async def test_rejects_recording_past_the_target(self, session, seed):
        await seed.sentence("open")
        me = await seed.account()
        reviewer = await seed.account(role="reviewer")
        await seed.recording(
            me, sentence="earlier", status="approved", reviewer=reviewer,
            duration_seconds=settings.RECORDING_TARGET_SECONDS - 2,
        )

        with pytest.raises(ContributionRejected) as excinfo:
            await submit_recording(session, me.user_id, "open", 5.0)

        assert excinfo.value.reason == "target_exceeded"

    @pytest.mark.asyncio
    async def test_rejects_negative_duration(self, session, seed):
        me = await seed.account()
        with pytest.raises(ValueError):
            await submit_recording(session, me.user_id, "open", -1.0)

    @pytest.mark.asyncio
    async def test_rejection_writes_nothing(self, session, seed):
        await seed.sentence("full")
        for _ in range(settings.SENTENCE_CONTRIBUTOR_CAP):
            await seed.recording(await seed.account(), sentence="full")
        me = await seed.account()

        with pytest.raises(ContributionRejected):
            await submit_recording(session, me.user_id, "full", 3.0)
        await session.rollback()

        count = (await session.execute(select(func.count(Recording.recording_id)))).scalar()
        assert count == settings.SENTENCE_CONTRIBUTOR_CAP


class TestContributionCache:

    @pytest.mark.asyncio
    async def test_serves_cached_mapping_until_ttl_expires(self, session, seed):
        first = await seed.account()
        await seed.recording(first, sentence="s")
        clock = FakeClock()
        cache = ContributionCache(ttl_seconds=60, clock=clock)

        assert await cache.get(session) == {"s": {first.person_id}}

        second = await seed.account()
        await seed.recording(second, sentence="s")
        clock.now = 30
        assert await cache.get(session) == {"s": {first.person_id}}

        clock.now = 61
        assert await cache.get(session) == {"s": {first.person_id, second.person_id}}

    @pytest.mark.asyncio
    async def test_invalidate_forces_reload(self, session, seed):
        cache = ContributionCache(ttl_seconds=3600)
        assert await cache.get(session) == {}

        owner = await seed.account()
        await seed.recording(owner, sentence="s")
        cache.invalidate()

        assert await cache.get(session) == {"s": {owner.person_id}}
