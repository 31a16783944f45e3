"""Tests for saga.context.assembler: tier windows, caps and failure isolation."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from saga.context.assembler import TieredContextAssembler
from saga.core.config import ContextConfig
from saga.core.errors import SubjectNotFoundError
from saga.core.types import (
    Decision,
    Fact,
    Interaction,
    InteractionSummary,
    KeyDecision,
    Message,
    Milestone,
    RelationshipProfile,
    SearchResult,
    Subject,
    TranscriptSegment,
)
from saga.store.sqlite_store import SQLiteContextStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
HOT_CUTOFF = NOW - timedelta(days=7)
WARM_CUTOFF = NOW - timedelta(days=90)


def _clock():
    return NOW


@pytest.fixture
def store(tmp_path):
    s = SQLiteContextStore(tmp_path / "context.db")
    s.add_subject(Subject(id="anna", name="Anna", organization_name="Acme"))
    s.add_subject(Subject(id="notifier", name="Build Bot", is_bot=True))

    s.add_fact(Fact(id="f-pos", subject_id="anna", fact_type="position", value="CTO",
                    created_at=NOW - timedelta(days=10)))
    s.add_fact(Fact(id="f-bday", subject_id="anna", fact_type="birthday", value_date=date(1990, 4, 12),
                    created_at=NOW - timedelta(days=5)))
    s.add_fact(Fact(id="f-old", subject_id="anna", fact_type="company", value="Globex",
                    created_at=NOW - timedelta(days=400), valid_until=NOW - timedelta(days=100)))

    s.add_interaction(Interaction(id="chat", participant_ids=["anna"]))
    for message_id, ts, archived in [
        ("too-old", HOT_CUTOFF - timedelta(seconds=1), False),
        ("boundary", HOT_CUTOFF, False),
        ("yesterday", NOW - timedelta(days=1), False),
        ("archived", NOW - timedelta(hours=3), True),
        ("latest", NOW - timedelta(hours=2), False),
    ]:
        s.add_message(Message(id=message_id, interaction_id="chat", sender_entity_id="anna",
                              content=f"text {message_id}", timestamp=ts, is_archived=archived))

    s.add_interaction(Interaction(id="call", interaction_type="call", participant_ids=["anna"]))
    s.add_segment(TranscriptSegment(id="seg-1", interaction_id="call", speaker_label="Anna",
                                    content="Let's sign next week", timestamp=NOW - timedelta(days=3)))
    s.add_segment(TranscriptSegment(id="seg-old", interaction_id="call", speaker_label="Anna",
                                    content="Old call", timestamp=NOW - timedelta(days=20)))

    for summary_id, created in [
        ("sum-hot", NOW - timedelta(days=2)),
        ("sum-edge", HOT_CUTOFF),
        ("sum-month", NOW - timedelta(days=30)),
        ("sum-expired", WARM_CUTOFF),
    ]:
        s.add_interaction(Interaction(id=f"i-{summary_id}", participant_ids=["anna"]))
        s.add_summary(InteractionSummary(
            id=summary_id,
            interaction_id=f"i-{summary_id}",
            summary_text=f"summary {summary_id}",
            decisions=[
                Decision(description="Sign contract", importance="high"),
                Decision(description="Pick a font", importance="low"),
            ],
            created_at=created,
        ))

    s.upsert_profile(RelationshipProfile(
        subject_id="anna",
        relationship_type="client",
        milestones=[Milestone(date=f"2024-0{i}-01", title=f"milestone {i}") for i in range(1, 6)],
        key_decisions=[KeyDecision(date=f"2024-0{i}-15", description=f"decision {i}") for i in range(1, 8)],
    ))
    yield s
    s.close()


@pytest.fixture
def search():
    engine = MagicMock()
    engine.hybrid_search = AsyncMock(return_value=[
        SearchResult(id="yesterday", content="text yesterday", timestamp=NOW - timedelta(days=1),
                     interaction_id="chat", score=0.03),
    ])
    return engine


def _assembler(store, search=None, **kwargs):
    return TieredContextAssembler(store, search=search, clock=_clock, **kwargs)


class TestPermanentTier:
    @pytest.mark.asyncio
    async def test_only_current_facts_newest_first(self, store):
        bundle = await _assembler(store).build_context("anna")
        assert [f.id for f in bundle.facts] == ["f-bday", "f-pos"]
        assert all(f.is_current for f in bundle.facts)


class TestHotTier:
    @pytest.mark.asyncio
    async def test_cutoff_is_inclusive(self, store):
        bundle = await _assembler(store).build_context("anna")
        ids = [m.id for m in bundle.hot_messages]
        assert "boundary" in ids
        assert "too-old" not in ids
        assert bundle.hot_cutoff == HOT_CUTOFF

    @pytest.mark.asyncio
    async def test_archived_excluded_and_chronological(self, store):
        bundle = await _assembler(store).build_context("anna")
        assert [m.id for m in bundle.hot_messages] == ["boundary", "yesterday", "latest"]

    @pytest.mark.asyncio
    async def test_message_cap_keeps_latest(self, store):
        assembler = _assembler(store, config=ContextConfig(hot_message_limit=2))
        bundle = await assembler.build_context("anna")
        assert [m.id for m in bundle.hot_messages] == ["yesterday", "latest"]

    @pytest.mark.asyncio
    async def test_segments_in_window(self, store):
        bundle = await _assembler(store).build_context("anna")
        assert [s.id for s in bundle.hot_segments] == ["seg-1"]

    @pytest.mark.asyncio
    async def test_window_override(self, store):
        bundle = await _assembler(store).build_context("anna", hot_tier_days=1)
        assert [m.id for m in bundle.hot_messages] == ["yesterday", "latest"]
        assert bundle.hot_cutoff == NOW - timedelta(days=1)
        # the hot window shrank, so the two-day-old summary is now warm
        assert "sum-hot" in [s.id for s in bundle.warm_summaries]


class TestWarmTier:
    @pytest.mark.asyncio
    async def test_window_bounds(self, store):
        bundle = await _assembler(store).build_context("anna")
        assert [s.id for s in bundle.warm_summaries] == ["sum-edge", "sum-month"]
        assert bundle.warm_cutoff == WARM_CUTOFF

    @pytest.mark.asyncio
    async def test_only_high_importance_decisions(self, store):
        bundle = await _assembler(store).build_context("anna")
        for summary in bundle.warm_summaries:
            assert [d.description for d in summary.decisions] == ["Sign contract"]

    @pytest.mark.asyncio
    async def test_summary_cap(self, store):
        assembler = _assembler(store, config=ContextConfig(warm_summary_limit=1))
        bundle = await assembler.build_context("anna")
        assert [s.id for s in bundle.warm_summaries] == ["sum-edge"]


class TestColdTier:
    @pytest.mark.asyncio
    async def test_latest_entries_kept(self, store):
        bundle = await _assembler(store).build_context("anna")
        profile = bundle.cold_profile
        assert [m.title for m in profile.milestones] == ["milestone 3", "milestone 4", "milestone 5"]
        assert [d.description for d in profile.key_decisions] == [
            "decision 3", "decision 4", "decision 5", "decision 6", "decision 7",
        ]
        assert bundle.tier_counts.cold_decisions == 5

    @pytest.mark.asyncio
    async def test_missing_profile(self, store):
        store.add_subject(Subject(id="new", name="Newcomer"))
        bundle = await _assembler(store).build_context("new")
        assert bundle.cold_profile is None
        assert bundle.tier_counts.cold_decisions == 0


class TestRelevantTier:
    @pytest.mark.asyncio
    async def test_requires_task_hint(self, store, search):
        bundle = await _assembler(store, search).build_context("anna")
        assert bundle.relevant == []
        search.hybrid_search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_hint_treated_as_missing(self, store, search):
        bundle = await _assembler(store, search).build_context("anna", task_hint="   ")
        assert bundle.task_hint is None
        search.hybrid_search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scoped_to_subject(self, store, search):
        bundle = await _assembler(store, search).build_context("anna", task_hint="contract renewal")
        assert [r.id for r in bundle.relevant] == ["yesterday"]
        search.hybrid_search.assert_awaited_once_with("contract renewal", entity_id="anna", limit=5)

    @pytest.mark.asyncio
    async def test_disabled_by_flag(self, store, search):
        assembler = _assembler(store, search, relevant_tier_enabled=False)
        bundle = await assembler.build_context("anna", task_hint="contract")
        assert bundle.relevant == []
        search.hybrid_search.assert_not_awaited()


class TestShortCircuits:
    @pytest.mark.asyncio
    async def test_unknown_subject(self, store):
        with pytest.raises(SubjectNotFoundError) as exc_info:
            await _assembler(store).build_context("ghost")
        assert exc_info.value.subject_id == "ghost"

    @pytest.mark.asyncio
    async def test_bot_gets_minimal_bundle(self, search):
        store = MagicMock()
        store.get_subject.return_value = Subject(id="notifier", name="Build Bot", is_bot=True)
        bundle = await _assembler(store, search).build_context("notifier", task_hint="deploys")
        assert bundle.is_minimal
        assert bundle.tier_counts.model_dump() == dict.fromkeys(bundle.tier_counts.model_dump(), 0)
        store.get_current_facts.assert_not_called()
        store.get_recent_messages.assert_not_called()
        search.hybrid_search.assert_not_awaited()


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_failing_tier_left_empty(self, store, search):
        def broken(*args, **kwargs):
            raise RuntimeError("disk I/O error")

        store.get_recent_messages = broken
        bundle = await _assembler(store, search).build_context("anna", task_hint="contract")
        assert bundle.hot_messages == []
        assert [f.id for f in bundle.facts] == ["f-bday", "f-pos"]
        assert len(bundle.warm_summaries) == 2
        assert bundle.relevant

    @pytest.mark.asyncio
    async def test_failing_search_leaves_relevant_empty(self, store, search):
        search.hybrid_search.side_effect = RuntimeError("qdrant down")
        bundle = await _assembler(store, search).build_context("anna", task_hint="contract")
        assert bundle.relevant == []
        assert bundle.hot_messages
