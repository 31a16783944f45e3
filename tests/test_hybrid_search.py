"""Tests for saga.retrieval.hybrid.HybridSearchEngine: signal fan-out and fusion."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from saga.core.errors import EmbeddingError, ProviderUnavailableError
from saga.core.types import SearchPeriod, SearchResult, SearchType
from saga.retrieval.hybrid import HybridSearchEngine

TS = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _r(doc_id: str, score: float = 1.0) -> SearchResult:
    return SearchResult(id=doc_id, content=doc_id, timestamp=TS, interaction_id="chat-1", score=score)


def _engine(fts_results=None, vector_results=None, **kwargs):
    fts = MagicMock()
    fts.search = AsyncMock(return_value=fts_results or [])
    vector = MagicMock()
    vector.search = AsyncMock(return_value=vector_results or [])
    embedder = MagicMock()
    embedder.is_random = False
    embedder.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    return HybridSearchEngine(fts, vector, embedder, **kwargs)


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_fuses_both_signals(self):
        engine = _engine([_r("A"), _r("B")], [_r("B"), _r("C")])
        results = await engine.hybrid_search("renewal terms")
        assert [r.id for r in results] == ["B", "A", "C"]

    @pytest.mark.asyncio
    async def test_overfetches_each_signal(self):
        engine = _engine(overfetch_factor=2)
        await engine.hybrid_search("renewal", limit=5)
        assert engine.fts.search.await_args.kwargs["limit"] == 10
        assert engine.vector.search.await_args.kwargs["limit"] == 10

    @pytest.mark.asyncio
    async def test_limit_caps_fused_output(self):
        fts = [_r(f"f{i}") for i in range(6)]
        vector = [_r(f"v{i}") for i in range(6)]
        engine = _engine(fts, vector)
        results = await engine.hybrid_search("q", limit=4)
        assert len(results) == 4

    @pytest.mark.asyncio
    async def test_filters_forwarded(self):
        period = SearchPeriod(**{"from": TS})
        engine = _engine()
        await engine.hybrid_search("q", entity_id="subj-1", period=period, limit=3)
        fts_kwargs = engine.fts.search.await_args.kwargs
        vector_kwargs = engine.vector.search.await_args.kwargs
        assert fts_kwargs["entity_id"] == "subj-1"
        assert fts_kwargs["period"] is period
        assert vector_kwargs["entity_id"] == "subj-1"
        assert vector_kwargs["period"] is period

    @pytest.mark.asyncio
    async def test_query_embedding_goes_to_vector_signal(self):
        engine = _engine()
        await engine.hybrid_search("contract")
        engine.embedder.embed.assert_awaited_once_with("contract")
        assert engine.vector.search.await_args.args[0] == [0.1, 0.2, 0.3]

    @pytest.mark.asyncio
    async def test_blank_query_returns_empty(self):
        engine = _engine([_r("A")], [_r("B")])
        assert await engine.hybrid_search("   ") == []
        engine.fts.search.assert_not_awaited()
        engine.embedder.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_positive_limit_returns_empty(self):
        engine = _engine([_r("A")])
        assert await engine.hybrid_search("q", limit=0) == []
        assert await engine.hybrid_search("q", limit=-3) == []


class TestSignalFailures:
    @pytest.mark.asyncio
    async def test_fts_failure_leaves_vector_results(self):
        engine = _engine(vector_results=[_r("V1"), _r("V2")])
        engine.fts.search.side_effect = ProviderUnavailableError("db locked", provider="fts")
        results = await engine.hybrid_search("q")
        assert [r.id for r in results] == ["V1", "V2"]

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_fts_results(self):
        engine = _engine(fts_results=[_r("F1")])
        engine.embedder.embed.side_effect = EmbeddingError("timeout", provider="openai")
        results = await engine.hybrid_search("q")
        assert [r.id for r in results] == ["F1"]
        engine.vector.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_both_signals_failing_gives_empty(self):
        engine = _engine()
        engine.fts.search.side_effect = ProviderUnavailableError("down")
        engine.vector.search.side_effect = ProviderUnavailableError("down")
        assert await engine.hybrid_search("q") == []

    @pytest.mark.asyncio
    async def test_signals_run_concurrently(self):
        started = []
        release = asyncio.Event()

        async def slow_fts(*args, **kwargs):
            started.append("fts")
            await release.wait()
            return [_r("F")]

        async def slow_embed(*args, **kwargs):
            started.append("embed")
            release.set()
            return [0.5]

        engine = _engine(vector_results=[_r("V")])
        engine.fts.search = slow_fts
        engine.embedder.embed = slow_embed
        results = await asyncio.wait_for(engine.hybrid_search("q"), timeout=2)
        assert set(started) == {"fts", "embed"}
        assert {r.id for r in results} == {"F", "V"}


class TestSearchDispatch:
    @pytest.mark.asyncio
    async def test_fts_only(self):
        engine = _engine([_r("F1", score=4.2)], [_r("V1")])
        response = await engine.search("q", search_type="fts", limit=5)
        assert response.search_type is SearchType.FTS
        assert [r.id for r in response.results] == ["F1"]
        assert response.results[0].score == 4.2
        engine.embedder.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_vector_only(self):
        engine = _engine([_r("F1")], [_r("V1", score=0.93)])
        response = await engine.search("q", search_type=SearchType.VECTOR, limit=5)
        assert [r.id for r in response.results] == ["V1"]
        assert response.total == 1
        engine.fts.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hybrid_default_uses_default_limit(self):
        engine = _engine(default_limit=7)
        response = await engine.search("q")
        assert response.search_type is SearchType.HYBRID
        assert engine.fts.search.await_args.kwargs["limit"] == 14

    def test_unknown_search_type_returns_empty(self):
        engine = _engine([_r("F1")], [_r("V1", score=0.93)])
        response = asyncio.run(engine.search("q", search_type="graph"))
        assert response.results == []
        assert response.total == 0
        engine.fts.search.assert_not_awaited()
        engine.vector.search.assert_not_awaited()
