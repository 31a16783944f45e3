"""
Saga Hybrid Retrieval
---------------------
Full-text and vector search fused with Reciprocal Rank Fusion (RRF).

RRF only looks at ranks, so the two signals' score scales (negated bm25 vs
cosine similarity) never have to be reconciled. A message found by both
signals collects both contributions, which is what lifts agreement above
either list alone.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Union

from saga.core.types import SearchPeriod, SearchResponse, SearchResult, SearchType
from saga.observability import OTelGenAITracer
from saga.retrieval.base import SearchProvider
from saga.retrieval.embedding import EmbeddingProvider

logger = logging.getLogger("Saga.Retrieval")

# RRF constant (standard value from literature)
RRF_K = 60


def rrf_fuse(
    ranked_lists: Sequence[Sequence[SearchResult]],
    k: int = RRF_K,
    limit: Optional[int] = None,
) -> List[SearchResult]:
    """
    Reciprocal Rank Fusion of ranked result lists.

    Each item at 0-based rank r contributes 1 / (k + r + 1); contributions
    are summed per id. The first record seen for an id is kept (lists are
    walked in the order given). Ties keep first-seen order, so the output is
    deterministic for fixed inputs. Returned results carry the fused score.
    """
    scores: Dict[str, float] = defaultdict(float)
    records: Dict[str, SearchResult] = {}

    for results in ranked_lists:
        for rank, result in enumerate(results):
            scores[result.id] += 1.0 / (k + rank + 1)
            if result.id not in records:
                records[result.id] = result

    # sorted() is stable with reverse=True, equal scores stay in first-seen order
    ordered = sorted(records, key=lambda doc_id: scores[doc_id], reverse=True)
    if limit is not None:
        ordered = ordered[: max(0, limit)]
    return [records[doc_id].model_copy(update={"score": scores[doc_id]}) for doc_id in ordered]


class HybridSearchEngine:
    """
    Fans a query out to the FTS and vector providers and fuses the results.

    The FTS search runs concurrently with "embed the query, then vector
    search". A failing signal contributes an empty list.
    """

    def __init__(
        self,
        fts_provider: SearchProvider,
        vector_provider: SearchProvider,
        embedder: EmbeddingProvider,
        rrf_k: int = RRF_K,
        overfetch_factor: int = 2,
        default_limit: int = 20,
        telemetry: Optional[OTelGenAITracer] = None,
    ):
        self.fts = fts_provider
        self.vector = vector_provider
        self.embedder = embedder
        self.rrf_k = rrf_k
        self.overfetch_factor = max(1, overfetch_factor)
        self.default_limit = default_limit
        self._telemetry = telemetry or OTelGenAITracer(enabled=False)
        if getattr(embedder, "is_random", False):
            logger.warning(
                "Vector signal uses random embeddings; similarity scores carry no meaning"
            )

    async def search(
        self,
        query: str,
        entity_id: Optional[str] = None,
        period: Optional[SearchPeriod] = None,
        limit: Optional[int] = None,
        search_type: Union[SearchType, str] = SearchType.HYBRID,
    ) -> SearchResponse:
        """Dispatch to FTS only, vector only, or hybrid fusion."""
        try:
            search_type = SearchType(search_type)
        except ValueError:
            logger.warning("Unknown search type %r; returning no results", search_type)
            return SearchResponse()
        limit = self.default_limit if limit is None else limit

        if search_type is SearchType.FTS:
            results = await self._fts_signal(query, entity_id, period, limit)
        elif search_type is SearchType.VECTOR:
            results = await self._vector_signal(query, entity_id, period, limit)
        else:
            results = await self.hybrid_search(query, entity_id, period, limit)

        return SearchResponse(results=results, total=len(results), search_type=search_type)

    async def hybrid_search(
        self,
        query: str,
        entity_id: Optional[str] = None,
        period: Optional[SearchPeriod] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        """
        RRF over FTS and vector results.

        Each signal is asked for ``overfetch_factor * limit`` candidates; at
        most ``limit`` fused results are returned.
        """
        if not query or not query.strip() or limit <= 0:
            return []

        candidates = limit * self.overfetch_factor
        with self._telemetry.span(
            "saga.retrieval.hybrid_search",
            {
                "gen_ai.operation.name": "retrieval.hybrid_search",
                "saga.limit": limit,
                "saga.entity_id": entity_id,
                "saga.query": self._telemetry.maybe_content(query),
            },
        ):
            fts_results, vector_results = await asyncio.gather(
                self._fts_signal(query, entity_id, period, candidates),
                self._vector_signal(query, entity_id, period, candidates),
            )
            fused = rrf_fuse([fts_results, vector_results], k=self.rrf_k, limit=limit)
            self._telemetry.add_event(
                "saga.retrieval.fused",
                {"saga.fts_hits": len(fts_results), "saga.vector_hits": len(vector_results)},
            )

        logger.debug(
            "Hybrid search: fts=%d vector=%d fused=%d",
            len(fts_results),
            len(vector_results),
            len(fused),
        )
        return fused

    async def _fts_signal(
        self,
        query: str,
        entity_id: Optional[str],
        period: Optional[SearchPeriod],
        limit: int,
    ) -> List[SearchResult]:
        try:
            return await self.fts.search(query, entity_id=entity_id, period=period, limit=limit)
        except Exception as e:
            logger.warning("FTS signal unavailable: %s", e)
            return []

    async def _vector_signal(
        self,
        query: str,
        entity_id: Optional[str],
        period: Optional[SearchPeriod],
        limit: int,
    ) -> List[SearchResult]:
        if not query or not query.strip():
            return []
        try:
            embedding = await self.embedder.embed(query)
            return await self.vector.search(embedding, entity_id=entity_id, period=period, limit=limit)
        except Exception as e:
            logger.warning("Vector signal unavailable: %s", e)
            return []
