"""
Saga Vector Search Provider
---------------------------
Nearest-neighbour search over message embeddings in Qdrant, hydrated with
message content from SQLite.

Scores are cosine similarity (1 - cosine distance): comparable in direction
to FTS relevance, not in magnitude.
"""

import asyncio
import logging
from typing import List, Optional

from saga.core.errors import ProviderUnavailableError
from saga.core.types import SearchPeriod, SearchResult
from saga.retrieval.base import SearchProvider, period_bounds, row_to_result
from saga.store.sqlite_store import SQLiteContextStore
from saga.store.vector_store import VectorStore

logger = logging.getLogger("Saga.VectorSearch")


class VectorSearchProvider(SearchProvider):
    name = "vector"

    def __init__(self, vector_store: VectorStore, store: SQLiteContextStore):
        self.vectors = vector_store
        self.store = store

    async def search(
        self,
        query: List[float],
        entity_id: Optional[str] = None,
        period: Optional[SearchPeriod] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        if not query or limit <= 0:
            return []

        from_ts, to_ts = period_bounds(period)
        try:
            hits = await asyncio.to_thread(
                self.vectors.search,
                query,
                limit=limit,
                sender_entity_id=entity_id,
                from_ts=from_ts,
                to_ts=to_ts,
            )
            rows = await asyncio.to_thread(
                self.store.get_messages_by_ids, [message_id for message_id, _ in hits]
            )
        except Exception as e:
            raise ProviderUnavailableError(f"Vector search failed: {e}", provider=self.name) from e

        results = []
        for message_id, similarity in hits:
            row = rows.get(message_id)
            if row is None:
                logger.debug("Vector hit %s has no stored message; skipping", message_id)
                continue
            results.append(row_to_result(row, score=similarity))
        return results
