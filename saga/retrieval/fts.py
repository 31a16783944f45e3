"""
Saga Full-Text Search Provider
------------------------------
Keyword search over message content backed by the SQLite FTS5 index.

Every word of the query must match (plain-text AND semantics). Relevance is
the negated bm25() rank, so higher is better, and each hit carries a
bounded snippet around the matched terms as its highlight.
"""

import asyncio
import logging
import re
from typing import List, Optional

from saga.core.errors import ProviderUnavailableError
from saga.core.types import SearchPeriod, SearchResult
from saga.retrieval.base import SearchProvider, period_bounds, row_to_result
from saga.store.sqlite_store import SQLiteContextStore

logger = logging.getLogger("Saga.FTS")

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def build_match_expression(query: str) -> str:
    """
    Turn free text into an FTS5 MATCH expression.

    Each word is quoted so FTS5 operators and punctuation in user input are
    treated as literals; adjacent quoted terms are ANDed. Returns "" when the
    query has no word characters.
    """
    tokens = _WORD_RE.findall(query or "")
    return " ".join(f'"{token}"' for token in tokens)


class FullTextSearchProvider(SearchProvider):
    name = "fts"

    def __init__(self, store: SQLiteContextStore, snippet_tokens: int = 16):
        self.store = store
        self.snippet_tokens = snippet_tokens

    async def search(
        self,
        query: str,
        entity_id: Optional[str] = None,
        period: Optional[SearchPeriod] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        match_expr = build_match_expression(query)
        if not match_expr or limit <= 0:
            return []

        from_ts, to_ts = period_bounds(period)
        try:
            rows = await asyncio.to_thread(
                self.store.search_fts,
                match_expr,
                entity_id=entity_id,
                from_ts=from_ts,
                to_ts=to_ts,
                limit=limit,
                snippet_tokens=self.snippet_tokens,
            )
        except Exception as e:
            raise ProviderUnavailableError(f"Full-text search failed: {e}", provider=self.name) from e

        return [
            row_to_result(row, score=float(row["score"]), highlight=row.get("highlight"))
            for row in rows
        ]
