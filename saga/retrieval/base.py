"""
Shared pieces of the search providers: the provider interface, period
handling and the row → SearchResult mapping.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from saga.core.types import EntityRef, SearchPeriod, SearchResult
from saga.store.sqlite_store import from_epoch, to_epoch


def period_bounds(period: Optional[SearchPeriod]) -> Tuple[Optional[float], Optional[float]]:
    """Inclusive (from, to) epoch bounds; None for an open side."""
    if period is None:
        return None, None
    return to_epoch(period.from_), to_epoch(period.to)


def row_to_result(
    row: Dict[str, Any],
    score: float,
    highlight: Optional[str] = None,
) -> SearchResult:
    entity = None
    if row.get("sender_entity_id"):
        entity = EntityRef(id=row["sender_entity_id"], name=row.get("entity_name"))
    return SearchResult(
        id=row["id"],
        type="message",
        content=row.get("content") or "",
        timestamp=from_epoch(row["timestamp"]),
        entity=entity,
        interaction_id=row["interaction_id"],
        score=score,
        highlight=highlight,
    )


class SearchProvider(ABC):
    """A ranked search signal; results are ordered best first, score higher = better."""

    name = "base"

    @abstractmethod
    async def search(
        self,
        query: Any,
        entity_id: Optional[str] = None,
        period: Optional[SearchPeriod] = None,
        limit: int = 20,
    ) -> List[SearchResult]:
        """Run the search; raise ProviderUnavailableError when the backend fails."""
