"""
Saga Tiered Context Assembler
-----------------------------
Collects what is known about a subject into a ContextBundle, bucketed into
tiers by age and relevance:

    Permanent  current facts (valid_until unset), newest first
    Hot        messages + call transcript segments, last hot_tier_days
               (inclusive: a record exactly at the cutoff is hot)
    Warm       interaction summaries with
               now - warm_tier_days < created_at <= now - hot_tier_days,
               high-importance decisions only
    Cold       the relationship profile, latest milestones / key decisions
    Relevant   hybrid search on the task hint, scoped to the subject

Tiers are fetched concurrently. A failing tier is logged and left empty;
only an unknown subject aborts the build. Bot subjects get a minimal bundle
without touching any tier.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, TypeVar

from saga.core.config import ContextConfig
from saga.core.errors import SubjectNotFoundError
from saga.core.types import (
    ContextBundle,
    Fact,
    InteractionSummary,
    Message,
    RelationshipProfile,
    SearchResult,
    TranscriptSegment,
    utcnow,
)
from saga.observability import OTelGenAITracer
from saga.retrieval.hybrid import HybridSearchEngine
from saga.store.sqlite_store import SQLiteContextStore

logger = logging.getLogger("Saga.Context")

T = TypeVar("T")


class TieredContextAssembler:
    """Builds per-request ContextBundles from the store and hybrid search."""

    def __init__(
        self,
        store: SQLiteContextStore,
        search: Optional[HybridSearchEngine] = None,
        config: Optional[ContextConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        relevant_tier_enabled: bool = True,
        telemetry: Optional[OTelGenAITracer] = None,
    ):
        self.store = store
        self.search = search
        self.config = config or ContextConfig()
        self._clock = clock
        self._relevant_tier_enabled = relevant_tier_enabled
        self._telemetry = telemetry or OTelGenAITracer(enabled=False)

    async def build_context(
        self,
        subject_id: str,
        task_hint: Optional[str] = None,
        hot_tier_days: Optional[int] = None,
    ) -> ContextBundle:
        """
        Assemble all tiers for a subject.

        Args:
            subject_id: Person or organization to build the context for.
            task_hint: Optional topic; enables the Relevant tier.
            hot_tier_days: Per-call override of the Hot window length.

        Raises:
            SubjectNotFoundError: If the subject does not exist.
        """
        subject = await asyncio.to_thread(self.store.get_subject, subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)

        task_hint = task_hint.strip() if task_hint and task_hint.strip() else None
        now = self._clock()

        if subject.is_bot:
            logger.info("Subject %s is a bot; returning minimal context", subject_id)
            return ContextBundle(subject=subject, task_hint=task_hint, is_minimal=True, built_at=now)

        hot_days = hot_tier_days if hot_tier_days and hot_tier_days > 0 else self.config.hot_tier_days
        hot_cutoff = now - timedelta(days=hot_days)
        warm_cutoff = now - timedelta(days=max(self.config.warm_tier_days, hot_days))

        with self._telemetry.span(
            "saga.context.build",
            {
                "gen_ai.operation.name": "context.build",
                "saga.subject_id": subject_id,
                "saga.has_task_hint": task_hint is not None,
                "saga.task_hint": self._telemetry.maybe_content(task_hint),
            },
        ):
            facts, messages, segments, summaries, profile, relevant = await asyncio.gather(
                self._tier("permanent", self._permanent_tier(subject_id), []),
                self._tier("hot_messages", self._hot_messages(subject_id, hot_cutoff), []),
                self._tier("hot_segments", self._hot_segments(subject_id, hot_cutoff), []),
                self._tier("warm", self._warm_tier(subject_id, warm_cutoff, hot_cutoff), []),
                self._tier("cold", self._cold_tier(subject_id), None),
                self._tier("relevant", self._relevant_tier(subject_id, task_hint), []),
            )

        bundle = ContextBundle(
            subject=subject,
            task_hint=task_hint,
            facts=facts,
            hot_messages=messages,
            hot_segments=segments,
            warm_summaries=summaries,
            cold_profile=profile,
            relevant=relevant,
            built_at=now,
            hot_cutoff=hot_cutoff,
            warm_cutoff=warm_cutoff,
        )
        logger.debug("Context bundle for %s: %s", subject_id, bundle.tier_counts.model_dump())
        return bundle

    async def _tier(self, name: str, fetch: Awaitable[T], empty: T) -> T:
        try:
            return await fetch
        except Exception as e:
            logger.warning("Context tier '%s' unavailable: %s", name, e)
            return empty

    async def _permanent_tier(self, subject_id: str) -> List[Fact]:
        facts = await asyncio.to_thread(self.store.get_current_facts, subject_id)
        return [f for f in facts if f.valid_until is None]

    async def _hot_messages(self, subject_id: str, cutoff: datetime) -> List[Message]:
        newest_first = await asyncio.to_thread(
            self.store.get_recent_messages, subject_id, cutoff, self.config.hot_message_limit
        )
        return list(reversed(newest_first))

    async def _hot_segments(self, subject_id: str, cutoff: datetime) -> List[TranscriptSegment]:
        newest_first = await asyncio.to_thread(
            self.store.get_recent_segments, subject_id, cutoff, self.config.hot_segment_limit
        )
        return list(reversed(newest_first))

    async def _warm_tier(
        self,
        subject_id: str,
        warm_cutoff: datetime,
        hot_cutoff: datetime,
    ) -> List[InteractionSummary]:
        summaries = await asyncio.to_thread(
            self.store.get_summaries_between,
            subject_id,
            warm_cutoff,
            hot_cutoff,
            self.config.warm_summary_limit,
        )
        return [
            s.model_copy(update={"decisions": [d for d in s.decisions if d.importance == "high"]})
            for s in summaries
        ]

    async def _cold_tier(self, subject_id: str) -> Optional[RelationshipProfile]:
        profile = await asyncio.to_thread(self.store.get_relationship_profile, subject_id)
        if profile is None:
            return None
        # lists are chronological; keep the latest entries
        return profile.model_copy(
            update={
                "milestones": profile.milestones[-self.config.cold_milestone_limit:]
                if self.config.cold_milestone_limit > 0 else [],
                "key_decisions": profile.key_decisions[-self.config.cold_decision_limit:]
                if self.config.cold_decision_limit > 0 else [],
            }
        )

    async def _relevant_tier(self, subject_id: str, task_hint: Optional[str]) -> List[SearchResult]:
        if not task_hint or self.search is None or not self._relevant_tier_enabled:
            return []
        results = await self.search.hybrid_search(
            task_hint,
            entity_id=subject_id,
            limit=self.config.relevant_limit,
        )
        return results[: self.config.relevant_limit]
