"""
Saga Context Service
--------------------
GenerateContext: bundle → (optional) synthesis → markdown → ContextResult.

Synthesis runs strictly after the bundle is complete. When it is skipped or
fails, the markdown is rendered straight from the tiers, so callers always
get a usable context unless the subject does not exist.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from saga.context.assembler import TieredContextAssembler
from saga.context.markdown import (
    estimate_tokens,
    render_degraded_markdown,
    render_minimal_markdown,
    render_synthesized_markdown,
    truncate_to_tokens,
)
from saga.context.synthesis import SynthesisOrchestrator
from saga.core.types import ContextResult, SynthesizedContext, TierCounts, utcnow

logger = logging.getLogger("Saga.ContextService")


class ContextService:
    def __init__(
        self,
        assembler: TieredContextAssembler,
        synthesizer: SynthesisOrchestrator,
        synthesis_enabled: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.assembler = assembler
        self.synthesizer = synthesizer
        self.synthesis_enabled = synthesis_enabled
        self._clock = clock

    async def generate_context(
        self,
        subject_id: str,
        task_hint: Optional[str] = None,
        max_tokens: Optional[int] = None,
        include_recent_days: Optional[int] = None,
        synthesis_timeout: Optional[float] = None,
    ) -> ContextResult:
        """
        Build the context artifact for a subject.

        Args:
            subject_id: Person or organization id.
            task_hint: Optional focus topic (enables the Relevant tier).
            max_tokens: Optional budget for the markdown (estimated tokens).
            include_recent_days: Optional Hot window override in days.
            synthesis_timeout: Optional per-call synthesis timeout in seconds.

        Raises:
            SubjectNotFoundError: If the subject does not exist.
        """
        bundle = await self.assembler.build_context(
            subject_id,
            task_hint=task_hint,
            hot_tier_days=include_recent_days,
        )

        if bundle.is_minimal:
            markdown = render_minimal_markdown(bundle.subject)
            return self._result(bundle.subject.id, bundle.subject.name, markdown, None, TierCounts(), max_tokens)

        synthesized = None
        if self.synthesis_enabled:
            synthesized = await self.synthesizer.synthesize(bundle, timeout=synthesis_timeout)

        if synthesized is not None:
            markdown = render_synthesized_markdown(bundle, synthesized)
        else:
            logger.info("Context for %s rendered without synthesis", subject_id)
            markdown = render_degraded_markdown(bundle)

        return self._result(
            bundle.subject.id,
            bundle.subject.name,
            markdown,
            synthesized,
            bundle.tier_counts,
            max_tokens,
        )

    def _result(
        self,
        subject_id: str,
        subject_name: str,
        markdown: str,
        synthesized: Optional[SynthesizedContext],
        counts: TierCounts,
        max_tokens: Optional[int],
    ) -> ContextResult:
        if max_tokens is not None:
            markdown = truncate_to_tokens(markdown, max_tokens)
        return ContextResult(
            subject_id=subject_id,
            subject_name=subject_name,
            context_markdown=markdown,
            synthesized_context=synthesized,
            tier_counts=counts,
            token_estimate=estimate_tokens(markdown),
            generated_at=self._clock(),
        )
