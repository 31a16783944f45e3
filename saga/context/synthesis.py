"""
Saga Context Synthesis
----------------------
Narrates an assembled ContextBundle with a schema-constrained LLM call.

The bundle is rendered into one prompt in a fixed section order:

    Entity → Task → Known facts (permanent) → Relationship profile (cold)
    → Interaction summaries (warm) → Recent messages (hot)
    → Relevant excerpts → Output instructions

and sent to a GenerationCapability together with SYNTHESIS_SCHEMA.

Gracefully degrades to None (the caller renders the tiers directly) when:
  - no generation capability is configured
  - the call errors or times out
  - the returned object does not fit SynthesizedContext
"""

import logging
from typing import Any, Dict, List, Optional

from saga.context.generation import GenerationCapability
from saga.context.markdown import (
    fact_value,
    format_date,
    format_timestamp,
    message_speaker,
    message_text,
    segment_line,
)
from saga.core.types import ContextBundle, SynthesizedContext
from saga.observability import OTelGenAITracer

logger = logging.getLogger("Saga.Synthesis")

SYNTHESIS_SCHEMA_NAME = "entity_context"

# Plain JSON Schema, passed to the generation backend unchanged
SYNTHESIS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "currentStatus": {
            "type": "string",
            "minLength": 10,
            "description": "Where the relationship stands right now, in 1-3 sentences.",
        },
        "recentContext": {
            "type": "array",
            "items": {"type": "string"},
            "description": "What happened recently, most important first.",
        },
        "keyFacts": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Facts worth remembering before the next conversation.",
        },
        "recommendations": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Concrete suggestions or talking points.",
        },
    },
    "required": ["currentStatus", "recentContext", "keyFacts", "recommendations"],
    "additionalProperties": False,
}

_INSTRUCTIONS = (
    "Using only the information above, respond with a JSON object with the fields:\n"
    "- currentStatus: string, at least 10 characters, the current state of the relationship\n"
    "- recentContext: array of strings, the most relevant recent events\n"
    "- keyFacts: array of strings, facts to keep in mind\n"
    "- recommendations: array of strings, suggested next steps or talking points"
)


def build_synthesis_prompt(bundle: ContextBundle) -> str:
    subject = bundle.subject
    sections: List[str] = [
        "You are preparing a briefing about a conversation partner "
        "from their communication history.",
    ]

    entity = ["## Entity", f"Name: {subject.name}", f"Type: {subject.subject_type.value}"]
    if subject.organization_name:
        entity.append(f"Organization: {subject.organization_name}")
    if subject.notes:
        entity.append(f"Notes: {subject.notes}")
    sections.append("\n".join(entity))

    if bundle.task_hint:
        sections.append(f"## Task\n{bundle.task_hint}")

    if bundle.facts:
        sections.append(
            "## Known facts\n"
            + "\n".join(f"- {f.fact_type}: {fact_value(f)}" for f in bundle.facts)
        )

    profile = bundle.cold_profile
    if profile:
        cold = [
            "## Relationship profile",
            f"Type: {profile.relationship_type}",
            f"Communication frequency: {profile.communication_frequency}",
        ]
        if profile.relationship_summary:
            cold.append(f"Summary: {profile.relationship_summary}")
        if profile.top_topics:
            cold.append(f"Top topics: {', '.join(profile.top_topics)}")
        if profile.milestones:
            cold.append("Milestones:")
            cold.extend(f"- {m.date}: {m.title}. {m.description}".rstrip() for m in profile.milestones)
        if profile.key_decisions:
            cold.append("Key decisions:")
            cold.extend(f"- {d.date}: {d.description}" for d in profile.key_decisions)
        sections.append("\n".join(cold))

    if bundle.warm_summaries:
        warm = ["## Interaction summaries"]
        for summary in bundle.warm_summaries:
            warm.append(f"### {format_date(summary.created_at)}")
            warm.append(summary.summary_text)
            if summary.key_points:
                warm.append("Key points: " + "; ".join(summary.key_points))
            if summary.decisions:
                warm.append("Important decisions: " + "; ".join(d.description for d in summary.decisions))
            open_items = [a.description for a in summary.action_items if a.status == "open"]
            if open_items:
                warm.append("Open action items: " + "; ".join(open_items))
        sections.append("\n".join(warm))

    if bundle.hot_messages or bundle.hot_segments:
        hot = ["## Recent messages"]
        hot.extend(
            f"[{format_timestamp(m.timestamp)}] {message_speaker(m, subject)}: {message_text(m)}"
            for m in bundle.hot_messages
        )
        if bundle.hot_segments:
            hot.append("Call transcripts:")
            hot.extend(segment_line(s) for s in bundle.hot_segments)
        sections.append("\n".join(hot))

    if bundle.relevant:
        sections.append(
            "## Relevant to the task\n"
            + "\n".join(f"- [{format_timestamp(r.timestamp)}] {r.content}" for r in bundle.relevant)
        )

    sections.append(f"## Output\n{_INSTRUCTIONS}")
    return "\n\n".join(sections)


class SynthesisOrchestrator:
    """Turns a bundle into a SynthesizedContext, or None for degraded mode."""

    def __init__(
        self,
        capability: Optional[GenerationCapability],
        timeout_seconds: Optional[float] = None,
        telemetry: Optional[OTelGenAITracer] = None,
    ):
        self.capability = capability
        self.timeout_seconds = timeout_seconds
        self._telemetry = telemetry or OTelGenAITracer(enabled=False)

    @property
    def is_available(self) -> bool:
        return self.capability is not None

    async def synthesize(
        self,
        bundle: ContextBundle,
        timeout: Optional[float] = None,
    ) -> Optional[SynthesizedContext]:
        if self.capability is None:
            logger.debug("Synthesis skipped: no generation capability configured")
            return None

        prompt = build_synthesis_prompt(bundle)
        with self._telemetry.span(
            "saga.context.synthesize",
            {
                "gen_ai.operation.name": "context.synthesize",
                "gen_ai.system": self.capability.name,
                "saga.subject_id": bundle.subject.id,
            },
        ):
            try:
                raw = await self.capability.generate(
                    prompt,
                    SYNTHESIS_SCHEMA,
                    schema_name=SYNTHESIS_SCHEMA_NAME,
                    strict=True,
                    timeout=timeout or self.timeout_seconds,
                )
                return SynthesizedContext.model_validate(raw)
            except Exception as e:
                logger.warning(
                    "Synthesis failed for subject %s: %s; using degraded context",
                    bundle.subject.id,
                    e,
                )
                return None
