"""
Saga Context Markdown
---------------------
Deterministic renderings of a ContextBundle:

- synthesized: narrative fields from the generation step under the entity header
- degraded: tiers rendered directly (facts, contacts, profile, summaries,
  recent messages, relevant excerpts) when synthesis is unavailable
- minimal: bot subjects

Output depends only on its inputs, so the degraded rendering of a bundle is
identical every time it is produced.
"""

import math
from datetime import date, datetime
from typing import List, Optional

from saga.core.types import (
    ContextBundle,
    Fact,
    Message,
    Subject,
    SynthesizedContext,
    TranscriptSegment,
)

_MESSAGE_PREVIEW_CHARS = 300


def format_date(value: Optional[date]) -> str:
    if value is None:
        return "unknown date"
    return value.strftime("%Y-%m-%d")


def format_timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M")


def fact_value(fact: Fact) -> str:
    if fact.value_date is not None:
        return format_date(fact.value_date)
    return fact.value or ""


def message_speaker(message: Message, subject: Subject) -> str:
    return "Me" if message.is_outgoing else subject.name


def message_text(message: Message) -> str:
    if not message.content:
        return "[media]"
    text = message.content.strip().replace("\n", " ")
    if len(text) > _MESSAGE_PREVIEW_CHARS:
        text = text[:_MESSAGE_PREVIEW_CHARS].rstrip() + "…"
    return text


def segment_line(segment: TranscriptSegment) -> str:
    return f"[{format_timestamp(segment.timestamp)}] {segment.speaker_label}: {segment.content.strip()}"


def estimate_tokens(text: str) -> int:
    """Rough token count (chars / 4); advisory only."""
    return math.ceil(len(text) / 4)


def truncate_to_tokens(markdown: str, max_tokens: int) -> str:
    """Drop trailing lines until the estimate fits max_tokens."""
    budget = max(0, max_tokens) * 4
    if len(markdown) <= budget:
        return markdown
    lines: List[str] = []
    used = 0
    for line in markdown.split("\n"):
        cost = len(line) + (1 if lines else 0)
        if used + cost > budget:
            break
        lines.append(line)
        used += cost
    return "\n".join(lines)


def _header(subject: Subject) -> List[str]:
    lines = [f"## Context: {subject.name}", "", f"**Type:** {subject.subject_type.value}"]
    if subject.organization_name:
        lines.append(f"**Organization:** {subject.organization_name}")
    if subject.notes:
        lines.append(f"**Notes:** {subject.notes}")
    lines.append("")
    return lines


def render_minimal_markdown(subject: Subject) -> str:
    lines = _header(subject)
    lines.append("_Bot account: no conversational context is collected._")
    return "\n".join(lines)


def render_synthesized_markdown(bundle: ContextBundle, synthesized: SynthesizedContext) -> str:
    lines = _header(bundle.subject)
    if bundle.task_hint:
        lines.extend([f"**Task:** {bundle.task_hint}", ""])

    lines.extend(["### Current status", synthesized.current_status.strip(), ""])
    for title, items in (
        ("Recent context", synthesized.recent_context),
        ("Key facts", synthesized.key_facts),
        ("Recommendations", synthesized.recommendations),
    ):
        if not items:
            continue
        lines.append(f"### {title}")
        lines.extend(f"- {item}" for item in items)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_degraded_markdown(bundle: ContextBundle) -> str:
    subject = bundle.subject
    lines = _header(subject)

    if bundle.facts:
        lines.append("### Facts")
        lines.extend(f"- **{f.fact_type}:** {fact_value(f)}" for f in bundle.facts)
        lines.append("")

    if subject.identifiers:
        lines.append("### Contacts")
        lines.extend(
            f"- **{i.identifier_type}:** {i.identifier_value}" for i in subject.identifiers
        )
        lines.append("")

    profile = bundle.cold_profile
    if profile:
        lines.append("### Relationship")
        lines.append(
            f"**Type:** {profile.relationship_type} · "
            f"**Frequency:** {profile.communication_frequency}"
        )
        if profile.relationship_summary:
            lines.append(profile.relationship_summary)
        if profile.milestones:
            lines.append("**Milestones:**")
            lines.extend(f"- {m.date}: {m.title}" for m in profile.milestones)
        if profile.key_decisions:
            lines.append("**Key decisions:**")
            lines.extend(f"- {d.date}: {d.description}" for d in profile.key_decisions)
        lines.append("")

    if bundle.warm_summaries:
        lines.append("### Recent interactions")
        for summary in bundle.warm_summaries:
            lines.append(f"- **{format_date(summary.created_at)}:** {summary.summary_text}")
            lines.extend(f"  - Decision: {d.description}" for d in summary.decisions)
        lines.append("")

    if bundle.hot_messages or bundle.hot_segments:
        lines.append("### Recent messages")
        lines.extend(
            f"- [{format_timestamp(m.timestamp)}] {message_speaker(m, subject)}: {message_text(m)}"
            for m in bundle.hot_messages
        )
        lines.extend(f"- {segment_line(s)}" for s in bundle.hot_segments)
        lines.append("")

    if bundle.relevant:
        lines.append("### Relevant to the task")
        lines.extend(
            f"- [{format_timestamp(r.timestamp)}] {r.highlight or r.content}"
            for r in bundle.relevant
        )
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
