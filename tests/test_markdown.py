"""Tests for saga.context.markdown: renderings and token helpers."""

from datetime import date, datetime, timedelta, timezone

from saga.context.markdown import (
    estimate_tokens,
    fact_value,
    message_text,
    render_degraded_markdown,
    render_minimal_markdown,
    render_synthesized_markdown,
    truncate_to_tokens,
)
from saga.core.types import (
    ContextBundle,
    Decision,
    Fact,
    Identifier,
    InteractionSummary,
    Message,
    RelationshipProfile,
    SearchResult,
    Subject,
    SubjectType,
    SynthesizedContext,
    TranscriptSegment,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

ANNA = Subject(
    id="anna",
    name="Anna",
    organization_name="Acme",
    notes="Met at PyCon",
    identifiers=[Identifier(identifier_type="email", identifier_value="anna@acme.test")],
)


def _bundle(**overrides):
    data = dict(
        subject=ANNA,
        facts=[
            Fact(subject_id="anna", fact_type="position", value="CTO"),
            Fact(subject_id="anna", fact_type="birthday", value_date=date(1990, 4, 12)),
        ],
        hot_messages=[
            Message(interaction_id="chat", content="Ping me tomorrow", timestamp=NOW - timedelta(hours=1)),
            Message(interaction_id="chat", content=None, is_outgoing=True, timestamp=NOW - timedelta(minutes=30)),
        ],
        hot_segments=[
            TranscriptSegment(interaction_id="call", speaker_label="Anna", content="Sounds good",
                              timestamp=NOW - timedelta(days=1)),
        ],
        warm_summaries=[
            InteractionSummary(interaction_id="i1", summary_text="Kickoff call",
                               decisions=[Decision(description="Go with plan B", importance="high")],
                               created_at=datetime(2025, 5, 10, tzinfo=timezone.utc)),
        ],
        cold_profile=RelationshipProfile(subject_id="anna", relationship_type="partner",
                                         communication_frequency="weekly"),
        relevant=[
            SearchResult(id="r1", content="plan B budget", highlight="<b>plan</b> B budget",
                         timestamp=NOW - timedelta(days=40), interaction_id="chat"),
        ],
        built_at=NOW,
    )
    data.update(overrides)
    return ContextBundle(**data)


class TestHelpers:
    def test_fact_value_prefers_date(self):
        assert fact_value(Fact(subject_id="a", fact_type="birthday", value_date=date(1990, 4, 12))) == "1990-04-12"
        assert fact_value(Fact(subject_id="a", fact_type="position", value="CTO")) == "CTO"

    def test_message_text(self):
        assert message_text(Message(interaction_id="c", content=None)) == "[media]"
        assert message_text(Message(interaction_id="c", content="line one\nline two")) == "line one line two"
        long = message_text(Message(interaction_id="c", content="x" * 1000))
        assert len(long) == 301
        assert long.endswith("…")

    def test_estimate_tokens_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_truncate_at_line_boundary(self):
        markdown = "## Title\n" + "\n".join(f"- item {i}" for i in range(50))
        cut = truncate_to_tokens(markdown, 10)
        assert estimate_tokens(cut) <= 10
        assert markdown.startswith(cut)
        assert cut.split("\n") == markdown.split("\n")[: len(cut.split("\n"))]

    def test_truncate_noop_when_within_budget(self):
        assert truncate_to_tokens("short", 100) == "short"


class TestRenderings:
    def test_minimal(self):
        markdown = render_minimal_markdown(Subject(id="b", name="Build Bot", is_bot=True))
        assert markdown.startswith("## Context: Build Bot")
        assert "Bot account" in markdown

    def test_degraded_sections(self):
        markdown = render_degraded_markdown(_bundle())
        assert markdown.startswith("## Context: Anna")
        assert "**Organization:** Acme" in markdown
        assert "**Notes:** Met at PyCon" in markdown
        assert "- **birthday:** 1990-04-12" in markdown
        assert "- **email:** anna@acme.test" in markdown
        assert "**Type:** partner" in markdown
        assert "- **2025-05-10:** Kickoff call" in markdown
        assert "Decision: Go with plan B" in markdown
        assert "Anna: Ping me tomorrow" in markdown
        assert "Me: [media]" in markdown
        assert "Anna: Sounds good" in markdown
        assert "<b>plan</b> B budget" in markdown
        order = ["### Facts", "### Contacts", "### Relationship", "### Recent interactions",
                 "### Recent messages", "### Relevant to the task"]
        positions = [markdown.index(h) for h in order]
        assert positions == sorted(positions)

    def test_degraded_is_deterministic(self):
        bundle = _bundle()
        assert render_degraded_markdown(bundle) == render_degraded_markdown(bundle)

    def test_degraded_skips_empty_sections(self):
        bundle = _bundle(facts=[], hot_messages=[], hot_segments=[], warm_summaries=[],
                         cold_profile=None, relevant=[],
                         subject=Subject(id="o", name="Globex", subject_type=SubjectType.ORGANIZATION))
        markdown = render_degraded_markdown(bundle)
        assert "###" not in markdown
        assert "**Type:** organization" in markdown

    def test_synthesized(self):
        synthesized = SynthesizedContext(
            current_status="Weekly partner, planning the Q3 launch.",
            recent_context=["Agreed on plan B"],
            key_facts=[],
            recommendations=["Confirm budget"],
        )
        markdown = render_synthesized_markdown(_bundle(task_hint="launch"), synthesized)
        assert "**Task:** launch" in markdown
        assert "### Current status\nWeekly partner" in markdown
        assert "### Recent context\n- Agreed on plan B" in markdown
        assert "### Key facts" not in markdown
        assert "- Confirm budget" in markdown
