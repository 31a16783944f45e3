"""
Saga Core Types
---------------
Pydantic models for the history the engine reads, the search results it
produces and the context artifacts it assembles.

All timestamps are timezone-aware UTC datetimes.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal, Optional, List

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class SubjectType(str, Enum):
    PERSON = "person"
    ORGANIZATION = "organization"


class SearchType(str, Enum):
    FTS = "fts"
    VECTOR = "vector"
    HYBRID = "hybrid"


# --- History records (written by upstream ingestion, read here) ---

class Identifier(BaseModel):
    identifier_type: str  # telegram_username|phone|email|...
    identifier_value: str


class Subject(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    subject_type: SubjectType = SubjectType.PERSON
    is_bot: bool = False
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    notes: Optional[str] = None
    identifiers: List[Identifier] = Field(default_factory=list)


class Fact(BaseModel):
    id: str = Field(default_factory=_new_id)
    subject_id: str
    fact_type: str  # position|company|birthday|phone|...
    category: Optional[str] = None
    value: Optional[str] = None
    value_date: Optional[date] = None
    confidence: Optional[float] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_current(self) -> bool:
        return self.valid_until is None


class Interaction(BaseModel):
    id: str = Field(default_factory=_new_id)
    interaction_type: str = "chat"  # chat|call|meeting
    started_at: datetime = Field(default_factory=utcnow)
    participant_ids: List[str] = Field(default_factory=list)


class Message(BaseModel):
    id: str = Field(default_factory=_new_id)
    interaction_id: str
    sender_entity_id: Optional[str] = None
    content: Optional[str] = None  # None for media-only messages
    is_outgoing: bool = False
    timestamp: datetime = Field(default_factory=utcnow)
    embedding: Optional[List[float]] = None
    is_archived: bool = False


class TranscriptSegment(BaseModel):
    id: str = Field(default_factory=_new_id)
    interaction_id: str
    speaker_label: str
    speaker_entity_id: Optional[str] = None
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Decision(BaseModel):
    description: str
    date: Optional[str] = None
    importance: Literal["high", "medium", "low"] = "medium"
    quote: Optional[str] = None


class ActionItem(BaseModel):
    description: str
    owner: Literal["self", "them", "both"] = "both"
    status: Literal["open", "closed"] = "open"
    due_date: Optional[str] = None


class InteractionSummary(BaseModel):
    id: str = Field(default_factory=_new_id)
    interaction_id: str
    summary_text: str
    key_points: List[str] = Field(default_factory=list)
    decisions: List[Decision] = Field(default_factory=list)
    action_items: List[ActionItem] = Field(default_factory=list)
    tone: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Milestone(BaseModel):
    date: str
    title: str
    description: str = ""


class KeyDecision(BaseModel):
    date: str
    description: str
    quote: Optional[str] = None


class RelationshipProfile(BaseModel):
    subject_id: str
    relationship_type: str = "other"  # client|partner|colleague|friend|...
    communication_frequency: str = "rare"  # daily|weekly|monthly|quarterly|rare
    relationship_summary: str = ""
    top_topics: List[str] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    key_decisions: List[KeyDecision] = Field(default_factory=list)
    open_action_items: List[ActionItem] = Field(default_factory=list)
    total_interactions: int = 0
    last_meaningful_contact: Optional[datetime] = None


# --- Search ---

class EntityRef(BaseModel):
    id: str
    name: Optional[str] = None


class SearchPeriod(BaseModel):
    """Inclusive [from, to] timestamp window; either side may be open."""
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[datetime] = Field(default=None, alias="from")
    to: Optional[datetime] = None


class SearchResult(BaseModel):
    id: str
    type: Literal["message", "segment", "summary"] = "message"
    content: str
    timestamp: datetime
    entity: Optional[EntityRef] = None
    interaction_id: str
    score: float = 0.0  # higher is better for every provider and after fusion
    highlight: Optional[str] = None


class SearchResponse(BaseModel):
    results: List[SearchResult] = Field(default_factory=list)
    total: int = 0
    search_type: SearchType = SearchType.HYBRID


# --- Context ---

class TierCounts(BaseModel):
    hot_messages: int = 0
    hot_segments: int = 0
    warm_summaries: int = 0
    cold_decisions: int = 0
    relevant_chunks: int = 0
    facts_included: int = 0


class ContextBundle(BaseModel):
    """Assembled, pre-synthesis tiers for one subject. Rebuilt per request."""
    subject: Subject
    task_hint: Optional[str] = None
    facts: List[Fact] = Field(default_factory=list)
    hot_messages: List[Message] = Field(default_factory=list)
    hot_segments: List[TranscriptSegment] = Field(default_factory=list)
    warm_summaries: List[InteractionSummary] = Field(default_factory=list)
    cold_profile: Optional[RelationshipProfile] = None
    relevant: List[SearchResult] = Field(default_factory=list)
    # True for the bot short-circuit: nothing fetched, synthesis skipped
    is_minimal: bool = False
    built_at: datetime = Field(default_factory=utcnow)
    hot_cutoff: Optional[datetime] = None
    warm_cutoff: Optional[datetime] = None

    @property
    def tier_counts(self) -> TierCounts:
        return TierCounts(
            hot_messages=len(self.hot_messages),
            hot_segments=len(self.hot_segments),
            warm_summaries=len(self.warm_summaries),
            cold_decisions=len(self.cold_profile.key_decisions) if self.cold_profile else 0,
            relevant_chunks=len(self.relevant),
            facts_included=len(self.facts),
        )


class SynthesizedContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_status: str = Field(alias="currentStatus", min_length=10)
    recent_context: List[str] = Field(default_factory=list, alias="recentContext")
    key_facts: List[str] = Field(default_factory=list, alias="keyFacts")
    recommendations: List[str] = Field(default_factory=list)


class ContextResult(BaseModel):
    subject_id: str
    subject_name: str
    context_markdown: str
    synthesized_context: Optional[SynthesizedContext] = None
    tier_counts: TierCounts = Field(default_factory=TierCounts)
    token_estimate: int = 0
    generated_at: datetime = Field(default_factory=utcnow)
