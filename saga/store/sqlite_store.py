"""
Saga SQLite Context Store
-------------------------
Persistent storage for subjects, facts, interactions, messages, transcript
segments, interaction summaries and relationship profiles, plus an FTS5
index over message content.

The engine only reads from this store. The add_* helpers exist for the
upstream ingestion pipelines and for tests.
"""

import json
import logging
import sqlite3
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional, List, Dict, Any

from saga.core.types import (
    Fact,
    Identifier,
    Interaction,
    InteractionSummary,
    Message,
    RelationshipProfile,
    Subject,
    SubjectType,
    TranscriptSegment,
)

logger = logging.getLogger("Saga.SQLite")

SCHEMA_VERSION = 1
DEFAULT_TOKENIZER = "porter unicode61 remove_diacritics 2"

CREATE_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS subjects (
        id                TEXT PRIMARY KEY,
        name              TEXT NOT NULL,
        subject_type      TEXT NOT NULL DEFAULT 'person',
        is_bot            INTEGER NOT NULL DEFAULT 0,
        organization_id   TEXT,
        organization_name TEXT,
        notes             TEXT,
        identifiers       TEXT NOT NULL DEFAULT '[]'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS facts (
        id          TEXT PRIMARY KEY,
        subject_id  TEXT NOT NULL,
        fact_type   TEXT NOT NULL,
        category    TEXT,
        value       TEXT,
        value_date  TEXT,
        confidence  REAL,
        valid_from  REAL,
        valid_until REAL,
        created_at  REAL NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS interactions (
        id               TEXT PRIMARY KEY,
        interaction_type TEXT NOT NULL DEFAULT 'chat',
        started_at       REAL NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS interaction_participants (
        interaction_id TEXT NOT NULL,
        subject_id     TEXT NOT NULL,
        PRIMARY KEY (interaction_id, subject_id)
    );
    """,
    # seq is the FTS5 content rowid; id is the public identifier
    """
    CREATE TABLE IF NOT EXISTS messages (
        seq              INTEGER PRIMARY KEY AUTOINCREMENT,
        id               TEXT NOT NULL UNIQUE,
        interaction_id   TEXT NOT NULL,
        sender_entity_id TEXT,
        content          TEXT,
        is_outgoing      INTEGER NOT NULL DEFAULT 0,
        timestamp        REAL NOT NULL,
        is_archived      INTEGER NOT NULL DEFAULT 0,
        has_embedding    INTEGER NOT NULL DEFAULT 0
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS transcript_segments (
        id                TEXT PRIMARY KEY,
        interaction_id    TEXT NOT NULL,
        speaker_label     TEXT NOT NULL,
        speaker_entity_id TEXT,
        content           TEXT NOT NULL,
        timestamp         REAL NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS interaction_summaries (
        id             TEXT PRIMARY KEY,
        interaction_id TEXT NOT NULL UNIQUE,
        summary_text   TEXT NOT NULL,
        key_points     TEXT NOT NULL DEFAULT '[]',
        decisions      TEXT NOT NULL DEFAULT '[]',
        action_items   TEXT NOT NULL DEFAULT '[]',
        tone           TEXT,
        created_at     REAL NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS relationship_profiles (
        subject_id TEXT PRIMARY KEY,
        profile    TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_meta (
        key   TEXT PRIMARY KEY,
        value TEXT
    );
    """,
]

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_facts_subject ON facts(subject_id, valid_until);",
    "CREATE INDEX IF NOT EXISTS idx_participants_subject ON interaction_participants(subject_id);",
    "CREATE INDEX IF NOT EXISTS idx_messages_interaction_ts ON messages(interaction_id, timestamp DESC);",
    "CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_entity_id);",
    "CREATE INDEX IF NOT EXISTS idx_segments_interaction_ts ON transcript_segments(interaction_id, timestamp DESC);",
    "CREATE INDEX IF NOT EXISTS idx_summaries_created ON interaction_summaries(created_at DESC);",
]

# External-content FTS5 table kept in sync by triggers
FTS_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS messages_ai AFTER INSERT ON messages BEGIN
        INSERT INTO messages_fts(rowid, content) VALUES (new.seq, new.content);
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_ad AFTER DELETE ON messages BEGIN
        INSERT INTO messages_fts(messages_fts, rowid, content) VALUES ('delete', old.seq, old.content);
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS messages_au AFTER UPDATE OF content ON messages BEGIN
        INSERT INTO messages_fts(messages_fts, rowid, content) VALUES ('delete', old.seq, old.content);
        INSERT INTO messages_fts(rowid, content) VALUES (new.seq, new.content);
    END;
    """,
]


def to_epoch(value: Optional[datetime]) -> Optional[float]:
    """Convert a datetime to epoch seconds, treating naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def from_epoch(value: Optional[float]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class SQLiteContextStore:
    """Reads (and for ingestion, writes) communication history in SQLite."""

    def __init__(self, db_path, fts_tokenizer: str = DEFAULT_TOKENIZER):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.fts_tokenizer = fts_tokenizer
        self._conn: Optional[sqlite3.Connection] = None
        # one connection shared by worker threads, so every call is serialized
        self._lock = threading.RLock()
        self._initialize()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL;")
                self._conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn

    def _initialize(self):
        with self._lock:
            conn = self._get_conn()
            for ddl in CREATE_TABLES:
                conn.execute(ddl)
            for idx in CREATE_INDEXES:
                conn.execute(idx)
            conn.execute(
                "CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5("
                "content, content='messages', content_rowid='seq', "
                f"tokenize='{self.fts_tokenizer}');"
            )
            for trigger in FTS_TRIGGERS:
                conn.execute(trigger)
            conn.execute(
                "INSERT OR IGNORE INTO schema_meta (key, value) VALUES (?, ?)",
                ("version", str(SCHEMA_VERSION)),
            )
            conn.commit()
        logger.info("SQLite context store initialized at %s", self.db_path)

    # ==========================================
    # Row mapping
    # ==========================================

    @staticmethod
    def _row_to_subject(row: sqlite3.Row) -> Subject:
        return Subject(
            id=row["id"],
            name=row["name"],
            subject_type=SubjectType(row["subject_type"]),
            is_bot=bool(row["is_bot"]),
            organization_id=row["organization_id"],
            organization_name=row["organization_name"],
            notes=row["notes"],
            identifiers=[Identifier(**i) for i in json.loads(row["identifiers"] or "[]")],
        )

    @staticmethod
    def _row_to_fact(row: sqlite3.Row) -> Fact:
        return Fact(
            id=row["id"],
            subject_id=row["subject_id"],
            fact_type=row["fact_type"],
            category=row["category"],
            value=row["value"],
            value_date=date.fromisoformat(row["value_date"]) if row["value_date"] else None,
            confidence=row["confidence"],
            valid_from=from_epoch(row["valid_from"]),
            valid_until=from_epoch(row["valid_until"]),
            created_at=from_epoch(row["created_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            interaction_id=row["interaction_id"],
            sender_entity_id=row["sender_entity_id"],
            content=row["content"],
            is_outgoing=bool(row["is_outgoing"]),
            timestamp=from_epoch(row["timestamp"]),
            is_archived=bool(row["is_archived"]),
        )

    @staticmethod
    def _row_to_segment(row: sqlite3.Row) -> TranscriptSegment:
        return TranscriptSegment(
            id=row["id"],
            interaction_id=row["interaction_id"],
            speaker_label=row["speaker_label"],
            speaker_entity_id=row["speaker_entity_id"],
            content=row["content"],
            timestamp=from_epoch(row["timestamp"]),
        )

    @staticmethod
    def _row_to_summary(row: sqlite3.Row) -> InteractionSummary:
        return InteractionSummary(
            id=row["id"],
            interaction_id=row["interaction_id"],
            summary_text=row["summary_text"],
            key_points=json.loads(row["key_points"] or "[]"),
            decisions=json.loads(row["decisions"] or "[]"),
            action_items=json.loads(row["action_items"] or "[]"),
            tone=row["tone"],
            created_at=from_epoch(row["created_at"]),
        )

    # ==========================================
    # Writes (ingestion side)
    # ==========================================

    def add_subject(self, subject: Subject) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """INSERT OR REPLACE INTO subjects
                   (id, name, subject_type, is_bot, organization_id, organization_name, notes, identifiers)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    subject.id,
                    subject.name,
                    subject.subject_type.value,
                    int(subject.is_bot),
                    subject.organization_id,
                    subject.organization_name,
                    subject.notes,
                    json.dumps([i.model_dump() for i in subject.identifiers]),
                ),
            )
            conn.commit()
        return subject.id

    def add_fact(self, fact: Fact) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """INSERT OR REPLACE INTO facts
                   (id, subject_id, fact_type, category, value, value_date, confidence,
                    valid_from, valid_until, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    fact.id,
                    fact.subject_id,
                    fact.fact_type,
                    fact.category,
                    fact.value,
                    fact.value_date.isoformat() if fact.value_date else None,
                    fact.confidence,
                    to_epoch(fact.valid_from),
                    to_epoch(fact.valid_until),
                    to_epoch(fact.created_at),
                ),
            )
            conn.commit()
        return fact.id

    def add_interaction(self, interaction: Interaction) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO interactions (id, interaction_type, started_at) VALUES (?, ?, ?)",
                (interaction.id, interaction.interaction_type, to_epoch(interaction.started_at)),
            )
            conn.executemany(
                "INSERT OR IGNORE INTO interaction_participants (interaction_id, subject_id) VALUES (?, ?)",
                [(interaction.id, pid) for pid in interaction.participant_ids],
            )
            conn.commit()
        return interaction.id

    def add_message(self, message: Message) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """INSERT INTO messages
                   (id, interaction_id, sender_entity_id, content, is_outgoing, timestamp,
                    is_archived, has_embedding)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    message.id,
                    message.interaction_id,
                    message.sender_entity_id,
                    message.content,
                    int(message.is_outgoing),
                    to_epoch(message.timestamp),
                    int(message.is_archived),
                    int(message.embedding is not None),
                ),
            )
            conn.commit()
        return message.id

    def add_segment(self, segment: TranscriptSegment) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """INSERT OR REPLACE INTO transcript_segments
                   (id, interaction_id, speaker_label, speaker_entity_id, content, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    segment.id,
                    segment.interaction_id,
                    segment.speaker_label,
                    segment.speaker_entity_id,
                    segment.content,
                    to_epoch(segment.timestamp),
                ),
            )
            conn.commit()
        return segment.id

    def add_summary(self, summary: InteractionSummary) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """INSERT OR REPLACE INTO interaction_summaries
                   (id, interaction_id, summary_text, key_points, decisions, action_items, tone, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    summary.id,
                    summary.interaction_id,
                    summary.summary_text,
                    json.dumps(summary.key_points),
                    json.dumps([d.model_dump() for d in summary.decisions]),
                    json.dumps([a.model_dump() for a in summary.action_items]),
                    summary.tone,
                    to_epoch(summary.created_at),
                ),
            )
            conn.commit()
        return summary.id

    def upsert_profile(self, profile: RelationshipProfile) -> str:
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT OR REPLACE INTO relationship_profiles (subject_id, profile) VALUES (?, ?)",
                (profile.subject_id, profile.model_dump_json()),
            )
            conn.commit()
        return profile.subject_id

    # ==========================================
    # Reads (tiers)
    # ==========================================

    def get_subject(self, subject_id: str) -> Optional[Subject]:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM subjects WHERE id = ?", (subject_id,)
            ).fetchone()
        return self._row_to_subject(row) if row else None

    def get_current_facts(self, subject_id: str) -> List[Fact]:
        """Facts with no valid_until, newest first."""
        with self._lock:
            rows = self._get_conn().execute(
                """SELECT * FROM facts
                   WHERE subject_id = ? AND valid_until IS NULL
                   ORDER BY created_at DESC""",
                (subject_id,),
            ).fetchall()
        return [self._row_to_fact(r) for r in rows]

    def get_recent_messages(self, subject_id: str, since: datetime, limit: int) -> List[Message]:
        """Non-archived messages with timestamp >= since, newest first."""
        with self._lock:
            rows = self._get_conn().execute(
                """SELECT m.* FROM messages m
                   JOIN interaction_participants p ON p.interaction_id = m.interaction_id
                   WHERE p.subject_id = ? AND m.timestamp >= ? AND m.is_archived = 0
                   ORDER BY m.timestamp DESC, m.seq DESC
                   LIMIT ?""",
                (subject_id, to_epoch(since), limit),
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def get_recent_segments(self, subject_id: str, since: datetime, limit: int) -> List[TranscriptSegment]:
        """Transcript segments with timestamp >= since, newest first."""
        with self._lock:
            rows = self._get_conn().execute(
                """SELECT s.* FROM transcript_segments s
                   JOIN interaction_participants p ON p.interaction_id = s.interaction_id
                   WHERE p.subject_id = ? AND s.timestamp >= ?
                   ORDER BY s.timestamp DESC
                   LIMIT ?""",
                (subject_id, to_epoch(since), limit),
            ).fetchall()
        return [self._row_to_segment(r) for r in rows]

    def get_summaries_between(
        self,
        subject_id: str,
        after: datetime,
        until: datetime,
        limit: int,
    ) -> List[InteractionSummary]:
        """Summaries with after < created_at <= until, newest first."""
        with self._lock:
            rows = self._get_conn().execute(
                """SELECT s.* FROM interaction_summaries s
                   JOIN interaction_participants p ON p.interaction_id = s.interaction_id
                   WHERE p.subject_id = ? AND s.created_at > ? AND s.created_at <= ?
                   ORDER BY s.created_at DESC
                   LIMIT ?""",
                (subject_id, to_epoch(after), to_epoch(until), limit),
            ).fetchall()
        return [self._row_to_summary(r) for r in rows]

    def get_relationship_profile(self, subject_id: str) -> Optional[RelationshipProfile]:
        with self._lock:
            row = self._get_conn().execute(
                "SELECT profile FROM relationship_profiles WHERE subject_id = ?",
                (subject_id,),
            ).fetchone()
        return RelationshipProfile.model_validate_json(row["profile"]) if row else None

    # ==========================================
    # Reads (search)
    # ==========================================

    def search_fts(
        self,
        match_expr: str,
        entity_id: Optional[str] = None,
        from_ts: Optional[float] = None,
        to_ts: Optional[float] = None,
        limit: int = 20,
        snippet_tokens: int = 16,
    ) -> List[Dict[str, Any]]:
        """
        Ranked FTS5 search over message content.

        score is the negated bm25() rank so that higher means more relevant.
        """
        sql = """
            SELECT m.id, m.content, m.timestamp, m.interaction_id, m.sender_entity_id,
                   s.name AS entity_name,
                   -bm25(messages_fts) AS score,
                   snippet(messages_fts, 0, '<b>', '</b>', '…', ?) AS highlight
            FROM messages_fts
            JOIN messages m ON m.seq = messages_fts.rowid
            LEFT JOIN subjects s ON s.id = m.sender_entity_id
            WHERE messages_fts MATCH ?
        """
        params: List[Any] = [snippet_tokens, match_expr]
        if entity_id:
            sql += " AND m.sender_entity_id = ?"
            params.append(entity_id)
        if from_ts is not None:
            sql += " AND m.timestamp >= ?"
            params.append(from_ts)
        if to_ts is not None:
            sql += " AND m.timestamp <= ?"
            params.append(to_ts)
        sql += " ORDER BY score DESC, m.seq ASC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._get_conn().execute(sql, params).fetchall()
        return [dict(r) for r in rows]

    def get_messages_by_ids(self, message_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Message rows (with sender name) keyed by id."""
        if not message_ids:
            return {}
        placeholders = ",".join("?" for _ in message_ids)
        with self._lock:
            rows = self._get_conn().execute(
                f"""SELECT m.id, m.content, m.timestamp, m.interaction_id, m.sender_entity_id,
                           s.name AS entity_name
                    FROM messages m
                    LEFT JOIN subjects s ON s.id = m.sender_entity_id
                    WHERE m.id IN ({placeholders})""",
                message_ids,
            ).fetchall()
        return {r["id"]: dict(r) for r in rows}

    def close(self):
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
