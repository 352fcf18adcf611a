"""Persistence for conversations, decisions, debate turns and audio manifests.

``Store`` is the interface the orchestrator consumes. ``SQLiteStore`` is the
bundled implementation: one connection guarded by a lock, so every operation
is atomic at the record level and concurrent runs on different decisions
interleave safely.
"""

import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from committee.models import (
    DECISION_STATUSES,
    STATUS_DEBATING,
    STATUS_DECIDED,
    STATUS_EXPLORING,
    STATUS_REVIEWED,
    Conversation,
    DebateTurn,
    Decision,
    Message,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a record the caller relies on does not exist."""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class Store(ABC):
    """Record-level persistence consumed by the debate engine."""

    # conversations / messages

    @abstractmethod
    def create_conversation(self, title: str, conv_type: str = "chat") -> Conversation: ...

    @abstractmethod
    def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    @abstractmethod
    def add_message(self, conversation_id: str, role: str, content: str) -> Message: ...

    @abstractmethod
    def get_messages(self, conversation_id: str) -> list[Message]: ...

    # decisions

    @abstractmethod
    def create_decision(self, conversation_id: str, title: str) -> Decision: ...

    @abstractmethod
    def get_decision(self, decision_id: str) -> Decision | None: ...

    @abstractmethod
    def list_decisions(self) -> list[Decision]: ...

    @abstractmethod
    def update_decision_summary(self, decision_id: str, summary: dict[str, Any]) -> None: ...

    @abstractmethod
    def update_decision_status(self, decision_id: str, status: str) -> None: ...

    @abstractmethod
    def update_decision_choice(self, decision_id: str, choice: str, reasoning: str | None) -> None: ...

    @abstractmethod
    def update_decision_outcome(self, decision_id: str, outcome: str) -> None: ...

    @abstractmethod
    def update_debate_brief(self, decision_id: str, brief: str) -> None: ...

    @abstractmethod
    def mark_debate_started(self, decision_id: str) -> None: ...

    @abstractmethod
    def mark_debate_completed(self, decision_id: str) -> None: ...

    # debate turns / audio

    @abstractmethod
    def save_debate_turn(
        self,
        decision_id: str,
        round_number: int,
        exchange_number: int,
        agent: str,
        content: str,
    ) -> DebateTurn: ...

    @abstractmethod
    def get_debate_turns(self, decision_id: str) -> list[DebateTurn]: ...

    @abstractmethod
    def delete_debate_turns(self, decision_id: str) -> None: ...

    @abstractmethod
    def save_debate_audio(
        self,
        decision_id: str,
        manifest: dict[str, Any],
        total_duration_ms: int,
        audio_dir: str,
    ) -> None: ...

    @abstractmethod
    def get_debate_audio(self, decision_id: str) -> dict[str, Any] | None: ...


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS conversations (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'chat',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        conversation_id TEXT NOT NULL REFERENCES conversations(id),
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS decisions (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL REFERENCES conversations(id),
        title TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'exploring',
        summary_json TEXT,
        user_choice TEXT,
        user_choice_reasoning TEXT,
        outcome TEXT,
        outcome_date TEXT,
        debate_brief TEXT,
        debate_started_at TEXT,
        debate_completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS debate_rounds (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        decision_id TEXT NOT NULL REFERENCES decisions(id),
        round_number INTEGER NOT NULL,
        exchange_number INTEGER NOT NULL DEFAULT 1,
        agent TEXT NOT NULL,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS debate_audio (
        decision_id TEXT PRIMARY KEY REFERENCES decisions(id),
        manifest_json TEXT NOT NULL,
        total_duration_ms INTEGER NOT NULL,
        audio_dir TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_rounds_decision ON debate_rounds(decision_id);
    CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);
"""

_DECISION_COLUMNS = (
    "id, conversation_id, title, status, created_at, updated_at, summary_json, "
    "user_choice, user_choice_reasoning, outcome, outcome_date, debate_brief, "
    "debate_started_at, debate_completed_at"
)


class SQLiteStore(Store):
    """SQLite-backed store. Pass ``":memory:"`` for a throwaway database."""

    def __init__(self, db_path: str | Path) -> None:
        db_path = str(db_path)
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            self._conn.executescript(_SCHEMA)
        logger.debug("Opened store at %s", db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock, self._conn:
            return self._conn.execute(sql, params)

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _next_seq(self, table: str) -> int:
        row = self._conn.execute(f"SELECT COALESCE(MAX(seq), 0) + 1 FROM {table}").fetchone()
        return int(row[0])

    def _update_decision(self, decision_id: str, assignments: str, params: tuple) -> None:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                f"UPDATE decisions SET {assignments}, updated_at = ? WHERE id = ?",
                (*params, _now(), decision_id),
            )
        if cursor.rowcount == 0:
            raise StoreError(f"Decision not found: {decision_id}")

    # conversations / messages

    def create_conversation(self, title: str, conv_type: str = "chat") -> Conversation:
        now = _now()
        conversation = Conversation(id=_new_id(), title=title, type=conv_type, created_at=now, updated_at=now)
        self._execute(
            "INSERT INTO conversations (id, title, type, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (conversation.id, title, conv_type, now, now),
        )
        return conversation

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        rows = self._query(
            "SELECT id, title, type, created_at, updated_at FROM conversations WHERE id = ?",
            (conversation_id,),
        )
        return Conversation(**dict(rows[0])) if rows else None

    def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        now = _now()
        message = Message(id=_new_id(), conversation_id=conversation_id, role=role, content=content, created_at=now)
        with self._lock, self._conn:
            exists = self._conn.execute(
                "SELECT 1 FROM conversations WHERE id = ?", (conversation_id,)
            ).fetchone()
            if exists is None:
                raise StoreError(f"Conversation not found: {conversation_id}")
            self._conn.execute(
                "INSERT INTO messages (id, seq, conversation_id, role, content, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (message.id, self._next_seq("messages"), conversation_id, role, content, now),
            )
            self._conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?", (now, conversation_id)
            )
        return message

    def get_messages(self, conversation_id: str) -> list[Message]:
        rows = self._query(
            "SELECT id, conversation_id, role, content, created_at FROM messages "
            "WHERE conversation_id = ? ORDER BY seq ASC",
            (conversation_id,),
        )
        return [Message(**dict(r)) for r in rows]

    # decisions

    def create_decision(self, conversation_id: str, title: str) -> Decision:
        now = _now()
        decision = Decision(
            id=_new_id(),
            conversation_id=conversation_id,
            title=title,
            status=STATUS_EXPLORING,
            created_at=now,
            updated_at=now,
        )
        self._execute(
            "INSERT INTO decisions (id, conversation_id, title, status, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (decision.id, conversation_id, title, decision.status, now, now),
        )
        return decision

    def get_decision(self, decision_id: str) -> Decision | None:
        rows = self._query(f"SELECT {_DECISION_COLUMNS} FROM decisions WHERE id = ?", (decision_id,))
        return Decision(**dict(rows[0])) if rows else None

    def list_decisions(self) -> list[Decision]:
        rows = self._query(f"SELECT {_DECISION_COLUMNS} FROM decisions ORDER BY updated_at DESC")
        return [Decision(**dict(r)) for r in rows]

    def update_decision_summary(self, decision_id: str, summary: dict[str, Any]) -> None:
        self._update_decision(decision_id, "summary_json = ?", (json.dumps(summary),))

    def update_decision_status(self, decision_id: str, status: str) -> None:
        if status not in DECISION_STATUSES:
            raise ValueError(f"Unknown decision status '{status}'")
        self._update_decision(decision_id, "status = ?", (status,))

    def update_decision_choice(self, decision_id: str, choice: str, reasoning: str | None) -> None:
        self._update_decision(
            decision_id,
            "status = ?, user_choice = ?, user_choice_reasoning = ?",
            (STATUS_DECIDED, choice, reasoning or ""),
        )

    def update_decision_outcome(self, decision_id: str, outcome: str) -> None:
        self._update_decision(
            decision_id,
            "status = ?, outcome = ?, outcome_date = ?",
            (STATUS_REVIEWED, outcome, _now()),
        )

    def update_debate_brief(self, decision_id: str, brief: str) -> None:
        self._update_decision(decision_id, "debate_brief = ?", (brief,))

    def mark_debate_started(self, decision_id: str) -> None:
        self._update_decision(
            decision_id,
            "status = ?, debate_started_at = ?, debate_completed_at = NULL",
            (STATUS_DEBATING, _now()),
        )

    def mark_debate_completed(self, decision_id: str) -> None:
        self._update_decision(decision_id, "debate_completed_at = ?", (_now(),))

    # debate turns / audio

    def save_debate_turn(
        self,
        decision_id: str,
        round_number: int,
        exchange_number: int,
        agent: str,
        content: str,
    ) -> DebateTurn:
        turn = DebateTurn(
            id=_new_id(),
            decision_id=decision_id,
            round_number=round_number,
            exchange_number=exchange_number,
            agent=agent,
            content=content,
            created_at=_now(),
        )
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO debate_rounds "
                "(id, seq, decision_id, round_number, exchange_number, agent, content, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    turn.id, self._next_seq("debate_rounds"), decision_id, round_number,
                    exchange_number, agent, content, turn.created_at,
                ),
            )
        return turn

    def get_debate_turns(self, decision_id: str) -> list[DebateTurn]:
        rows = self._query(
            "SELECT id, decision_id, round_number, exchange_number, agent, content, created_at "
            "FROM debate_rounds WHERE decision_id = ? "
            "ORDER BY round_number ASC, exchange_number ASC, seq ASC",
            (decision_id,),
        )
        return [DebateTurn(**dict(r)) for r in rows]

    def delete_debate_turns(self, decision_id: str) -> None:
        self._execute("DELETE FROM debate_rounds WHERE decision_id = ?", (decision_id,))

    def save_debate_audio(
        self,
        decision_id: str,
        manifest: dict[str, Any],
        total_duration_ms: int,
        audio_dir: str,
    ) -> None:
        self._execute(
            "INSERT OR REPLACE INTO debate_audio "
            "(decision_id, manifest_json, total_duration_ms, audio_dir, created_at) VALUES (?, ?, ?, ?, ?)",
            (decision_id, json.dumps(manifest), total_duration_ms, audio_dir, _now()),
        )

    def get_debate_audio(self, decision_id: str) -> dict[str, Any] | None:
        rows = self._query(
            "SELECT manifest_json, total_duration_ms, audio_dir FROM debate_audio WHERE decision_id = ?",
            (decision_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return {
            "manifest": json.loads(row["manifest_json"]),
            "total_duration_ms": row["total_duration_ms"],
            "audio_dir": row["audio_dir"],
        }
