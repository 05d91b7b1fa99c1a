"""SQLite-based store for chat turns, conversation context and usage records."""

import sqlite3
import json
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, List

from errors import PersistenceFailure
from schemas.context import ConversationContext, ContextVersion
from .models import ChatTurn, UsageRecord

logger = logging.getLogger(__name__)


def _iso(ts: datetime) -> str:
    """Normalize a timestamp to a sortable UTC ISO string."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteMemoryStore:
    """SQLite-based persistent store."""

    def __init__(self, db_path: str = "data/studio.db"):
        """
        Initialize SQLite store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("PRAGMA journal_mode=WAL")

        # Chat turns
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS turns (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                thread_id TEXT NOT NULL,
                role TEXT NOT NULL CHECK(role IN ('user', 'assistant', 'system')),
                status TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        # Current conversation context, one row per thread
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS contexts (
                thread_id TEXT PRIMARY KEY,
                version INTEGER NOT NULL,
                last_updated TEXT NOT NULL,
                data TEXT NOT NULL
            )
        """)

        # Bounded version history per thread
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS context_versions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                thread_id TEXT NOT NULL,
                version INTEGER NOT NULL,
                data TEXT NOT NULL
            )
        """)

        # Append-only usage ledger
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS usage_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                capability TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                metadata TEXT
            )
        """)

        # Indexes
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_turns_thread ON turns(thread_id, seq)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_versions_thread ON context_versions(thread_id, version)"
        )
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_usage_lookup ON usage_records(user_id, capability, timestamp)"
        )

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    def _write(self, statements: list):
        """Run write statements in one transaction, raising PersistenceFailure on error."""
        conn = None
        try:
            conn = self._get_connection()
            with conn:
                for sql, params in statements:
                    conn.execute(sql, params)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"SQLite write failed: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def _read(self, sql: str, params: tuple) -> List[sqlite3.Row]:
        conn = None
        try:
            conn = self._get_connection()
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"SQLite read failed: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    # Turns

    def add_turn(self, thread_id: str, turn: ChatTurn) -> ChatTurn:
        """
        Append a turn to a thread.

        Args:
            thread_id: Conversation thread ID
            turn: Turn to store

        Returns:
            The stored turn
        """
        self._write([(
            """
            INSERT INTO turns (id, thread_id, role, status, timestamp, data)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (turn.id, thread_id, turn.role, turn.status.value, _iso(turn.timestamp), turn.model_dump_json())
        )])
        return turn

    def update_turn(self, thread_id: str, turn: ChatTurn) -> ChatTurn:
        """Replace a stored turn (matched by id) with a new state."""
        self._write([(
            "UPDATE turns SET status = ?, data = ? WHERE id = ? AND thread_id = ?",
            (turn.status.value, turn.model_dump_json(), turn.id, thread_id)
        )])
        return turn

    def get_turns(self, thread_id: str, limit: Optional[int] = None) -> List[ChatTurn]:
        """
        Get turns for a thread in chronological order.

        Args:
            thread_id: Conversation thread ID
            limit: Optional maximum number of most recent turns

        Returns:
            List of ChatTurn objects
        """
        if limit is not None:
            rows = self._read(
                "SELECT data FROM turns WHERE thread_id = ? ORDER BY seq DESC LIMIT ?",
                (thread_id, limit)
            )
            rows = list(reversed(rows))  # Reverse to get chronological order
        else:
            rows = self._read(
                "SELECT data FROM turns WHERE thread_id = ? ORDER BY seq",
                (thread_id,)
            )
        return [ChatTurn.model_validate_json(row["data"]) for row in rows]

    # Context

    def save_context(self, context: ConversationContext, versions: List[ContextVersion]):
        """
        Persist the current context and its version history atomically.

        Args:
            context: Current context
            versions: Version history, oldest first
        """
        statements = [
            (
                """
                INSERT OR REPLACE INTO contexts (thread_id, version, last_updated, data)
                VALUES (?, ?, ?, ?)
                """,
                (context.thread_id, context.version, _iso(context.last_updated), context.model_dump_json())
            ),
            ("DELETE FROM context_versions WHERE thread_id = ?", (context.thread_id,)),
        ]
        for snapshot in versions:
            statements.append((
                "INSERT INTO context_versions (thread_id, version, data) VALUES (?, ?, ?)",
                (context.thread_id, snapshot.version, snapshot.model_dump_json())
            ))
        self._write(statements)

    def load_context(self, thread_id: str) -> Optional[ConversationContext]:
        """Load the current context for a thread, or None if never saved."""
        rows = self._read("SELECT data FROM contexts WHERE thread_id = ?", (thread_id,))
        if not rows:
            return None
        return ConversationContext.model_validate_json(rows[0]["data"])

    def load_versions(self, thread_id: str) -> List[ContextVersion]:
        """Load the version history for a thread, oldest first."""
        rows = self._read(
            "SELECT data FROM context_versions WHERE thread_id = ? ORDER BY id",
            (thread_id,)
        )
        return [ContextVersion.model_validate_json(row["data"]) for row in rows]

    # Usage

    def append_usage(self, record: UsageRecord):
        """Append one usage record. Records are never updated or deleted."""
        self._write([(
            """
            INSERT INTO usage_records (user_id, capability, timestamp, metadata)
            VALUES (?, ?, ?, ?)
            """,
            (
                record.user_id,
                record.capability,
                _iso(record.timestamp),
                json.dumps(record.metadata) if record.metadata else None
            )
        )])

    def count_usage(
        self,
        user_id: str,
        capability: str,
        start: datetime,
        end: datetime
    ) -> int:
        """
        Count usage records for a user and capability in [start, end).

        Args:
            user_id: User ID
            capability: Capability value
            start: Inclusive window start
            end: Exclusive window end

        Returns:
            Number of records
        """
        rows = self._read(
            """
            SELECT COUNT(*) FROM usage_records
            WHERE user_id = ? AND capability = ? AND timestamp >= ? AND timestamp < ?
            """,
            (user_id, capability, _iso(start), _iso(end))
        )
        return rows[0][0] if rows else 0

    def list_usage(
        self,
        user_id: str,
        start: datetime,
        end: datetime
    ) -> List[UsageRecord]:
        """List a user's usage records in [start, end), oldest first."""
        rows = self._read(
            """
            SELECT user_id, capability, timestamp, metadata FROM usage_records
            WHERE user_id = ? AND timestamp >= ? AND timestamp < ?
            ORDER BY id
            """,
            (user_id, _iso(start), _iso(end))
        )
        return [
            UsageRecord(
                user_id=row["user_id"],
                capability=row["capability"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                metadata=json.loads(row["metadata"]) if row["metadata"] else None
            )
            for row in rows
        ]
