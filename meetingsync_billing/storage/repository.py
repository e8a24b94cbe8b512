"""
Repository pattern for data access.

Two stores:
- Key-value store for state that must survive a reload (usage accounts)
- Append-only archive of ended sessions
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol

from .db import DEFAULT_DB_PATH, get_connection
from .models import ArchivedSession


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the kv_store and session_archive tables if they don't exist.

    session_archive is append-only: no UPDATE or DELETE is ever issued
    against it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS session_archive (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL UNIQUE,
                user_id TEXT NOT NULL,
                started_at TEXT NOT NULL,
                ended_at TEXT,
                tier_id TEXT,
                is_free_tier INTEGER NOT NULL,
                duration_seconds INTEGER NOT NULL,
                cost TEXT NOT NULL,
                end_reason TEXT,
                payload TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


class KeyValueStore(Protocol):
    """What UsageLedger needs from a store. Values must be JSON-serializable."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Key-value store for the lifetime of the process."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # Stored as JSON so callers never share mutable state with the store
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqliteKeyValueStore:
    """Key-value store backed by the kv_store table. Values are JSON."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get(self, key: str) -> Optional[Any]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            return json.loads(row[0]) if row else None
        finally:
            conn.close()

    def set(self, key: str, value: Any) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (key, json.dumps(value), datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            conn.commit()
        finally:
            conn.close()


class SessionArchive:
    """Append-only archive of ended session snapshots."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def save(self, snapshot) -> None:
        """Append one ended session.

        Args:
            snapshot: SessionSnapshot of an ended session

        Raises:
            sqlite3.IntegrityError: If the session was already archived
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO session_archive
                (session_id, user_id, started_at, ended_at, tier_id, is_free_tier,
                 duration_seconds, cost, end_reason, payload)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                snapshot.id,
                snapshot.user_id,
                snapshot.started_at.isoformat(),
                snapshot.ended_at.isoformat() if snapshot.ended_at else None,
                snapshot.tier_id,
                int(snapshot.is_free_tier),
                snapshot.duration_seconds,
                str(snapshot.cost),
                snapshot.end_reason.value if snapshot.end_reason else None,
                json.dumps(snapshot.to_dict())
            ))
            conn.commit()
        finally:
            conn.close()

    def fetch_sessions(
        self,
        user_id: Optional[str] = None,
        limit: int = 100
    ) -> List[ArchivedSession]:
        """Fetch archived sessions, newest first.

        Args:
            user_id: Optional filter for one user
            limit: Maximum number of sessions to return

        Returns:
            List of archived sessions ordered by start time (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = """
                SELECT session_id, user_id, started_at, ended_at, tier_id,
                       is_free_tier, duration_seconds, cost, end_reason, payload
                FROM session_archive
            """
            params: List[Any] = []
            if user_id:
                query += " WHERE user_id = ?"
                params.append(user_id)
            query += " ORDER BY started_at DESC, id DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            sessions = []
            for row in cursor.fetchall():
                sessions.append(ArchivedSession(
                    session_id=row[0],
                    user_id=row[1],
                    started_at=datetime.fromisoformat(row[2]),
                    ended_at=datetime.fromisoformat(row[3]) if row[3] else None,
                    tier_id=row[4],
                    is_free_tier=bool(row[5]),
                    duration_seconds=row[6],
                    cost=Decimal(row[7]),
                    end_reason=row[8],
                    payload=json.loads(row[9])
                ))
            return sessions
        finally:
            conn.close()

    def total_cost(self, user_id: Optional[str] = None) -> Decimal:
        """Sum of archived session costs."""
        return sum(
            (session.cost for session in self.fetch_sessions(user_id=user_id, limit=-1)),
            Decimal("0.00")
        )
