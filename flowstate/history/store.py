"""SQLite store for persisted engine state, session history and sessions.

Uses aiosqlite for async database access.
Database location: ~/.flow-facilitator/history.db
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from flowstate.config import DB_PATH

logger = logging.getLogger(__name__)

# Persisted state keys
KEY_USER_GOAL = "userGoal"
KEY_FLOW_SCORE = "flowScore"
KEY_IS_FLOW_STATE = "isFlowState"
KEY_FOCUS_TIME = "focusTime"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    goal TEXT,
    start_time REAL NOT NULL,
    end_time REAL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS session_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER,
    timestamp REAL NOT NULL,
    event TEXT NOT NULL,
    score REAL NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_session_history_session ON session_history(session_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_sessions_start ON sessions(start_time);
"""


class HistoryStore:
    """Async SQLite store. Every method is a no-op until open() is called."""

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = Path(db_path) if db_path else DB_PATH
        self._db: Optional[aiosqlite.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self) -> None:
        """Open the database and create tables if needed."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()
        logger.info("History store opened at %s", self._db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("History store closed.")

    # --- Key/value state ---

    async def save_state(self, values: dict[str, Any]) -> None:
        """Upsert persisted state values (JSON-encoded)."""
        if self._db is None:
            return
        await self._db.executemany(
            "INSERT INTO kv_state (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
            "updated_at = CURRENT_TIMESTAMP",
            [(key, json.dumps(value)) for key, value in values.items()],
        )
        await self._db.commit()

    async def load_state(self) -> dict[str, Any]:
        """Read all persisted state values. Undecodable values are skipped."""
        if self._db is None:
            return {}
        async with self._db.execute("SELECT key, value FROM kv_state") as cursor:
            rows = await cursor.fetchall()

        state: dict[str, Any] = {}
        for key, value in rows:
            try:
                state[key] = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("Ignoring corrupt persisted value for %s", key)
        return state

    # --- Sessions ---

    async def start_session(self, goal: str, start_time: float) -> Optional[int]:
        """Create a session record and return its id."""
        if self._db is None:
            return None
        cursor = await self._db.execute(
            "INSERT INTO sessions (goal, start_time) VALUES (?, ?)",
            (goal, start_time),
        )
        await self._db.commit()
        return cursor.lastrowid

    async def end_session(self, session_id: int, end_time: float) -> None:
        if self._db is None:
            return
        await self._db.execute(
            "UPDATE sessions SET end_time = ? WHERE id = ?",
            (end_time, session_id),
        )
        await self._db.commit()

    async def get_session(self, session_id: int) -> Optional[dict]:
        """Get one session record."""
        if self._db is None:
            return None
        async with self._db.execute(
            "SELECT id, goal, start_time, end_time FROM sessions WHERE id = ?",
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _session_row(row) if row is not None else None

    async def get_latest_session(self) -> Optional[dict]:
        """Get the most recently started session."""
        if self._db is None:
            return None
        async with self._db.execute(
            "SELECT id, goal, start_time, end_time FROM sessions "
            "ORDER BY start_time DESC, id DESC LIMIT 1"
        ) as cursor:
            row = await cursor.fetchone()
        return _session_row(row) if row is not None else None

    async def list_sessions(self, limit: int = 50) -> list[dict]:
        """List sessions, newest first."""
        if self._db is None:
            return []
        async with self._db.execute(
            "SELECT id, goal, start_time, end_time FROM sessions "
            "ORDER BY start_time DESC, id DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [_session_row(row) for row in rows]

    # --- Session history ---

    async def append_history(
        self,
        session_id: Optional[int],
        timestamp: float,
        event: str,
        score: float,
    ) -> None:
        """Append one {timestamp, event, score} record."""
        if self._db is None:
            return
        await self._db.execute(
            "INSERT INTO session_history (session_id, timestamp, event, score) "
            "VALUES (?, ?, ?, ?)",
            (session_id, timestamp, event, score),
        )
        await self._db.commit()

    async def get_history(
        self,
        session_id: Optional[int] = None,
        limit: int = 10000,
    ) -> list[dict]:
        """Retrieve history records in chronological order.

        Args:
            session_id: Restrict to one session; None returns records from all sessions.
            limit: Maximum number of records.
        """
        if self._db is None:
            return []

        query = "SELECT session_id, timestamp, event, score FROM session_history"
        params: list = []
        if session_id is not None:
            query += " WHERE session_id = ?"
            params.append(session_id)
        query += " ORDER BY timestamp ASC, id ASC LIMIT ?"
        params.append(limit)

        async with self._db.execute(query, params) as cursor:
            rows = await cursor.fetchall()

        return [
            {
                "session_id": row[0],
                "timestamp": row[1],
                "event": row[2],
                "score": row[3],
            }
            for row in rows
        ]


def _session_row(row: tuple) -> dict:
    return {
        "id": row[0],
        "goal": row[1],
        "start_time": row[2],
        "end_time": row[3],
    }
