from __future__ import annotations

import json
import secrets
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_session() -> dict[str, Any]:
    return {"tokens": None, "oauth_state": None}


class SessionStore:
    """SQLite-backed sessions keyed by an opaque id; payloads are JSON objects."""

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        schema_sql = """
        CREATE TABLE IF NOT EXISTS sessions (
            sid TEXT PRIMARY KEY,
            payload_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
        with self._lock:
            with self._connect() as conn:
                conn.executescript(schema_sql)

    def create(self) -> tuple[str, dict[str, Any]]:
        sid = secrets.token_hex(16)
        session = new_session()
        now = _utc_now()
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO sessions(sid, payload_json, created_at, updated_at) VALUES (?, ?, ?, ?)",
                    (sid, json.dumps(session), now, now),
                )
                conn.commit()
        return sid, session

    def get(self, sid: str | None) -> dict[str, Any] | None:
        if not sid:
            return None
        with self._lock:
            with self._connect() as conn:
                row = conn.execute("SELECT payload_json FROM sessions WHERE sid = ?", (sid,)).fetchone()
        if row is None:
            return None
        try:
            payload = json.loads(row["payload_json"])
        except ValueError:
            return new_session()
        if not isinstance(payload, dict):
            return new_session()
        session = new_session()
        session.update(payload)
        return session

    def save(self, sid: str, session: dict[str, Any]) -> None:
        now = _utc_now()
        with self._lock:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO sessions(sid, payload_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(sid) DO UPDATE SET
                        payload_json = excluded.payload_json,
                        updated_at = excluded.updated_at
                    """,
                    (sid, json.dumps(session, ensure_ascii=False), now, now),
                )
                conn.commit()

    def delete(self, sid: str | None) -> bool:
        if not sid:
            return False
        with self._lock:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM sessions WHERE sid = ?", (sid,))
                conn.commit()
                return cursor.rowcount > 0
