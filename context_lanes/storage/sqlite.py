"""SQLiteLaneStore: durable lane storage using stdlib sqlite3."""

from __future__ import annotations

import sqlite3
import uuid
from pathlib import Path

from ..core.store import LaneStore
from ..types import ContextLane, ContextSwitchEvent, LaneStatus, MessageContextMembership

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS contexts (
    session_id TEXT NOT NULL,
    id TEXT NOT NULL,
    title TEXT NOT NULL,
    summary TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    msg_count INTEGER NOT NULL DEFAULT 0,
    last_active_at INTEGER NOT NULL,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    PRIMARY KEY (session_id, id)
);

CREATE TABLE IF NOT EXISTS context_memberships (
    session_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    context_id TEXT NOT NULL,
    relevance REAL NOT NULL,
    is_primary INTEGER NOT NULL DEFAULT 0,
    created_at INTEGER NOT NULL,
    PRIMARY KEY (session_id, message_id, context_id)
);

CREATE INDEX IF NOT EXISTS idx_context_memberships_session_time
    ON context_memberships (session_id, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_context_memberships_message
    ON context_memberships (session_id, message_id);

CREATE TABLE IF NOT EXISTS context_switch_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    message_id TEXT NOT NULL,
    from_context_id TEXT,
    to_context_id TEXT NOT NULL,
    confidence REAL NOT NULL,
    reason TEXT NOT NULL,
    created_at INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_context_switch_events_session_time
    ON context_switch_events (session_id, created_at DESC);

CREATE TABLE IF NOT EXISTS context_overrides (
    session_id TEXT PRIMARY KEY,
    context_id TEXT NOT NULL,
    expires_at INTEGER NOT NULL
);
"""

_CONTEXT_COLUMNS = (
    "id, session_id, owner_session_id, title, summary, status, "
    "msg_count, last_active_at, created_at, updated_at"
)


def _row_to_lane(row: sqlite3.Row) -> ContextLane:
    return ContextLane(
        id=row["id"],
        session_id=row["session_id"],
        owner_session_id=row["owner_session_id"],
        title=row["title"],
        summary=row["summary"],
        status=LaneStatus(row["status"]),
        msg_count=row["msg_count"],
        last_active_at=row["last_active_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class SQLiteLaneStore(LaneStore):
    """SQLite-backed lane store. Survives restarts."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None
        self._ensure_schema()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        conn.executescript(SCHEMA_SQL)
        # Migrations: add columns that didn't exist in earlier schema versions
        try:
            conn.execute("ALTER TABLE contexts ADD COLUMN owner_session_id TEXT")
        except sqlite3.OperationalError:
            pass  # Column already exists
        conn.commit()

    # -- lanes --

    def count_active_contexts(self, session_id: str) -> int:
        row = self._get_conn().execute(
            "SELECT COUNT(*) AS count FROM contexts WHERE session_id = ? AND status = 'active'",
            (session_id,),
        ).fetchone()
        return row["count"] if row else 0

    def list_active_contexts(self, session_id: str, limit: int) -> list[ContextLane]:
        rows = self._get_conn().execute(
            f"""SELECT {_CONTEXT_COLUMNS} FROM contexts
            WHERE session_id = ? AND status = 'active'
            ORDER BY last_active_at DESC, rowid DESC
            LIMIT ?""",
            (session_id, limit),
        ).fetchall()
        return [_row_to_lane(r) for r in rows]

    def list_contexts(self, session_id: str, limit: int) -> list[ContextLane]:
        rows = self._get_conn().execute(
            f"""SELECT {_CONTEXT_COLUMNS} FROM contexts
            WHERE session_id = ?
            ORDER BY last_active_at DESC, rowid DESC
            LIMIT ?""",
            (session_id, limit),
        ).fetchall()
        return [_row_to_lane(r) for r in rows]

    def get_context(self, session_id: str, context_id: str) -> ContextLane | None:
        row = self._get_conn().execute(
            f"SELECT {_CONTEXT_COLUMNS} FROM contexts WHERE session_id = ? AND id = ?",
            (session_id, context_id),
        ).fetchone()
        return _row_to_lane(row) if row else None

    def create_context(
        self,
        session_id: str,
        title: str,
        summary: str,
        now: int,
        preferred_id: str | None = None,
        owner_session_id: str | None = None,
    ) -> ContextLane:
        context_id = preferred_id
        if not context_id or self.get_context(session_id, context_id) is not None:
            context_id = str(uuid.uuid4())

        conn = self._get_conn()
        conn.execute(
            """INSERT INTO contexts
            (session_id, id, owner_session_id, title, summary, status,
             msg_count, last_active_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 'active', 0, ?, ?, ?)""",
            (session_id, context_id, owner_session_id, title, summary, now, now, now),
        )
        conn.commit()
        return ContextLane(
            id=context_id,
            session_id=session_id,
            owner_session_id=owner_session_id,
            title=title,
            summary=summary,
            status=LaneStatus.ACTIVE,
            msg_count=0,
            last_active_at=now,
            created_at=now,
            updated_at=now,
        )

    def update_context_summary(self, session_id: str, context_id: str, summary: str, now: int) -> None:
        conn = self._get_conn()
        conn.execute(
            """UPDATE contexts
            SET summary = ?,
                msg_count = msg_count + 1,
                last_active_at = ?,
                updated_at = ?
            WHERE session_id = ? AND id = ?""",
            (summary, now, now, session_id, context_id),
        )
        conn.commit()

    # -- memberships --

    def latest_primary_context_id(self, session_id: str) -> str | None:
        row = self._get_conn().execute(
            """SELECT context_id FROM context_memberships
            WHERE session_id = ? AND is_primary = 1
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1""",
            (session_id,),
        ).fetchone()
        return row["context_id"] if row else None

    def save_memberships(
        self,
        session_id: str,
        message_id: str,
        memberships: list[MessageContextMembership],
        now: int,
    ) -> None:
        conn = self._get_conn()
        conn.executemany(
            """INSERT OR REPLACE INTO context_memberships
            (session_id, message_id, context_id, relevance, is_primary, created_at)
            VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (session_id, message_id, m.context_id, m.relevance, 1 if m.is_primary else 0, now)
                for m in memberships
            ],
        )
        conn.commit()

    def get_membership_context_map(
        self, session_id: str, message_ids: list[str],
    ) -> dict[str, set[str]]:
        result: dict[str, set[str]] = {}
        if not message_ids:
            return result

        conn = self._get_conn()
        unique_ids = list(dict.fromkeys(message_ids))
        # Stay under SQLITE_MAX_VARIABLE_NUMBER on older builds
        batch_size = 500
        for start in range(0, len(unique_ids), batch_size):
            batch = unique_ids[start:start + batch_size]
            placeholders = ",".join("?" * len(batch))
            rows = conn.execute(
                f"""SELECT message_id, context_id FROM context_memberships
                WHERE session_id = ? AND message_id IN ({placeholders})""",
                [session_id, *batch],
            ).fetchall()
            for row in rows:
                result.setdefault(row["message_id"], set()).add(row["context_id"])
        return result

    # -- switch events --

    def record_switch(
        self,
        session_id: str,
        message_id: str,
        from_context_id: str | None,
        to_context_id: str,
        confidence: float,
        reason: str,
        now: int,
    ) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT INTO context_switch_events
            (session_id, message_id, from_context_id, to_context_id, confidence, reason, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (session_id, message_id, from_context_id, to_context_id, confidence, reason, now),
        )
        conn.commit()

    def list_switch_events(self, session_id: str, limit: int) -> list[ContextSwitchEvent]:
        rows = self._get_conn().execute(
            """SELECT session_id, message_id, from_context_id, to_context_id,
                      confidence, reason, created_at
            FROM context_switch_events
            WHERE session_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?""",
            (session_id, limit),
        ).fetchall()
        return [
            ContextSwitchEvent(
                session_id=row["session_id"],
                message_id=row["message_id"],
                from_context_id=row["from_context_id"],
                to_context_id=row["to_context_id"],
                confidence=row["confidence"],
                reason=row["reason"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    # -- manual overrides --

    def set_manual_override(self, session_id: str, context_id: str, expires_at: int) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO context_overrides (session_id, context_id, expires_at) VALUES (?, ?, ?)",
            (session_id, context_id, expires_at),
        )
        conn.commit()

    def clear_manual_override(self, session_id: str) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM context_overrides WHERE session_id = ?", (session_id,))
        conn.commit()

    def get_manual_override(self, session_id: str, now: int) -> str | None:
        row = self._get_conn().execute(
            "SELECT context_id, expires_at FROM context_overrides WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        if not row or not row["context_id"]:
            return None
        if row["expires_at"] < now:
            self.clear_manual_override(session_id)
            return None
        return row["context_id"]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
