from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

from .clock import from_storage, to_storage
from .errors import AlreadyActive, StoreUnavailable
from .models import (
    ActiveSession,
    ActivityArchiveRow,
    ArchiveResult,
    ClosedSession,
    WeeklyArchiveRow,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT NOT NULL,
  username TEXT NOT NULL,
  activity TEXT NOT NULL,
  started_at TEXT NOT NULL,
  ended_at TEXT,
  minutes INTEGER,
  CHECK ((ended_at IS NULL) = (minutes IS NULL))
);

CREATE TABLE IF NOT EXISTS weekly_archive (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT NOT NULL,
  username TEXT NOT NULL,
  week_label TEXT NOT NULL,
  total_min INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS activity_archive (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  user_id TEXT NOT NULL,
  username TEXT NOT NULL,
  week_label TEXT NOT NULL,
  activity TEXT NOT NULL,
  total_min INTEGER NOT NULL,
  session_count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS metadata (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_active ON sessions(user_id) WHERE ended_at IS NULL;
CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_sessions_ended ON sessions(ended_at);
CREATE INDEX IF NOT EXISTS idx_weekly_archive_user ON weekly_archive(user_id);
CREATE INDEX IF NOT EXISTS idx_activity_archive_user ON activity_archive(user_id);
"""

_SESSION_COLUMNS = "id, user_id, username, activity, started_at, ended_at, minutes"


class Database:
    """Thin SQLite access layer for sessions, weekly archives and metadata.

    Methods run single statements. Multi-statement changes must be wrapped in
    :meth:`transaction` by the caller.
    """

    def __init__(self, db_path: str | Path, tz: ZoneInfo = ZoneInfo("UTC")) -> None:
        self.tz = tz
        # Autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE.
        self._conn = sqlite3.connect(str(db_path), isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # sessions: open and closed-but-unarchived work sessions.
        # weekly_archive / activity_archive: per-week snapshots written by the rollup.
        # metadata: one-time migration flags and the last rolled-up week.
        try:
            self._conn.executescript(SCHEMA)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"could not initialize schema: {exc}") from exc

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements atomically; roll back on any exception."""
        self._execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._rollback()
            raise

        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as exc:
            self._rollback()
            raise StoreUnavailable(f"commit failed: {exc}") from exc

    def _rollback(self) -> None:
        try:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("Rollback failed")

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreUnavailable(str(exc)) from exc

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreUnavailable(str(exc)) from exc

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        try:
            return self._conn.execute(sql, params).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(str(exc)) from exc

    # -- metadata -------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        row = self._fetchone("SELECT value FROM metadata WHERE key = ?", (key,))
        if row is None:
            return None
        return str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        self._execute(
            """
            INSERT INTO metadata (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )

    # -- sessions -------------------------------------------------------

    def insert_session(self, user_id: str, username: str, activity: str, started_at: datetime) -> int:
        try:
            cursor = self._conn.execute(
                "INSERT INTO sessions (user_id, username, activity, started_at) VALUES (?, ?, ?, ?)",
                (user_id, username, activity, to_storage(started_at)),
            )
        except sqlite3.IntegrityError as exc:
            # SQLite names the indexed column, not idx_sessions_one_active.
            if "UNIQUE constraint failed: sessions.user_id" in str(exc):
                raise AlreadyActive() from exc
            raise StoreUnavailable(str(exc)) from exc
        except sqlite3.Error as exc:
            raise StoreUnavailable(str(exc)) from exc
        return int(cursor.lastrowid)

    def get_active_session(self, user_id: str) -> ActiveSession | None:
        row = self._fetchone(
            f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE user_id = ? AND ended_at IS NULL",
            (user_id,),
        )
        if row is None:
            return None
        return self._active_from_row(row)

    def list_active_sessions(self) -> list[ActiveSession]:
        rows = self._fetchall(f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE ended_at IS NULL ORDER BY id")
        return [self._active_from_row(row) for row in rows]

    def close_session(self, session_id: int, ended_at: datetime, minutes: int) -> None:
        self._execute(
            "UPDATE sessions SET ended_at = ?, minutes = ? WHERE id = ? AND ended_at IS NULL",
            (to_storage(ended_at), minutes, session_id),
        )

    def list_closed_sessions(self, since: datetime | None = None) -> list[ClosedSession]:
        if since is None:
            rows = self._fetchall(
                f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE ended_at IS NOT NULL ORDER BY id"
            )
        else:
            rows = self._fetchall(
                f"""
                SELECT {_SESSION_COLUMNS} FROM sessions
                WHERE ended_at IS NOT NULL AND started_at >= ?
                ORDER BY id
                """,
                (to_storage(since),),
            )
        return [self._closed_from_row(row) for row in rows]

    def distinct_session_activities(self) -> list[str]:
        rows = self._fetchall("SELECT DISTINCT activity FROM sessions")
        return [row["activity"] for row in rows]

    def relabel_sessions(self, old: str, new: str, user_id: str | None = None) -> int:
        if user_id is None:
            cursor = self._execute("UPDATE sessions SET activity = ? WHERE activity = ?", (new, old))
        else:
            cursor = self._execute(
                "UPDATE sessions SET activity = ? WHERE user_id = ? AND activity = ?",
                (new, user_id, old),
            )
        return cursor.rowcount

    def has_activity(self, user_id: str, activity: str) -> bool:
        row = self._fetchone(
            """
            SELECT
              EXISTS (SELECT 1 FROM sessions WHERE user_id = ? AND activity = ?)
              OR EXISTS (SELECT 1 FROM activity_archive WHERE user_id = ? AND activity = ?)
              AS found
            """,
            (user_id, activity, user_id, activity),
        )
        return bool(row["found"]) if row is not None else False

    # -- archives -------------------------------------------------------

    def list_weekly_archive(self) -> list[WeeklyArchiveRow]:
        rows = self._fetchall(
            "SELECT id, user_id, username, week_label, total_min FROM weekly_archive ORDER BY id"
        )
        return [
            WeeklyArchiveRow(
                id=row["id"],
                user_id=row["user_id"],
                username=row["username"],
                week_label=row["week_label"],
                total_minutes=row["total_min"],
            )
            for row in rows
        ]

    def list_activity_archive(self, user_id: str | None = None) -> list[ActivityArchiveRow]:
        sql = "SELECT id, user_id, username, week_label, activity, total_min, session_count FROM activity_archive"
        params: tuple[str, ...] = ()
        if user_id is not None:
            sql += " WHERE user_id = ?"
            params = (user_id,)
        rows = self._fetchall(sql + " ORDER BY id", params)
        return [
            ActivityArchiveRow(
                id=row["id"],
                user_id=row["user_id"],
                username=row["username"],
                week_label=row["week_label"],
                activity=row["activity"],
                total_minutes=row["total_min"],
                session_count=row["session_count"],
            )
            for row in rows
        ]

    def distinct_archive_activities(self) -> list[str]:
        rows = self._fetchall("SELECT DISTINCT activity FROM activity_archive")
        return [row["activity"] for row in rows]

    def relabel_activity_archive(self, old: str, new: str, user_id: str | None = None) -> int:
        if user_id is None:
            cursor = self._execute("UPDATE activity_archive SET activity = ? WHERE activity = ?", (new, old))
        else:
            cursor = self._execute(
                "UPDATE activity_archive SET activity = ? WHERE user_id = ? AND activity = ?",
                (new, user_id, old),
            )
        return cursor.rowcount

    def merge_activity_archive_duplicates(self, user_id: str | None = None, activity: str | None = None) -> int:
        """Fold rows sharing (user, week, activity) into the lowest id. Returns rows deleted."""
        clauses: list[str] = []
        params: list[str] = []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if activity is not None:
            clauses.append("activity = ?")
            params.append(activity)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        groups = self._fetchall(
            f"""
            SELECT user_id, week_label, activity
            FROM activity_archive
            {where}
            GROUP BY user_id, week_label, activity
            HAVING COUNT(*) > 1
            """,
            params,
        )

        merged = 0
        for group in groups:
            merged += self._merge_archive_group(group["user_id"], group["week_label"], group["activity"])
        return merged

    def _merge_archive_group(self, user_id: str, week_label: str, activity: str) -> int:
        key = (user_id, week_label, activity)
        totals = self._fetchone(
            """
            SELECT MIN(id) AS keep_id, SUM(total_min) AS total, SUM(session_count) AS sessions
            FROM activity_archive
            WHERE user_id = ? AND week_label = ? AND activity = ?
            """,
            key,
        )
        if totals is None or totals["keep_id"] is None:
            return 0

        self._execute(
            "UPDATE activity_archive SET total_min = ?, session_count = ? WHERE id = ?",
            (totals["total"], totals["sessions"], totals["keep_id"]),
        )
        cursor = self._execute(
            "DELETE FROM activity_archive WHERE user_id = ? AND week_label = ? AND activity = ? AND id > ?",
            (*key, totals["keep_id"]),
        )
        return cursor.rowcount

    def archive_closed_sessions(self, week_label: str) -> ArchiveResult:
        """Snapshot every closed session into archive rows, then delete them.

        Open sessions are left alone. The latest display name per user is kept.
        """
        weekly = self._execute(
            """
            INSERT INTO weekly_archive (user_id, username, week_label, total_min)
            SELECT
              s.user_id,
              (SELECT latest.username FROM sessions AS latest
                WHERE latest.user_id = s.user_id AND latest.ended_at IS NOT NULL
                ORDER BY latest.id DESC LIMIT 1),
              ?,
              SUM(s.minutes)
            FROM sessions AS s
            WHERE s.ended_at IS NOT NULL
            GROUP BY s.user_id
            ORDER BY MIN(s.id)
            """,
            (week_label,),
        )
        per_activity = self._execute(
            """
            INSERT INTO activity_archive (user_id, username, week_label, activity, total_min, session_count)
            SELECT
              s.user_id,
              (SELECT latest.username FROM sessions AS latest
                WHERE latest.user_id = s.user_id AND latest.ended_at IS NOT NULL
                ORDER BY latest.id DESC LIMIT 1),
              ?,
              s.activity,
              SUM(s.minutes),
              COUNT(*)
            FROM sessions AS s
            WHERE s.ended_at IS NOT NULL
            GROUP BY s.user_id, s.activity
            ORDER BY MIN(s.id)
            """,
            (week_label,),
        )
        cleared = self._execute("DELETE FROM sessions WHERE ended_at IS NOT NULL")
        return ArchiveResult(
            week_label=week_label,
            users_archived=weekly.rowcount,
            activity_rows=per_activity.rowcount,
            sessions_cleared=cleared.rowcount,
        )

    # -- row mapping ----------------------------------------------------

    def _active_from_row(self, row: sqlite3.Row) -> ActiveSession:
        return ActiveSession(
            id=row["id"],
            user_id=row["user_id"],
            username=row["username"],
            activity=row["activity"],
            started_at=from_storage(row["started_at"], self.tz),
        )

    def _closed_from_row(self, row: sqlite3.Row) -> ClosedSession:
        return ClosedSession(
            id=row["id"],
            user_id=row["user_id"],
            username=row["username"],
            activity=row["activity"],
            started_at=from_storage(row["started_at"], self.tz),
            ended_at=from_storage(row["ended_at"], self.tz),
            minutes=row["minutes"],
        )
