from __future__ import annotations

import logging
from datetime import datetime

from .clock import elapsed_minutes, utc_now
from .db import Database
from .errors import ActivityNotFound, AlreadyActive, ClockSkew, EmptyActivity, NoActiveSession
from .models import ActiveSession, ArchiveResult, ClockOutResult, RenameResult
from .normalize import canonicalize

NORMALIZED_META_KEY = "activities_normalized"
LAST_ROLLUP_META_KEY = "last_rollup_week"


class Ledger:
    """Session lifecycle, label reconciliation and the weekly archive transition."""

    def __init__(self, db: Database, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    def clock_in(
        self,
        user_id: str,
        display_name: str,
        raw_activity: str,
        *,
        now: datetime | None = None,
    ) -> ActiveSession:
        activity = canonicalize(raw_activity)
        if not activity:
            raise EmptyActivity()

        started = now or utc_now()
        with self.db.transaction():
            current = self.db.get_active_session(user_id)
            if current is not None:
                raise AlreadyActive(current)
            session_id = self.db.insert_session(user_id, display_name, activity, started)

        self.logger.info("Clocked in: user=%s activity=%s session=%s", user_id, activity, session_id)
        return ActiveSession(
            id=session_id,
            user_id=user_id,
            username=display_name,
            activity=activity,
            started_at=started.astimezone(self.db.tz).replace(microsecond=0),
        )

    def clock_out(self, user_id: str, *, now: datetime | None = None) -> ClockOutResult:
        ended = now or utc_now()
        with self.db.transaction():
            session = self.db.get_active_session(user_id)
            if session is None:
                raise NoActiveSession(user_id)

            minutes = elapsed_minutes(session.started_at, ended)
            if minutes < 0:
                raise ClockSkew(
                    f"session {session.id} ends before it starts "
                    f"({session.started_at.isoformat()} > {ended.isoformat()})"
                )
            self.db.close_session(session.id, ended, minutes)

        self.logger.info("Clocked out: user=%s activity=%s minutes=%d", user_id, session.activity, minutes)
        return ClockOutResult(session_id=session.id, activity=session.activity, minutes=minutes)

    def active_session(self, user_id: str) -> ActiveSession | None:
        return self.db.get_active_session(user_id)

    def who_is_active(self) -> list[ActiveSession]:
        return self.db.list_active_sessions()

    def rename(self, user_id: str, old_raw: str, new_raw: str) -> RenameResult:
        old = canonicalize(old_raw)
        new = canonicalize(new_raw)
        if not old or not new:
            raise EmptyActivity()

        if old == new:
            self.logger.debug("Rename is a no-op for user=%s label=%s", user_id, old)
            return RenameResult(old_activity=old, new_activity=new, unchanged=True)

        with self.db.transaction():
            if not self.db.has_activity(user_id, old):
                raise ActivityNotFound(old)
            sessions_updated = self.db.relabel_sessions(old, new, user_id=user_id)
            self.db.relabel_activity_archive(old, new, user_id=user_id)
            merged = self.db.merge_activity_archive_duplicates(user_id=user_id, activity=new)

        self.logger.info(
            "Renamed activity: user=%s %s -> %s sessions=%d merged=%d",
            user_id,
            old,
            new,
            sessions_updated,
            merged,
        )
        return RenameResult(
            old_activity=old,
            new_activity=new,
            sessions_updated=sessions_updated,
            archive_rows_merged=merged,
        )

    def normalize_history(self) -> bool:
        """Canonicalize labels stored before normalization existed. Runs once per database."""
        if self.db.get_meta(NORMALIZED_META_KEY) == "true":
            return False

        relabeled = 0
        with self.db.transaction():
            # Re-check under the write lock in case another process just finished.
            if self.db.get_meta(NORMALIZED_META_KEY) == "true":
                return False

            for original in self.db.distinct_session_activities():
                normalized = canonicalize(original)
                if normalized and normalized != original:
                    relabeled += self.db.relabel_sessions(original, normalized)

            for original in self.db.distinct_archive_activities():
                normalized = canonicalize(original)
                if normalized and normalized != original:
                    relabeled += self.db.relabel_activity_archive(original, normalized)

            merged = self.db.merge_activity_archive_duplicates()
            self.db.set_meta(NORMALIZED_META_KEY, "true")

        self.logger.info("Normalized historical activities: rows=%d merged=%d", relabeled, merged)
        return True

    def archive_week(self, week_label: str) -> ArchiveResult | None:
        """Fold all closed sessions into archive rows for ``week_label`` and clear them.

        Returns None without writing anything if that week was already archived.
        """
        with self.db.transaction():
            if self.db.get_meta(LAST_ROLLUP_META_KEY) == week_label:
                self.logger.warning("Week %s already archived; skipping", week_label)
                return None
            result = self.db.archive_closed_sessions(week_label)
            self.db.set_meta(LAST_ROLLUP_META_KEY, week_label)

        self.logger.info(
            "Archived week %s: users=%d activity_rows=%d sessions_cleared=%d",
            week_label,
            result.users_archived,
            result.activity_rows,
            result.sessions_cleared,
        )
        return result
