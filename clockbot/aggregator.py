from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .clock import utc_now
from .clock import week_start as start_of_week
from .db import Database
from .models import (
    ActivityEntry,
    ActivityTotal,
    ClosedSession,
    LeaderboardEntry,
    WeeklySummary,
)

LEADERBOARD_LIMIT = 15


class Window(str, Enum):
    CURRENT_WEEK = "current_week"
    ALL_TIME = "all_time"


@dataclass(frozen=True, slots=True)
class _Contribution:
    key: Hashable
    user_id: str
    username: str
    minutes: int
    sessions: int


@dataclass(slots=True)
class _Total:
    user_id: str
    username: str
    minutes: int = 0
    sessions: int = 0


def _accumulate(contributions: Iterable[_Contribution]) -> dict[Hashable, _Total]:
    """Sum contributions per key. Keys keep first-seen order; the last username wins."""
    totals: dict[Hashable, _Total] = {}
    for item in contributions:
        total = totals.setdefault(item.key, _Total(user_id=item.user_id, username=item.username))
        total.username = item.username
        total.minutes += item.minutes
        total.sessions += item.sessions
    return totals


def _by_minutes_desc(entries: list[LeaderboardEntry]) -> list[LeaderboardEntry]:
    # sorted() is stable: equal totals keep row order.
    return sorted(entries, key=lambda entry: -entry.total_minutes)


def _by_user_then_minutes(entries: list[ActivityEntry]) -> list[ActivityEntry]:
    return sorted(entries, key=lambda entry: (entry.username, -entry.total_minutes))


class Aggregator:
    """Read-only reporting over the ledger tables."""

    def __init__(self, db: Database, limit: int = LEADERBOARD_LIMIT) -> None:
        self.db = db
        self.limit = limit

    def _current_week_sessions(self, now: datetime | None) -> list[ClosedSession]:
        return self.db.list_closed_sessions(since=start_of_week(now or utc_now(), self.db.tz))

    def leaderboard(self, window: Window, *, now: datetime | None = None) -> list[LeaderboardEntry]:
        if Window(window) is Window.CURRENT_WEEK:
            sessions = self._current_week_sessions(now)
            contributions = [
                _Contribution(s.user_id, s.user_id, s.username, s.minutes, 1) for s in sessions
            ]
        else:
            archived = [
                _Contribution(row.user_id, row.user_id, row.username, row.total_minutes, 0)
                for row in self.db.list_weekly_archive()
            ]
            # Live sessions come last so their (newer) display name wins.
            live = [
                _Contribution(s.user_id, s.user_id, s.username, s.minutes, 1)
                for s in self.db.list_closed_sessions()
            ]
            contributions = archived + live

        entries = [
            LeaderboardEntry(user_id=t.user_id, username=t.username, total_minutes=t.minutes)
            for t in _accumulate(contributions).values()
        ]
        return _by_minutes_desc(entries)[: self.limit]

    def activity_breakdown(
        self,
        window: Window,
        user_id: str | None = None,
        *,
        now: datetime | None = None,
    ) -> list[ActivityEntry]:
        if Window(window) is Window.CURRENT_WEEK:
            contributions = self._session_contributions(self._current_week_sessions(now))
        else:
            archived = [
                _Contribution((row.user_id, row.activity), row.user_id, row.username, row.total_minutes, row.session_count)
                for row in self.db.list_activity_archive(user_id)
            ]
            contributions = archived + self._session_contributions(self.db.list_closed_sessions())

        if user_id is not None:
            contributions = [item for item in contributions if item.user_id == user_id]
        return self._activity_entries(_accumulate(contributions))

    def weekly_summary(
        self,
        *,
        week_start: datetime | None = None,
        now: datetime | None = None,
    ) -> WeeklySummary:
        """Summarize the closed sessions of one week in a single pass.

        ``week_start`` defaults to the Monday of the week containing ``now``.
        Returns zero totals and no top facts when the week is empty.
        """
        if week_start is None:
            sessions = self._current_week_sessions(now)
        else:
            sessions = self.db.list_closed_sessions(since=week_start)
        if not sessions:
            return WeeklySummary()

        per_user: dict[str, _Total] = {}
        per_activity: dict[str, int] = {}
        per_pair: dict[Hashable, _Total] = {}
        longest: ClosedSession | None = None
        total_minutes = 0

        for session in sessions:
            total_minutes += session.minutes

            user = per_user.setdefault(session.user_id, _Total(session.user_id, session.username))
            user.username = session.username
            user.minutes += session.minutes
            user.sessions += 1

            per_activity[session.activity] = per_activity.get(session.activity, 0) + session.minutes

            pair = per_pair.setdefault(
                (session.user_id, session.activity), _Total(session.user_id, session.username)
            )
            pair.username = session.username
            pair.minutes += session.minutes
            pair.sessions += 1

            if longest is None or session.minutes > longest.minutes:
                longest = session

        # max() returns the first maximal item, so ties keep row order.
        mvp = max(per_user.values(), key=lambda total: total.minutes)
        top_activity, top_minutes = max(per_activity.items(), key=lambda item: item[1])

        return WeeklySummary(
            total_minutes=total_minutes,
            total_sessions=len(sessions),
            unique_users=len(per_user),
            mvp=LeaderboardEntry(user_id=mvp.user_id, username=mvp.username, total_minutes=mvp.minutes),
            top_activity=ActivityTotal(activity=top_activity, total_minutes=top_minutes),
            longest_session=longest,
            breakdown=self._activity_entries(per_pair),
        )

    def per_user_activity_minutes(
        self,
        window: Window = Window.CURRENT_WEEK,
        *,
        now: datetime | None = None,
    ) -> dict[str, list[tuple[str, int]]]:
        """Activity/minutes pairs per user, largest first. Input for role classification."""
        result: dict[str, list[tuple[str, int]]] = {}
        for entry in self.activity_breakdown(window, now=now):
            result.setdefault(entry.user_id, []).append((entry.activity, entry.total_minutes))
        return result

    @staticmethod
    def _session_contributions(sessions: Iterable[ClosedSession]) -> list[_Contribution]:
        return [
            _Contribution((s.user_id, s.activity), s.user_id, s.username, s.minutes, 1) for s in sessions
        ]

    @staticmethod
    def _activity_entries(totals: dict[Hashable, _Total]) -> list[ActivityEntry]:
        entries = [
            ActivityEntry(
                user_id=total.user_id,
                username=total.username,
                activity=key[1],
                total_minutes=total.minutes,
                session_count=total.sessions,
            )
            for key, total in totals.items()
        ]
        return _by_user_then_minutes(entries)
