from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ActiveSession:
    id: int
    user_id: str
    username: str
    activity: str
    started_at: datetime


@dataclass(frozen=True, slots=True)
class ClosedSession:
    id: int
    user_id: str
    username: str
    activity: str
    started_at: datetime
    ended_at: datetime
    minutes: int


@dataclass(frozen=True, slots=True)
class ClockOutResult:
    session_id: int
    activity: str
    minutes: int


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    user_id: str
    username: str
    total_minutes: int


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    user_id: str
    username: str
    activity: str
    total_minutes: int
    session_count: int


@dataclass(frozen=True, slots=True)
class ActivityTotal:
    activity: str
    total_minutes: int


@dataclass(frozen=True, slots=True)
class WeeklySummary:
    total_minutes: int = 0
    total_sessions: int = 0
    unique_users: int = 0
    mvp: LeaderboardEntry | None = None
    top_activity: ActivityTotal | None = None
    longest_session: ClosedSession | None = None
    breakdown: list[ActivityEntry] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class WeeklyArchiveRow:
    id: int
    user_id: str
    username: str
    week_label: str
    total_minutes: int


@dataclass(frozen=True, slots=True)
class ActivityArchiveRow:
    id: int
    user_id: str
    username: str
    week_label: str
    activity: str
    total_minutes: int
    session_count: int


@dataclass(frozen=True, slots=True)
class RenameResult:
    old_activity: str
    new_activity: str
    sessions_updated: int = 0
    archive_rows_merged: int = 0
    # Both labels share a canonical form; nothing was written.
    unchanged: bool = False


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    week_label: str
    users_archived: int
    activity_rows: int
    sessions_cleared: int
