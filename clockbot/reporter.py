from __future__ import annotations

from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

import discord

from .clock import elapsed_minutes, utc_now
from .models import ActiveSession, ActivityEntry, LeaderboardEntry, WeeklySummary

MEDALS = ("🥇", "🥈", "🥉")
MAX_MESSAGE_LENGTH = 2000


def format_minutes(total_minutes: int) -> str:
    """Render a duration as ``2h 5m`` (or ``5m`` under an hour)."""
    safe = max(0, int(total_minutes))
    hours, minutes = divmod(safe, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def clip(content: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Trim content to Discord's message size limit."""
    if len(content) <= limit:
        return content
    return content[: limit - 1] + "…"


def format_board(entries: list[LeaderboardEntry]) -> str:
    if not entries:
        return "*No data yet*"

    lines = []
    for index, entry in enumerate(entries):
        prefix = MEDALS[index] if index < len(MEDALS) else "▫️"
        lines.append(f"{prefix} **{entry.username}**: `{format_minutes(entry.total_minutes)}`")
    return "\n".join(lines)


class ReportChannelLike(Protocol):
    async def send(self, content: str, **kwargs): ...


class Reporter:
    """Turns ledger results into plain chat text."""

    def __init__(self, tz: ZoneInfo) -> None:
        self.tz = tz

    def build_clock_in_content(self, session: ActiveSession) -> str:
        started = session.started_at.astimezone(self.tz).strftime("%H:%M")
        return f"🟢 **{session.username}** started working on **{session.activity}** at {started}."

    def build_clock_out_content(self, username: str, activity: str, minutes: int) -> str:
        return f"🔴 **{username}** finished **{activity}** after `{format_minutes(minutes)}`."

    def build_status_content(self, username: str, session: ActiveSession | None, now_utc: datetime | None = None) -> str:
        if session is None:
            return f"😴 {username} is not working. Clock in with `/clock in`."

        elapsed = elapsed_minutes(session.started_at, now_utc or utc_now())
        return f"🟢 {username} is working on **{session.activity}** for `{format_minutes(elapsed)}`."

    def build_who_content(self, sessions: list[ActiveSession], now_utc: datetime | None = None) -> str:
        if not sessions:
            return "😴 Nobody is working right now."

        now = now_utc or utc_now()
        lines = [f"🔨 {len(sessions)} working now:"]
        for index, session in enumerate(sessions, start=1):
            elapsed = format_minutes(elapsed_minutes(session.started_at, now))
            lines.append(f"**{index}. {session.username}**: {session.activity} `{elapsed}`")
        return "\n".join(lines)

    def build_leaderboard_content(self, weekly: list[LeaderboardEntry], all_time: list[LeaderboardEntry]) -> str:
        return "\n".join(
            [
                "🏆 **Leaderboard**",
                "📅 **This Week**",
                format_board(weekly),
                "",
                "⏳ **All Time**",
                format_board(all_time),
                "",
                "_Weekly stats reset every Monday._",
            ]
        )

    def build_activity_content(self, title: str, entries: list[ActivityEntry]) -> str:
        if not entries:
            return f"{title}\n*No data yet*"

        lines = [title]
        current_user: str | None = None
        for entry in entries:
            if entry.user_id != current_user:
                current_user = entry.user_id
                lines.append(f"**{entry.username}**")
            sessions = "session" if entry.session_count == 1 else "sessions"
            lines.append(
                f"- {entry.activity}: `{format_minutes(entry.total_minutes)}` ({entry.session_count} {sessions})"
            )
        return "\n".join(lines)

    def build_weekly_summary_content(self, week_label: str, summary: WeeklySummary) -> str:
        header = f"**Weekly Summary - {week_label}**"
        if summary.total_sessions == 0:
            return f"{header}\nNo tracked activity this week."

        lines = [
            header,
            f"Total: `{format_minutes(summary.total_minutes)}` across {summary.total_sessions} sessions "
            f"by {summary.unique_users} people",
        ]
        if summary.mvp is not None:
            lines.append(f"MVP: **{summary.mvp.username}** (`{format_minutes(summary.mvp.total_minutes)}`)")
        if summary.top_activity is not None:
            lines.append(
                f"Top activity: **{summary.top_activity.activity}** "
                f"(`{format_minutes(summary.top_activity.total_minutes)}`)"
            )
        if summary.longest_session is not None:
            longest = summary.longest_session
            lines.append(
                f"Longest session: **{longest.username}** on {longest.activity} (`{format_minutes(longest.minutes)}`)"
            )
        lines.append("")
        lines.append(self.build_activity_content("Breakdown:", summary.breakdown))
        return "\n".join(lines)

    async def post_weekly_summary(
        self,
        report_channel: ReportChannelLike,
        week_label: str,
        summary: WeeklySummary,
    ) -> bool:
        content = self.build_weekly_summary_content(week_label, summary)
        # Never ping users in automated summaries.
        await report_channel.send(clip(content), allowed_mentions=discord.AllowedMentions.none())
        return True
