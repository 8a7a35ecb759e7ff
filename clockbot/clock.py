from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

# Starting within this window after the boundary still counts as "at" the boundary.
BOUNDARY_GRACE = timedelta(minutes=1)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_storage(value: datetime) -> str:
    """Render an aware datetime as a UTC ISO-8601 string for storage.

    Every stored value carries the same ``+00:00`` suffix and whole seconds,
    so lexical order matches chronological order, including the repeated hour
    when daylight saving time ends.
    """
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def from_storage(value: str, tz: ZoneInfo) -> datetime:
    return datetime.fromisoformat(value).astimezone(tz)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    # Subtracting two datetimes sharing a tzinfo uses wall time, which is off by
    # an hour across a DST change. Compare absolute instants instead.
    seconds = (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds()
    return int(seconds // 60)


def week_start(now: datetime, tz: ZoneInfo) -> datetime:
    """Monday 00:00 (reference time) of the week containing ``now``."""
    local = now.astimezone(tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time.min, tzinfo=tz)


def next_rollup_at(now: datetime, tz: ZoneInfo) -> datetime:
    """Next Monday 00:00 reference time, or the current one if ``now`` is just past it."""
    current_start = week_start(now, tz)
    if now.astimezone(tz) - current_start < BOUNDARY_GRACE:
        return current_start
    return datetime.combine(current_start.date() + timedelta(days=7), time.min, tzinfo=tz)


def week_label(boundary: datetime, tz: ZoneInfo) -> str:
    """Label of the ISO week that ends at ``boundary``, e.g. ``KW07/2026``."""
    ended = boundary.astimezone(tz) - timedelta(days=1)
    iso = ended.isocalendar()
    return f"KW{iso.week:02d}/{iso.year}"
