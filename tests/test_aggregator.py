from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from clockbot.aggregator import Aggregator, Window
from clockbot.db import Database
from clockbot.ledger import Ledger

TZ = ZoneInfo("Europe/Zurich")
# Wednesday of the week starting Monday 2026-02-09.
NOW = datetime(2026, 2, 11, 18, 0, tzinfo=TZ)


def make_aggregator() -> tuple[Ledger, Aggregator]:
    db = Database(":memory:", tz=TZ)
    db.initialize()
    return Ledger(db), Aggregator(db)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 2, day, hour, minute, tzinfo=TZ)


def record(ledger: Ledger, user_id: str, name: str, activity: str, start: datetime, minutes: int) -> None:
    ledger.clock_in(user_id, name, activity, now=start)
    ledger.clock_out(user_id, now=start + timedelta(minutes=minutes))


def test_weekly_leaderboard_orders_by_minutes() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(9, 9), 90)
    record(ledger, "2", "Bob", "coding", at(9, 9), 120)
    record(ledger, "3", "Cara", "reading", at(10, 9), 60)
    record(ledger, "3", "Cara", "reading", at(10, 14), 30)

    board = aggregator.leaderboard(Window.CURRENT_WEEK, now=NOW)

    assert board[0].username == "Bob"
    assert board[0].total_minutes == 120
    assert sorted(entry.username for entry in board[1:]) == ["Alice", "Cara"]
    assert [entry.total_minutes for entry in board[1:]] == [90, 90]


def test_weekly_leaderboard_ignores_sessions_before_monday_and_open_sessions() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(8, 20), 60)
    record(ledger, "1", "Alice", "coding", at(9, 9), 30)
    ledger.clock_in("2", "Bob", "coding", now=at(9, 9))

    board = aggregator.leaderboard(Window.CURRENT_WEEK, now=NOW)

    assert [(entry.username, entry.total_minutes) for entry in board] == [("Alice", 30)]


def test_all_time_leaderboard_adds_archive_and_live_sessions() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(3, 9), 100)
    record(ledger, "2", "Bob", "coding", at(3, 9), 40)
    ledger.archive_week("KW06/2026")
    record(ledger, "2", "Bobby", "coding", at(10, 9), 80)

    board = aggregator.leaderboard(Window.ALL_TIME, now=NOW)

    assert [(entry.username, entry.total_minutes) for entry in board] == [("Bobby", 120), ("Alice", 100)]


def test_leaderboard_is_limited_to_fifteen() -> None:
    ledger, aggregator = make_aggregator()
    for index in range(20):
        record(ledger, str(index), f"User {index:02d}", "coding", at(9, 9), index + 1)

    board = aggregator.leaderboard(Window.CURRENT_WEEK, now=NOW)

    assert len(board) == 15
    assert board[0].total_minutes == 20
    assert board[-1].total_minutes == 6


def test_activity_breakdown_groups_by_user_and_activity() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "2", "Bob", "reading", at(9, 9), 20)
    record(ledger, "1", "Alice", "coding", at(9, 9), 30)
    record(ledger, "1", "Alice", "Reading", at(9, 12), 45)
    record(ledger, "1", "Alice", "coding", at(10, 9), 30)

    entries = aggregator.activity_breakdown(Window.CURRENT_WEEK, now=NOW)

    assert [(e.username, e.activity, e.total_minutes, e.session_count) for e in entries] == [
        ("Alice", "coding", 60, 2),
        ("Alice", "reading", 45, 1),
        ("Bob", "reading", 20, 1),
    ]

    mine = aggregator.activity_breakdown(Window.CURRENT_WEEK, "2", now=NOW)
    assert [(e.username, e.activity) for e in mine] == [("Bob", "reading")]


def test_all_time_breakdown_includes_archived_session_counts() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(3, 9), 30)
    record(ledger, "1", "Alice", "coding", at(4, 9), 30)
    ledger.archive_week("KW06/2026")
    record(ledger, "1", "Alice", "coding", at(10, 9), 15)

    entries = aggregator.activity_breakdown(Window.ALL_TIME, "1", now=NOW)

    assert [(e.activity, e.total_minutes, e.session_count) for e in entries] == [("coding", 75, 3)]


def test_weekly_summary_facts() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(9, 9), 50)
    record(ledger, "1", "Alice", "coding", at(10, 9), 50)
    record(ledger, "2", "Bob", "reading", at(9, 9), 80)
    record(ledger, "3", "Cara", "writing", at(11, 9), 10)

    summary = aggregator.weekly_summary(now=NOW)

    assert summary.total_minutes == 190
    assert summary.total_sessions == 4
    assert summary.unique_users == 3
    assert summary.mvp is not None
    assert (summary.mvp.username, summary.mvp.total_minutes) == ("Alice", 100)
    assert summary.top_activity is not None
    assert (summary.top_activity.activity, summary.top_activity.total_minutes) == ("coding", 100)
    assert summary.longest_session is not None
    assert (summary.longest_session.username, summary.longest_session.minutes) == ("Bob", 80)
    assert [(e.username, e.activity, e.total_minutes) for e in summary.breakdown] == [
        ("Alice", "coding", 100),
        ("Bob", "reading", 80),
        ("Cara", "writing", 10),
    ]


def test_weekly_summary_for_explicit_week_start() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(3, 9), 40)

    summary = aggregator.weekly_summary(week_start=at(2, 0))

    assert summary.total_minutes == 40
    assert summary.total_sessions == 1


def test_weekly_summary_empty_week() -> None:
    ledger, aggregator = make_aggregator()
    ledger.clock_in("1", "Alice", "coding", now=at(9, 9))

    summary = aggregator.weekly_summary(now=NOW)

    assert summary.total_minutes == 0
    assert summary.total_sessions == 0
    assert summary.unique_users == 0
    assert summary.mvp is None
    assert summary.top_activity is None
    assert summary.longest_session is None
    assert summary.breakdown == []


def test_per_user_activity_minutes() -> None:
    ledger, aggregator = make_aggregator()
    record(ledger, "1", "Alice", "coding", at(9, 9), 30)
    record(ledger, "1", "Alice", "reading", at(9, 12), 60)
    record(ledger, "2", "Bob", "coding", at(9, 9), 15)

    feed = aggregator.per_user_activity_minutes(now=NOW)

    assert feed == {
        "1": [("reading", 60), ("coding", 30)],
        "2": [("coding", 15)],
    }
