from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ActiveSession


class LedgerError(Exception):
    """Base class for recoverable ledger failures."""


class AlreadyActive(LedgerError):
    def __init__(self, session: ActiveSession | None = None) -> None:
        self.session = session
        if session is None:
            super().__init__("already clocked in")
        else:
            super().__init__(f"already clocked in on {session.activity!r}")


class NoActiveSession(LedgerError):
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__("not clocked in")


class ActivityNotFound(LedgerError):
    def __init__(self, activity: str) -> None:
        self.activity = activity
        super().__init__(f"no sessions found with activity {activity!r}")


class EmptyActivity(LedgerError, ValueError):
    def __init__(self) -> None:
        super().__init__("activity label is empty after normalization")


class ClockSkew(LedgerError):
    """Clock-out time lies before the session start."""


class StoreUnavailable(LedgerError):
    """The database could not complete a read or transaction."""
