from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo

from .aggregator import Aggregator
from .clock import next_rollup_at, utc_now, week_label, week_start
from .errors import StoreUnavailable
from .ledger import Ledger
from .models import ArchiveResult, WeeklySummary

DEFAULT_COOLDOWN_SECONDS = 120

RollupCallback = Callable[[str, WeeklySummary], Awaitable[None]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"
    ROLLING_UP = "rolling_up"
    COOLDOWN = "cooldown"


class RollupScheduler:
    """Archives the finished week every Monday 00:00 in the reference timezone.

    This is the only writer that bulk-mutates the ledger. A failed rollup is
    logged and not retried; its sessions are picked up by the next one.
    """

    def __init__(
        self,
        ledger: Ledger,
        aggregator: Aggregator,
        tz: ZoneInfo,
        *,
        on_rollup: RollupCallback | None = None,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self.ledger = ledger
        self.aggregator = aggregator
        self.tz = tz
        self.on_rollup = on_rollup
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._sleep = sleep
        self.logger = logger or logging.getLogger(__name__)

        self.state = SchedulerState.IDLE
        self.next_target: datetime | None = None

    async def run(self) -> None:
        """Loop forever. Stops only when the task is cancelled."""
        while True:
            now = self._clock()
            target = next_rollup_at(now, self.tz)
            delay = max(1.0, (target - now).total_seconds())

            self.state = SchedulerState.WAITING
            self.next_target = target
            self.logger.info("Next weekly rollup at %s (in %ds)", target.isoformat(), int(delay))
            await self._sleep(delay)

            self.state = SchedulerState.ROLLING_UP
            try:
                await self.roll_up(target)
            except Exception:  # pragma: no cover - runtime safety
                self.logger.exception("Unexpected failure during weekly rollup")

            # Buffer so a wake-up near the boundary cannot target the same Monday twice.
            self.state = SchedulerState.COOLDOWN
            await self._sleep(self.cooldown_seconds)

    async def roll_up(self, boundary: datetime) -> ArchiveResult | None:
        """Summarize the week ending at ``boundary``, then archive it under its label.

        The two cover different sets of sessions. The summary counts only closed
        sessions that started on or after the ended week's Monday. The archive
        takes every closed session, so sessions that started earlier also land
        under this label: carry-overs from a failed or missed rollup, or a
        session that ran across the previous boundary. Their minutes are in the
        archive but not in the posted summary.
        """
        label = week_label(boundary, self.tz)
        started = week_start(boundary - timedelta(days=1), self.tz)

        try:
            # Summary first: the archive transition deletes the rows it reads.
            summary = self.aggregator.weekly_summary(week_start=started)
            result = self.ledger.archive_week(label)
        except StoreUnavailable:
            self.logger.exception("Weekly rollup for %s failed; sessions carry over to next week", label)
            return None

        if result is None:
            return None

        if self.on_rollup is not None:
            try:
                await self.on_rollup(label, summary)
            except Exception:
                self.logger.exception("Rollup callback failed for %s", label)
        return result
