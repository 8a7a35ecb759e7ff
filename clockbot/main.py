from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .aggregator import Aggregator
from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .errors import StoreUnavailable
from .ledger import Ledger
from .models import WeeklySummary
from .reporter import Reporter
from .scheduler import RollupScheduler


class ClockBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.logger = logging.getLogger("clockbot")

        self.ledger = Ledger(db)
        self.aggregator = Aggregator(db)
        self.reporter = Reporter(config.timezone)
        self.scheduler = RollupScheduler(
            self.ledger,
            self.aggregator,
            config.timezone,
            on_rollup=self.post_weekly_summary,
            cooldown_seconds=config.rollup_cooldown_seconds,
        )

        self.report_channel: discord.TextChannel | None = None
        self._rollup_task: asyncio.Task[None] | None = None

    async def setup_hook(self) -> None:
        # Clean up labels written before canonicalization, then register commands and start the weekly loop.
        try:
            self.ledger.normalize_history()
        except StoreUnavailable:
            self.logger.exception("Historical activity normalization failed; will retry on next start")

        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))
        self._rollup_task = asyncio.create_task(self.scheduler.run(), name="weekly-rollup")

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")
        if self.report_channel is not None:
            return

        guild = self.get_guild(self.config.guild_id)
        if guild is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            return

        report = guild.get_channel(self.config.report_channel_id)
        if not isinstance(report, discord.TextChannel):
            self.logger.error("Report channel %s is missing or not a text channel", self.config.report_channel_id)
            return

        self.report_channel = report
        self.logger.info("Weekly summaries go to #%s", report.name)

    async def post_weekly_summary(self, week_label: str, summary: WeeklySummary) -> None:
        if self.report_channel is None:
            self.logger.error("Report channel unavailable; weekly summary for %s not posted", week_label)
            return

        self.logger.info("Posting weekly summary for %s", week_label)
        await self.reporter.post_weekly_summary(self.report_channel, week_label, summary)

    async def close(self) -> None:
        if self._rollup_task is not None and not self._rollup_task.done():
            self._rollup_task.cancel()
        self.db.close()
        await super().close()


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()
    configure_logging()

    config = load_config()
    db = Database(config.db_path, tz=config.timezone)
    db.initialize()

    bot = ClockBot(config=config, db=db)
    bot.run(config.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
