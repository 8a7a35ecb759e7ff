from __future__ import annotations

from typing import Literal

import discord
from discord import app_commands

from .aggregator import Window
from .clock import utc_now
from .errors import ActivityNotFound, AlreadyActive, ClockSkew, EmptyActivity, NoActiveSession, StoreUnavailable
from .reporter import clip

STORE_FAILURE_MESSAGE = "The time ledger is unavailable right now. Please try again in a moment."


async def _reply(interaction: discord.Interaction, content: str, *, ephemeral: bool = False) -> None:
    await interaction.response.send_message(
        clip(content),
        ephemeral=ephemeral,
        allowed_mentions=discord.AllowedMentions.none(),
    )


def register_commands(bot):
    """Register the /clock command group on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)
    clock = app_commands.Group(name="clock", description="Track time spent on activities")

    async def store_failed(interaction: discord.Interaction, command: str) -> None:
        bot.logger.exception("/clock %s failed", command)
        await _reply(interaction, STORE_FAILURE_MESSAGE, ephemeral=True)

    @clock.command(name="in", description="Start working on an activity")
    @app_commands.describe(activity="What you are working on")
    async def clock_in(interaction: discord.Interaction, activity: str):
        user = interaction.user
        try:
            session = bot.ledger.clock_in(str(user.id), user.display_name, activity)
        except AlreadyActive as exc:
            current = f" on **{exc.session.activity}**" if exc.session else ""
            await _reply(interaction, f"⚠️ You're already clocked in{current}. Clock out first with `/clock out`.", ephemeral=True)
            return
        except EmptyActivity:
            await _reply(interaction, "What are you working on? `/clock in <activity>`", ephemeral=True)
            return
        except StoreUnavailable:
            await store_failed(interaction, "in")
            return

        await _reply(interaction, bot.reporter.build_clock_in_content(session))

    @clock.command(name="out", description="Stop working on your current activity")
    async def clock_out(interaction: discord.Interaction):
        user = interaction.user
        try:
            result = bot.ledger.clock_out(str(user.id))
        except NoActiveSession:
            await _reply(interaction, "🤷 You're not clocked in. Use `/clock in <activity>` first.", ephemeral=True)
            return
        except ClockSkew:
            bot.logger.exception("/clock out rejected for user %s", user.id)
            await _reply(interaction, "Your session ends before it started; the bot clock looks wrong.", ephemeral=True)
            return
        except StoreUnavailable:
            await store_failed(interaction, "out")
            return

        await _reply(interaction, bot.reporter.build_clock_out_content(user.display_name, result.activity, result.minutes))

    @clock.command(name="status", description="Show what you are working on")
    async def status(interaction: discord.Interaction):
        user = interaction.user
        try:
            session = bot.ledger.active_session(str(user.id))
        except StoreUnavailable:
            await store_failed(interaction, "status")
            return

        await _reply(interaction, bot.reporter.build_status_content(user.display_name, session, utc_now()))

    @clock.command(name="who", description="Show everyone who is clocked in")
    async def who(interaction: discord.Interaction):
        try:
            sessions = bot.ledger.who_is_active()
        except StoreUnavailable:
            await store_failed(interaction, "who")
            return

        await _reply(interaction, bot.reporter.build_who_content(sessions, utc_now()))

    @clock.command(name="leaderboard", description="Show this week's and all-time totals")
    async def leaderboard(interaction: discord.Interaction):
        try:
            weekly = bot.aggregator.leaderboard(Window.CURRENT_WEEK)
            all_time = bot.aggregator.leaderboard(Window.ALL_TIME)
        except StoreUnavailable:
            await store_failed(interaction, "leaderboard")
            return

        await _reply(interaction, bot.reporter.build_leaderboard_content(weekly, all_time))

    @clock.command(name="activities", description="Show time per activity")
    @app_commands.describe(scope="Time window", mine="Only show your own activities")
    async def activities(
        interaction: discord.Interaction,
        scope: Literal["current_week", "all_time"] = "current_week",
        mine: bool = False,
    ):
        window = Window(scope)
        user_id = str(interaction.user.id) if mine else None
        try:
            entries = bot.aggregator.activity_breakdown(window, user_id)
        except StoreUnavailable:
            await store_failed(interaction, "activities")
            return

        title = "📊 **Activities this week**" if window is Window.CURRENT_WEEK else "📊 **Activities all time**"
        await _reply(interaction, bot.reporter.build_activity_content(title, entries), ephemeral=mine)

    @clock.command(name="rename", description="Rename one of your activities everywhere")
    @app_commands.describe(old="Current activity name", new="New activity name")
    async def rename(interaction: discord.Interaction, old: str, new: str):
        try:
            result = bot.ledger.rename(str(interaction.user.id), old, new)
        except ActivityNotFound as exc:
            await _reply(interaction, f"No sessions found for **{exc.activity}**.", ephemeral=True)
            return
        except EmptyActivity:
            await _reply(interaction, "Both activity names must contain text.", ephemeral=True)
            return
        except StoreUnavailable:
            await store_failed(interaction, "rename")
            return

        if result.unchanged:
            await _reply(
                interaction,
                f"ℹ️ **{old}** and **{new}** are already the same activity (**{result.new_activity}**).",
                ephemeral=True,
            )
            return

        await _reply(
            interaction,
            f"✏️ Renamed **{result.old_activity}** to **{result.new_activity}**: "
            f"{result.sessions_updated} sessions updated, {result.archive_rows_merged} archive rows merged.",
            ephemeral=True,
        )

    bot.tree.add_command(clock, guild=guild_scope)
