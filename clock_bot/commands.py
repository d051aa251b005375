from __future__ import annotations

import logging
from typing import Callable

import discord
from discord import app_commands

from .access import require_privileged
from .errors import UserError
from .reporter import build_timesheet_content, format_elapsed, format_hours

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong while handling that command. Please try again."


def _role_names(user) -> list[str]:
    return [role.name for role in getattr(user, "roles", [])]


async def _respond(interaction: discord.Interaction, build: Callable[[], str], *, ephemeral: bool = False) -> None:
    """Run a synchronous handler body and always answer the interaction exactly once."""
    try:
        content = build()
    except UserError as exc:
        await interaction.response.send_message(str(exc), ephemeral=True)
        return
    except Exception:
        name = interaction.command.qualified_name if interaction.command else "unknown"
        logger.exception("/%s failed", name)
        await interaction.response.send_message(GENERIC_FAILURE, ephemeral=True)
        return

    await interaction.response.send_message(
        content,
        ephemeral=ephemeral,
        allowed_mentions=discord.AllowedMentions.none(),
    )


def register_commands(bot) -> None:
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)
    tz = bot.config.timezone

    async def reject_outside_guild(interaction: discord.Interaction) -> bool:
        if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
            await interaction.response.send_message(
                "This command can only be used in the configured server.",
                ephemeral=True,
            )
            return True
        return False

    @bot.tree.command(name="clockin", description="Clock in to work", guild=guild_scope)
    async def clockin(interaction: discord.Interaction):
        if await reject_outside_guild(interaction):
            return

        member = interaction.user

        def build() -> str:
            if not bot.is_member_present(member):
                raise UserError("You must be in the work voice channel to clock in.")
            bot.clock.clock_in(str(member.id), member.display_name)
            bot.presence.cancel(str(member.id))
            return "CLOCKED IN"

        await _respond(interaction, build)

    @bot.tree.command(name="clockout", description="Clock out from work", guild=guild_scope)
    async def clockout(interaction: discord.Interaction):
        if await reject_outside_guild(interaction):
            return

        user_id = str(interaction.user.id)

        def build() -> str:
            log = bot.clock.clock_out(user_id)
            bot.presence.cancel(user_id)
            return f"CLOCKED OUT ({format_hours(log.hours)})"

        await _respond(interaction, build)

    @bot.tree.command(name="status", description="Check clock status", guild=guild_scope)
    @app_commands.describe(user="Member to check (defaults to you)")
    async def status(interaction: discord.Interaction, user: discord.Member | None = None):
        target = user or interaction.user

        def build() -> str:
            record, elapsed = bot.clock.status(str(target.id))
            if record is None:
                return f"No record for {target.display_name}."
            if elapsed is None:
                return f"{target.display_name} is not clocked in."

            line = f"{target.display_name} is clocked in (`{format_elapsed(elapsed)}`)."
            departed = bot.presence.departed_at(str(target.id))
            if departed is not None:
                line += f" Left voice at {departed.astimezone(tz):%H:%M}."
            return line

        await _respond(interaction, build, ephemeral=True)

    timesheet = app_commands.Group(name="timesheet", description="View or reset timesheets")

    @timesheet.command(name="view", description="View a timesheet")
    @app_commands.describe(
        user="Member to view (defaults to you)",
        start="First day, MM/DD/YYYY",
        end="Last day, MM/DD/YYYY",
    )
    async def timesheet_view(
        interaction: discord.Interaction,
        user: discord.Member | None = None,
        start: str | None = None,
        end: str | None = None,
    ):
        target = user or interaction.user

        def build() -> str:
            view = bot.clock.timesheet(str(target.id), start, end, display_name=target.display_name)
            return build_timesheet_content(view, tz)

        await _respond(interaction, build)

    @timesheet.command(name="reset", description="Archive timesheets (managers only)")
    @app_commands.describe(start="First day, MM/DD/YYYY", end="Last day, MM/DD/YYYY")
    async def timesheet_reset(
        interaction: discord.Interaction,
        start: str | None = None,
        end: str | None = None,
    ):
        if await reject_outside_guild(interaction):
            return

        def build() -> str:
            require_privileged(str(interaction.user.id), _role_names(interaction.user), bot.config)
            moved = bot.clock.reset(start, end)
            if not (start or end):
                bot.presence.cancel_all()
            logger.info("Timesheet reset by user=%s start=%s end=%s moved=%d", interaction.user.id, start, end, moved)
            return f"Timesheet reset. Archived {moved} sessions."

        await _respond(interaction, build)

    bot.tree.add_command(timesheet, guild=guild_scope)

    @bot.tree.command(name="totalhours", description="Show total tracked hours", guild=guild_scope)
    @app_commands.describe(user="Member to total (defaults to everyone)")
    async def totalhours(interaction: discord.Interaction, user: discord.Member | None = None):
        def build() -> str:
            if user is None:
                return f"Total hours: **{format_hours(bot.clock.total_hours())}**"
            return f"Total hours for {user.display_name}: **{format_hours(bot.clock.total_hours(str(user.id)))}**"

        await _respond(interaction, build)

    @bot.tree.command(name="forceclockout", description="Clock out another member (managers only)", guild=guild_scope)
    @app_commands.describe(user="Member to clock out")
    async def forceclockout(interaction: discord.Interaction, user: discord.Member):
        if await reject_outside_guild(interaction):
            return

        def build() -> str:
            require_privileged(str(interaction.user.id), _role_names(interaction.user), bot.config)
            log = bot.clock.force_clock_out(str(user.id), reason=f"forced by {interaction.user.id}")
            bot.presence.cancel(str(user.id))
            if log is None:
                return f"{user.display_name} was not clocked in."
            return f"Clocked out {user.display_name} ({format_hours(log.hours)})."

        await _respond(interaction, build)
