"""
streakbot.bot.cogs.admin — Admin Slash Commands
================================================

Discord slash commands for server admins:
- /config — set one tenant config key (prompts for the value if omitted)
- /edit-user-data — overwrite a field on a member's record
- /retention — active users in one date range, or retention between two

All commands require the Manage Server permission.  Validation errors are
shown to the admin as ephemeral replies; nothing is written.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from streakbot.engine.retention import DateRange
from streakbot.errors import ValidationError
from streakbot.services.progression_service import ProgressionService

if TYPE_CHECKING:
    from streakbot.bot.core import StreakBot

logger = logging.getLogger(__name__)

FIELD_CHOICES = [
    app_commands.Choice(name=name, value=name) for name in ProgressionService.EDITABLE_FIELDS
]


class Admin(commands.Cog, name="Admin"):
    """Server administration commands for Streakbot."""

    def __init__(self, bot: StreakBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /config
    # -------------------------------------------------------------------
    @app_commands.command(name="config", description="Change a Streakbot setting.")
    @app_commands.describe(
        key="Dotted setting key, e.g. streak.thresholdMessages or streak.milestoneRoleByDay.7",
        value="New value; leave empty to be prompted",
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def config(
        self,
        interaction: discord.Interaction,
        key: str,
        value: str | None = None,
    ) -> None:
        assert interaction.guild is not None and interaction.channel is not None
        tenant_id = str(interaction.guild.id)

        if value is None:
            flow = self.bot.config_flows.start(
                tenant_id, str(interaction.channel.id), str(interaction.user.id), key,
                now=time.monotonic(),
            )
            await interaction.response.send_message(flow.prompt, ephemeral=True)

            def check(message: discord.Message) -> bool:
                if message.guild is None:
                    return False
                return self.bot.config_flows.offer(
                    str(message.guild.id), str(message.channel.id), str(message.author.id),
                    message.content, time.monotonic(),
                ) is not None

            try:
                reply = await self.bot.wait_for(
                    "message", check=check, timeout=flow.remaining(time.monotonic()),
                )
            except asyncio.TimeoutError:
                self.bot.config_flows.sweep(time.monotonic())
                await interaction.followup.send(
                    "Time ran out. Please try the command again.", ephemeral=True,
                )
                return
            value = reply.content
            try:
                await reply.delete()
            except discord.HTTPException:
                logger.debug("Could not delete config reply %s", reply.id)
        else:
            await interaction.response.defer(ephemeral=True)

        try:
            await self.bot.progression.apply_config_edit(tenant_id, key, value)
        except ValidationError as exc:
            await interaction.followup.send(f"❌ {exc.message}", ephemeral=True)
            return
        await interaction.followup.send(f"✅ `{key}` has been updated.", ephemeral=True)

    # -------------------------------------------------------------------
    # /edit-user-data
    # -------------------------------------------------------------------
    @app_commands.command(name="edit-user-data", description="Edit a member's streak/level data.")
    @app_commands.describe(target="The member to edit", field="Field to edit", value="New value")
    @app_commands.choices(field=FIELD_CHOICES)
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def edit_user_data(
        self,
        interaction: discord.Interaction,
        target: discord.Member,
        field: app_commands.Choice[str],
        value: str,
    ) -> None:
        assert interaction.guild is not None
        await interaction.response.defer(ephemeral=True)
        try:
            await self.bot.progression.set_field_direct(
                str(interaction.guild.id), str(target.id), field.value, value,
            )
        except ValidationError as exc:
            await interaction.followup.send(f"❌ {exc.message}", ephemeral=True)
            return
        await interaction.followup.send(
            f"✅ Successfully updated {field.value} for {target.display_name}.", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /retention
    # -------------------------------------------------------------------
    @app_commands.command(name="retention", description="View or compare user retention.")
    @app_commands.describe(
        start="Start date (YYYY-MM-DD)",
        end="End date (YYYY-MM-DD)",
        compare_start="Start of a second range to compare against",
        compare_end="End of the second range",
    )
    @app_commands.guild_only()
    @app_commands.default_permissions(manage_guild=True)
    async def retention(
        self,
        interaction: discord.Interaction,
        start: str,
        end: str,
        compare_start: str | None = None,
        compare_end: str | None = None,
    ) -> None:
        assert interaction.guild is not None
        try:
            range_a = DateRange.parse(start, end, field="range 1")
            range_b = None
            if compare_start or compare_end:
                if not (compare_start and compare_end):
                    raise ValidationError("range 2", "Both compare dates are required")
                range_b = DateRange.parse(compare_start, compare_end, field="range 2")
        except ValidationError as exc:
            await interaction.response.send_message(f"❌ {exc.message}", ephemeral=True)
            return

        result = await self.bot.progression.compute_retention(
            str(interaction.guild.id), range_a, range_b,
        )

        embed = discord.Embed(
            title="📊 User Retention Report" if range_b is None else "📊 User Retention Comparison",
            color=0x00FF7F if range_b is None else 0xFFD700,
        )
        embed.add_field(name="Date Range 1", value=str(range_a), inline=True)
        embed.add_field(name="Active Users (Range 1)", value=str(result.active_a), inline=True)
        if range_b is not None:
            embed.add_field(name="Date Range 2", value=str(range_b), inline=True)
            embed.add_field(name="Active Users (Range 2)", value=str(result.active_b), inline=True)
        embed.add_field(name="Retained Users", value=str(result.retained), inline=True)
        embed.add_field(name="Retention Rate", value=f"{result.rate:.2f}%", inline=True)
        await interaction.response.send_message(embed=embed)


async def setup(bot: StreakBot) -> None:
    await bot.add_cog(Admin(bot))
