"""
streakbot.bot.cogs.membership — Guild & Member Lifecycle
=========================================================

- GUILD_CREATE (bot added)  → initialize the tenant's data directory.
- GUILD_MEMBER_REMOVE       → delete the member's record.

Requires the GUILD_MEMBERS privileged intent.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

if TYPE_CHECKING:
    from streakbot.bot.core import StreakBot

logger = logging.getLogger(__name__)

SETUP_HINT = (
    "Hello! To set up Streakbot, use `/config <key> [value]` to configure "
    "the streak system, the level system, the message leader system, or reports."
)


class Membership(commands.Cog, name="Membership"):
    """Creates tenant data on join and drops member data on leave."""

    def __init__(self, bot: StreakBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        try:
            created = await self.bot.progression.initialize_tenant(str(guild.id))
            logger.info("Joined guild %s (ID: %d), new tenant=%s", guild.name, guild.id, created)
            if created:
                channel = guild.public_updates_channel or guild.system_channel
                if channel is not None:
                    await channel.send(SETUP_HINT)
        except Exception:
            logger.exception(
                "Error initializing guild %s", guild.id,
                extra={"event_type": "guild_join", "tenant_id": guild.id},
            )

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        try:
            if member.bot:
                return
            removed = await self.bot.progression.remove_user(str(member.guild.id), str(member.id))
            if removed:
                logger.info("Member left: %s (ID: %d), record deleted", member.display_name, member.id)
        except Exception:
            logger.exception(
                "Error processing member_leave for %s", member.id,
                extra={"event_type": "member_leave", "user_id": member.id},
            )


async def setup(bot: StreakBot) -> None:
    await bot.add_cog(Membership(bot))
