"""
streakbot.bot.cogs.activity — Message Streak/Level Pipeline
============================================================

Listens for on_message events and feeds them to the progression service.

Pipeline:
1. on_message fires → gate checks (bot, DM)
2. Build a MessageEvent with the message metadata
3. ProgressionService.handle_message: spam gate → engine → save → dispatch
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from streakbot.engine.progression import MessageEvent

if TYPE_CHECKING:
    from streakbot.bot.core import StreakBot

logger = logging.getLogger(__name__)


def build_message_event(message: discord.Message, tz) -> MessageEvent:
    """Build a MessageEvent from a guild message."""
    assert message.guild is not None
    created = message.created_at.astimezone(tz)
    ref = message.reference
    return MessageEvent(
        tenant_id=str(message.guild.id),
        user_id=str(message.author.id),
        channel_id=str(message.channel.id),
        content=message.content,
        at_ms=int(message.created_at.timestamp() * 1000),
        day=created.date(),
        mentions_others=any(u.id != message.author.id for u in message.mentions),
        is_reply=ref is not None and ref.message_id is not None,
    )


class Activity(commands.Cog, name="Activity"):
    """Counts messages toward streaks, levels and the weekly leaderboard."""

    def __init__(self, bot: StreakBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id,
                message.author.id,
                extra={"event_type": "message", "user_id": message.author.id,
                       "message_id": message.id},
            )

    async def _handle_message(self, message: discord.Message) -> None:
        """Inner message handler (separated for error isolation)."""
        if message.author.bot:
            return
        if message.guild is None:
            logger.debug("Ignoring DM from %s", message.author.name)
            return

        event = build_message_event(message, self.bot.cfg.timezone)
        accepted = await self.bot.progression.handle_message(event)
        if not accepted:
            logger.debug("Spam from %s not counted", message.author.name)


async def setup(bot: StreakBot) -> None:
    await bot.add_cog(Activity(bot))
