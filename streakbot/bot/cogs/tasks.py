"""
streakbot.bot.cogs.tasks — Periodic Background Tasks
=====================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Daily reset** — once a day at ``daily_reset_time``.
- **Weekly report + message leaders** — daily at ``weekly_report_time``;
  the scheduler skips every day but ``weekly_report_weekday``.
- **Config flow sweep** — every 5 minutes, drops expired prompts.

The monthly report is a self-rescheduling task owned by the
:class:`~streakbot.services.scheduler.Scheduler`; this cog starts and
stops it.  All times are wall-clock in the configured timezone.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

if TYPE_CHECKING:
    from streakbot.bot.core import StreakBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled resets and reports."""

    def __init__(self, bot: StreakBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Pin the loops to the configured times and start them."""
        cfg = self.bot.cfg
        self.daily_reset_loop.change_interval(
            time=cfg.daily_reset_time.replace(tzinfo=cfg.timezone),
        )
        self.weekly_loop.change_interval(
            time=cfg.weekly_report_time.replace(tzinfo=cfg.timezone),
        )
        self.daily_reset_loop.start()
        self.weekly_loop.start()
        self.flow_sweep_loop.start()
        self.bot.scheduler.start()

    async def cog_unload(self) -> None:
        self.daily_reset_loop.cancel()
        self.weekly_loop.cancel()
        self.flow_sweep_loop.cancel()
        await self.bot.scheduler.stop()

    # -------------------------------------------------------------------
    # Daily reset
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def daily_reset_loop(self):
        try:
            await self.bot.scheduler.run_daily_reset()
        except Exception:
            logger.exception("Daily reset task failed", extra={"task": "daily_reset"})

    @daily_reset_loop.before_loop
    async def _wait_daily(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Weekly report + message-leader rotation
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def weekly_loop(self):
        try:
            await self.bot.scheduler.run_weekly()
        except Exception:
            logger.exception("Weekly task failed", extra={"task": "weekly"})

    @weekly_loop.before_loop
    async def _wait_weekly(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Expire unanswered config prompts
    # -------------------------------------------------------------------
    @tasks.loop(minutes=5)
    async def flow_sweep_loop(self):
        expired = self.bot.config_flows.sweep(time.monotonic())
        if expired:
            logger.debug("Swept %d expired config prompts", len(expired))


async def setup(bot: StreakBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
