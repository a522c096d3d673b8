"""
streakbot.bot.core — Bot Instance & Cog Loader
===============================================

:class:`StreakBot` is a ``commands.Bot`` subclass that builds the shared
services once and hangs them off the bot so every Cog can reach them via
``self.bot.*``:

- ``bot.repo``        — :class:`TenantRepository` over ``cfg.data_dir``
- ``bot.progression`` — :class:`ProgressionService` (message pipeline, admin edits)
- ``bot.reports``     — :class:`ReportService` (scheduled job bodies)
- ``bot.scheduler``   — :class:`Scheduler` (tenant fan-out, monthly loop)
- ``bot.config_flows``— pending interactive configuration prompts
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands

from streakbot.bot.platform import DiscordPlatform
from streakbot.config import StreakbotConfig
from streakbot.database.tenants import TenantRepository
from streakbot.services.config_flow import ConfigFlowRegistry
from streakbot.services.progression_service import ProgressionService, TenantLocks
from streakbot.services.report_service import ReportService
from streakbot.services.scheduler import Scheduler

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "streakbot.bot.cogs.activity",
    "streakbot.bot.cogs.membership",
    "streakbot.bot.cogs.admin",
    "streakbot.bot.cogs.tasks",
]


class StreakBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`StreakbotConfig` from ``config.yaml``.
    """

    def __init__(self, cfg: StreakbotConfig) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: spam similarity, lastMessage
        intents.members = True            # Privileged: leave tracking, leader ranking
        intents.presences = False

        super().__init__(command_prefix=cfg.bot_prefix, intents=intents)

        self.cfg = cfg
        self.repo = TenantRepository(cfg.data_dir)
        self.platform = DiscordPlatform(self)
        locks = TenantLocks()
        self.progression = ProgressionService(self.repo, self.platform, locks=locks)
        self.reports = ReportService(
            self.repo, self.platform, locks,
            monthly_window_days=cfg.monthly_report_interval_days,
        )
        self.scheduler = Scheduler.from_config(cfg, self.reports, self.tenant_ids)
        self.config_flows = ConfigFlowRegistry()

    def tenant_ids(self) -> list[str]:
        """Every guild the bot is currently in."""
        return [str(guild.id) for guild in self.guilds]

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions.  One broken Cog does not stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        # --- Make sure every guild has its data directory -------------------
        for tenant_id in self.tenant_ids():
            try:
                created = await self.progression.initialize_tenant(tenant_id)
                if created:
                    logger.info("Created data directory for guild %s", tenant_id)
            except Exception:
                logger.exception(
                    "Failed to initialize guild %s", tenant_id,
                    extra={"tenant_id": tenant_id},
                )

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await self.scheduler.stop()
        await super().close()
