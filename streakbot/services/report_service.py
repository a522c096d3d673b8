"""
streakbot.services.report_service — Scheduled Per-Tenant Jobs
==============================================================

The bodies of the recurring jobs.  Each method handles **one** tenant;
:mod:`streakbot.services.scheduler` loops over tenants and isolates
failures.

- **Daily reset** — streak loss, inactivity, threshold/credit re-arm.
- **Weekly** — activity report, message-leader rotation, then a hard reset
  of every user's weekly ``messageCount``.
- **Monthly** — activity report from the last 30 days of heatmap data.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime

from streakbot.database.tenants import TenantRepository
from streakbot.engine.commands import Command, SendMessage
from streakbot.engine.progression import reset_daily
from streakbot.engine.reports import (
    monthly_summary,
    rank_message_leaders,
    render_leaderboard,
    reset_weekly_counts,
    rotate_leader_role,
    weekly_summary,
)
from streakbot.errors import MemberNotFound
from streakbot.services.dispatcher import dispatch
from streakbot.services.platform import PlatformClient
from streakbot.services.progression_service import TenantLocks

logger = logging.getLogger(__name__)


class ReportService:
    def __init__(
        self,
        repo: TenantRepository,
        platform: PlatformClient,
        locks: TenantLocks,
        *,
        monthly_window_days: int = 30,
    ) -> None:
        self.repo = repo
        self.platform = platform
        self.locks = locks
        self.monthly_window_days = monthly_window_days

    # -------------------------------------------------------------------
    # Daily
    # -------------------------------------------------------------------
    async def run_daily_reset(self, tenant_id: str, today: date) -> int:
        """Returns the number of records reset."""
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            users = await self.repo.load_users(tenant_id)
            if not users:
                return 0
            commands = reset_daily(
                users, config, tenant_id, today,
                now=datetime.now(UTC),
                guild_name=self.platform.tenant_name(tenant_id),
            )
            await self.repo.save_users(tenant_id, users)

        await dispatch(self.platform, commands)
        return len(users)

    # -------------------------------------------------------------------
    # Weekly
    # -------------------------------------------------------------------
    async def _current_members(self, tenant_id: str, user_ids: list[str]) -> dict[str, str]:
        """Map of user id → display name for ids still in the tenant."""
        members: dict[str, str] = {}
        for user_id in user_ids:
            try:
                info = await self.platform.fetch_member(tenant_id, user_id)
            except MemberNotFound:
                logger.debug("Skipping departed member %s in %s", user_id, tenant_id)
                continue
            members[user_id] = info.display_name
        return members

    async def run_weekly(self, tenant_id: str) -> None:
        guild_name = self.platform.tenant_name(tenant_id)
        candidates: list[str] = []
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            if config.message_leader.enabled:
                snapshot = await self.repo.load_users(tenant_id)
                candidates = [uid for uid, r in snapshot.items() if r.message_count > 0]

        # Membership lookups are network calls; do them outside the lock.
        members: dict[str, str] | None = None
        if config.message_leader.enabled:
            members = await self._current_members(tenant_id, candidates)

        commands: list[Command] = []
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            users = await self.repo.load_users(tenant_id)
            if not users:
                return

            summary = weekly_summary(users)
            if config.reports.weekly_channel_id:
                commands.append(SendMessage(
                    tenant_id, config.reports.weekly_channel_id, summary.render(guild_name),
                ))

            if config.message_leader.enabled and members is not None:
                leaders = rank_message_leaders(users, set(members))
                if leaders:
                    if config.message_leader.channel_id:
                        commands.append(SendMessage(
                            tenant_id,
                            config.message_leader.channel_id,
                            render_leaderboard(leaders, guild_name, members),
                        ))
                    else:
                        logger.warning("No message leader channel configured for tenant %s", tenant_id)
                    commands.extend(rotate_leader_role(users, leaders, config.message_leader, tenant_id))

            reset_weekly_counts(users)
            await self.repo.save_users(tenant_id, users)

        logger.info(
            "Weekly job for tenant %s: %d messages from %d users",
            tenant_id, summary.total_messages, summary.active_users,
        )
        await dispatch(self.platform, commands)

    # -------------------------------------------------------------------
    # Monthly
    # -------------------------------------------------------------------
    async def run_monthly(self, tenant_id: str, today: date) -> None:
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            channel_id = config.reports.monthly_channel_id
            if not channel_id:
                logger.debug("No monthly report channel for tenant %s", tenant_id)
                return
            users = await self.repo.load_users(tenant_id)
        summary = monthly_summary(users, today, self.monthly_window_days)
        await dispatch(self.platform, [
            SendMessage(tenant_id, channel_id, summary.render(self.platform.tenant_name(tenant_id))),
        ])
