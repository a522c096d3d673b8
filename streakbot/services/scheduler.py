"""
streakbot.services.scheduler — Recurring Job Fan-Out
=====================================================

The wall-clock triggers for the daily and weekly jobs are
``discord.ext.tasks`` loops in :mod:`streakbot.bot.cogs.tasks`.  This module
holds what those loops call:

- :meth:`Scheduler.for_each_tenant` runs one job over every known tenant.
  A failure in one tenant is logged and the rest still run.
- The monthly report is not calendar-aligned: it fires every
  ``monthly_report_interval_days`` after startup and reschedules itself.
  Its delay is longer than most hosts' timer ceiling, so it is slept in
  chunks of at most :data:`~streakbot.constants.MAX_TIMER_SECONDS`.

Jobs are not cancellable mid-run; a restart simply waits for the next
occurrence.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo

from streakbot.config import StreakbotConfig
from streakbot.constants import MAX_TIMER_SECONDS
from streakbot.services.report_service import ReportService

logger = logging.getLogger(__name__)

TenantSource = Callable[[], Iterable[str]]
Sleep = Callable[[float], Awaitable[None]]


async def long_sleep(seconds: float, sleep: Sleep = asyncio.sleep) -> int:
    """Sleep *seconds* as a chain of sleeps no longer than the timer ceiling.

    Returns the number of chunks used.
    """
    chunks = 0
    remaining = seconds
    while remaining > 0:
        chunk = min(remaining, MAX_TIMER_SECONDS)
        await sleep(chunk)
        remaining -= chunk
        chunks += 1
    return chunks


@dataclass(slots=True)
class JobSummary:
    job: str
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class Scheduler:
    """Runs report-service jobs across tenants.

    Parameters
    ----------
    reports:
        The :class:`ReportService` holding the per-tenant job bodies.
    tenant_source:
        Called at the start of every job; returns the tenant ids to visit.
    clock:
        Returns the current aware ``datetime``; injectable for tests.
    """

    def __init__(
        self,
        reports: ReportService,
        tenant_source: TenantSource,
        *,
        tz: tzinfo = ZoneInfo("UTC"),
        weekly_weekday: int = 6,
        monthly_interval_days: int = 30,
        clock: Callable[[], datetime] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.reports = reports
        self.tenant_source = tenant_source
        self.tz = tz
        self.weekly_weekday = weekly_weekday
        self.monthly_interval_days = monthly_interval_days
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._sleep = sleep
        self._monthly_task: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls, cfg: StreakbotConfig, reports: ReportService, tenant_source: TenantSource,
    ) -> Scheduler:
        return cls(
            reports,
            tenant_source,
            tz=cfg.timezone,
            weekly_weekday=cfg.weekly_report_weekday,
            monthly_interval_days=cfg.monthly_report_interval_days,
        )

    def now(self) -> datetime:
        return self._clock()

    # -------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------
    async def for_each_tenant(
        self, job: str, run: Callable[[str], Awaitable[object]],
    ) -> JobSummary:
        summary = JobSummary(job)
        for tenant_id in list(self.tenant_source()):
            try:
                await run(tenant_id)
            except Exception:
                summary.failed.append(tenant_id)
                logger.exception(
                    "%s job failed for tenant %s", job, tenant_id,
                    extra={"task": job, "tenant_id": tenant_id},
                )
            else:
                summary.succeeded.append(tenant_id)
        logger.info(
            "%s job complete: %d tenants ok, %d failed",
            job, len(summary.succeeded), len(summary.failed),
        )
        return summary

    # -------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------
    async def run_daily_reset(self) -> JobSummary:
        today = self.now().date()
        return await self.for_each_tenant(
            "daily_reset", lambda tid: self.reports.run_daily_reset(tid, today),
        )

    async def run_weekly(self, *, force: bool = False) -> JobSummary | None:
        """Run the weekly job if today is the configured weekday."""
        if not force and self.now().weekday() != self.weekly_weekday:
            return None
        return await self.for_each_tenant("weekly", self.reports.run_weekly)

    async def run_monthly(self) -> JobSummary:
        today = self.now().date()
        return await self.for_each_tenant(
            "monthly", lambda tid: self.reports.run_monthly(tid, today),
        )

    # -------------------------------------------------------------------
    # Self-rescheduling monthly loop
    # -------------------------------------------------------------------
    async def monthly_loop(self, iterations: int | None = None) -> None:
        """Sleep one interval, report, repeat (forever unless *iterations*)."""
        interval = self.monthly_interval_days * 86400
        done = 0
        while iterations is None or done < iterations:
            await long_sleep(interval, self._sleep)
            await self.run_monthly()
            done += 1

    def start(self) -> None:
        if self._monthly_task is None or self._monthly_task.done():
            self._monthly_task = asyncio.get_running_loop().create_task(
                self.monthly_loop(), name="streakbot-monthly-report",
            )
            logger.info("Monthly report scheduled every %d days", self.monthly_interval_days)

    async def stop(self) -> None:
        task, self._monthly_task = self._monthly_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
