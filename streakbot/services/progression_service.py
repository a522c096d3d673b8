"""
streakbot.services.progression_service — Tenant-Scoped Operations
==================================================================

**Why this file exists:**
The engine is pure and the store knows nothing about records.  This
service is the seam between them.  Every operation follows the same shape:

    1. Take the tenant lock.
    2. Load config + users through :class:`TenantRepository`.
    3. Mutate records with the engine.
    4. Save.
    5. Release the lock, **then** dispatch the resulting commands.

Holding the lock across load→save means two messages from the same guild
can never overwrite each other's changes.  Dispatching after release keeps
slow Discord calls from stalling the next message.

Only :class:`~streakbot.errors.ValidationError` escapes the administrative
operations, and it is raised before anything is mutated.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from typing import Any

from streakbot.constants import (
    MAX_LEVEL,
    MAX_LEVEL_MULTIPLIER,
    MAX_TOTAL_XP,
    MAX_XP_PER_MESSAGE,
    MIN_LEVEL_MULTIPLIER,
    xp_for_level,
)
from streakbot.database.models import TenantConfig, UserRecord
from streakbot.database.tenants import TenantRepository
from streakbot.engine.commands import Command, GrantRole, RevokeRole
from streakbot.engine.progression import (
    MessageEvent,
    ProgressionEngine,
    apply_level_up,
    apply_threshold_change,
    new_user_record,
)
from streakbot.engine.retention import DateRange, RetentionResult
from streakbot.engine.retention import compute_retention as _compute_retention
from streakbot.engine.spam import SpamFilter
from streakbot.errors import ValidationError
from streakbot.services.dispatcher import dispatch
from streakbot.services.platform import PlatformClient

logger = logging.getLogger(__name__)


class TenantLocks:
    """One ``asyncio.Lock`` per tenant, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock


# ---------------------------------------------------------------------------
# Input coercion for administrative edits
# ---------------------------------------------------------------------------
_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError(key, f'{key} must be "true" or "false"')


def _as_int(key: str, value: Any, *, minimum: int = 0, maximum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(key, f"{key} must be a whole number")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(key, f"{key} must be a whole number") from None
    if number < minimum or (maximum is not None and number > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ValidationError(key, f"{key} must be {bound}, got {number}")
    return number


def _as_float(key: str, value: Any, *, minimum: float, maximum: float) -> float:
    bound = f"between {minimum:g} and {maximum:g}"
    try:
        number = float(str(value).strip())
    except ValueError:
        raise ValidationError(key, f"{key} must be a number {bound}") from None
    # NaN fails both comparisons
    if not minimum <= number <= maximum:
        raise ValidationError(key, f"{key} must be {bound}, got {value}")
    return number


_SNOWFLAKE = re.compile(r"^<?[#@&!]*(\d+)>?$")


def _as_snowflake(key: str, value: Any) -> str | None:
    """Accept ``123``, ``<#123>``, ``<@&123>``; ``None``/``""`` clears."""
    if value is None or str(value).strip() == "":
        return None
    match = _SNOWFLAKE.match(str(value).strip())
    if not match:
        raise ValidationError(key, f"{key} must be a channel or role id")
    return match.group(1)


def _milestone_roles_between(roles: dict[int, str], low: int, high: int) -> list[str]:
    """Role ids for milestones ``m`` with ``low < m <= high``."""
    return [role_id for m, role_id in roles.items() if low < m <= high]


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class ProgressionService:
    """All tenant-scoped read/modify/write operations.

    Parameters
    ----------
    repo:
        Shared :class:`TenantRepository`.
    platform:
        The chat-platform collaborator commands are dispatched to.
    engine / spam / locks:
        Injectable for tests; production uses fresh instances.
    """

    def __init__(
        self,
        repo: TenantRepository,
        platform: PlatformClient,
        *,
        engine: ProgressionEngine | None = None,
        spam: SpamFilter | None = None,
        locks: TenantLocks | None = None,
    ) -> None:
        self.repo = repo
        self.platform = platform
        self.engine = engine or ProgressionEngine()
        self.spam = spam or SpamFilter()
        self.locks = locks or TenantLocks()

    # -------------------------------------------------------------------
    # Tenant lifecycle
    # -------------------------------------------------------------------
    async def initialize_tenant(self, tenant_id: str) -> bool:
        async with self.locks(tenant_id):
            return await self.repo.initialize(tenant_id)

    async def remove_user(self, tenant_id: str, user_id: str) -> bool:
        """Delete a departed member's record.  Returns False if there was none."""
        async with self.locks(tenant_id):
            users = await self.repo.load_users(tenant_id)
            if users.pop(user_id, None) is None:
                return False
            await self.repo.save_users(tenant_id, users, allow_empty=True)
        self.spam.forget(user_id)
        logger.info("Removed user %s from tenant %s", user_id, tenant_id)
        return True

    async def get_or_init_user_record(self, tenant_id: str, user_id: str) -> UserRecord:
        """Return the user's record, creating and persisting it if absent."""
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            users = await self.repo.load_users(tenant_id)
            record = users.get(user_id)
            if record is None:
                record = users[user_id] = new_user_record(config)
                await self.repo.save_users(tenant_id, users)
                logger.info("Initialized record for user %s in tenant %s", user_id, tenant_id)
            return record

    # -------------------------------------------------------------------
    # Message pipeline
    # -------------------------------------------------------------------
    async def handle_message(self, event: MessageEvent) -> bool:
        """Spam gate → engine → save → dispatch.  Returns False for spam."""
        if self.spam.is_spam(event.user_id, event.content, event.at_ms):
            return False

        async with self.locks(event.tenant_id):
            config = await self.repo.load_config(event.tenant_id)
            users = await self.repo.load_users(event.tenant_id)
            record = users.get(event.user_id)
            if record is None:
                record = users[event.user_id] = new_user_record(config)
            commands = self.engine.apply_message(record, config, event)
            await self.repo.save_users(event.tenant_id, users)

        if commands:
            await dispatch(self.platform, commands)
        return True

    # -------------------------------------------------------------------
    # Administrative: config
    # -------------------------------------------------------------------
    def _edit_config(
        self, config: TenantConfig, key: str, value: Any, users: dict[str, UserRecord], tenant_id: str,
    ) -> tuple[list[Command], bool]:
        """Apply *key* = *value* to *config*.  Returns (commands, users_changed).

        Validates fully before mutating.
        """
        parts = key.split(".")
        section, name = parts[0], parts[1] if len(parts) > 1 else ""
        commands: list[Command] = []

        if len(parts) == 3 and name in ("milestoneRoleByDay", "milestoneRoleByLevel"):
            threshold = _as_int(key, parts[2], minimum=1)
            role_id = _as_snowflake(key, value)
            if section == "streak" and name == "milestoneRoleByDay":
                roles, progress = config.streak.milestone_role_by_day, (lambda r: r.streak)
            elif section == "level" and name == "milestoneRoleByLevel":
                roles, progress = config.level.milestone_role_by_level, (lambda r: r.experience.level)
            else:
                raise ValidationError(key, f"Unknown configuration key: {key}")

            if role_id is None:
                removed = roles.pop(threshold, None)
                if removed is None:
                    raise ValidationError(key, f"No milestone configured at {threshold}")
                for user_id, record in users.items():
                    if removed in record.roles_achieved:
                        record.roles_achieved.remove(removed)
                        commands.append(RevokeRole(tenant_id, user_id, removed, reason="Milestone removed"))
            else:
                roles[threshold] = role_id
                roles_sorted = dict(sorted(roles.items()))
                roles.clear()
                roles.update(roles_sorted)
                for user_id, record in users.items():
                    if progress(record) >= threshold:
                        commands.append(GrantRole(tenant_id, user_id, role_id, reason="Milestone added"))
                        if role_id not in record.roles_achieved:
                            record.roles_achieved.append(role_id)
            return commands, bool(commands)

        if len(parts) != 2:
            raise ValidationError(key, f"Unknown configuration key: {key}")

        setters: dict[str, Any] = {
            "streak.enabled": lambda v: _as_bool(key, v),
            "streak.thresholdMessages": lambda v: _as_int(key, v, minimum=1),
            "streak.channelId": lambda v: _as_snowflake(key, v),
            "level.enabled": lambda v: _as_bool(key, v),
            "level.xpPerMessage": lambda v: _as_int(key, v, minimum=1, maximum=MAX_XP_PER_MESSAGE),
            "level.levelMultiplier": lambda v: _as_float(
                key, v, minimum=MIN_LEVEL_MULTIPLIER, maximum=MAX_LEVEL_MULTIPLIER,
            ),
            "level.channelId": lambda v: _as_snowflake(key, v),
            "level.announceLevelUps": lambda v: _as_bool(key, v),
            "messageLeader.enabled": lambda v: _as_bool(key, v),
            "messageLeader.roleId": lambda v: _as_snowflake(key, v),
            "messageLeader.channelId": lambda v: _as_snowflake(key, v),
            "reports.weeklyChannelId": lambda v: _as_snowflake(key, v),
            "reports.monthlyChannelId": lambda v: _as_snowflake(key, v),
        }
        if key not in setters:
            raise ValidationError(key, f"Unknown configuration key: {key}")
        parsed = setters[key](value)

        if key == "streak.enabled":
            config.streak.enabled = parsed
            if parsed and config.streak.enabled_at is None:
                config.streak.enabled_at = datetime.now(UTC).isoformat()
        elif key == "streak.thresholdMessages":
            config.streak.threshold_messages = parsed
            apply_threshold_change(users, parsed)
            return commands, bool(users)
        elif key == "streak.channelId":
            config.streak.channel_id = parsed
        elif key == "level.enabled":
            config.level.enabled = parsed
        elif key == "level.xpPerMessage":
            config.level.xp_per_message = parsed
        elif key == "level.levelMultiplier":
            config.level.level_multiplier = parsed
        elif key == "level.channelId":
            config.level.channel_id = parsed
        elif key == "level.announceLevelUps":
            config.level.announce_level_ups = parsed
        elif key == "messageLeader.enabled":
            config.message_leader.enabled = parsed
        elif key == "messageLeader.roleId":
            config.message_leader.role_id = parsed
        elif key == "messageLeader.channelId":
            config.message_leader.channel_id = parsed
        elif key == "reports.weeklyChannelId":
            config.reports.weekly_channel_id = parsed
        elif key == "reports.monthlyChannelId":
            config.reports.monthly_channel_id = parsed
        return commands, False

    async def apply_config_edit(self, tenant_id: str, key: str, value: Any) -> TenantConfig:
        """Set one dotted config key, e.g. ``streak.thresholdMessages``.

        Milestones use ``streak.milestoneRoleByDay.<N>`` /
        ``level.milestoneRoleByLevel.<N>``; a value of ``None`` removes one.

        Raises
        ------
        ValidationError
            Unknown key or out-of-range value.  Nothing is written.
        """
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            users = await self.repo.load_users(tenant_id)
            commands, users_changed = self._edit_config(config, key, value, users, tenant_id)
            await self.repo.save_config(tenant_id, config)
            if users_changed:
                await self.repo.save_users(tenant_id, users)

        logger.info("Config %s updated for tenant %s", key, tenant_id)
        if commands:
            await dispatch(self.platform, commands)
        return config

    # -------------------------------------------------------------------
    # Administrative: user fields
    # -------------------------------------------------------------------
    EDITABLE_FIELDS = (
        "messageCount",
        "streak",
        "thresholdRemaining",
        "receivedDailyCredit",
        "totalXp",
        "level",
        "activeDaysCount",
        "longestInactivePeriod",
    )

    async def set_field_direct(
        self, tenant_id: str, user_id: str, field: str, value: Any,
    ) -> UserRecord:
        """Overwrite one field on a user's record, syncing milestone roles.

        Raises
        ------
        ValidationError
            Unknown field or out-of-range value.  Nothing is written.
        """
        if field not in self.EDITABLE_FIELDS:
            raise ValidationError(
                field, f"Invalid field. Choose one of: {', '.join(self.EDITABLE_FIELDS)}",
            )

        commands: list[Command] = []
        async with self.locks(tenant_id):
            config = await self.repo.load_config(tenant_id)
            users = await self.repo.load_users(tenant_id)

            # Validate before touching anything
            if field == "receivedDailyCredit":
                parsed: Any = _as_bool(field, value)
            elif field == "thresholdRemaining":
                parsed = _as_int(field, value, maximum=config.streak.threshold_messages)
            elif field == "level":
                parsed = _as_int(field, value, maximum=MAX_LEVEL)
            elif field == "totalXp":
                parsed = _as_int(field, value, maximum=MAX_TOTAL_XP)
            else:
                parsed = _as_int(field, value)

            record = users.get(user_id)
            if record is None:
                record = users[user_id] = new_user_record(config)

            if field == "messageCount":
                record.message_count = parsed
            elif field == "streak":
                commands = self._sync_roles(
                    record, config.streak.milestone_role_by_day,
                    record.streak, parsed, tenant_id, user_id,
                )
                record.streak = parsed
                record.highest_streak = max(record.highest_streak, parsed)
            elif field == "thresholdRemaining":
                record.threshold_remaining = parsed
                record.received_daily_credit = False
            elif field == "receivedDailyCredit":
                record.received_daily_credit = parsed
            elif field == "totalXp":
                old_level = record.experience.level
                record.experience.total_xp = parsed
                apply_level_up(record, config.level, tenant_id, user_id)
                commands = self._sync_roles(
                    record, config.level.milestone_role_by_level,
                    old_level, record.experience.level, tenant_id, user_id,
                )
            elif field == "level":
                commands = self._sync_roles(
                    record, config.level.milestone_role_by_level,
                    record.experience.level, parsed, tenant_id, user_id,
                )
                record.experience.level = parsed
                cap = xp_for_level(parsed, config.level.level_multiplier) - 1
                record.experience.total_xp = min(record.experience.total_xp, cap)
            elif field == "activeDaysCount":
                record.active_days_count = parsed
            elif field == "longestInactivePeriod":
                record.longest_inactive_period = parsed

            await self.repo.save_users(tenant_id, users)

        logger.info("Set %s=%r for user %s in tenant %s", field, parsed, user_id, tenant_id)
        if commands:
            await dispatch(self.platform, commands)
        return record

    @staticmethod
    def _sync_roles(
        record: UserRecord,
        roles: dict[int, str],
        old: int,
        new: int,
        tenant_id: str,
        user_id: str,
    ) -> list[Command]:
        """Grant milestones newly passed, revoke milestones no longer held."""
        commands: list[Command] = []
        for role_id in _milestone_roles_between(roles, old, new):
            commands.append(GrantRole(tenant_id, user_id, role_id, reason="Administrative edit"))
            if role_id not in record.roles_achieved:
                record.roles_achieved.append(role_id)
        for role_id in _milestone_roles_between(roles, new, old):
            commands.append(RevokeRole(tenant_id, user_id, role_id, reason="Administrative edit"))
            if role_id in record.roles_achieved:
                record.roles_achieved.remove(role_id)
        return commands

    # -------------------------------------------------------------------
    # Read-only
    # -------------------------------------------------------------------
    async def compute_retention(
        self,
        tenant_id: str,
        range_a: DateRange,
        range_b: DateRange | None = None,
    ) -> RetentionResult:
        users = await self.repo.load_users(tenant_id)
        return _compute_retention(users, range_a, range_b)
