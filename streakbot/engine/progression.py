"""
streakbot.engine.progression — Streak & Level State Machine
============================================================

Pure state transitions over :class:`~streakbot.database.models.UserRecord`.
Nothing here touches the disk or Discord: every function mutates the record
it is handed and returns the :mod:`~streakbot.engine.commands` the caller
must execute **after** saving.

Per accepted message (:meth:`ProgressionEngine.apply_message`):

1. Bookkeeping — last message, heatmap, channels, mentions/replies, counters.
2. Cooldown gate — steps 3–4 run at most once per ``STREAK_COOLDOWN_MS``.
3. Level transition (when the level system is enabled).
4. Streak transition (when the streak system is enabled).

Once per calendar day the scheduler calls :func:`reset_daily` over every
record in a tenant.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from threading import Lock

from streakbot.constants import STREAK_COOLDOWN_MS, xp_for_level
from streakbot.database.models import (
    LastMessage,
    LevelSettings,
    MilestoneRecord,
    StreakSettings,
    TenantConfig,
    UserRecord,
)
from streakbot.engine.commands import (
    Command,
    GrantRole,
    RevokeRole,
    SendDirectMessage,
    SendMessage,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """An accepted guild message, already past the spam gate."""

    tenant_id: str
    user_id: str
    channel_id: str
    content: str
    at_ms: int
    day: date
    mentions_others: bool = False
    is_reply: bool = False


# ---------------------------------------------------------------------------
# Streak cooldown tracker
# ---------------------------------------------------------------------------
class StreakCooldownTracker:
    """Remembers when steps 3–4 last ran per (tenant, user).  Thread-safe."""

    def __init__(self, cooldown_ms: int = STREAK_COOLDOWN_MS) -> None:
        self.cooldown_ms = cooldown_ms
        self._lock = Lock()
        self._stamps: dict[tuple[str, str], int] = {}
        self._last_cleanup_ms = 0

    def try_acquire(self, tenant_id: str, user_id: str, now_ms: int) -> bool:
        """Return True (and stamp) if the cooldown has elapsed."""
        with self._lock:
            self._maybe_cleanup(now_ms)
            key = (tenant_id, user_id)
            last = self._stamps.get(key)
            if last is not None and now_ms - last < self.cooldown_ms:
                return False
            self._stamps[key] = now_ms
            return True

    def _maybe_cleanup(self, now_ms: int) -> None:
        if now_ms - self._last_cleanup_ms < 3_600_000:
            return
        self._last_cleanup_ms = now_ms
        cutoff = now_ms - self.cooldown_ms
        self._stamps = {k: v for k, v in self._stamps.items() if v > cutoff}


# Module-level default instance (tests can inject their own)
_default_cooldowns = StreakCooldownTracker()


# ---------------------------------------------------------------------------
# Record creation
# ---------------------------------------------------------------------------
def new_user_record(config: TenantConfig) -> UserRecord:
    """A fresh record with today's threshold already armed."""
    return UserRecord(threshold_remaining=config.streak.threshold_messages)


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


# ---------------------------------------------------------------------------
# Level transition
# ---------------------------------------------------------------------------
def apply_level_up(
    record: UserRecord,
    settings: LevelSettings,
    tenant_id: str,
    user_id: str,
) -> tuple[list[int], list[Command]]:
    """Consume XP into levels while ``totalXp >= xpRequired(level)``.

    Returns the levels reached (in order) and a grant for every milestone
    role among them.  Leaves ``totalXp < xp_for_level(level)``.
    """
    reached: list[int] = []
    commands: list[Command] = []
    exp = record.experience
    while exp.total_xp >= xp_for_level(exp.level, settings.level_multiplier):
        exp.total_xp -= xp_for_level(exp.level, settings.level_multiplier)
        exp.level += 1
        reached.append(exp.level)
        role_id = settings.milestone_role_by_level.get(exp.level)
        if role_id:
            commands.append(GrantRole(tenant_id, user_id, role_id, reason=f"Reached level {exp.level}"))
            if role_id not in record.roles_achieved:
                record.roles_achieved.append(role_id)
    return reached, commands


def _level_transition(
    record: UserRecord, settings: LevelSettings, event: MessageEvent,
) -> list[Command]:
    xp_gain = max(0, int(settings.xp_per_message * record.booster_multiplier))
    record.experience.total_xp += xp_gain
    reached, commands = apply_level_up(record, settings, event.tenant_id, event.user_id)
    if reached:
        logger.debug(
            "User %s in %s reached level %d", event.user_id, event.tenant_id, reached[-1],
        )
        if settings.announce_level_ups:
            commands.append(SendMessage(
                event.tenant_id,
                settings.channel_id or event.channel_id,
                f"\U0001f389 {mention(event.user_id)} has leveled up to level {reached[-1]}!",
            ))
    return commands


# ---------------------------------------------------------------------------
# Streak transition
# ---------------------------------------------------------------------------
def _streak_transition(
    record: UserRecord, settings: StreakSettings, event: MessageEvent, now: datetime,
) -> list[Command]:
    if record.threshold_remaining > 0:
        record.threshold_remaining -= 1
    if record.threshold_remaining > 0 or record.received_daily_credit:
        return []

    record.streak += 1
    record.received_daily_credit = True
    record.highest_streak = max(record.highest_streak, record.streak)

    commands: list[Command] = []
    content = f"\U0001f389 {mention(event.user_id)} has upped their streak to {record.streak}!!"

    role_id = settings.milestone_role_by_day.get(record.streak)
    if role_id:
        commands.append(GrantRole(
            event.tenant_id, event.user_id, role_id,
            reason=f"{record.streak} day streak",
        ))
        record.milestones_achieved.append(
            MilestoneRecord(milestone=record.streak, achieved_at=now.isoformat())
        )
        if role_id not in record.roles_achieved:
            record.roles_achieved.append(role_id)
        content += f" They now have the {record.streak} Day Streak Role!"

    commands.append(SendMessage(event.tenant_id, settings.channel_id or event.channel_id, content))
    logger.debug("User %s in %s streak → %d", event.user_id, event.tenant_id, record.streak)
    return commands


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
class ProgressionEngine:
    """Applies accepted messages to records.

    Parameters
    ----------
    cooldowns:
        Shared :class:`StreakCooldownTracker`; defaults to the module-level
        instance.
    """

    def __init__(self, cooldowns: StreakCooldownTracker | None = None) -> None:
        self.cooldowns = cooldowns or _default_cooldowns

    def apply_message(
        self,
        record: UserRecord,
        config: TenantConfig,
        event: MessageEvent,
        *,
        now: datetime | None = None,
    ) -> list[Command]:
        now = now or datetime.fromtimestamp(event.at_ms / 1000, tz=UTC)

        # 1. Bookkeeping runs even during the cooldown
        record.last_message = LastMessage(
            at=event.at_ms, content=event.content, date=event.day.isoformat(),
        )
        if record.record_activity(event.day):
            record.active_days_count += 1
        record.channels_participated.add(event.channel_id)
        if event.mentions_others:
            record.mentions_replies_count.mentions += 1
        if event.is_reply:
            record.mentions_replies_count.replies += 1
        record.message_count += 1
        record.total_messages += 1

        # 2. Cooldown gate
        if not self.cooldowns.try_acquire(event.tenant_id, event.user_id, event.at_ms):
            logger.debug("Streak cooldown active for %s in %s", event.user_id, event.tenant_id)
            return []

        commands: list[Command] = []
        # 3. Level
        if config.level.enabled:
            commands.extend(_level_transition(record, config.level, event))
        # 4. Streak
        if config.streak.enabled:
            commands.extend(_streak_transition(record, config.streak, event, now))
        return commands


# ---------------------------------------------------------------------------
# Daily reset
# ---------------------------------------------------------------------------
def streak_roles_at_or_below(settings: StreakSettings, streak: int) -> list[str]:
    return [
        role_id for days, role_id in settings.milestone_role_by_day.items()
        if days <= streak
    ]


def inactive_gap_days(record: UserRecord, today: date) -> int:
    """Whole days strictly between the latest heatmap entry and *today*."""
    last = record.last_active_date()
    if last is None:
        return 0
    return max(0, (today - last).days - 1)


def reset_daily(
    users: dict[str, UserRecord],
    config: TenantConfig,
    tenant_id: str,
    today: date,
    *,
    now: datetime | None = None,
    guild_name: str | None = None,
) -> list[Command]:
    """Close out the previous day for every record in a tenant.

    Streaks are only lost when the streak system is enabled.  Threshold and
    credit are reset for everyone regardless.
    """
    now = now or datetime.now(UTC)
    settings = config.streak
    commands: list[Command] = []
    lost = 0

    for user_id, record in users.items():
        if settings.enabled and record.streak > 0 and not record.received_daily_credit:
            old_streak = record.streak
            record.streak = 0
            record.last_streak_loss_at = now.isoformat()
            lost += 1

            revoked = streak_roles_at_or_below(settings, old_streak)
            for role_id in revoked:
                commands.append(RevokeRole(
                    tenant_id, user_id, role_id, reason=f"Lost {old_streak} day streak",
                ))
            record.roles_achieved = [r for r in record.roles_achieved if r not in revoked]

            where = f" in the {guild_name} server" if guild_name else ""
            commands.append(SendDirectMessage(
                tenant_id,
                user_id,
                (
                    "You failed to send your required messages yesterday and therefore "
                    f"lost your {old_streak}-day message streak{where}!"
                ),
                fallback_channel_id=settings.channel_id,
                fallback_content=(
                    f"I couldn't DM {mention(user_id)} about their streak loss. "
                    "They might have DMs disabled."
                ),
            ))

        record.longest_inactive_period = max(
            record.longest_inactive_period, inactive_gap_days(record, today),
        )
        record.threshold_remaining = settings.threshold_messages
        record.received_daily_credit = False

    logger.info(
        "Daily reset for tenant %s: %d users, %d streaks lost", tenant_id, len(users), lost,
    )
    return commands


def apply_threshold_change(users: dict[str, UserRecord], threshold: int) -> None:
    """A new threshold starts a new day for everyone."""
    for record in users.values():
        record.threshold_remaining = threshold
        record.received_daily_credit = False
