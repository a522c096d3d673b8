"""
streakbot.database.models — Tenant Documents as Typed Records
==============================================================

Two documents live in every tenant directory:

* ``config.json``        → :class:`TenantConfig`
* ``userDatabase.json``  → ``{user_id: UserRecord}``

On disk both are plain camelCase JSON so a human can read and hand-edit
them.  In memory they are dataclasses with snake_case fields.  Keys this
module does not know about are kept in ``extra`` and written back verbatim,
so an older build never strips data written by a newer one.

``from_dict`` expects the **current** shape — run raw documents through
:mod:`streakbot.database.migrations` first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from streakbot.constants import (
    DEFAULT_LEVEL_MULTIPLIER,
    DEFAULT_STREAK_THRESHOLD,
    DEFAULT_XP_PER_MESSAGE,
    MAX_LEVEL_MULTIPLIER,
    MAX_XP_PER_MESSAGE,
    MIN_LEVEL_MULTIPLIER,
)

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 3


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _opt_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _milestone_map(raw: Any) -> dict[int, str]:
    """``{"7": "123"}`` → ``{7: "123"}``, dropping unusable entries."""
    result: dict[int, str] = {}
    if not isinstance(raw, dict):
        return result
    for key, role_id in raw.items():
        try:
            threshold = int(key)
        except (TypeError, ValueError):
            continue
        if role_id:
            result[threshold] = str(role_id)
    return dict(sorted(result.items()))


# ===========================================================================
# TenantConfig
# ===========================================================================
@dataclass
class StreakSettings:
    enabled: bool = False
    threshold_messages: int = DEFAULT_STREAK_THRESHOLD
    enabled_at: str | None = None
    milestone_role_by_day: dict[int, str] = field(default_factory=dict)
    channel_id: str | None = None  # streak-up / streak-loss announcements

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "thresholdMessages": self.threshold_messages,
            "enabledAt": self.enabled_at,
            "milestoneRoleByDay": {str(k): v for k, v in self.milestone_role_by_day.items()},
            "channelId": self.channel_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreakSettings:
        return cls(
            enabled=bool(data.get("enabled", False)),
            threshold_messages=_int(data.get("thresholdMessages"), DEFAULT_STREAK_THRESHOLD),
            enabled_at=_opt_str(data.get("enabledAt")),
            milestone_role_by_day=_milestone_map(data.get("milestoneRoleByDay")),
            channel_id=_opt_str(data.get("channelId")),
        )


@dataclass
class LevelSettings:
    enabled: bool = False
    xp_per_message: int = DEFAULT_XP_PER_MESSAGE
    level_multiplier: float = DEFAULT_LEVEL_MULTIPLIER
    milestone_role_by_level: dict[int, str] = field(default_factory=dict)
    channel_id: str | None = None
    announce_level_ups: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "xpPerMessage": self.xp_per_message,
            "levelMultiplier": self.level_multiplier,
            "milestoneRoleByLevel": {str(k): v for k, v in self.milestone_role_by_level.items()},
            "channelId": self.channel_id,
            "announceLevelUps": self.announce_level_ups,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LevelSettings:
        return cls(
            enabled=bool(data.get("enabled", False)),
            xp_per_message=min(
                max(_int(data.get("xpPerMessage"), DEFAULT_XP_PER_MESSAGE), 1), MAX_XP_PER_MESSAGE,
            ),
            level_multiplier=min(
                max(_float(data.get("levelMultiplier"), DEFAULT_LEVEL_MULTIPLIER), MIN_LEVEL_MULTIPLIER),
                MAX_LEVEL_MULTIPLIER,
            ),
            milestone_role_by_level=_milestone_map(data.get("milestoneRoleByLevel")),
            channel_id=_opt_str(data.get("channelId")),
            announce_level_ups=bool(data.get("announceLevelUps", True)),
        )


@dataclass
class MessageLeaderSettings:
    enabled: bool = False
    role_id: str | None = None
    channel_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "roleId": self.role_id, "channelId": self.channel_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageLeaderSettings:
        return cls(
            enabled=bool(data.get("enabled", False)),
            role_id=_opt_str(data.get("roleId")),
            channel_id=_opt_str(data.get("channelId")),
        )


@dataclass
class ReportSettings:
    weekly_channel_id: str | None = None
    monthly_channel_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "weeklyChannelId": self.weekly_channel_id,
            "monthlyChannelId": self.monthly_channel_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReportSettings:
        return cls(
            weekly_channel_id=_opt_str(data.get("weeklyChannelId")),
            monthly_channel_id=_opt_str(data.get("monthlyChannelId")),
        )


_CONFIG_SECTIONS = ("streak", "level", "messageLeader", "reports")


@dataclass
class TenantConfig:
    """Per-tenant feature toggles and tuning, stored as ``config.json``."""

    streak: StreakSettings = field(default_factory=StreakSettings)
    level: LevelSettings = field(default_factory=LevelSettings)
    message_leader: MessageLeaderSettings = field(default_factory=MessageLeaderSettings)
    reports: ReportSettings = field(default_factory=ReportSettings)
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "streak": self.streak.to_dict(),
            "level": self.level.to_dict(),
            "messageLeader": self.message_leader.to_dict(),
            "reports": self.reports.to_dict(),
        })
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TenantConfig:
        def section(name: str) -> dict[str, Any]:
            value = data.get(name)
            return value if isinstance(value, dict) else {}

        return cls(
            streak=StreakSettings.from_dict(section("streak")),
            level=LevelSettings.from_dict(section("level")),
            message_leader=MessageLeaderSettings.from_dict(section("messageLeader")),
            reports=ReportSettings.from_dict(section("reports")),
            extra={k: v for k, v in data.items() if k not in _CONFIG_SECTIONS},
        )


# ===========================================================================
# UserRecord
# ===========================================================================
@dataclass
class Experience:
    total_xp: int = 0
    level: int = 0


@dataclass
class LastMessage:
    at: int = 0  # epoch milliseconds
    content: str = ""
    date: str | None = None  # ISO calendar date


@dataclass
class MentionsReplies:
    mentions: int = 0
    replies: int = 0


@dataclass
class HeatmapEntry:
    date: str  # ISO calendar date
    count: int = 0


@dataclass
class MilestoneRecord:
    milestone: int
    achieved_at: str  # ISO timestamp


_RECORD_KEYS = frozenset({
    "schemaVersion",
    "messageCount",
    "totalMessages",
    "streak",
    "highestStreak",
    "thresholdRemaining",
    "receivedDailyCredit",
    "experience",
    "activeDaysCount",
    "longestInactivePeriod",
    "lastStreakLossAt",
    "messageHeatmap",
    "milestonesAchieved",
    "rolesAchieved",
    "lastMessage",
    "channelsParticipated",
    "mentionsRepliesCount",
    "boosterMultiplier",
    "messageLeaderWins",
    "holdsLeaderRole",
})


@dataclass
class UserRecord:
    """Progression state for one user inside one tenant."""

    message_count: int = 0       # resets weekly (message-leader window)
    total_messages: int = 0      # lifetime
    streak: int = 0
    highest_streak: int = 0
    threshold_remaining: int = 0
    received_daily_credit: bool = False
    experience: Experience = field(default_factory=Experience)
    active_days_count: int = 0
    longest_inactive_period: int = 0
    last_streak_loss_at: str | None = None
    message_heatmap: list[HeatmapEntry] = field(default_factory=list)
    milestones_achieved: list[MilestoneRecord] = field(default_factory=list)
    roles_achieved: list[str] = field(default_factory=list)
    last_message: LastMessage = field(default_factory=LastMessage)
    channels_participated: set[str] = field(default_factory=set)
    mentions_replies_count: MentionsReplies = field(default_factory=MentionsReplies)
    booster_multiplier: float = 1.0
    message_leader_wins: int = 0
    holds_leader_role: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    # -------------------------------------------------------------------
    # Heatmap helpers
    # -------------------------------------------------------------------
    def last_active_date(self) -> date | None:
        """Date of the most recent heatmap entry, if any."""
        if not self.message_heatmap:
            return None
        return date.fromisoformat(self.message_heatmap[-1].date)

    def record_activity(self, day: date) -> bool:
        """Count one message on *day*.  Returns True if this opened a new day."""
        key = day.isoformat()
        for entry in reversed(self.message_heatmap):
            if entry.date == key:
                entry.count += 1
                return False
        self.message_heatmap.append(HeatmapEntry(date=key, count=1))
        self.message_heatmap.sort(key=lambda e: e.date)
        return True

    def active_dates(self) -> set[str]:
        return {e.date for e in self.message_heatmap if e.count > 0}

    # -------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "messageCount": self.message_count,
            "totalMessages": self.total_messages,
            "streak": self.streak,
            "highestStreak": self.highest_streak,
            "thresholdRemaining": self.threshold_remaining,
            "receivedDailyCredit": self.received_daily_credit,
            "experience": {
                "totalXp": self.experience.total_xp,
                "level": self.experience.level,
            },
            "activeDaysCount": self.active_days_count,
            "longestInactivePeriod": self.longest_inactive_period,
            "lastStreakLossAt": self.last_streak_loss_at,
            "messageHeatmap": [
                {"date": e.date, "count": e.count} for e in self.message_heatmap
            ],
            "milestonesAchieved": [
                {"milestone": m.milestone, "achievedAt": m.achieved_at}
                for m in self.milestones_achieved
            ],
            "rolesAchieved": list(self.roles_achieved),
            "lastMessage": {
                "at": self.last_message.at,
                "content": self.last_message.content,
                "date": self.last_message.date,
            },
            "channelsParticipated": sorted(self.channels_participated),
            "mentionsRepliesCount": {
                "mentions": self.mentions_replies_count.mentions,
                "replies": self.mentions_replies_count.replies,
            },
            "boosterMultiplier": self.booster_multiplier,
            "messageLeaderWins": self.message_leader_wins,
            "holdsLeaderRole": self.holds_leader_role,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserRecord:
        exp = data.get("experience") or {}
        last = data.get("lastMessage") or {}
        mentions = data.get("mentionsRepliesCount") or {}

        heatmap: dict[str, int] = {}
        for entry in data.get("messageHeatmap") or []:
            if not (isinstance(entry, dict) and entry.get("date")):
                continue
            try:
                key = date.fromisoformat(str(entry["date"])[:10]).isoformat()
            except ValueError:
                logger.warning("Dropping heatmap entry with unreadable date: %r", entry)
                continue
            heatmap[key] = heatmap.get(key, 0) + _int(entry.get("count"))

        milestones = [
            MilestoneRecord(
                milestone=_int(m.get("milestone")),
                achieved_at=str(m.get("achievedAt") or ""),
            )
            for m in data.get("milestonesAchieved") or []
            if isinstance(m, dict)
        ]

        return cls(
            message_count=_int(data.get("messageCount")),
            total_messages=_int(data.get("totalMessages")),
            streak=_int(data.get("streak")),
            highest_streak=_int(data.get("highestStreak")),
            threshold_remaining=_int(data.get("thresholdRemaining")),
            received_daily_credit=bool(data.get("receivedDailyCredit", False)),
            experience=Experience(
                total_xp=_int(exp.get("totalXp")),
                level=_int(exp.get("level")),
            ),
            active_days_count=_int(data.get("activeDaysCount")),
            longest_inactive_period=_int(data.get("longestInactivePeriod")),
            last_streak_loss_at=_opt_str(data.get("lastStreakLossAt")),
            message_heatmap=[
                HeatmapEntry(date=d, count=c) for d, c in sorted(heatmap.items())
            ],
            milestones_achieved=milestones,
            roles_achieved=[str(r) for r in data.get("rolesAchieved") or []],
            last_message=LastMessage(
                at=_int(last.get("at")),
                content=str(last.get("content") or ""),
                date=_opt_str(last.get("date")),
            ),
            channels_participated={str(c) for c in data.get("channelsParticipated") or []},
            mentions_replies_count=MentionsReplies(
                mentions=_int(mentions.get("mentions")),
                replies=_int(mentions.get("replies")),
            ),
            booster_multiplier=_float(data.get("boosterMultiplier"), 1.0),
            message_leader_wins=_int(data.get("messageLeaderWins")),
            holds_leader_role=bool(data.get("holdsLeaderRole", False)),
            extra={k: v for k, v in data.items() if k not in _RECORD_KEYS},
        )
