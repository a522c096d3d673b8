"""
streakbot.database.migrations — Versioned Record Upgrades
==========================================================

Stored user records carry a ``schemaVersion``.  Anything written before
versioning existed is treated as version 0 and walked forward one step at a
time through :data:`RECORD_MIGRATIONS` until it reaches
:data:`~streakbot.database.models.CURRENT_SCHEMA_VERSION`.

Every step is a **pure** ``dict → dict`` function:

* v0 → v1  fold flat ``xp`` / ``level`` into ``experience{totalXp, level}``
* v1 → v2  fold ``lastMessageTime`` / ``lastMessageContent`` /
  ``lastActiveDate`` into ``lastMessage{at, content, date}``
* v2 → v3  rename the remaining legacy field names

After the chain, :func:`_backfill_record` fills any missing substructure
with zero values.  Keys a step does not recognise are copied through
untouched, and running :func:`migrate` on its own output is a no-op.

Tenant configs get the same treatment via :func:`migrate_config`.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from streakbot.database.models import CURRENT_SCHEMA_VERSION, TenantConfig, UserRecord

logger = logging.getLogger(__name__)

Raw = dict[str, Any]


# ---------------------------------------------------------------------------
# Record steps
# ---------------------------------------------------------------------------
def _v0_fold_experience(raw: Raw) -> Raw:
    if "xp" not in raw and "level" not in raw:
        return raw
    exp = dict(raw.get("experience") or {})
    if "xp" in raw:
        exp["totalXp"] = raw.pop("xp")
    if "level" in raw:
        exp["level"] = raw.pop("level")
    raw["experience"] = exp
    return raw


def _date_from_epoch_ms(value: Any) -> str | None:
    try:
        ms = int(value)
    except (TypeError, ValueError):
        return None
    if ms <= 0:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=UTC).date().isoformat()


def _v1_fold_last_message(raw: Raw) -> Raw:
    legacy = ("lastMessageTime", "lastMessageContent", "lastActiveDate")
    if any(key in raw for key in legacy):
        last = dict(raw.get("lastMessage") or {})
        if "lastMessageTime" in raw:
            last["at"] = raw.pop("lastMessageTime")
        if "lastMessageContent" in raw:
            last["content"] = raw.pop("lastMessageContent")
        if "lastActiveDate" in raw:
            last["date"] = raw.pop("lastActiveDate")
        raw["lastMessage"] = last

    last = raw.get("lastMessage")
    if isinstance(last, dict):
        if "time" in last:
            legacy_time = last.pop("time")
            last.setdefault("at", legacy_time)
        if not last.get("date"):
            last["date"] = _date_from_epoch_ms(last.get("at"))
    return raw


_RENAMES: dict[str, str] = {
    "messages": "messageCount",
    "threshold": "thresholdRemaining",
    "receivedDaily": "receivedDailyCredit",
    "lastStreakLoss": "lastStreakLossAt",
    "milestones": "milestonesAchieved",
    "boosters": "boosterMultiplier",
}


def _v2_rename_legacy_fields(raw: Raw) -> Raw:
    for old, new in _RENAMES.items():
        if old in raw:
            value = raw.pop(old)
            raw.setdefault(new, value)

    heatmap = raw.get("messageHeatmap")
    if isinstance(heatmap, list):
        for entry in heatmap:
            if isinstance(entry, dict) and "messages" in entry:
                legacy_count = entry.pop("messages")
                entry.setdefault("count", legacy_count)

    milestones = raw.get("milestonesAchieved")
    if isinstance(milestones, list):
        for entry in milestones:
            if isinstance(entry, dict) and "date" in entry:
                legacy_date = entry.pop("date")
                entry.setdefault("achievedAt", legacy_date)
    return raw


RECORD_MIGRATIONS: dict[int, Callable[[Raw], Raw]] = {
    0: _v0_fold_experience,
    1: _v1_fold_last_message,
    2: _v2_rename_legacy_fields,
}


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
_RECORD_DEFAULTS: dict[str, Any] = {
    "messageCount": 0,
    "totalMessages": 0,
    "streak": 0,
    "highestStreak": 0,
    "thresholdRemaining": 0,
    "receivedDailyCredit": False,
    "experience": {"totalXp": 0, "level": 0},
    "activeDaysCount": 0,
    "longestInactivePeriod": 0,
    "lastStreakLossAt": None,
    "messageHeatmap": [],
    "milestonesAchieved": [],
    "rolesAchieved": [],
    "lastMessage": {"at": 0, "content": "", "date": None},
    "channelsParticipated": [],
    "mentionsRepliesCount": {"mentions": 0, "replies": 0},
    "boosterMultiplier": 1,
    "messageLeaderWins": 0,
    "holdsLeaderRole": False,
}


def _backfill_record(raw: Raw) -> Raw:
    for key, default in _RECORD_DEFAULTS.items():
        value = raw.get(key)
        if key not in raw or (value is None and default is not None):
            raw[key] = copy.deepcopy(default)
        elif isinstance(default, dict):
            if not isinstance(value, dict):
                logger.warning("Replacing malformed %r substructure: %r", key, value)
                raw[key] = copy.deepcopy(default)
                continue
            for sub_key, sub_default in default.items():
                value.setdefault(sub_key, sub_default)
        elif isinstance(default, list) and not isinstance(value, list):
            logger.warning("Replacing malformed %r list: %r", key, value)
            raw[key] = []
    return raw


# ---------------------------------------------------------------------------
# Public API: records
# ---------------------------------------------------------------------------
def upgrade_record(raw: Raw) -> Raw:
    """Return a current-shape copy of *raw*.  Never mutates the input."""
    data = copy.deepcopy(raw)
    try:
        version = int(data.get("schemaVersion", 0))
    except (TypeError, ValueError):
        version = 0

    while version < CURRENT_SCHEMA_VERSION:
        data = RECORD_MIGRATIONS[version](data)
        version += 1

    data["schemaVersion"] = max(version, CURRENT_SCHEMA_VERSION)
    return _backfill_record(data)


def migrate(raw: Raw) -> UserRecord:
    """Upgrade one stored record and return it as a :class:`UserRecord`."""
    return UserRecord.from_dict(upgrade_record(raw))


def migrate_user_database(document: dict[str, Any]) -> dict[str, UserRecord]:
    """Migrate every record in a ``userDatabase.json`` document.

    Entries that are not JSON objects cannot be records and are skipped.
    """
    records: dict[str, UserRecord] = {}
    for user_id, raw in document.items():
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object user record for %s", user_id)
            continue
        records[str(user_id)] = migrate(raw)
    return records


# ---------------------------------------------------------------------------
# Public API: tenant config
# ---------------------------------------------------------------------------
_STREAK_ROLE_KEY = re.compile(r"^role(\d+)day$")
_LEVEL_ROLE_KEY = re.compile(r"^roleLevel(\d+)$")

_LEGACY_SECTIONS: dict[str, tuple[str, dict[str, str]]] = {
    "streakSystem": ("streak", {
        "enabled": "enabled",
        "streakThreshold": "thresholdMessages",
        "enabledDate": "enabledAt",
        "channelStreakOutput": "channelId",
    }),
    "levelSystem": ("level", {
        "enabled": "enabled",
        "xpPerMessage": "xpPerMessage",
        "levelMultiplier": "levelMultiplier",
        "levelUpMessages": "announceLevelUps",
        "channelLevelUp": "channelId",
    }),
    "messageLeaderSystem": ("messageLeader", {
        "enabled": "enabled",
        "roleMessageLeader": "roleId",
        "channelMessageLeader": "channelId",
    }),
    "reportSettings": ("reports", {
        "weeklyReportChannel": "weeklyChannelId",
        "monthlyReportChannel": "monthlyChannelId",
    }),
}


def upgrade_config(raw: Raw) -> Raw:
    """Fold the legacy ``*System`` sections into the current shape (pure)."""
    data = copy.deepcopy(raw)
    for legacy_name, (section_name, key_map) in _LEGACY_SECTIONS.items():
        legacy = data.get(legacy_name)
        if not isinstance(legacy, dict):
            continue
        section = dict(data.get(section_name) or {})
        leftovers: Raw = {}
        for key, value in legacy.items():
            streak_role = _STREAK_ROLE_KEY.match(key)
            level_role = _LEVEL_ROLE_KEY.match(key)
            if key in key_map:
                section.setdefault(key_map[key], value)
            elif section_name == "streak" and streak_role:
                section.setdefault("milestoneRoleByDay", {})[streak_role.group(1)] = value
            elif section_name == "level" and level_role:
                section.setdefault("milestoneRoleByLevel", {})[level_role.group(1)] = value
            else:
                leftovers[key] = value
        data[section_name] = section
        if leftovers:
            data[legacy_name] = leftovers
        else:
            del data[legacy_name]
    return data


def migrate_config(raw: Raw, *, now: datetime | None = None) -> TenantConfig:
    """Upgrade a stored ``config.json`` and backfill missing defaults.

    ``streak.enabledAt`` is stamped with *now* when absent (no stamp when
    *now* is ``None``, keeping the function pure for tests).
    """
    config = TenantConfig.from_dict(upgrade_config(raw))
    if config.streak.enabled_at is None and now is not None:
        config.streak.enabled_at = now.isoformat()
    return config
