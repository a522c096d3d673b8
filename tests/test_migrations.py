"""
tests/test_migrations.py — Record & Config Upgrades
====================================================
"""

from __future__ import annotations

import copy
from datetime import UTC, date, datetime

from streakbot.database.migrations import (
    migrate,
    migrate_config,
    migrate_user_database,
    upgrade_config,
    upgrade_record,
)
from streakbot.database.models import CURRENT_SCHEMA_VERSION, TenantConfig, UserRecord

# 2024-01-01T00:00:00Z
JAN_1_MS = 1_704_067_200_000


def _legacy_record() -> dict:
    return {
        "xp": 120,
        "level": 3,
        "lastMessageTime": JAN_1_MS,
        "lastMessageContent": "hi",
        "messages": 7,
        "threshold": 2,
        "receivedDaily": True,
        "streak": 5,
        "milestones": [{"milestone": 7, "date": "2024-01-01T00:00:00+00:00"}],
        "messageHeatmap": [{"date": "2024-01-01", "messages": 3}],
        "nickname": "kept",
    }


class TestUpgradeRecord:
    def test_legacy_record_reaches_current_shape(self):
        data = upgrade_record(_legacy_record())

        assert data["schemaVersion"] == CURRENT_SCHEMA_VERSION
        assert data["experience"] == {"totalXp": 120, "level": 3}
        assert data["lastMessage"] == {"at": JAN_1_MS, "content": "hi", "date": "2024-01-01"}
        assert data["messageCount"] == 7
        assert data["thresholdRemaining"] == 2
        assert data["receivedDailyCredit"] is True
        assert data["milestonesAchieved"] == [
            {"milestone": 7, "achievedAt": "2024-01-01T00:00:00+00:00"},
        ]
        assert data["messageHeatmap"] == [{"date": "2024-01-01", "count": 3}]
        for legacy in ("xp", "level", "lastMessageTime", "messages", "threshold", "milestones"):
            assert legacy not in data

    def test_unknown_keys_survive(self):
        assert upgrade_record(_legacy_record())["nickname"] == "kept"

    def test_input_not_mutated(self):
        raw = _legacy_record()
        snapshot = copy.deepcopy(raw)
        upgrade_record(raw)
        assert raw == snapshot

    def test_idempotent(self):
        once = upgrade_record(_legacy_record())
        assert upgrade_record(once) == once

    def test_empty_record_backfilled(self):
        data = upgrade_record({})
        assert data["streak"] == 0
        assert data["experience"] == {"totalXp": 0, "level": 0}
        assert data["mentionsRepliesCount"] == {"mentions": 0, "replies": 0}
        assert data["messageHeatmap"] == []
        assert data["holdsLeaderRole"] is False

    def test_partial_substructure_filled(self):
        data = upgrade_record({"schemaVersion": 3, "experience": {"totalXp": 40}})
        assert data["experience"] == {"totalXp": 40, "level": 0}

    def test_malformed_substructures_replaced(self):
        data = upgrade_record({
            "schemaVersion": 3,
            "experience": 5,
            "messageHeatmap": "oops",
            "mentionsRepliesCount": None,
        })
        assert data["experience"] == {"totalXp": 0, "level": 0}
        assert data["messageHeatmap"] == []
        assert data["mentionsRepliesCount"] == {"mentions": 0, "replies": 0}

    def test_nested_time_field_renamed(self):
        data = upgrade_record({"schemaVersion": 1, "lastMessage": {"time": JAN_1_MS, "content": "x"}})
        assert data["lastMessage"]["at"] == JAN_1_MS
        assert data["lastMessage"]["date"] == "2024-01-01"
        assert "time" not in data["lastMessage"]

    def test_garbage_schema_version_treated_as_zero(self):
        data = upgrade_record({"schemaVersion": "abc", "xp": 9})
        assert data["experience"]["totalXp"] == 9
        assert data["schemaVersion"] == CURRENT_SCHEMA_VERSION


class TestMigrate:
    def test_returns_user_record(self):
        record = migrate(_legacy_record())
        assert isinstance(record, UserRecord)
        assert record.streak == 5
        assert record.experience.level == 3
        assert record.message_heatmap[0].count == 3
        assert record.extra == {"nickname": "kept"}

    def test_record_round_trips_through_dict(self):
        record = migrate(_legacy_record())
        assert migrate(record.to_dict()) == record

    def test_unreadable_heatmap_dates_dropped(self):
        raw = {"messageHeatmap": [
            {"date": "not-a-date", "count": 4},
            {"date": "2024-01-02T10:00:00Z", "count": 2},
            {"date": "2024-01-02", "count": 1},
        ]}
        record = migrate(raw)
        assert [(e.date, e.count) for e in record.message_heatmap] == [("2024-01-02", 3)]
        assert record.last_active_date() == date(2024, 1, 2)

    def test_user_database_skips_non_objects(self):
        records = migrate_user_database({"1": {"streak": 2}, "2": "nope", "3": [1]})
        assert list(records) == ["1"]
        assert records["1"].streak == 2


class TestMigrateConfig:
    def _legacy(self) -> dict:
        return {
            "streakSystem": {
                "enabled": True,
                "streakThreshold": 5,
                "role7day": "111",
                "role30day": "112",
                "customFlag": 1,
            },
            "levelSystem": {"enabled": True, "xpPerMessage": 20, "roleLevel10": "222"},
            "messageLeaderSystem": {"enabled": True, "roleMessageLeader": "333"},
            "reportSettings": {"weeklyReportChannel": "444"},
        }

    def test_legacy_sections_folded(self):
        config = migrate_config(self._legacy())

        assert config.streak.enabled is True
        assert config.streak.threshold_messages == 5
        assert config.streak.milestone_role_by_day == {7: "111", 30: "112"}
        assert config.level.xp_per_message == 20
        assert config.level.milestone_role_by_level == {10: "222"}
        assert config.message_leader.role_id == "333"
        assert config.reports.weekly_channel_id == "444"

    def test_unrecognised_legacy_keys_kept(self):
        data = upgrade_config(self._legacy())
        assert data["streakSystem"] == {"customFlag": 1}
        assert "levelSystem" not in data
        assert migrate_config(self._legacy()).extra["streakSystem"] == {"customFlag": 1}

    def test_current_values_win_over_legacy(self):
        raw = self._legacy()
        raw["streak"] = {"thresholdMessages": 9}
        assert migrate_config(raw).streak.threshold_messages == 9

    def test_enabled_at_stamped_when_missing(self):
        now = datetime(2024, 1, 1, tzinfo=UTC)
        assert migrate_config({}, now=now).streak.enabled_at == now.isoformat()
        assert migrate_config({}).streak.enabled_at is None

    def test_existing_enabled_at_kept(self):
        raw = {"streak": {"enabledAt": "2023-05-05T00:00:00+00:00"}}
        config = migrate_config(raw, now=datetime(2024, 1, 1, tzinfo=UTC))
        assert config.streak.enabled_at == "2023-05-05T00:00:00+00:00"

    def test_stored_level_settings_clamped(self):
        config = migrate_config({"level": {"levelMultiplier": 1e308, "xpPerMessage": 10**12}})
        assert config.level.level_multiplier == 10.0
        assert config.level.xp_per_message == 1_000
        assert migrate_config({"level": {"levelMultiplier": 0.1}}).level.level_multiplier == 1.0

    def test_current_shape_round_trips(self):
        config = TenantConfig()
        config.streak.milestone_role_by_day = {3: "9"}
        config.extra = {"futureKey": [1, 2]}
        assert migrate_config(config.to_dict()) == config
