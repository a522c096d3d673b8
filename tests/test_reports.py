"""
tests/test_reports.py — Summaries, Leaderboard & Leader Role Rotation
======================================================================
"""

from __future__ import annotations

from datetime import date

from streakbot.database.models import HeatmapEntry, MessageLeaderSettings, UserRecord
from streakbot.engine.commands import GrantRole, RevokeRole
from streakbot.engine.reports import (
    ActivitySummary,
    monthly_summary,
    rank_message_leaders,
    render_leaderboard,
    reset_weekly_counts,
    rotate_leader_role,
    weekly_summary,
)

TENANT = "1000"


def _counts(**counts: int) -> dict[str, UserRecord]:
    return {uid: UserRecord(message_count=n) for uid, n in counts.items()}


class TestSummaries:
    def test_weekly_counts_only_active_users(self):
        summary = weekly_summary(_counts(a=10, b=5, c=0))
        assert summary == ActivitySummary("Weekly", 15, 2)
        assert summary.average == 7.5

    def test_empty_week(self):
        summary = weekly_summary({})
        assert summary.active_users == 0
        assert summary.average == 0.0

    def test_render(self):
        text = ActivitySummary("Weekly", 15, 2).render("Guild")
        assert text.startswith("**Weekly Report for Guild**")
        assert "- Total Messages: 15" in text
        assert "- Total Active Users: 2" in text
        assert "- Average Messages per User: 7.50" in text

    def test_monthly_window(self):
        users = {
            "a": UserRecord(message_heatmap=[
                HeatmapEntry("2024-02-01", 4),  # outside the 30-day window
                HeatmapEntry("2024-03-01", 3),
            ]),
            "b": UserRecord(message_heatmap=[HeatmapEntry("2024-03-30", 2)]),
            "c": UserRecord(message_heatmap=[HeatmapEntry("2024-01-01", 9)]),
        }
        summary = monthly_summary(users, date(2024, 3, 30), days=30)
        assert summary.period == "Monthly"
        assert summary.total_messages == 5
        assert summary.active_users == 2


class TestLeaders:
    def test_ranked_by_count_then_id(self):
        leaders = rank_message_leaders(_counts(b=5, a=5, c=9, d=0))
        assert [uid for uid, _ in leaders] == ["c", "a", "b"]

    def test_departed_members_excluded(self):
        leaders = rank_message_leaders(_counts(a=5, b=9), member_ids={"a"})
        assert [uid for uid, _ in leaders] == ["a"]

    def test_size_limit(self):
        users = {str(i): UserRecord(message_count=100 - i) for i in range(15)}
        assert len(rank_message_leaders(users, size=10)) == 10

    def test_render_leaderboard(self):
        users = {str(i): UserRecord(message_count=100 - i) for i in range(7)}
        leaders = rank_message_leaders(users)

        text = render_leaderboard(leaders, "Guild", {"0": "alice"})

        lines = text.splitlines()
        assert lines[0] == "\U0001f389 **Message Leaders for last week in Guild!** \U0001f525"
        assert lines[2] == "\U0001f3c6 1st: <@0> (alice) · 100 messages"
        assert lines[3].startswith("\U0001f948 2nd: <@1> (N/A)")
        assert lines[7] == "\U0001f4dc 6th-7th: <@5> (N/A), <@6> (N/A)"
        assert lines[-1] == "Congratulations to everyone who participated!"


class TestRotation:
    def test_role_moves_to_new_winners(self):
        users = _counts(a=10, b=8, old=1)
        users["old"].holds_leader_role = True
        users["a"].holds_leader_role = True
        settings = MessageLeaderSettings(enabled=True, role_id="R")
        leaders = rank_message_leaders(users)

        commands = rotate_leader_role(users, leaders, settings, TENANT, winners=2)

        assert RevokeRole(TENANT, "old", "R", reason="Message leader rotation") in commands
        grants = [c for c in commands if isinstance(c, GrantRole)]
        assert [c.user_id for c in grants] == ["a", "b"]
        assert not any(isinstance(c, RevokeRole) and c.user_id == "a" for c in commands)
        assert users["old"].holds_leader_role is False
        assert users["a"].holds_leader_role and users["b"].holds_leader_role
        assert users["a"].message_leader_wins == 1

    def test_wins_counted_without_role(self):
        users = _counts(a=3)
        leaders = rank_message_leaders(users)

        commands = rotate_leader_role(users, leaders, MessageLeaderSettings(enabled=True), TENANT)

        assert commands == []
        assert users["a"].message_leader_wins == 1
        assert users["a"].holds_leader_role is False

    def test_reset_weekly_counts(self):
        users = _counts(a=3, b=7)
        users["a"].total_messages = 30
        reset_weekly_counts(users)
        assert all(r.message_count == 0 for r in users.values())
        assert users["a"].total_messages == 30
