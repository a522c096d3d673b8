"""
streakbot.engine.reports — Weekly / Monthly Summaries & Message Leaders
========================================================================

Pure aggregation over a tenant's records.  The scheduled jobs in
:mod:`streakbot.services.report_service` load the records, call these
functions, and dispatch the resulting commands.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from streakbot.constants import LEADER_ROLE_WINNERS, LEADERBOARD_SIZE, RANK_BADGES
from streakbot.database.models import MessageLeaderSettings, UserRecord
from streakbot.engine.commands import Command, GrantRole, RevokeRole


# ---------------------------------------------------------------------------
# Activity summaries
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivitySummary:
    period: str  # "Weekly" / "Monthly"
    total_messages: int
    active_users: int

    @property
    def average(self) -> float:
        if not self.active_users:
            return 0.0
        return self.total_messages / self.active_users

    def render(self, guild_name: str) -> str:
        return (
            f"**{self.period} Report for {guild_name}**\n\n"
            f"- Total Messages: {self.total_messages}\n"
            f"- Total Active Users: {self.active_users}\n"
            f"- Average Messages per User: {self.average:.2f}"
        )


def weekly_summary(users: dict[str, UserRecord]) -> ActivitySummary:
    """Summarize the current weekly ``messageCount`` window."""
    counts = [r.message_count for r in users.values() if r.message_count > 0]
    return ActivitySummary("Weekly", sum(counts), len(counts))


def monthly_summary(
    users: dict[str, UserRecord], today: date, days: int = 30,
) -> ActivitySummary:
    """Summarize heatmap activity in the *days* days ending on *today*."""
    first = (today - timedelta(days=days - 1)).isoformat()
    last = today.isoformat()
    total = 0
    active = 0
    for record in users.values():
        in_window = sum(
            e.count for e in record.message_heatmap if first <= e.date <= last
        )
        if in_window > 0:
            total += in_window
            active += 1
    return ActivitySummary("Monthly", total, active)


# ---------------------------------------------------------------------------
# Message leaders
# ---------------------------------------------------------------------------
def rank_message_leaders(
    users: dict[str, UserRecord],
    member_ids: set[str] | None = None,
    size: int = LEADERBOARD_SIZE,
) -> list[tuple[str, UserRecord]]:
    """Top *size* users by weekly ``messageCount``, current members only."""
    candidates = [
        (user_id, record) for user_id, record in users.items()
        if record.message_count > 0 and (member_ids is None or user_id in member_ids)
    ]
    candidates.sort(key=lambda item: (-item[1].message_count, item[0]))
    return candidates[:size]


def render_leaderboard(
    leaders: list[tuple[str, UserRecord]],
    guild_name: str,
    names: dict[str, str] | None = None,
) -> str:
    names = names or {}

    def label(user_id: str) -> str:
        return f"<@{user_id}> ({names.get(user_id, 'N/A')})"

    lines = [f"\U0001f389 **Message Leaders for last week in {guild_name}!** \U0001f525", ""]
    ordinals = ["1st", "2nd", "3rd", "4th", "5th"]
    for index, (user_id, record) in enumerate(leaders[: len(RANK_BADGES)]):
        lines.append(
            f"{RANK_BADGES[index]} {ordinals[index]}: {label(user_id)} · {record.message_count} messages"
        )
    rest = leaders[len(RANK_BADGES):]
    if rest:
        lines.append(
            f"\U0001f4dc 6th-{len(leaders)}th: " + ", ".join(label(uid) for uid, _ in rest)
        )
    lines.extend(["", "Congratulations to everyone who participated!"])
    return "\n".join(lines)


def rotate_leader_role(
    users: dict[str, UserRecord],
    leaders: list[tuple[str, UserRecord]],
    settings: MessageLeaderSettings,
    tenant_id: str,
    winners: int = LEADER_ROLE_WINNERS,
) -> list[Command]:
    """Move the leader role to the top *winners* and credit their wins.

    Previous holders who did not win again lose the role.  Wins are counted
    even when no role is configured.
    """
    winner_ids = [user_id for user_id, _ in leaders[:winners]]
    commands: list[Command] = []

    for user_id, record in users.items():
        if record.holds_leader_role and user_id not in winner_ids:
            if settings.role_id:
                commands.append(RevokeRole(
                    tenant_id, user_id, settings.role_id, reason="Message leader rotation",
                ))
            record.holds_leader_role = False

    for user_id in winner_ids:
        record = users[user_id]
        record.message_leader_wins += 1
        if settings.role_id:
            commands.append(GrantRole(
                tenant_id, user_id, settings.role_id, reason="Weekly message leader",
            ))
            record.holds_leader_role = True

    return commands


def reset_weekly_counts(users: dict[str, UserRecord]) -> None:
    for record in users.values():
        record.message_count = 0
