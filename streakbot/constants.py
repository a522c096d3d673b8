"""
streakbot.constants — Shared Constants & Helpers
=================================================

Single source of truth for timing constants and the leveling formula.
Import from here instead of duplicating in cogs, services, and the engine.
"""

from __future__ import annotations

import sys

# ---------------------------------------------------------------------------
# Persisted layout
# ---------------------------------------------------------------------------
CONFIG_FILENAME = "config.json"
USER_DATABASE_FILENAME = "userDatabase.json"

# ---------------------------------------------------------------------------
# Progression timing
# ---------------------------------------------------------------------------
STREAK_COOLDOWN_MS = 3000          # min gap between streak-relevant updates
SPAM_WINDOW_MS = 2500              # duplicate-message window
SPAM_SIMILARITY_THRESHOLD = 0.85   # strictly greater than → spam

# Interactive configuration flows wait this long for a follow-up reply
CONFIG_FLOW_TIMEOUT_SECONDS = 15

# ---------------------------------------------------------------------------
# Tenant defaults (new tenants and backfill of old config files)
# ---------------------------------------------------------------------------
DEFAULT_STREAK_THRESHOLD = 4
DEFAULT_XP_PER_MESSAGE = 10
DEFAULT_LEVEL_MULTIPLIER = 1.5

# Accepted ranges for administrative edits
MIN_LEVEL_MULTIPLIER = 1.0
MAX_LEVEL_MULTIPLIER = 10.0
MAX_XP_PER_MESSAGE = 1_000
MAX_LEVEL = 1_000
MAX_TOTAL_XP = 10_000_000

# Largest single sleep handed to the event loop; longer delays are chained.
# Mirrors the 32-bit millisecond timer ceiling most hosts impose.
MAX_TIMER_SECONDS = 2_147_483_647 / 1000

# ---------------------------------------------------------------------------
# Leaderboard presentation
# ---------------------------------------------------------------------------
LEADERBOARD_SIZE = 10
LEADER_ROLE_WINNERS = 5
RANK_BADGES: list[str] = [
    "\U0001f3c6",  # 🏆
    "\U0001f948",  # 🥈
    "\U0001f949",  # 🥉
    "\U0001f396\ufe0f",  # 🎖️
    "\U0001f396\ufe0f",
]


# ---------------------------------------------------------------------------
# Leveling formula
# ---------------------------------------------------------------------------
XP_REQUIRED_CEILING = sys.maxsize


def xp_for_level(level: int, multiplier: float = DEFAULT_LEVEL_MULTIPLIER) -> int:
    """XP required to advance past *level*.

    Uses the exponential formula::

        required = floor(100 * (multiplier ** level))

    Never returns less than 1 so a level-up loop always terminates.  A
    result too large for a float saturates at ``XP_REQUIRED_CEILING``.
    """
    try:
        return max(1, int(100 * (multiplier ** level)))
    except OverflowError:
        return XP_REQUIRED_CEILING
