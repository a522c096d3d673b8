"""
Streakbot — Daily Streaks, Levels & Activity Reports for Discord
=================================================================
Tracks message activity per guild, awards daily streak credit and
experience levels, syncs milestone roles, and posts weekly/monthly
activity reports.  Every guild keeps its own pair of JSON documents on
disk, so there is no database server to run.

Package layout::

    streakbot/
    ├── config.py          # YAML → typed process config
    ├── constants.py       # Timing constants + leveling formula
    ├── errors.py          # Error taxonomy
    ├── database/
    │   ├── store.py       # Atomic JSON documents, per-path write queue, repair
    │   ├── models.py      # TenantConfig / UserRecord dataclasses
    │   ├── migrations.py  # Versioned record + config upgrades
    │   └── tenants.py     # Per-guild layout, initialization, typed load/save
    ├── engine/
    │   ├── commands.py    # Side-effect commands (grant, revoke, send)
    │   ├── progression.py # Streak / level state machine + daily reset
    │   ├── spam.py        # Short-window duplicate-message filter
    │   ├── retention.py   # Date-range retention math
    │   └── reports.py     # Weekly / monthly summaries + leaderboard
    ├── services/
    │   ├── platform.py             # PlatformClient protocol
    │   ├── dispatcher.py           # Executes commands against the platform
    │   ├── progression_service.py  # Load → mutate → save per tenant
    │   ├── report_service.py       # Scheduled batch jobs per tenant
    │   ├── scheduler.py            # Wall-clock recurring job runner
    │   └── config_flow.py          # Timed interactive config state machine
    └── bot/
        ├── core.py        # Bot subclass, cog loader
        ├── platform.py    # discord.py PlatformClient implementation
        └── cogs/
            ├── activity.py    # on_message → progression pipeline
            ├── membership.py  # join / leave lifecycle
            ├── admin.py       # /config, /edit-user-data, /retention
            └── tasks.py       # Scheduler start/stop
"""

__version__ = "0.1.0"
