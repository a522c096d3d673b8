"""
streakbot.config — YAML Configuration Loader
=============================================

**Why this file exists:**
This module reads ``config.yaml`` for **process-wide** settings (where the
tenant databases live, when the scheduled jobs fire, log level).  All
per-community tuning (thresholds, XP, milestone roles, report channels)
lives in each tenant's ``config.json`` and is edited through the
configuration operations in :mod:`streakbot.services.progression_service`.

Usage::

    from streakbot.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.data_dir)          # "databases"
    print(cfg.daily_reset_time)  # datetime.time(0, 0)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml


# ---------------------------------------------------------------------------
# Typed settings object: infrastructure only.
# Per-tenant tuning lives in <data_dir>/<tenant>/config.json.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StreakbotConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Discord
    bot_prefix: str

    # Storage
    data_dir: Path

    # Scheduling (all times are wall-clock in ``timezone``)
    timezone: ZoneInfo
    daily_reset_time: time
    weekly_report_weekday: int  # Monday=0 … Sunday=6
    weekly_report_time: time
    monthly_report_interval_days: int

    # Logging
    log_level: str = "INFO"


def _parse_time(raw: str | None, default: time) -> time:
    if not raw:
        return default
    hour, _, minute = str(raw).partition(":")
    return time(int(hour), int(minute or 0))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> StreakbotConfig:
    """Read *path* and return a :class:`StreakbotConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``weekly_report_weekday`` is outside 0–6.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    weekday = int(raw.get("weekly_report_weekday", 6))
    if not 0 <= weekday <= 6:
        raise ValueError(
            f"weekly_report_weekday must be between 0 and 6, got {weekday}"
        )

    return StreakbotConfig(
        bot_prefix=raw["bot_prefix"],
        data_dir=Path(raw["data_dir"]),
        timezone=ZoneInfo(raw.get("timezone") or "UTC"),
        daily_reset_time=_parse_time(raw.get("daily_reset_time"), time(0, 0)),
        weekly_report_weekday=weekday,
        weekly_report_time=_parse_time(raw.get("weekly_report_time"), time(18, 0)),
        monthly_report_interval_days=int(raw.get("monthly_report_interval_days", 30)),
        log_level=str(raw.get("log_level", "INFO")).upper(),
    )
