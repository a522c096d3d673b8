"""
streakbot.bot.__main__ — Entry point for ``python -m streakbot.bot``
====================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (process settings) and apply its log level.
3. Create the StreakBot and hand it the config.
4. Start the bot (blocking — runs the asyncio event loop).

Run with::

    python -m streakbot.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from streakbot.bot.core import StreakBot
from streakbot.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("streakbot")


def main() -> None:
    """Bootstrap and run the Streakbot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Process configuration.
    cfg = load_config()
    logging.getLogger().setLevel(cfg.log_level)
    logger.info("Config loaded — data dir: %s, timezone: %s", cfg.data_dir, cfg.timezone)

    # 3. Bot.
    bot = StreakBot(cfg)

    # 4. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Streakbot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
