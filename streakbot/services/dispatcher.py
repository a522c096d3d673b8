"""
streakbot.services.dispatcher — Execute Engine Commands
========================================================

Runs the commands returned by the engine against a
:class:`~streakbot.services.platform.PlatformClient`, in order.  Each
command is isolated: a failure is logged and the rest still run, because
the state they describe has already been saved.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from streakbot.engine.commands import (
    Command,
    GrantRole,
    RevokeRole,
    SendDirectMessage,
    SendMessage,
)
from streakbot.errors import DmBlocked, ExternalCallFailure
from streakbot.services.platform import PlatformClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchResult:
    executed: int = 0
    failed: int = 0
    fallbacks: int = 0


async def _execute(platform: PlatformClient, command: Command) -> bool:
    """Run one command.  Returns True when a DM fallback was used."""
    if isinstance(command, GrantRole):
        await platform.grant_role(command.tenant_id, command.user_id, command.role_id, command.reason)
    elif isinstance(command, RevokeRole):
        await platform.revoke_role(command.tenant_id, command.user_id, command.role_id, command.reason)
    elif isinstance(command, SendMessage):
        await platform.send_message(
            command.tenant_id, command.channel_id, command.content,
            list(command.attachments) or None,
        )
    elif isinstance(command, SendDirectMessage):
        try:
            await platform.send_direct_message(command.user_id, command.content)
        except DmBlocked:
            logger.warning("User %s has DMs disabled or has blocked the bot", command.user_id)
            if not (command.fallback_channel_id and command.fallback_content):
                return False
            await platform.send_message(
                command.tenant_id, command.fallback_channel_id, command.fallback_content,
            )
            return True
    else:
        raise TypeError(f"Unknown command: {command!r}")
    return False


async def dispatch(platform: PlatformClient, commands: Iterable[Command]) -> DispatchResult:
    result = DispatchResult()
    for command in commands:
        try:
            if await _execute(platform, command):
                result.fallbacks += 1
            result.executed += 1
        except Exception as exc:
            result.failed += 1
            failure = exc if isinstance(exc, ExternalCallFailure) else ExternalCallFailure(str(exc))
            logger.exception(
                "Command %s failed: %s", type(command).__name__, failure,
                extra={"command": type(command).__name__,
                       "tenant_id": getattr(command, "tenant_id", None)},
            )
    return result
