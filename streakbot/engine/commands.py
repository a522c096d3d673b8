"""
streakbot.engine.commands — Side-Effect Commands
=================================================

The engine never talks to Discord.  State transitions return a list of
these small frozen dataclasses instead, and
:mod:`streakbot.services.dispatcher` executes them after the new state has
been saved.  IDs are strings throughout, as they are on disk.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GrantRole:
    tenant_id: str
    user_id: str
    role_id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class RevokeRole:
    tenant_id: str
    user_id: str
    role_id: str
    reason: str = ""


@dataclass(frozen=True, slots=True)
class SendMessage:
    tenant_id: str
    channel_id: str
    content: str
    attachments: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SendDirectMessage:
    """DM a user; if DMs are blocked, post *fallback_content* in a channel."""

    tenant_id: str
    user_id: str
    content: str
    fallback_channel_id: str | None = None
    fallback_content: str | None = None


Command = GrantRole | RevokeRole | SendMessage | SendDirectMessage
