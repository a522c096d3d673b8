"""
streakbot.services.platform — Chat Platform Collaborator
=========================================================

The services only ever talk to Discord through this protocol.  The real
implementation lives in :mod:`streakbot.bot.platform`; tests pass an
``AsyncMock``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class MemberInfo:
    user_id: str
    display_name: str


class PlatformClient(Protocol):
    async def grant_role(self, tenant_id: str, user_id: str, role_id: str, reason: str = "") -> None:
        ...

    async def revoke_role(self, tenant_id: str, user_id: str, role_id: str, reason: str = "") -> None:
        ...

    async def send_message(
        self,
        tenant_id: str,
        channel_id: str,
        content: str,
        attachments: list[str] | None = None,
    ) -> None:
        ...

    async def send_direct_message(self, user_id: str, content: str) -> None:
        """Raises :class:`~streakbot.errors.DmBlocked` when DMs are closed."""
        ...

    async def fetch_member(self, tenant_id: str, user_id: str) -> MemberInfo:
        """Raises :class:`~streakbot.errors.MemberNotFound`."""
        ...

    def tenant_name(self, tenant_id: str) -> str:
        ...
