"""
streakbot.bot.platform — discord.py PlatformClient
===================================================

Implements :class:`~streakbot.services.platform.PlatformClient` on top of a
running :class:`discord.Client`.  IDs arrive as strings (as stored on disk)
and are converted with ``int()`` here, at the edge.

discord.py exceptions are translated into the streakbot taxonomy:

* ``discord.Forbidden`` on a DM          → :class:`DmBlocked`
* ``discord.NotFound`` on a member fetch → :class:`MemberNotFound`
* any other ``discord.HTTPException``    → :class:`ExternalCallFailure`
"""

from __future__ import annotations

import logging

import discord

from streakbot.errors import DmBlocked, ExternalCallFailure, MemberNotFound
from streakbot.services.platform import MemberInfo

logger = logging.getLogger(__name__)

# Discord API error: "Cannot send messages to this user"
CANNOT_MESSAGE_USER = 50007


class DiscordPlatform:
    def __init__(self, client: discord.Client) -> None:
        self.client = client

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    def _guild(self, tenant_id: str) -> discord.Guild:
        guild = self.client.get_guild(int(tenant_id))
        if guild is None:
            raise ExternalCallFailure(f"Guild {tenant_id} is not available")
        return guild

    async def _member(self, guild: discord.Guild, user_id: str) -> discord.Member:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.NotFound as exc:
            raise MemberNotFound(str(guild.id), user_id) from exc
        except discord.HTTPException as exc:
            raise ExternalCallFailure(f"Failed to fetch member {user_id}: {exc}") from exc

    def _role(self, guild: discord.Guild, role_id: str) -> discord.Role:
        role = guild.get_role(int(role_id))
        if role is None:
            raise ExternalCallFailure(f"Role {role_id} not found in guild {guild.id}")
        return role

    def tenant_name(self, tenant_id: str) -> str:
        guild = self.client.get_guild(int(tenant_id))
        return guild.name if guild is not None else tenant_id

    async def fetch_member(self, tenant_id: str, user_id: str) -> MemberInfo:
        member = await self._member(self._guild(tenant_id), user_id)
        return MemberInfo(user_id=str(member.id), display_name=member.display_name)

    # -------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------
    async def grant_role(self, tenant_id: str, user_id: str, role_id: str, reason: str = "") -> None:
        guild = self._guild(tenant_id)
        role = self._role(guild, role_id)
        member = await self._member(guild, user_id)
        if role in member.roles:
            return
        try:
            await member.add_roles(role, reason=reason or None)
        except discord.HTTPException as exc:
            raise ExternalCallFailure(f"Failed to grant role {role_id} to {user_id}: {exc}") from exc
        logger.info("Granted role %s to %s in %s", role.name, member.display_name, guild.name)

    async def revoke_role(self, tenant_id: str, user_id: str, role_id: str, reason: str = "") -> None:
        guild = self._guild(tenant_id)
        role = self._role(guild, role_id)
        member = await self._member(guild, user_id)
        if role not in member.roles:
            return
        try:
            await member.remove_roles(role, reason=reason or None)
        except discord.HTTPException as exc:
            raise ExternalCallFailure(f"Failed to revoke role {role_id} from {user_id}: {exc}") from exc
        logger.info("Revoked role %s from %s in %s", role.name, member.display_name, guild.name)

    # -------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------
    async def send_message(
        self,
        tenant_id: str,
        channel_id: str,
        content: str,
        attachments: list[str] | None = None,
    ) -> None:
        guild = self._guild(tenant_id)
        channel = guild.get_channel(int(channel_id))
        if not isinstance(channel, discord.abc.Messageable):
            raise ExternalCallFailure(f"Channel {channel_id} is not a text channel in guild {tenant_id}")
        try:
            if attachments:
                await channel.send(content, files=[discord.File(path) for path in attachments])
            else:
                await channel.send(content)
        except discord.HTTPException as exc:
            raise ExternalCallFailure(f"Failed to send to channel {channel_id}: {exc}") from exc

    async def send_direct_message(self, user_id: str, content: str) -> None:
        user = self.client.get_user(int(user_id))
        try:
            if user is None:
                user = await self.client.fetch_user(int(user_id))
            await user.send(content)
        except discord.Forbidden as exc:
            if exc.code not in (0, CANNOT_MESSAGE_USER):
                logger.warning("Unexpected DM error for %s: %s", user_id, exc)
            raise DmBlocked(user_id) from exc
        except discord.HTTPException as exc:
            raise ExternalCallFailure(f"Failed to DM {user_id}: {exc}") from exc
