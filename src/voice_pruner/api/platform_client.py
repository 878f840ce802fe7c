"""
Platform client: the remote calls the prune engine and dispatcher depend on.

:class:`PlatformClient` is the protocol the core is written against.
:class:`PycordPlatformClient` implements it on top of a running
:class:`discord.Bot`, relying on py-cord for HTTP retries and rate limits.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import List, Protocol

import discord

from voice_pruner.api.conversion import convert_guild
from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from voice_pruner.datatypes.guild_datatypes import ServerState
from voice_pruner.errors import PermissionDenied, StaleReference, TransientError
from voice_pruner.util.logger import get_logger

logger = get_logger("platform_client")

# Discord JSON error code for "Target user is not connected to voice".
TARGET_NOT_CONNECTED_CODE = 40032

DISCONNECT_REASON = "Lacks permission to connect to this voice channel"


class DisconnectOutcome(Enum):
    """Result of a single disconnect call."""

    REMOVED = "removed"
    NOT_CONNECTED = "not_connected"
    FORBIDDEN = "forbidden"
    TRANSIENT = "transient"

    def __str__(self) -> str:
        return self.value


class PlatformClient(Protocol):
    async def fetch_server_state(self, guild_id: GuildID) -> ServerState:
        """Return a full snapshot of a guild.

        Raises :class:`PermissionDenied` when the bot may not list members and
        :class:`TransientError` for any other failure.
        """
        ...

    async def fetch_voice_connections(self, guild_id: GuildID, channel_id: ChannelID) -> List[UserID]:
        """Return the users currently connected to a voice channel."""
        ...

    async def fetch_member_voice_channel(self, guild_id: GuildID, user_id: UserID) -> ChannelID | None:
        """Return the voice channel a user is connected to, or ``None``.

        Raises :class:`TransientError` when connectivity cannot be determined.
        """
        ...

    async def disconnect_member(self, guild_id: GuildID, user_id: UserID) -> DisconnectOutcome:
        ...


class PycordPlatformClient:
    """:class:`PlatformClient` backed by py-cord's gateway cache and HTTP client.

    Voice states are maintained by py-cord from the gateway, so reading them is
    a live query rather than a lookup in the state mirror.
    """

    def __init__(self, discord_bot_instance: discord.Bot) -> None:
        self.bot = discord_bot_instance

    def _guild(self, guild_id: GuildID) -> discord.Guild:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            raise StaleReference(f"Guild {guild_id} is not available")
        return guild

    async def fetch_server_state(self, guild_id: GuildID) -> ServerState:
        try:
            guild = self._guild(guild_id)
            if not guild.chunked:
                await guild.chunk(cache=True)
            return convert_guild(guild)
        except discord.Forbidden as exc:
            raise PermissionDenied(f"Missing access to members of guild {guild_id}: {exc}") from exc
        except (discord.HTTPException, OSError, asyncio.TimeoutError, StaleReference) as exc:
            raise TransientError(f"Could not fetch state of guild {guild_id}: {exc}") from exc

    async def fetch_voice_connections(self, guild_id: GuildID, channel_id: ChannelID) -> List[UserID]:
        try:
            guild = self._guild(guild_id)
        except StaleReference:
            return []
        channel = guild.get_channel(channel_id.to_int())
        if channel is None or channel.type != discord.ChannelType.voice:
            return []
        return [UserID(user_id) for user_id in channel.voice_states.keys()]

    async def fetch_member_voice_channel(self, guild_id: GuildID, user_id: UserID) -> ChannelID | None:
        try:
            guild = self._guild(guild_id)
        except StaleReference as exc:
            raise TransientError(str(exc)) from exc
        member = guild.get_member(user_id.to_int())
        if member is None:
            raise TransientError(f"Member {user_id} is not cached in guild {guild_id}")
        if member.voice is None or member.voice.channel is None:
            return None
        return ChannelID(member.voice.channel.id)

    async def disconnect_member(self, guild_id: GuildID, user_id: UserID) -> DisconnectOutcome:
        try:
            guild = self._guild(guild_id)
        except StaleReference:
            return DisconnectOutcome.NOT_CONNECTED

        member = guild.get_member(user_id.to_int())
        try:
            if member is None:
                member = await guild.fetch_member(user_id.to_int())
            if member.voice is None or member.voice.channel is None:
                return DisconnectOutcome.NOT_CONNECTED
            await member.move_to(None, reason=DISCONNECT_REASON)
            return DisconnectOutcome.REMOVED
        except discord.NotFound:
            return DisconnectOutcome.NOT_CONNECTED
        except discord.Forbidden:
            logger.warning("[PLATFORM] Missing permission to disconnect %s in guild %s", user_id, guild_id)
            return DisconnectOutcome.FORBIDDEN
        except discord.HTTPException as exc:
            if exc.code == TARGET_NOT_CONNECTED_CODE:
                return DisconnectOutcome.NOT_CONNECTED
            logger.warning("[PLATFORM] Failed to disconnect %s in guild %s: %s", user_id, guild_id, exc)
            return DisconnectOutcome.TRANSIENT
        except (OSError, asyncio.TimeoutError) as exc:
            logger.warning("[PLATFORM] Network error disconnecting %s in guild %s: %s", user_id, guild_id, exc)
            return DisconnectOutcome.TRANSIENT
