"""
Voice commands cog: inspect monitored voice channels and prune them on demand.

This module exposes three slash commands backed by :class:`RequestFacade`:
- /is-monitored: Check whether the bot monitors a voice channel
- /list all|monitored|unmonitored: List the guild's voice channels
- /prune: Remove members lacking permission to connect, from one channel or all

Every command requires the Move Members permission, only works inside a
server, and answers ephemerally.

Quick usage example
    from voice_pruner.bot.cogs import voice_cmds
    voice_cmds.setup(bot, facade)
"""

from typing import Awaitable, Callable, List

import discord
from discord import Option
from discord.ext import commands

from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.permission_datatypes import Permissions
from voice_pruner.errors import Forbidden, NotAVoiceChannel, NotFound, PartialFailure, Unmonitored
from voice_pruner.pruning.request_facade import ChannelFilter, ChannelSummary, RequestFacade
from voice_pruner.util.logger import get_logger

logger = get_logger("voice_cmds_cog")

WARNING = "⚠️"
BULLET_POINT = "•"

UNAVAILABLE_IN_DMS = f"{WARNING} **Unavailable in DMs**"
MISSING_PERMISSION = f"{WARNING} **Requires the `MOVE_MEMBERS` permission**"
INTERNAL_ERROR = "**Internal error**"
NOT_A_VOICE_CHANNEL = f"{WARNING} **Not a voice channel**"
UNMONITORED = "**Channel is unmonitored**"


def format_channel_list(channels: List[ChannelSummary]) -> str:
    if not channels:
        return "`None`"
    return "\n".join(f"`{BULLET_POINT} {channel.name}`" for channel in channels)


class VoiceCommandsCog(commands.Cog):
    """Slash commands for inspecting and pruning monitored voice channels."""

    list_group = discord.SlashCommandGroup("list", "List voice channels and whether they are monitored")

    def __init__(self, discord_bot_instance, facade: RequestFacade):
        """Store the bot and the request facade used by every command."""
        self.discord_bot_instance = discord_bot_instance
        self.facade = facade
        logger.info("Voice commands cog loaded")

    async def _run(
        self,
        ctx: discord.ApplicationContext,
        handler: Callable[[GuildID], Awaitable[str]],
        *,
        deferred: bool = False,
    ) -> None:
        """Run a command body with the shared guild, permission and error handling."""
        if ctx.guild_id is None:
            await self._reply(ctx, UNAVAILABLE_IN_DMS, deferred)
            return

        guild_id = GuildID(ctx.guild_id)
        try:
            self.facade.require_moderator(guild_id, UserID(ctx.user.id), self._caller_permissions(ctx))
            content = await handler(guild_id)
        except Forbidden:
            content = MISSING_PERMISSION
        except NotAVoiceChannel:
            content = NOT_A_VOICE_CHANNEL
        except Unmonitored:
            content = UNMONITORED
        except NotFound as exc:
            content = f"{WARNING} **{exc}**"
        except PartialFailure as exc:
            content = f"{WARNING} **{exc.detail}**"
        except Exception as exc:
            command_name = getattr(ctx.command, "name", "<unknown>")
            logger.error(f"Error in command '{command_name}': {exc}", exc_info=True)
            content = INTERNAL_ERROR

        await self._reply(ctx, content, deferred)

    def _caller_permissions(self, ctx: discord.ApplicationContext) -> Permissions | None:
        permissions = getattr(ctx.user, "guild_permissions", None)
        if permissions is None:
            return None
        return Permissions.from_value(permissions.value)

    async def _reply(self, ctx: discord.ApplicationContext, content: str, deferred: bool) -> None:
        if deferred:
            await ctx.send_followup(content, ephemeral=True)
        else:
            await ctx.respond(content, ephemeral=True)

    @commands.slash_command(name="is-monitored", description="Checks if a voice channel is monitored")
    async def is_monitored(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.VoiceChannel, "Returns `true` if the voice channel is monitored", required=True),  # type: ignore
    ) -> None:
        async def handler(guild_id: GuildID) -> str:
            return "`true`" if self.facade.is_monitored(guild_id, ChannelID(channel.id)) else "`false`"

        await self._run(ctx, handler)

    async def _list(self, ctx: discord.ApplicationContext, channel_filter: ChannelFilter) -> None:
        async def handler(guild_id: GuildID) -> str:
            return format_channel_list(self.facade.list_channels(guild_id, channel_filter))

        await self._run(ctx, handler)

    @list_group.command(name="all", description="List all voice channels")
    async def list_all(self, ctx: discord.ApplicationContext) -> None:
        await self._list(ctx, ChannelFilter.ALL)

    @list_group.command(name="monitored", description="List monitored voice channels")
    async def list_monitored(self, ctx: discord.ApplicationContext) -> None:
        await self._list(ctx, ChannelFilter.MONITORED)

    @list_group.command(name="unmonitored", description="List unmonitored voice channels")
    async def list_unmonitored(self, ctx: discord.ApplicationContext) -> None:
        await self._list(ctx, ChannelFilter.UNMONITORED)

    @commands.slash_command(name="prune", description="Prune users from voice channels")
    async def prune(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.VoiceChannel, "Only from this voice channel", required=False, default=None),  # type: ignore
        role: Option(discord.Role, "Only users with this role", required=False, default=None),  # type: ignore
    ) -> None:
        """Remove connected members lacking permission to connect.

        The response is deferred because removals can take a while on busy
        servers. Exemption from automatic pruning does not apply here.
        """
        await ctx.defer(ephemeral=True)

        async def handler(guild_id: GuildID) -> str:
            result = await self.facade.prune_request(
                guild_id,
                ChannelID(channel.id) if channel is not None else None,
                RoleID(role.id) if role is not None else None,
            )
            result.raise_for_errors()
            if result.attempted == 0:
                return "No members needed to be removed"
            return f"Removed {result.removed} member{'s' if result.removed != 1 else ''}"

        await self._run(ctx, handler, deferred=True)


def setup(discord_bot_instance, facade: RequestFacade):
    """Cog setup entry point.

    Registers the voice commands cog with the running bot instance.
    """
    discord_bot_instance.add_cog(VoiceCommandsCog(discord_bot_instance, facade))
