"""Gateway listener Cog for Voice Pruner.

This cog converts py-cord gateway callbacks into typed events and hands them to
the reconciliation dispatcher. It holds no state of its own.
"""

import discord
from discord.ext import commands

from voice_pruner.api.conversion import convert_channel, convert_member, convert_role
from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.event_datatypes import (
    ChannelDelete,
    ChannelUpsert,
    ConnectionLost,
    ConnectionReady,
    GatewayEvent,
    MemberRemove,
    MemberUpsert,
    RoleDelete,
    RoleUpsert,
    ServerAvailable,
    ServerRemove,
    ServerUpdate,
    Unrelated,
)
from voice_pruner.pruning.reconciliation import ReconciliationDispatcher
from voice_pruner.util.logger import get_logger

logger = get_logger("gateway_listener_cog")


class GatewayListenerCog(commands.Cog):
    """Cog translating guild, channel, role and member events for the dispatcher."""

    def __init__(self, discord_bot_instance, dispatcher: ReconciliationDispatcher):
        """Initialize the gateway listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        dispatcher:
            Dispatcher receiving the converted events.
        """
        self.bot = discord_bot_instance
        self.dispatcher = dispatcher
        logger.info("Gateway listener cog loaded")

    async def _submit(self, event: GatewayEvent) -> None:
        if not await self.dispatcher.submit(event):
            logger.debug("Dispatcher stopped; dropped %s", type(event).__name__)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Snapshot every guild the bot is in once the session is ready."""
        if self.bot.user:
            logger.info(f"Bot connected as {self.bot.user} (ID: {self.bot.user.id})")
        guild_ids = tuple(GuildID.from_object(guild) for guild in self.bot.guilds)
        logger.info(f"Synchronizing {len(guild_ids)} guild(s)")
        await self._submit(ConnectionReady(guild_ids=guild_ids))

    @commands.Cog.listener(name="on_resumed")
    async def on_resumed(self):
        await self._submit(ConnectionReady(guild_ids=tuple(GuildID.from_object(guild) for guild in self.bot.guilds)))

    @commands.Cog.listener(name="on_disconnect")
    async def on_disconnect(self):
        await self._submit(ConnectionLost())

    # ------------------------------------------------------------------
    # Guilds
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild):
        logger.info(f"Joined guild {guild.name} ({guild.id})")
        await self._submit(ServerAvailable(GuildID.from_object(guild)))

    @commands.Cog.listener(name="on_guild_available")
    async def on_guild_available(self, guild: discord.Guild):
        await self._submit(ServerAvailable(GuildID.from_object(guild)))

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild):
        logger.info(f"Removed from guild {guild.name} ({guild.id})")
        await self._submit(ServerRemove(GuildID.from_object(guild)))

    @commands.Cog.listener(name="on_guild_unavailable")
    async def on_guild_unavailable(self, guild: discord.Guild):
        await self._submit(ServerRemove(GuildID.from_object(guild)))

    @commands.Cog.listener(name="on_guild_update")
    async def on_guild_update(self, before: discord.Guild, after: discord.Guild):
        if before.owner_id != after.owner_id:
            await self._submit(ServerUpdate(GuildID.from_object(after), UserID(after.owner_id) if after.owner_id else None))
        else:
            await self._submit(Unrelated("guild_update"))

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_guild_channel_create")
    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel):
        await self._submit(ChannelUpsert(GuildID.from_object(channel.guild), convert_channel(channel)))

    @commands.Cog.listener(name="on_guild_channel_update")
    async def on_guild_channel_update(self, before: discord.abc.GuildChannel, after: discord.abc.GuildChannel):
        await self._submit(ChannelUpsert(GuildID.from_object(after.guild), convert_channel(after)))

    @commands.Cog.listener(name="on_guild_channel_delete")
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel):
        await self._submit(ChannelDelete(GuildID.from_object(channel.guild), ChannelID.from_object(channel)))

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_guild_role_create")
    async def on_guild_role_create(self, role: discord.Role):
        await self._submit(RoleUpsert(GuildID.from_object(role.guild), convert_role(role)))

    @commands.Cog.listener(name="on_guild_role_update")
    async def on_guild_role_update(self, before: discord.Role, after: discord.Role):
        await self._submit(RoleUpsert(GuildID.from_object(after.guild), convert_role(after)))

    @commands.Cog.listener(name="on_guild_role_delete")
    async def on_guild_role_delete(self, role: discord.Role):
        await self._submit(RoleDelete(GuildID.from_object(role.guild), RoleID.from_object(role)))

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member):
        await self._submit(MemberUpsert(GuildID.from_object(member.guild), convert_member(member)))

    @commands.Cog.listener(name="on_member_update")
    async def on_member_update(self, before: discord.Member, after: discord.Member):
        await self._submit(MemberUpsert(GuildID.from_object(after.guild), convert_member(after)))

    @commands.Cog.listener(name="on_member_remove")
    async def on_member_remove(self, member: discord.Member):
        await self._submit(MemberRemove(GuildID.from_object(member.guild), UserID.from_object(member)))


def setup(discord_bot_instance, dispatcher: ReconciliationDispatcher):
    """Register the GatewayListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    dispatcher:
        Dispatcher receiving the converted events.
    """
    discord_bot_instance.add_cog(GatewayListenerCog(discord_bot_instance, dispatcher))
