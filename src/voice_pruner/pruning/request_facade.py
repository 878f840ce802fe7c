"""
Request facade: the operations behind the slash commands.

The facade turns user requests into state mirror queries and prune engine
runs. It never consults the exemption role; an operator asking for a prune
always gets one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.permission_datatypes import Permissions
from voice_pruner.errors import Forbidden, NotAVoiceChannel, NotFound, Unmonitored
from voice_pruner.permissions.calculator import guild_permissions
from voice_pruner.permissions.monitoring_policy import MonitoringPolicy
from voice_pruner.pruning.prune_engine import PruneEngine, PruneResult
from voice_pruner.state.state_mirror import ServerView, StateMirror
from voice_pruner.util.logger import get_logger

logger = get_logger("request_facade")

# Permission a user needs to run any Voice Pruner command.
MODERATOR_PERMISSION = Permissions.MOVE_MEMBERS


class ChannelFilter(Enum):
    ALL = "all"
    MONITORED = "monitored"
    UNMONITORED = "unmonitored"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ChannelSummary:
    channel_id: ChannelID
    name: str
    monitored: bool


class RequestFacade:
    """Read and prune operations scoped to the requesting guild."""

    def __init__(self, mirror: StateMirror, policy: MonitoringPolicy, engine: PruneEngine) -> None:
        self.mirror = mirror
        self.policy = policy
        self.engine = engine

    def _view(self, guild_id: GuildID) -> ServerView:
        view = self.mirror.get(guild_id)
        if view is None:
            raise NotFound(f"Guild {guild_id} is not synchronized yet")
        return view

    def require_moderator(self, guild_id: GuildID, user_id: UserID, permissions: Permissions | None = None) -> None:
        """Raise :class:`Forbidden` unless ``user_id`` holds ``MOVE_MEMBERS`` in the guild.

        ``permissions`` are the caller's permissions as reported by the
        interaction. When given they decide on their own, so a guild the mirror
        has not synchronized yet still gets a permission answer.
        """
        if permissions is None:
            permissions = guild_permissions(self._view(guild_id), user_id)
        if MODERATOR_PERMISSION not in permissions:
            raise Forbidden("Requires the `MOVE_MEMBERS` permission")

    def is_monitored(self, guild_id: GuildID, channel_id: ChannelID) -> bool:
        view = self._view(guild_id)
        if view.channel(channel_id) is None:
            raise NotFound(f"Channel {channel_id} is not part of guild {guild_id}")
        return self.policy.is_monitored(view, channel_id)

    def list_channels(self, guild_id: GuildID, channel_filter: ChannelFilter = ChannelFilter.ALL) -> List[ChannelSummary]:
        """Summaries of the guild's voice channels, in display order."""
        view = self._view(guild_id)
        summaries = [
            ChannelSummary(channel.id, channel.name, self.policy.is_monitored(view, channel.id))
            for channel in view.voice_channels()
        ]
        match channel_filter:
            case ChannelFilter.MONITORED:
                return [summary for summary in summaries if summary.monitored]
            case ChannelFilter.UNMONITORED:
                return [summary for summary in summaries if not summary.monitored]
            case _:
                return summaries

    async def prune_request(
        self,
        guild_id: GuildID,
        channel_id: ChannelID | None = None,
        role_id: RoleID | None = None,
    ) -> PruneResult:
        """Prune one channel, or every monitored voice channel when ``channel_id`` is omitted."""
        view = self._view(guild_id)
        if role_id is not None and not role_id.is_default_for(guild_id) and view.role(role_id) is None:
            raise NotFound(f"Role {role_id} is not part of guild {guild_id}")

        if channel_id is None:
            logger.info("[REQUEST] Manual prune of guild %s (role filter: %s)", guild_id, role_id)
            return await self.engine.prune_guild(guild_id, role_id)

        channel = view.channel(channel_id)
        if channel is None:
            raise NotFound(f"Channel {channel_id} is not part of guild {guild_id}")
        if not channel.is_voice:
            raise NotAVoiceChannel(f"Channel {channel_id} is not a voice channel")
        if not self.policy.is_monitored(view, channel_id):
            raise Unmonitored(f"Channel {channel_id} is unmonitored")
        logger.info("[REQUEST] Manual prune of channel %s in guild %s (role filter: %s)", channel_id, guild_id, role_id)
        return await self.engine.prune(guild_id, channel_id, role_id)
