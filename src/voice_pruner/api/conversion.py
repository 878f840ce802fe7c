"""
Conversion of py-cord objects into Voice Pruner entities.

Conversions only read public attributes, so any object with the same shape
(for example a test double) converts the same way.
"""

from __future__ import annotations

from typing import Iterable, Set

import discord

from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.guild_datatypes import Channel, ChannelKind, Member, Role, ServerState
from voice_pruner.datatypes.permission_datatypes import OverwriteKind, PermissionOverwrite, Permissions

_CHANNEL_KINDS = {
    discord.ChannelType.text: ChannelKind.TEXT,
    discord.ChannelType.news: ChannelKind.TEXT,
    discord.ChannelType.forum: ChannelKind.TEXT,
    discord.ChannelType.voice: ChannelKind.VOICE,
    discord.ChannelType.stage_voice: ChannelKind.STAGE,
    discord.ChannelType.category: ChannelKind.CATEGORY,
}


def channel_kind(channel_type: discord.ChannelType) -> ChannelKind:
    return _CHANNEL_KINDS.get(channel_type, ChannelKind.OTHER)


def convert_overwrites(channel: discord.abc.GuildChannel, role_ids: Set[int]) -> tuple[PermissionOverwrite, ...]:
    """Convert ``channel.overwrites`` into overwrite entities.

    Overwrite targets for uncached members arrive as ``discord.Object``, so the
    subject kind is decided by looking the ID up among the guild's roles.
    """
    overwrites = []
    for target, overwrite in channel.overwrites.items():
        allow, deny = overwrite.pair()
        kind = OverwriteKind.ROLE if target.id in role_ids else OverwriteKind.MEMBER
        subject_id = RoleID(target.id) if kind is OverwriteKind.ROLE else UserID(target.id)
        overwrites.append(
            PermissionOverwrite(
                subject_id=subject_id,
                kind=kind,
                allow=Permissions.from_value(allow.value),
                deny=Permissions.from_value(deny.value),
            )
        )
    overwrites.sort(key=lambda item: (item.kind.value, item.subject_id.to_int()))
    return tuple(overwrites)


def convert_channel(channel: discord.abc.GuildChannel, role_ids: Set[int] | None = None) -> Channel:
    if role_ids is None:
        role_ids = {role.id for role in channel.guild.roles}
    category_id = getattr(channel, "category_id", None)
    return Channel(
        id=ChannelID.from_object(channel),
        name=channel.name,
        kind=channel_kind(channel.type),
        parent_id=ChannelID(category_id) if category_id else None,
        position=channel.position,
        overwrites=convert_overwrites(channel, role_ids),
    )


def convert_role(role: discord.Role) -> Role:
    return Role(
        id=RoleID.from_object(role),
        name=role.name,
        permissions=Permissions.from_value(role.permissions.value),
        position=role.position,
    )


def convert_member(member: discord.Member) -> Member:
    """Convert a member, leaving out the implicit ``@everyone`` role."""
    guild_id = member.guild.id
    return Member(
        user_id=UserID.from_object(member),
        role_ids=frozenset(RoleID.from_object(role) for role in member.roles if role.id != guild_id),
    )


def convert_guild(guild: discord.Guild, members: Iterable[discord.Member] | None = None) -> ServerState:
    """Convert a fully chunked guild into a :class:`ServerState` snapshot."""
    role_ids = {role.id for role in guild.roles}
    return ServerState(
        guild_id=GuildID.from_object(guild),
        owner_id=UserID(guild.owner_id) if guild.owner_id else None,
        channels=[convert_channel(channel, role_ids) for channel in guild.channels],
        roles=[convert_role(role) for role in guild.roles],
        members=[convert_member(member) for member in (guild.members if members is None else members)],
    )
