"""
Typed gateway events consumed by the reconciliation dispatcher.

The gateway cog converts py-cord callbacks into these variants so that the
dispatcher and the state mirror never see Discord objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple, Union

from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.guild_datatypes import Channel, Member, Role


@dataclass(frozen=True, slots=True)
class ChannelUpsert:
    """A channel was created or updated."""

    guild_id: GuildID
    channel: Channel


@dataclass(frozen=True, slots=True)
class ChannelDelete:
    guild_id: GuildID
    channel_id: ChannelID


@dataclass(frozen=True, slots=True)
class RoleUpsert:
    """A role was created or updated."""

    guild_id: GuildID
    role: Role


@dataclass(frozen=True, slots=True)
class RoleDelete:
    guild_id: GuildID
    role_id: RoleID


@dataclass(frozen=True, slots=True)
class MemberUpsert:
    """A member joined or had their roles changed."""

    guild_id: GuildID
    member: Member


@dataclass(frozen=True, slots=True)
class MemberRemove:
    guild_id: GuildID
    user_id: UserID


@dataclass(frozen=True, slots=True)
class ServerUpdate:
    """Guild-level fields changed; only ownership matters for permissions."""

    guild_id: GuildID
    owner_id: UserID | None


@dataclass(frozen=True, slots=True)
class ServerRemove:
    """The bot left the guild or the guild was deleted."""

    guild_id: GuildID


@dataclass(frozen=True, slots=True)
class ServerAvailable:
    """The bot joined a guild or a guild became available again."""

    guild_id: GuildID


@dataclass(frozen=True, slots=True)
class ConnectionReady:
    """The gateway session is (re)established for ``guild_ids``."""

    guild_ids: Tuple[GuildID, ...]


@dataclass(frozen=True, slots=True)
class ConnectionLost:
    """The gateway session dropped; cached state may have missed events."""


@dataclass(frozen=True, slots=True)
class Unrelated:
    """Any gateway event without bearing on permissions."""

    name: str


MirrorEvent = Union[
    ChannelUpsert,
    ChannelDelete,
    RoleUpsert,
    RoleDelete,
    MemberUpsert,
    MemberRemove,
    ServerUpdate,
    ServerRemove,
]

GatewayEvent = Union[
    MirrorEvent,
    ServerAvailable,
    ConnectionReady,
    ConnectionLost,
    Unrelated,
]


def event_guild_id(event: GatewayEvent) -> GuildID | None:
    """Return the guild an event belongs to, if it belongs to exactly one."""
    return getattr(event, "guild_id", None)
