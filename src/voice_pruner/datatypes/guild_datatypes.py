"""
Guild entities cached by the state mirror.

Entities are frozen: the mirror replaces an entity wholesale on every update
instead of patching individual fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Tuple

from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.permission_datatypes import OverwriteKind, PermissionOverwrite, Permissions


class ChannelKind(Enum):
    """Channel types the bot distinguishes between."""

    TEXT = "text"
    VOICE = "voice"
    STAGE = "stage"
    CATEGORY = "category"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


# Only plain voice channels are monitored; stage channels have their own speaker model.
MONITORED_CHANNEL_KINDS: FrozenSet[ChannelKind] = frozenset({ChannelKind.VOICE})


@dataclass(frozen=True, slots=True)
class Channel:
    """A guild channel and its permission overwrites."""

    id: ChannelID
    name: str
    kind: ChannelKind
    parent_id: ChannelID | None = None
    position: int = 0
    overwrites: Tuple[PermissionOverwrite, ...] = ()

    @property
    def is_voice(self) -> bool:
        return self.kind in MONITORED_CHANNEL_KINDS

    def role_overwrite(self, role_id: RoleID) -> PermissionOverwrite | None:
        for overwrite in self.overwrites:
            if overwrite.kind is OverwriteKind.ROLE and overwrite.subject_id == role_id:
                return overwrite
        return None

    def member_overwrite(self, user_id: UserID) -> PermissionOverwrite | None:
        for overwrite in self.overwrites:
            if overwrite.kind is OverwriteKind.MEMBER and overwrite.subject_id == user_id:
                return overwrite
        return None


@dataclass(frozen=True, slots=True)
class Role:
    """A guild role with its base permissions."""

    id: RoleID
    name: str
    permissions: Permissions = Permissions(0)
    position: int = 0


@dataclass(frozen=True, slots=True)
class Member:
    """A guild member and the roles they hold.

    ``role_ids`` never contains the ``@everyone`` role; every member holds it
    implicitly.
    """

    user_id: UserID
    role_ids: FrozenSet[RoleID] = frozenset()

    def has_role(self, role_id: RoleID, guild_id: GuildID) -> bool:
        return role_id.is_default_for(guild_id) or role_id in self.role_ids


@dataclass(slots=True)
class ServerState:
    """Full state of one guild as returned by a bulk snapshot."""

    guild_id: GuildID
    owner_id: UserID | None = None
    channels: list[Channel] = field(default_factory=list)
    roles: list[Role] = field(default_factory=list)
    members: list[Member] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"guild {self.guild_id}: "
            f"{len(self.channels)} channels, "
            f"{len(self.roles)} roles, "
            f"{len(self.members)} members"
        )
