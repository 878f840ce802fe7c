"""
In-memory mirror of every guild the bot can see.

Responsibilities:
- Bulk-load a guild from a :class:`ServerState` snapshot, replacing prior state
- Apply typed gateway events to exactly the entities they name
- Hand out immutable :class:`ServerView` snapshots to readers

All writes happen synchronously on the event loop thread, so two writes can
never interleave. Writes are copy-on-write: a reader that holds a view across
an ``await`` keeps seeing the state it started with.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping

from voice_pruner.datatypes.discord_datatypes import ChannelID, GuildID, RoleID, UserID
from voice_pruner.datatypes.event_datatypes import (
    ChannelDelete,
    ChannelUpsert,
    MemberRemove,
    MemberUpsert,
    MirrorEvent,
    RoleDelete,
    RoleUpsert,
    ServerRemove,
    ServerUpdate,
    event_guild_id,
)
from voice_pruner.datatypes.guild_datatypes import Channel, Member, Role, ServerState
from voice_pruner.util.logger import get_logger

logger = get_logger("state_mirror")


def _frozen(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class ServerView:
    """Read-only picture of one guild at a point in time."""

    guild_id: GuildID
    owner_id: UserID | None = None
    channels: Mapping[ChannelID, Channel] = field(default_factory=lambda: MappingProxyType({}))
    roles: Mapping[RoleID, Role] = field(default_factory=lambda: MappingProxyType({}))
    members: Mapping[UserID, Member] = field(default_factory=lambda: MappingProxyType({}))

    def channel(self, channel_id: ChannelID) -> Channel | None:
        return self.channels.get(channel_id)

    def role(self, role_id: RoleID) -> Role | None:
        return self.roles.get(role_id)

    def member(self, user_id: UserID) -> Member | None:
        return self.members.get(user_id)

    @property
    def default_role(self) -> Role | None:
        return self.roles.get(RoleID.default_for(self.guild_id))

    def voice_channels(self) -> List[Channel]:
        """Voice channels sorted the way Discord displays them."""
        channels = [channel for channel in self.channels.values() if channel.is_voice]
        return sorted(channels, key=lambda channel: (channel.position, channel.id.to_int()))

    def children_of(self, category_id: ChannelID) -> Iterator[Channel]:
        for channel in self.channels.values():
            if channel.parent_id == category_id:
                yield channel

    def roles_named(self, name: str) -> Iterator[Role]:
        for role in self.roles.values():
            if role.name == name:
                yield role


class StateMirror:
    """Owner of all cached guild state.

    Only the reconciliation dispatcher (for events) and the startup sync (for
    snapshots) write to the mirror. Everything else reads through :meth:`get`.
    """

    def __init__(self) -> None:
        self._views: Dict[GuildID, ServerView] = {}

    # --------------------------
    # Reads
    # --------------------------
    def get(self, guild_id: GuildID) -> ServerView | None:
        """Return the current view of a guild, or ``None`` before its snapshot completed."""
        return self._views.get(guild_id)

    def guild_ids(self) -> List[GuildID]:
        return list(self._views.keys())

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._views

    # --------------------------
    # Writes
    # --------------------------
    def snapshot(self, state: ServerState) -> ServerView:
        """Replace everything known about ``state.guild_id`` with ``state``."""
        view = ServerView(
            guild_id=state.guild_id,
            owner_id=state.owner_id,
            channels=_frozen({channel.id: channel for channel in state.channels}),
            roles=_frozen({role.id: role for role in state.roles}),
            members=_frozen({member.user_id: member for member in state.members}),
        )
        self._views[state.guild_id] = view
        logger.info("[STATE MIRROR] Loaded snapshot for %s", state.summary())
        return view

    def evict(self, guild_id: GuildID) -> bool:
        """Forget a guild entirely. Returns ``True`` if it was cached."""
        removed = self._views.pop(guild_id, None) is not None
        if removed:
            logger.info("[STATE MIRROR] Evicted guild %s", guild_id)
        return removed

    def apply(self, event: MirrorEvent) -> bool:
        """Apply a gateway event, returning ``True`` if the mirror changed.

        Events for guilds without a completed snapshot are expected during
        startup; they are logged and dropped.
        """
        guild_id = event_guild_id(event)
        if isinstance(event, ServerRemove):
            return self.evict(event.guild_id)

        view = self._views.get(guild_id) if guild_id is not None else None
        if view is None:
            logger.debug("[STATE MIRROR] Ignoring %s for unknown guild %s", type(event).__name__, guild_id)
            return False

        updated = self._updated_view(view, event)
        if updated is None or updated == view:
            return False

        self._views[view.guild_id] = updated
        return True

    def _updated_view(self, view: ServerView, event: MirrorEvent) -> ServerView | None:
        match event:
            case ChannelUpsert(channel=channel):
                return replace(view, channels=_frozen({**view.channels, channel.id: channel}))
            case ChannelDelete(channel_id=channel_id):
                if channel_id not in view.channels:
                    return None
                channels = dict(view.channels)
                del channels[channel_id]
                return replace(view, channels=_frozen(channels))
            case RoleUpsert(role=role):
                return replace(view, roles=_frozen({**view.roles, role.id: role}))
            case RoleDelete(role_id=role_id):
                if role_id not in view.roles:
                    return None
                roles = dict(view.roles)
                del roles[role_id]
                members = {
                    user_id: (replace(member, role_ids=member.role_ids - {role_id}) if role_id in member.role_ids else member)
                    for user_id, member in view.members.items()
                }
                return replace(view, roles=_frozen(roles), members=_frozen(members))
            case MemberUpsert(member=member):
                return replace(view, members=_frozen({**view.members, member.user_id: member}))
            case MemberRemove(user_id=user_id):
                if user_id not in view.members:
                    return None
                members = dict(view.members)
                del members[user_id]
                return replace(view, members=_frozen(members))
            case ServerUpdate(owner_id=owner_id):
                return replace(view, owner_id=owner_id)
            case _:
                logger.warning("[STATE MIRROR] Unsupported event %r", event)
                return None


