"""
Effective permission resolution.

Resolution order, each step overriding the previous one bit by bit:

0. Guild owner and ``ADMINISTRATOR`` holders get every permission.
1. Base permissions: union of ``@everyone`` and every held role.
2. Category overwrites, when the channel sits in a cached category.
3. Channel role overwrites: ``@everyone`` first, then the combined deny and
   allow bits of all other held roles.
4. The member's own overwrite on the channel.

Steps 2 and 3 apply deny bits before allow bits. Within the combined role
step a deny from one role and an allow from another cancel out in favour of
the deny.
"""

from __future__ import annotations

from voice_pruner.datatypes.discord_datatypes import ChannelID, RoleID, UserID
from voice_pruner.datatypes.guild_datatypes import Channel, Member
from voice_pruner.datatypes.permission_datatypes import Permissions
from voice_pruner.state.state_mirror import ServerView


def base_permissions(view: ServerView, member: Member) -> Permissions:
    """Return the guild-wide permissions of ``member`` before any overwrite."""
    permissions = Permissions.none()
    default_role = view.default_role
    if default_role is not None:
        permissions |= default_role.permissions

    for role_id in member.role_ids:
        role = view.role(role_id)
        if role is not None:
            permissions |= role.permissions

    return permissions


def _is_superuser(view: ServerView, member: Member, base: Permissions) -> bool:
    return member.user_id == view.owner_id or Permissions.ADMINISTRATOR in base


def apply_role_overwrites(view: ServerView, member: Member, channel: Channel, permissions: Permissions) -> Permissions:
    """Apply the ``@everyone`` overwrite, then the combined overwrites of held roles."""
    everyone = channel.role_overwrite(RoleID.default_for(view.guild_id))
    if everyone is not None:
        permissions = everyone.apply(permissions)

    deny = Permissions.none()
    allow = Permissions.none()
    for role_id in member.role_ids:
        overwrite = channel.role_overwrite(role_id)
        if overwrite is not None:
            deny |= overwrite.deny
            allow |= overwrite.allow

    # A deny from any role wins over an allow from another role.
    allow &= ~deny
    return (permissions & ~deny) | allow


def apply_member_overwrite(member: Member, channel: Channel, permissions: Permissions) -> Permissions:
    overwrite = channel.member_overwrite(member.user_id)
    if overwrite is None:
        return permissions
    return overwrite.apply(permissions)


def member_permissions(view: ServerView, member: Member, channel: Channel) -> Permissions:
    """Compute the effective permissions of a cached member in a cached channel."""
    permissions = base_permissions(view, member)
    if _is_superuser(view, member, permissions):
        return Permissions.all()

    if channel.parent_id is not None:
        parent = view.channel(channel.parent_id)
        if parent is not None:
            permissions = apply_role_overwrites(view, member, parent, permissions)

    permissions = apply_role_overwrites(view, member, channel, permissions)
    return apply_member_overwrite(member, channel, permissions)


def effective(view: ServerView, user_id: UserID, channel_id: ChannelID) -> Permissions:
    """Return the effective permissions of ``user_id`` in ``channel_id``.

    Unknown members and channels have no permissions at all.
    """
    member = view.member(user_id)
    channel = view.channel(channel_id)
    if member is None or channel is None:
        return Permissions.none()
    return member_permissions(view, member, channel)


def guild_permissions(view: ServerView, user_id: UserID) -> Permissions:
    """Return the guild-level permissions of ``user_id`` (no channel overwrites)."""
    member = view.member(user_id)
    if member is None:
        return Permissions.none()
    permissions = base_permissions(view, member)
    if _is_superuser(view, member, permissions):
        return Permissions.all()
    return permissions
