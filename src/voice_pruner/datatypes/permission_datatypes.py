"""
Permission bitfield and overwrite datatypes.

Bit values match Discord's permission integers so raw values from the API and
from py-cord's ``Permissions.value`` can be used without translation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag

from voice_pruner.datatypes.discord_datatypes import RoleID, Snowflake, UserID


class Permissions(IntFlag):
    """Discord permission bits."""

    CREATE_INSTANT_INVITE = 1 << 0
    KICK_MEMBERS = 1 << 1
    BAN_MEMBERS = 1 << 2
    ADMINISTRATOR = 1 << 3
    MANAGE_CHANNELS = 1 << 4
    MANAGE_GUILD = 1 << 5
    ADD_REACTIONS = 1 << 6
    VIEW_AUDIT_LOG = 1 << 7
    PRIORITY_SPEAKER = 1 << 8
    STREAM = 1 << 9
    VIEW_CHANNEL = 1 << 10
    SEND_MESSAGES = 1 << 11
    SEND_TTS_MESSAGES = 1 << 12
    MANAGE_MESSAGES = 1 << 13
    EMBED_LINKS = 1 << 14
    ATTACH_FILES = 1 << 15
    READ_MESSAGE_HISTORY = 1 << 16
    MENTION_EVERYONE = 1 << 17
    USE_EXTERNAL_EMOJIS = 1 << 18
    VIEW_GUILD_INSIGHTS = 1 << 19
    CONNECT = 1 << 20
    SPEAK = 1 << 21
    MUTE_MEMBERS = 1 << 22
    DEAFEN_MEMBERS = 1 << 23
    MOVE_MEMBERS = 1 << 24
    USE_VAD = 1 << 25
    CHANGE_NICKNAME = 1 << 26
    MANAGE_NICKNAMES = 1 << 27
    MANAGE_ROLES = 1 << 28
    MANAGE_WEBHOOKS = 1 << 29
    MANAGE_GUILD_EXPRESSIONS = 1 << 30
    USE_APPLICATION_COMMANDS = 1 << 31
    REQUEST_TO_SPEAK = 1 << 32
    MANAGE_EVENTS = 1 << 33
    MANAGE_THREADS = 1 << 34
    CREATE_PUBLIC_THREADS = 1 << 35
    CREATE_PRIVATE_THREADS = 1 << 36
    USE_EXTERNAL_STICKERS = 1 << 37
    SEND_MESSAGES_IN_THREADS = 1 << 38
    USE_EMBEDDED_ACTIVITIES = 1 << 39
    MODERATE_MEMBERS = 1 << 40

    @classmethod
    def none(cls) -> "Permissions":
        return cls(0)

    @classmethod
    def all(cls) -> "Permissions":
        value = 0
        for member in cls:
            value |= member.value
        return cls(value)

    @classmethod
    def from_value(cls, value: int) -> "Permissions":
        """Build a bitfield from a raw integer, dropping bits this enum does not name."""
        return cls(int(value) & cls.all().value)


class OverwriteKind(Enum):
    """Subject of a permission overwrite."""

    ROLE = "role"
    MEMBER = "member"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class PermissionOverwrite:
    """An explicit allow/deny exception for one role or member on one channel.

    Attributes:
        subject_id: Role or user the overwrite applies to.
        kind: Whether ``subject_id`` is a role or a member.
        allow: Bits explicitly granted.
        deny: Bits explicitly revoked.
    """

    subject_id: Snowflake
    kind: OverwriteKind
    allow: Permissions = Permissions(0)
    deny: Permissions = Permissions(0)

    @classmethod
    def for_role(cls, role_id: RoleID, *, allow: Permissions = Permissions(0), deny: Permissions = Permissions(0)) -> "PermissionOverwrite":
        return cls(subject_id=role_id, kind=OverwriteKind.ROLE, allow=allow, deny=deny)

    @classmethod
    def for_member(cls, user_id: UserID, *, allow: Permissions = Permissions(0), deny: Permissions = Permissions(0)) -> "PermissionOverwrite":
        return cls(subject_id=user_id, kind=OverwriteKind.MEMBER, allow=allow, deny=deny)

    def apply(self, permissions: Permissions) -> Permissions:
        """Apply deny bits then allow bits to ``permissions``."""
        return (permissions & ~self.deny) | self.allow
