"""
Type-safe wrapper classes for Discord identifiers.

This module provides type-safe wrappers for Discord snowflake IDs so that a
guild ID can never be passed where a channel or role ID is expected.
"""

from __future__ import annotations

from typing import TypeVar, Union

import discord

SnowflakeT = TypeVar("SnowflakeT", bound="Snowflake")


class Snowflake:
    """
    Base wrapper for Discord snowflake IDs.

    Discord snowflakes are 64-bit integers, but are often transmitted as strings
    for JSON compatibility. Instances accept either form. They compare equal to
    plain ints carrying the same value, hashing the same way, but never to
    strings or to a snowflake of a different kind.

    Example:
        >>> gid = GuildID("123456789012345678")
        >>> gid.to_int()
        123456789012345678
        >>> str(gid)
        '123456789012345678'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Initialize from a string, int, or another snowflake of the same kind.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, Snowflake):
            if not isinstance(value, type(self)):
                raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}")
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = value
        elif isinstance(value, str):
            self._value = int(value.strip())
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")
        if self._value < 0:
            raise ValueError(f"Snowflakes cannot be negative: {self._value}")

    @classmethod
    def from_object(cls: type[SnowflakeT], obj: discord.abc.Snowflake) -> SnowflakeT:
        """Create an ID from any Discord object exposing ``id``."""
        return cls(obj.id)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return self._value

    def __str__(self) -> str:
        return str(self._value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class GuildID(Snowflake):
    """Type-safe wrapper for Discord guild (server) snowflake IDs."""

    __slots__ = ()


class ChannelID(Snowflake):
    """Type-safe wrapper for Discord channel snowflake IDs."""

    __slots__ = ()


class RoleID(Snowflake):
    """
    Type-safe wrapper for Discord role snowflake IDs.

    The ``@everyone`` role of a guild shares the guild's ID; use
    :meth:`default_for` and :meth:`is_default_for` instead of comparing raw ints.
    """

    __slots__ = ()

    @classmethod
    def default_for(cls, guild_id: GuildID) -> "RoleID":
        """Return the ID of the ``@everyone`` role of ``guild_id``."""
        return cls(guild_id.to_int())

    def is_default_for(self, guild_id: GuildID) -> bool:
        return self._value == guild_id.to_int()


class UserID(Snowflake):
    """Type-safe wrapper for Discord user snowflake IDs."""

    __slots__ = ()
