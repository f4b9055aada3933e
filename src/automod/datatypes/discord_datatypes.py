"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers but arrive as ints from the gateway and
as strings from storage or command options. The wrappers below normalise both
so they can be used interchangeably as keys of the per-guild and per-user maps
the automod core keeps.
"""

from __future__ import annotations

from typing import Union


class Snowflake:
    """
    Base class for Discord snowflake IDs.

    The value is stored as a string for JSON/SQLite parity and compares equal
    to the same id given as ``int``, ``str`` or another wrapper of the same type.

    Example:
        >>> gid = GuildID(123456789012345678)
        >>> gid.to_int()
        123456789012345678
        >>> gid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Initialize a snowflake from a string, int, or another wrapper.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls and SQL parameters."""
        return int(self._value)

    def __int__(self) -> int:
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class GuildID(Snowflake):
    """Snowflake of a guild (community)."""

    __slots__ = ()


class UserID(Snowflake):
    """Snowflake of a user or member."""

    __slots__ = ()


class ChannelID(Snowflake):
    """Snowflake of a text channel or thread."""

    __slots__ = ()


class RoleID(Snowflake):
    """Snowflake of a guild role."""

    __slots__ = ()


class MessageID(Snowflake):
    """Snowflake of a message."""

    __slots__ = ()
