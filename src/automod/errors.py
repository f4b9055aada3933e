"""
Exception types raised by the automod core.

Only failures the caller is expected to act on are raised. Platform failures
(punishment, notification) are caught at the sink boundary and reported as
data; these classes exist so they can be logged and audited with a stable name.
"""

from __future__ import annotations


class AutomodError(Exception):
    """Base class for all automod errors."""


class ConfigInvalid(AutomodError):
    """A policy value could not be used as configured and was clamped."""

    def __init__(self, field: str, value: object, fallback: object) -> None:
        self.field = field
        self.value = value
        self.fallback = fallback
        super().__init__(f"Invalid value {value!r} for {field}; using {fallback!r}")


class RecordNotFound(AutomodError):
    """No warning with the given id exists for the author."""

    def __init__(self, guild_id: object, user_id: object, record_id: str) -> None:
        self.guild_id = guild_id
        self.user_id = user_id
        self.record_id = record_id
        super().__init__(f"Warning {record_id} not found for user {user_id} in guild {guild_id}")


class PunishmentFailed(AutomodError):
    """The platform rejected a mute, kick or ban."""


class NotificationFailed(AutomodError):
    """A transient notice or audit entry could not be delivered."""


class ThresholdOrderError(AutomodError):
    """Configured thresholds would break the mute < kick < ban ordering."""

    def __init__(self, lower: str, higher: str) -> None:
        self.lower = lower
        self.higher = higher
        super().__init__(f"{lower.capitalize()} threshold must be less than {higher} threshold.")
