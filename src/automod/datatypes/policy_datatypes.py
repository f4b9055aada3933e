"""
Policy data structures for the automod core.

``AutomodOverrides`` is what a guild has configured (every field optional),
``EffectivePolicy`` is what a single message is evaluated against after the
overrides have been merged onto the global defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from automod.datatypes.discord_datatypes import ChannelID, RoleID


@dataclass(frozen=True, slots=True)
class Thresholds:
    """Active-warning counts that trigger each punishment rung.

    A value of ``None`` or ``0`` disables the rung.
    """

    mute: Optional[int] = None
    kick: Optional[int] = None
    ban: Optional[int] = None

    def as_dict(self) -> dict[str, Optional[int]]:
        return {"mute": self.mute, "kick": self.kick, "ban": self.ban}


@dataclass(slots=True)
class AutomodOverrides:
    """Partial automod configuration; ``None`` means inherit the global default."""

    enabled: Optional[bool] = None
    banned_words: list[str] = field(default_factory=list)
    filter_invites: Optional[bool] = None
    filter_links: Optional[bool] = None
    max_mentions: Optional[int] = None
    max_caps_percent: Optional[int] = None
    min_caps_length: Optional[int] = None
    min_account_age_days: Optional[int] = None
    spam_threshold: Optional[int] = None
    spam_interval_ms: Optional[int] = None
    exempt_channel_ids: list[ChannelID] = field(default_factory=list)
    exempt_role_ids: list[RoleID] = field(default_factory=list)
    thresholds: Optional[Thresholds] = None
    mute_duration_ms: Optional[int] = None


# Settings accepted by ``/automod set`` and ``GuildSettingsManager.update_automod``
BOOLEAN_SETTINGS = ("enabled", "filter_invites", "filter_links")
NUMERIC_SETTINGS = (
    "max_mentions",
    "max_caps_percent",
    "min_caps_length",
    "min_account_age_days",
    "spam_threshold",
    "spam_interval_ms",
)


@dataclass(frozen=True, slots=True)
class EffectivePolicy:
    """Fully resolved automod policy for one guild.

    Invariants: numeric fields are non-negative and ``max_caps_percent`` lies
    in ``[0, 100]``. Instances are immutable and safe to share between
    concurrent message evaluations.
    """

    enabled: bool
    banned_words: Tuple[str, ...]
    filter_invites: bool
    filter_links: bool
    max_mentions: int
    max_caps_percent: int
    min_caps_length: int
    min_account_age_days: int
    spam_threshold: int
    spam_interval_ms: int
    exempt_channel_ids: FrozenSet[ChannelID]
    exempt_role_ids: FrozenSet[RoleID]
    thresholds: Thresholds
    mute_duration_ms: int

    def is_channel_exempt(self, channel_id: ChannelID) -> bool:
        return ChannelID(channel_id) in self.exempt_channel_ids

    def has_exempt_role(self, role_ids) -> bool:
        return any(RoleID(role_id) in self.exempt_role_ids for role_id in role_ids)
