"""
Warning records kept by the violation ledger.

Records are created by ``/warn`` or by an automod violation and are never
deleted; clearing a warning only flips ``active`` and stamps the clear
metadata so the full history stays available for audit.
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from automod.datatypes.discord_datatypes import GuildID, UserID

_ID_ALPHABET = string.digits + string.ascii_lowercase


class WarningSource(Enum):
    """Where a warning came from."""

    MANUAL = "manual"
    AUTOMOD = "automod"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class ActorRef:
    """The user (or bot) that issued or cleared a warning."""

    id: int
    display_name: str

    @classmethod
    def from_user(cls, user) -> "ActorRef":
        """Build from any object with ``id`` and a display name (discord.User, Member, ClientUser)."""
        name = getattr(user, "display_name", None) or getattr(user, "name", None) or str(user.id)
        return cls(id=int(user.id), display_name=str(name))


@dataclass(frozen=True, slots=True)
class WarningRecord:
    """A single warning issued to a user in a guild.

    Attributes:
        id: Opaque id, unique within the (guild, user) scope.
        guild_id: Guild the warning belongs to.
        user_id: Warned user.
        reason: Human readable reason shown to moderators.
        issued_by: Moderator or bot that issued it.
        issued_at: UTC timestamp of creation.
        active: False once cleared.
        source: Manual command or automod.
        violation_type: Detector kind for automod warnings.
        cleared_by / cleared_at / clear_reason: Set when deactivated.
    """

    id: str
    guild_id: GuildID
    user_id: UserID
    reason: str
    issued_by: ActorRef
    issued_at: datetime
    active: bool = True
    source: WarningSource = WarningSource.MANUAL
    violation_type: Optional[str] = None
    cleared_by: Optional[ActorRef] = None
    cleared_at: Optional[datetime] = None
    clear_reason: Optional[str] = None


def generate_warning_id() -> str:
    """Return ``"<epoch-ms>-<9 random base36 chars>"``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def new_warning(
    guild_id: GuildID,
    user_id: UserID,
    reason: str,
    issued_by: ActorRef,
    *,
    source: WarningSource = WarningSource.MANUAL,
    violation_type: Optional[str] = None,
    issued_at: datetime | None = None,
) -> WarningRecord:
    """Create an active warning with a fresh id."""
    return WarningRecord(
        id=generate_warning_id(),
        guild_id=GuildID(guild_id),
        user_id=UserID(user_id),
        reason=reason,
        issued_by=issued_by,
        issued_at=issued_at or datetime.now(timezone.utc),
        source=source,
        violation_type=violation_type,
    )
