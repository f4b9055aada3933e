"""
Violation kinds and the platform-neutral message the detectors run against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from automod.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID, UserID


class ViolationKind(Enum):
    """Closed set of automod detectors, in pipeline priority order."""

    NEW_ACCOUNT = "new_account"
    BANNED_WORD = "banned_word"
    INVITE_LINK = "invite_link"
    EXTERNAL_LINK = "external_link"
    MENTION_SPAM = "mention_spam"
    CAPS_SPAM = "caps_spam"
    SPAM = "spam"

    def __str__(self) -> str:
        return self.value

    @property
    def deletes_message(self) -> bool:
        """Whether the offending message is removed on this violation."""
        return self is not ViolationKind.NEW_ACCOUNT

    @property
    def stops_pipeline(self) -> bool:
        """Whether later detectors are skipped once this one fires."""
        return self is not ViolationKind.NEW_ACCOUNT

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass(frozen=True, slots=True)
class Violation:
    """A detector verdict.

    Attributes:
        kind: Which detector fired.
        reason: Reason text shown to the user and stored on the warning.
        detail: Kind-specific payload (matched word, mention count, caps percent, ...).
    """

    kind: ViolationKind
    reason: str
    detail: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AutomodMessage:
    """Everything the automod pipeline needs to know about one incoming message.

    ``guild_id`` is ``None`` for direct messages. ``author_created_at`` must be
    timezone aware.
    """

    guild_id: Optional[GuildID]
    channel_id: ChannelID
    message_id: Optional[MessageID]
    author_id: UserID
    author_display_name: str
    content: str = ""
    author_is_bot: bool = False
    author_is_admin: bool = False
    author_is_member: bool = True
    author_role_ids: Tuple[RoleID, ...] = ()
    author_created_at: Optional[datetime] = None
    mentioned_user_ids: Tuple[UserID, ...] = ()
    mentioned_role_ids: Tuple[RoleID, ...] = ()
    mentions_everyone: bool = False
