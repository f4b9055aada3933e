"""
Punishment actions and the decisions and outcomes built around them.

This module defines the ActionType enum used by the escalation engine and the
small result types the orchestrator hands back to callers and to the audit log.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from automod.datatypes.violation_datatypes import Violation


class ActionType(Enum):
    """Escalation rungs, least to most severe."""

    NONE = "none"
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"

    def __str__(self) -> str:
        return self.value

    @property
    def past_tense(self) -> str:
        return {
            ActionType.NONE: "not punished",
            ActionType.MUTE: "muted",
            ActionType.KICK: "kicked",
            ActionType.BAN: "banned",
        }[self]


# Most severe first; escalation checks rungs in this order.
SEVERITY_ORDER = (ActionType.BAN, ActionType.KICK, ActionType.MUTE)


@dataclass(frozen=True, slots=True)
class NextThresholdPreview:
    """The next rung a user will reach and how many more warnings it takes."""

    action: ActionType
    remaining: int


@dataclass(frozen=True, slots=True)
class EscalationDecision:
    """Result of evaluating an active-warning count against the thresholds."""

    action: ActionType
    next_threshold: Optional[NextThresholdPreview] = None

    @property
    def punishes(self) -> bool:
        return self.action is not ActionType.NONE


@dataclass(frozen=True, slots=True)
class PunishmentResult:
    """Outcome of one mute/kick/ban attempt against the platform.

    ``applied`` is False when the platform rejected the call or the member
    could not be punished; ``detail`` explains why.
    """

    action: ActionType
    applied: bool
    detail: str = ""


@dataclass(slots=True)
class WarningOutcome:
    """What ``issue_warning`` did: the warning stored and what escalation followed."""

    warning_id: str
    active_count: int
    decision: EscalationDecision
    punishment: Optional[PunishmentResult] = None


@dataclass(slots=True)
class ModerationOutcome:
    """Summary of one orchestrator run for a single message."""

    skipped: Optional[str] = None
    violations: List[Violation] = field(default_factory=list)
    warnings: List[WarningOutcome] = field(default_factory=list)
    message_deleted: bool = False
    failed: bool = False

    @property
    def violated(self) -> bool:
        return bool(self.violations)


@dataclass(frozen=True, slots=True)
class AutomodNotice:
    """Short-lived in-channel notice telling an author their message was flagged."""

    user_id: int
    reason: str
    active_count: int


@dataclass(slots=True)
class AuditEntry:
    """One mod-log entry.

    Attributes:
        action: What happened ("automod", "warn", "clearwarnings", ...).
        target_id / target_name: The user acted on.
        moderator_name: Moderator or bot responsible.
        reason: Reason shown in the log.
        extra: Additional ordered name -> value fields.
    """

    action: str
    target_id: int
    target_name: str
    moderator_name: str
    reason: str
    extra: Dict[str, str] = field(default_factory=dict)
