"""
Warning-count escalation.

``decide`` maps an active-warning count onto the punishment ladder. Rungs are
checked most severe first, so a count that has passed several thresholds at
once (for example after importing old warnings) gets the harshest applicable
punishment rather than the mildest.
"""

from __future__ import annotations

from typing import Optional

from automod.datatypes.action_datatypes import (
    SEVERITY_ORDER,
    ActionType,
    EscalationDecision,
    NextThresholdPreview,
)
from automod.datatypes.policy_datatypes import Thresholds


def rung_value(thresholds: Thresholds, action: ActionType) -> Optional[int]:
    """Return the configured count for a rung, or None when the rung is disabled."""
    value = getattr(thresholds, action.value, None)
    if not value or value <= 0:
        return None
    return value


def decide(active_count: int, thresholds: Thresholds) -> EscalationDecision:
    """Decide the punishment for ``active_count`` active warnings.

    Returns ban, kick or mute for the most severe rung that is configured and
    reached. Otherwise returns ``ActionType.NONE`` together with the smallest
    configured threshold above the count, if any.
    """
    for action in SEVERITY_ORDER:
        value = rung_value(thresholds, action)
        if value is not None and active_count >= value:
            return EscalationDecision(action)

    upcoming: list[tuple[int, ActionType]] = []
    for action in (ActionType.MUTE, ActionType.KICK, ActionType.BAN):
        value = rung_value(thresholds, action)
        if value is not None and value > active_count:
            upcoming.append((value, action))
    if not upcoming:
        return EscalationDecision(ActionType.NONE)

    value, action = min(upcoming, key=lambda pair: pair[0])
    return EscalationDecision(ActionType.NONE, NextThresholdPreview(action, value - active_count))


def punishment_reason(action: ActionType, active_count: int, latest_reason: str, *, automod: bool) -> str:
    """Audit-log reason attached to an automatic punishment."""
    verb = {ActionType.MUTE: "mute", ActionType.KICK: "kick", ActionType.BAN: "ban"}.get(action, str(action))
    if automod:
        return f"[AUTOMOD] Auto-{verb}: Reached {active_count} warnings"
    return f"Auto-{verb}: Reached {active_count} warnings. Latest: {latest_reason}"


def describe_thresholds(thresholds: Thresholds) -> dict[str, str]:
    """Human readable rung summary used by ``/warnconfig view``."""
    return {
        action.value: (f"{value} warnings" if (value := rung_value(thresholds, action)) else "Disabled")
        for action in (ActionType.MUTE, ActionType.KICK, ActionType.BAN)
    }
