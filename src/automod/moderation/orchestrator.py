"""
Automod pipeline: runs one incoming message through exemption checks, the
detectors, the warning ledger and the escalation engine, then performs the
resulting side effects (delete, punish, audit, notice).

Platform calls are best-effort. Each one is bounded by a timeout and any
failure is logged; a failed delete or punishment never undoes the warning that
was already recorded, and nothing is raised back to the event handler.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from automod.configuration.guild_settings import GuildSettingsManager
from automod.datatypes.action_datatypes import (
    ActionType,
    AuditEntry,
    AutomodNotice,
    ModerationOutcome,
    PunishmentResult,
    WarningOutcome,
)
from automod.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from automod.datatypes.policy_datatypes import EffectivePolicy
from automod.datatypes.violation_datatypes import AutomodMessage, Violation, ViolationKind
from automod.datatypes.warning_datatypes import ActorRef, WarningSource, new_warning
from automod.errors import NotificationFailed, PunishmentFailed
from automod.moderation import escalation
from automod.moderation.detectors import detect_account_age, detect_content
from automod.moderation.rate_tracker import RateTracker
from automod.moderation.warning_ledger import WarningLedger
from automod.util.keyed_lock import KeyedLock
from automod.util.logger import get_logger

if TYPE_CHECKING:
    from automod.util.discord_utils import NotificationSink, PunishmentSink

logger = get_logger("automod_orchestrator")

AUTOMOD_REASON_PREFIX = "[AUTOMOD] "

# Skip reasons reported on ModerationOutcome.skipped
SKIP_NO_GUILD = "no_guild"
SKIP_BOT_AUTHOR = "bot_author"
SKIP_DISABLED = "disabled"
SKIP_EXEMPT_CHANNEL = "exempt_channel"
SKIP_NOT_MEMBER = "not_member"
SKIP_ADMIN = "admin"
SKIP_EXEMPT_ROLE = "exempt_role"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def describe_punishment(result: Optional[PunishmentResult]) -> str:
    """Audit-log text for the punishment column."""
    if result is None:
        return "None"
    if result.applied:
        return result.action.past_tense
    detail = f" ({result.detail})" if result.detail else ""
    return f"{result.action.value} attempted, not applied{detail}"


class AutomodOrchestrator:
    """
    Coordinates detectors, rate tracking, the warning ledger and escalation.

    Args:
        settings: Source of the effective policy per guild.
        ledger: Warning store.
        rate_tracker: Burst-spam tracker; its cleanup task is owned by the caller.
        punishments: Sink that mutes, kicks and bans.
        notifications: Sink for transient notices and audit entries.
        bot_actor: Identity stamped on automod warnings.
        clock: Returns the current UTC time; overridable for tests.
        notice_ttl_seconds: How long the in-channel notice stays up.
        call_timeout: Seconds allowed for each outbound platform call.
    """

    def __init__(
        self,
        settings: GuildSettingsManager,
        ledger: WarningLedger,
        rate_tracker: RateTracker,
        punishments: "PunishmentSink",
        notifications: "NotificationSink",
        bot_actor: ActorRef,
        *,
        clock: Callable[[], datetime] = _utcnow,
        notice_ttl_seconds: float = 10.0,
        call_timeout: float = 10.0,
    ) -> None:
        self.settings = settings
        self.ledger = ledger
        self.rate_tracker = rate_tracker
        self.punishments = punishments
        self.notifications = notifications
        self.bot_actor = bot_actor
        self.clock = clock
        self.notice_ttl_seconds = notice_ttl_seconds
        self.call_timeout = call_timeout
        self._locks = KeyedLock()

    # ==========================================
    # Message pipeline
    # ==========================================

    def _skip_reason(self, message: AutomodMessage, policy: Optional[EffectivePolicy]) -> Optional[str]:
        if message.guild_id is None:
            return SKIP_NO_GUILD
        if message.author_is_bot:
            return SKIP_BOT_AUTHOR
        if policy is None or not policy.enabled:
            return SKIP_DISABLED
        if policy.is_channel_exempt(message.channel_id):
            return SKIP_EXEMPT_CHANNEL
        if not message.author_is_member:
            return SKIP_NOT_MEMBER
        if message.author_is_admin:
            return SKIP_ADMIN
        if policy.has_exempt_role(message.author_role_ids):
            return SKIP_EXEMPT_ROLE
        return None

    async def handle_message(
        self,
        message: AutomodMessage,
        *,
        delete_message: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> ModerationOutcome:
        """
        Evaluate one message and act on the first violation found.

        Args:
            message: Platform-neutral view of the message.
            delete_message: Coroutine factory removing the original message; only
                called for violations that delete.

        Returns:
            What happened, for logging and tests. Never raises.
        """
        outcome = ModerationOutcome()
        policy = None
        if message.guild_id is not None and not message.author_is_bot:
            policy = self.settings.get_effective_policy(message.guild_id)

        skipped = self._skip_reason(message, policy)
        if skipped:
            outcome.skipped = skipped
            return outcome

        now = self.clock()

        age_violation = detect_account_age(message, policy, now)
        if age_violation is not None:
            await self._run_step("account age", message, outcome,
                                 self._handle_violation(message, policy, age_violation, delete_message, outcome))
            if age_violation.kind.stops_pipeline:
                return outcome

        await self._run_step("content", message, outcome,
                             self._check_content(message, policy, now, delete_message, outcome))
        return outcome

    async def _run_step(self, step: str, message: AutomodMessage, outcome: ModerationOutcome, call: Awaitable[Any]) -> None:
        """Await one pipeline step; a failure is logged and later steps still run."""
        try:
            await call
        except Exception:
            logger.exception(
                "[AUTOMOD] %s check failed for message %s of user %s in guild %s",
                step.capitalize(), message.message_id, message.author_id, message.guild_id,
            )
            outcome.failed = True

    async def _check_content(
        self,
        message: AutomodMessage,
        policy: EffectivePolicy,
        now: datetime,
        delete_message: Optional[Callable[[], Awaitable[Any]]],
        outcome: ModerationOutcome,
    ) -> None:
        violation = detect_content(message, policy)
        if violation is None and policy.spam_threshold > 0:
            violation = await self._check_rate(message, policy, now)
        if violation is not None:
            await self._handle_violation(message, policy, violation, delete_message, outcome)

    async def _check_rate(self, message: AutomodMessage, policy: EffectivePolicy, now: datetime) -> Optional[Violation]:
        burst = await self.rate_tracker.record_and_check(
            message.guild_id,
            message.author_id,
            now.timestamp() * 1000,
            policy.spam_threshold,
            policy.spam_interval_ms,
        )
        if not burst:
            return None
        return Violation(
            ViolationKind.SPAM,
            f"Sent {policy.spam_threshold}+ messages in {policy.spam_interval_ms / 1000:g}s",
            {"threshold": policy.spam_threshold, "interval_ms": policy.spam_interval_ms},
        )

    async def _handle_violation(
        self,
        message: AutomodMessage,
        policy: EffectivePolicy,
        violation: Violation,
        delete_message: Optional[Callable[[], Awaitable[Any]]],
        outcome: ModerationOutcome,
    ) -> None:
        outcome.violations.append(violation)
        logger.info(
            "[AUTOMOD] %s violation by %s (%s) in guild %s",
            violation.kind, message.author_display_name, message.author_id, message.guild_id,
        )

        deleted = False
        if violation.kind.deletes_message and delete_message is not None:
            deleted = bool(await self._best_effort(delete_message(), "delete message", message.message_id))
            outcome.message_deleted = outcome.message_deleted or deleted

        warning = await self.issue_warning(
            message.guild_id,
            message.author_id,
            AUTOMOD_REASON_PREFIX + violation.reason,
            self.bot_actor,
            source=WarningSource.AUTOMOD,
            violation_type=violation.kind.value,
            policy=policy,
        )
        outcome.warnings.append(warning)

        await self.audit(
            message.guild_id,
            AuditEntry(
                action="automod",
                target_id=int(message.author_id),
                target_name=message.author_display_name,
                moderator_name=self.bot_actor.display_name,
                reason=violation.reason,
                extra={
                    "Violation Type": violation.kind.value,
                    "Message Deleted": "Yes" if deleted else "No",
                    "Channel": f"<#{message.channel_id}>",
                    "Warning Count": str(warning.active_count),
                    "Auto-Punishment": describe_punishment(warning.punishment),
                },
            ),
        )
        await self.post_notice(
            message.channel_id,
            AutomodNotice(user_id=int(message.author_id), reason=violation.reason, active_count=warning.active_count),
        )

    # ==========================================
    # Warnings and escalation
    # ==========================================

    async def issue_warning(
        self,
        guild_id: GuildID,
        user_id: UserID,
        reason: str,
        issued_by: ActorRef,
        *,
        source: WarningSource = WarningSource.MANUAL,
        violation_type: Optional[str] = None,
        policy: Optional[EffectivePolicy] = None,
    ) -> WarningOutcome:
        """
        Record a warning, then escalate if the new active count reaches a threshold.

        The (guild, user) lock is held from the append through the punishment
        attempt so concurrent warnings for one user are counted one at a time
        and each count triggers at most one punishment.

        Raises:
            Exception: Storage failures propagate; platform failures do not.
        """
        guild_id, user_id = GuildID(guild_id), UserID(user_id)
        policy = policy or self.settings.get_effective_policy(guild_id)
        record = new_warning(
            guild_id,
            user_id,
            reason,
            issued_by,
            source=source,
            violation_type=violation_type,
            issued_at=self.clock(),
        )

        async with self._locks.hold((guild_id, user_id)):
            await self.ledger.append(guild_id, user_id, record)
            active_count = await self.ledger.count_active(guild_id, user_id)
            decision = escalation.decide(active_count, policy.thresholds)

            punishment = None
            if decision.punishes:
                punishment = await self._punish(
                    guild_id,
                    user_id,
                    decision.action,
                    escalation.punishment_reason(
                        decision.action, active_count, reason, automod=source is WarningSource.AUTOMOD
                    ),
                    policy.mute_duration_ms,
                )

        logger.debug(
            "[AUTOMOD] Warning %s for user %s in guild %s: %d active, decision %s",
            record.id, user_id, guild_id, active_count, decision.action,
        )
        return WarningOutcome(record.id, active_count, decision, punishment)

    async def _punish(
        self, guild_id: GuildID, user_id: UserID, action: ActionType, reason: str, mute_duration_ms: int
    ) -> PunishmentResult:
        if action is ActionType.BAN:
            call = self.punishments.ban(guild_id, user_id, reason)
        elif action is ActionType.KICK:
            call = self.punishments.kick(guild_id, user_id, reason)
        else:
            call = self.punishments.mute(guild_id, user_id, mute_duration_ms, reason)

        try:
            result = await asyncio.wait_for(call, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            result = PunishmentResult(action, False, "timed out")
        except Exception as exc:
            result = PunishmentResult(action, False, str(exc) or type(exc).__name__)

        if result.applied:
            logger.info("[AUTOMOD] User %s %s in guild %s", user_id, action.past_tense, guild_id)
        else:
            logger.warning("[AUTOMOD] %s", PunishmentFailed(f"Auto-{action} of user {user_id} in guild {guild_id}: {result.detail}"))
        return result

    # ==========================================
    # Notifications
    # ==========================================

    async def audit(self, guild_id: GuildID, entry: AuditEntry) -> bool:
        """Post an audit entry; failures are logged and reported as False."""
        return bool(await self._best_effort(
            self.notifications.audit_log(GuildID(guild_id), entry), "audit log", guild_id, notification=True
        ))

    async def post_notice(self, channel_id: ChannelID, notice: AutomodNotice) -> bool:
        """Post the self-deleting automod notice; failures are logged and reported as False."""
        return bool(await self._best_effort(
            self.notifications.post_transient_notice(ChannelID(channel_id), notice, self.notice_ttl_seconds),
            "transient notice",
            channel_id,
            notification=True,
        ))

    async def _best_effort(self, call: Awaitable[Any], what: str, target: Any, *, notification: bool = False) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            detail = "timed out"
        except Exception as exc:
            detail = str(exc) or type(exc).__name__

        if notification:
            logger.warning("[AUTOMOD] %s", NotificationFailed(f"{what} for {target} failed: {detail}"))
        else:
            logger.warning("[AUTOMOD] Failed to %s %s: %s", what, target, detail)
        return None

