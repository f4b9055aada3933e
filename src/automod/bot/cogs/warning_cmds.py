"""
Warning cog: manual warnings and the escalation configuration.

Commands
- /warn: record a warning; escalation is applied by the orchestrator exactly
  as for automod warnings
- /warnings: list a user's warnings
- /clearwarnings: deactivate one warning by id, or all active ones
- /warnconfig view|set|setmuteduration|reset: per-guild thresholds

Design notes and expectations
- Commands require the Moderate Members permission (/warnconfig requires
  Manage Server) and reply to the invoker; errors are reported ephemerally.
- Warnings are never deleted. Clearing only marks them inactive, so the full
  history stays visible with ``show_inactive``.
"""

from typing import List

import discord
from discord import Option
from discord.ext import commands

from automod.configuration.app_configuration import app_config
from automod.datatypes.action_datatypes import ActionType, AuditEntry, WarningOutcome
from automod.datatypes.warning_datatypes import ActorRef, WarningRecord, WarningSource
from automod.errors import RecordNotFound, ThresholdOrderError
from automod.moderation.escalation import describe_thresholds
from automod.moderation.orchestrator import AutomodOrchestrator, describe_punishment
from automod.util.format_utils import format_duration, parse_duration
from automod.util.logger import get_logger

logger = get_logger("warning_cog")

# Embed field limits keep /warnings readable
MAX_LISTED_WARNINGS = 10

THRESHOLD_ACTION_CHOICES = [
    discord.OptionChoice(name="Mute", value="mute"),
    discord.OptionChoice(name="Kick", value="kick"),
    discord.OptionChoice(name="Ban", value="ban"),
]


def build_warn_embed(user: discord.abc.User, moderator: discord.abc.User, reason: str, outcome: WarningOutcome, dm_sent: bool) -> discord.Embed:
    """Reply shown to the moderator after /warn."""
    embed = discord.Embed(
        title="[SUCCESS] User Warned",
        description=f"{user} has been warned.",
        color=discord.Color.orange(),
        timestamp=discord.utils.utcnow(),
    )
    embed.add_field(name="User", value=f"{user} ({user.id})", inline=True)
    embed.add_field(name="Moderator", value=str(moderator), inline=True)
    embed.add_field(name="Reason", value=reason, inline=False)
    embed.add_field(name="Total Warnings", value=str(outcome.active_count), inline=True)
    embed.add_field(name="Warning ID", value=outcome.warning_id, inline=True)
    embed.add_field(name="DM Sent", value="Yes" if dm_sent else "No", inline=True)

    if outcome.punishment is not None:
        if outcome.punishment.applied:
            value = f"User has been **{outcome.punishment.action.past_tense}** for reaching {outcome.active_count} warnings."
        else:
            value = f"Auto-{outcome.punishment.action} was attempted but not applied ({outcome.punishment.detail})."
        embed.add_field(name="⚠️ Auto-Punishment", value=value, inline=False)
    elif outcome.decision.next_threshold is not None:
        preview = outcome.decision.next_threshold
        embed.add_field(
            name="Next Threshold",
            value=f"{preview.action} at {outcome.active_count + preview.remaining} warnings ({preview.remaining} more)",
            inline=False,
        )
    return embed


def build_warnings_embed(user: discord.abc.User, records: List[WarningRecord], show_inactive: bool) -> discord.Embed:
    """Most recent warnings first; cleared ones are struck through."""
    active_count = sum(1 for record in records if record.active)
    shown = records if show_inactive else [record for record in records if record.active]

    embed = discord.Embed(
        title=f"Warnings for {user}",
        description=(
            f"**User ID:** {user.id}\n"
            f"**Active Warnings:** {active_count}\n"
            f"**Total on Record:** {len(records)}"
        ),
        color=discord.Color.orange(),
        timestamp=discord.utils.utcnow(),
    )

    recent = list(reversed(shown[-MAX_LISTED_WARNINGS:]))
    for index, record in enumerate(recent):
        strike = "" if record.active else "~~"
        label = "" if record.active else " [CLEARED]"
        embed.add_field(
            name=f"{strike}Warning #{len(shown) - index}{label}{strike}",
            value="\n".join([
                f"**ID:** `{record.id}`",
                f"**Reason:** {record.reason}",
                f"**Moderator:** {record.issued_by.display_name or 'Unknown'}",
                f"**Date:** <t:{int(record.issued_at.timestamp())}:F>",
            ]),
            inline=False,
        )

    if len(shown) > MAX_LISTED_WARNINGS:
        embed.add_field(
            name="Note",
            value=f"Showing {len(recent)} of {len(shown)} warnings (most recent first).",
            inline=False,
        )
    hidden = len(records) - active_count
    if not show_inactive and hidden:
        embed.add_field(
            name="Hidden Warnings",
            value=f"{hidden} cleared warning(s) not shown. Use `show_inactive:True` to view.",
            inline=False,
        )
    return embed


class WarningCog(commands.Cog):
    """Slash commands around the warning ledger."""

    warnconfig = discord.SlashCommandGroup(
        "warnconfig",
        "Configure warning thresholds.",
        default_member_permissions=discord.Permissions(manage_guild=True),
        guild_only=True,
    )

    def __init__(self, discord_bot_instance, orchestrator: AutomodOrchestrator):
        self.discord_bot_instance = discord_bot_instance
        self.orchestrator = orchestrator
        logger.info("Warning cog loaded")

    async def _ensure_permission(self, ctx: discord.ApplicationContext, permission_name: str) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        permissions = getattr(ctx.user, "guild_permissions", None)
        if not getattr(permissions, permission_name, False):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return False
        return True

    async def _dm_warning(self, user: discord.Member, guild: discord.Guild, reason: str, outcome: WarningOutcome) -> bool:
        embed = discord.Embed(
            title=f"⚠️ Warning in {guild.name}",
            description="You have been warned by a moderator.",
            color=discord.Color.orange(),
            timestamp=discord.utils.utcnow(),
        )
        embed.add_field(name="Reason", value=reason, inline=False)
        embed.add_field(name="Total Warnings", value=str(outcome.active_count), inline=True)
        embed.add_field(name="Warning ID", value=outcome.warning_id, inline=True)
        embed.set_footer(text="Please follow the server rules to avoid further action.")
        try:
            await user.send(embed=embed)
            return True
        except discord.HTTPException:
            logger.info("Could not DM user %s about warning", user)
            return False

    @commands.slash_command(name="warn", description="Issue a warning to a user.")
    async def warn(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The user to warn.", required=True),  # type: ignore
        reason: Option(str, "The reason for the warning.", required=True),  # type: ignore
    ):
        """Record a manual warning and apply any escalation it triggers."""
        if not await self._ensure_permission(ctx, "moderate_members"):
            return
        if not isinstance(user, discord.Member):
            await ctx.respond("This user is not a member of the server.", ephemeral=True)
            return
        if user.bot:
            await ctx.respond("You cannot warn bots.", ephemeral=True)
            return
        if user.id == ctx.user.id:
            await ctx.respond("You cannot warn yourself.", ephemeral=True)
            return

        await ctx.defer()
        try:
            outcome = await self.orchestrator.issue_warning(
                ctx.guild_id, user.id, reason, ActorRef.from_user(ctx.user), source=WarningSource.MANUAL
            )
        except Exception:
            logger.exception("Failed to warn user %s in guild %s", user.id, ctx.guild_id)
            await ctx.followup.send("An error occurred while processing the command.", ephemeral=True)
            return

        # The user may already be gone after an automatic kick or ban
        dm_sent = False
        if app_config.dm_on_warn and (outcome.punishment is None or outcome.punishment.action is ActionType.MUTE):
            dm_sent = await self._dm_warning(user, ctx.guild, reason, outcome)

        await ctx.followup.send(embed=build_warn_embed(user, ctx.user, reason, outcome, dm_sent))
        await self.orchestrator.audit(
            ctx.guild_id,
            AuditEntry(
                action="warn",
                target_id=user.id,
                target_name=str(user),
                moderator_name=str(ctx.user),
                reason=reason,
                extra={
                    "Warning Count": str(outcome.active_count),
                    "Warning ID": outcome.warning_id,
                    "Auto-Punishment": describe_punishment(outcome.punishment),
                },
            ),
        )
        logger.info("[MODERATION] %s warned %s in guild %s (%d active)", ctx.user, user, ctx.guild_id, outcome.active_count)

    @commands.slash_command(name="warnings", description="View warnings for a user.")
    async def warnings(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to check warnings for.", required=True),  # type: ignore
        show_inactive: Option(bool, "Include cleared warnings.", default=False),  # type: ignore
    ):
        if not await self._ensure_permission(ctx, "moderate_members"):
            return
        records = await self.orchestrator.ledger.list_warnings(ctx.guild_id, user.id, include_inactive=True)
        if not records or (not show_inactive and not any(record.active for record in records)):
            description = (
                f"{user} has no warnings on record."
                if show_inactive or not records
                else f"{user} has no active warnings. Use `show_inactive:True` to see cleared warnings."
            )
            await ctx.respond(embed=discord.Embed(
                title="No Warnings Found", description=description, color=discord.Color.green(),
            ))
            return
        await ctx.respond(embed=build_warnings_embed(user, records, show_inactive))

    @commands.slash_command(name="clearwarnings", description="Clear warnings for a user.")
    async def clearwarnings(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to clear warnings for.", required=True),  # type: ignore
        warning_id: Option(str, "Specific warning ID to clear (leave empty to clear all).", default=None),  # type: ignore
        reason: Option(str, "Reason for clearing the warning(s).", default="No reason provided"),  # type: ignore
    ):
        if not await self._ensure_permission(ctx, "moderate_members"):
            return
        ledger = self.orchestrator.ledger
        cleared_by = ActorRef.from_user(ctx.user)

        cleared_record = None
        if warning_id:
            try:
                cleared_record = await ledger.clear_one(ctx.guild_id, user.id, warning_id.strip(), cleared_by, reason)
            except RecordNotFound:
                await ctx.respond(
                    f"Could not find warning with ID `{warning_id}` for {user}. "
                    f"Use `/warnings` to see all warning IDs.",
                    ephemeral=True,
                )
                return
            cleared_count = 1
        else:
            cleared_count = await ledger.clear_all(ctx.guild_id, user.id, cleared_by, reason)
            if cleared_count == 0:
                await ctx.respond(f"{user} has no active warnings to clear.", ephemeral=True)
                return

        remaining = await ledger.count_active(ctx.guild_id, user.id)
        embed = discord.Embed(
            title="[SUCCESS] Warnings Cleared",
            description=(
                f"Cleared warning `{warning_id}` for {user}."
                if warning_id
                else f"Cleared all {cleared_count} active warning(s) for {user}."
            ),
            color=discord.Color.green(),
            timestamp=discord.utils.utcnow(),
        )
        embed.add_field(name="User", value=f"{user} ({user.id})", inline=True)
        embed.add_field(name="Cleared By", value=str(ctx.user), inline=True)
        embed.add_field(name="Warnings Cleared", value=str(cleared_count), inline=True)
        embed.add_field(name="Reason", value=reason, inline=False)
        if cleared_record is not None:
            embed.add_field(
                name="Cleared Warning Details",
                value="\n".join([
                    f"**Original Reason:** {cleared_record.reason}",
                    f"**Issued By:** {cleared_record.issued_by.display_name}",
                    f"**Issued:** <t:{int(cleared_record.issued_at.timestamp())}:R>",
                ]),
                inline=False,
            )
        embed.add_field(name="Remaining Active Warnings", value=str(remaining), inline=True)
        await ctx.respond(embed=embed)

        await self.orchestrator.audit(
            ctx.guild_id,
            AuditEntry(
                action="clearwarnings",
                target_id=user.id,
                target_name=str(user),
                moderator_name=str(ctx.user),
                reason=reason,
                extra={
                    "Warnings Cleared": str(cleared_count),
                    "Warning ID": warning_id or "All active",
                    "Remaining": str(remaining),
                },
            ),
        )
        logger.info("[MODERATION] %d warning(s) cleared for %s by %s", cleared_count, user, ctx.user)

    # --- /warnconfig ---
    @warnconfig.command(name="view", description="View the current warning configuration.")
    async def warnconfig_view(self, ctx: discord.ApplicationContext):
        if not await self._ensure_permission(ctx, "manage_guild"):
            return
        policy = self.orchestrator.settings.get_effective_policy(ctx.guild_id)
        rungs = describe_thresholds(policy.thresholds)
        embed = discord.Embed(
            title="Warning Configuration",
            description=f"Current warning thresholds for {ctx.guild.name}",
            color=discord.Color.blue(),
        )
        embed.add_field(name="🔇 Auto-Mute Threshold", value=rungs["mute"], inline=True)
        embed.add_field(name="👢 Auto-Kick Threshold", value=rungs["kick"], inline=True)
        embed.add_field(name="🔨 Auto-Ban Threshold", value=rungs["ban"], inline=True)
        embed.add_field(name="⏱️ Auto-Mute Duration", value=format_duration(policy.mute_duration_ms), inline=True)
        embed.add_field(
            name="How it works",
            value="When a user reaches the warning threshold, the corresponding punishment is automatically applied.",
            inline=False,
        )
        embed.set_footer(text="Use /warnconfig set to modify thresholds")
        await ctx.respond(embed=embed)

    @warnconfig.command(name="set", description="Set a warning threshold.")
    async def warnconfig_set(
        self,
        ctx: discord.ApplicationContext,
        action: Option(str, "The punishment action.", choices=THRESHOLD_ACTION_CHOICES, required=True),  # type: ignore
        warnings: Option(int, "Number of warnings to trigger the action (0 to disable).", min_value=0, max_value=100, required=True),  # type: ignore
    ):
        if not await self._ensure_permission(ctx, "manage_guild"):
            return
        try:
            self.orchestrator.settings.set_threshold(ctx.guild_id, ActionType(action), warnings)
        except (ThresholdOrderError, ValueError) as exc:
            await ctx.respond(f"Invalid configuration: {exc}", ephemeral=True)
            return
        message = (
            f"Auto-**{action}** has been **disabled**."
            if warnings == 0
            else f"Auto-**{action}** will now trigger at **{warnings}** warnings."
        )
        logger.info("[CONFIG] Warning %s threshold set to %s in guild %s", action, warnings, ctx.guild_id)
        await ctx.respond(message)

    @warnconfig.command(name="setmuteduration", description="Set the auto-mute duration.")
    async def warnconfig_setmuteduration(
        self,
        ctx: discord.ApplicationContext,
        duration: Option(str, "Duration (e.g. 30m, 1h, 1d, 1w).", required=True),  # type: ignore
    ):
        if not await self._ensure_permission(ctx, "manage_guild"):
            return
        duration_ms = parse_duration(duration)
        if duration_ms is None:
            await ctx.respond("Please use a valid duration format: `1m`, `1h`, `1d`, `1w`", ephemeral=True)
            return
        self.orchestrator.settings.set_mute_duration(ctx.guild_id, duration_ms)
        logger.info("[CONFIG] Warning mute duration set to %sms in guild %s", duration_ms, ctx.guild_id)
        await ctx.respond(f"Auto-mute duration set to **{format_duration(duration_ms)}**.")

    @warnconfig.command(name="reset", description="Reset the warning configuration to the defaults.")
    async def warnconfig_reset(self, ctx: discord.ApplicationContext):
        if not await self._ensure_permission(ctx, "manage_guild"):
            return
        settings = self.orchestrator.settings
        settings.reset_warning_config(ctx.guild_id)
        policy = settings.get_effective_policy(ctx.guild_id)
        rungs = describe_thresholds(policy.thresholds)
        embed = discord.Embed(
            title="[SUCCESS] Configuration Reset",
            description="Warning configuration has been reset to defaults.",
            color=discord.Color.green(),
        )
        embed.add_field(name="Auto-Mute", value=rungs["mute"], inline=True)
        embed.add_field(name="Auto-Kick", value=rungs["kick"], inline=True)
        embed.add_field(name="Auto-Ban", value=rungs["ban"], inline=True)
        embed.add_field(name="Mute Duration", value=format_duration(policy.mute_duration_ms), inline=True)
        await ctx.respond(embed=embed)


def setup(discord_bot_instance, orchestrator: AutomodOrchestrator):
    """Register the warning cog with the bot."""
    discord_bot_instance.add_cog(WarningCog(discord_bot_instance, orchestrator))
