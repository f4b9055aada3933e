"""
discord_utils.py
================

Discord bindings for the automod core.

The orchestrator talks to the platform only through the two small sink
protocols defined here. The Discord implementations resolve guilds, members
and channels through the bot's cache and turn platform errors into data
(``PunishmentResult``) or ``NotificationFailed`` so the pipeline can log them.
"""

from __future__ import annotations

import datetime
from typing import Optional, Protocol, Union

import discord

from automod.datatypes.action_datatypes import ActionType, AuditEntry, AutomodNotice, PunishmentResult
from automod.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, RoleID, UserID
from automod.datatypes.violation_datatypes import AutomodMessage
from automod.errors import NotificationFailed
from automod.util.logger import get_logger

logger = get_logger("discord_utils")

# Discord refuses member timeouts longer than 28 days
MAX_TIMEOUT = datetime.timedelta(days=28)

AUDIT_COLORS = {
    "kick": 0xFFA500,
    "ban": 0xFF0000,
    "mute": 0xFFFF00,
    "warn": 0xFFFF00,
    "clearwarnings": 0x00FF00,
}
DEFAULT_AUDIT_COLOR = 0x7289DA


# ==========================================
# Sink protocols consumed by the orchestrator
# ==========================================

class PunishmentSink(Protocol):
    async def mute(self, guild_id: GuildID, user_id: UserID, duration_ms: int, reason: str) -> PunishmentResult: ...

    async def kick(self, guild_id: GuildID, user_id: UserID, reason: str) -> PunishmentResult: ...

    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str) -> PunishmentResult: ...


class NotificationSink(Protocol):
    async def post_transient_notice(self, channel_id: ChannelID, notice: AutomodNotice, ttl_seconds: float) -> bool: ...

    async def audit_log(self, guild_id: GuildID, entry: AuditEntry) -> bool: ...


# ==========================================
# Message conversion and permission helpers
# ==========================================

def has_admin_permissions(member: Union[discord.User, discord.Member]) -> bool:
    """Administrators bypass automod entirely."""
    if not isinstance(member, discord.Member):
        return False
    return bool(getattr(member.guild_permissions, "administrator", False))


def build_automod_message(message: discord.Message) -> Optional[AutomodMessage]:
    """
    Convert a Discord message into the platform-neutral form the pipeline uses.

    Returns None for direct messages; bots and non-member authors are still
    converted so the pipeline can report why it skipped them.
    """
    if message.guild is None:
        return None

    author = message.author
    is_member = isinstance(author, discord.Member)
    role_ids = tuple(RoleID(role.id) for role in getattr(author, "roles", []) if role.id != message.guild.id)

    return AutomodMessage(
        guild_id=GuildID(message.guild.id),
        channel_id=ChannelID(message.channel.id),
        message_id=MessageID(message.id),
        author_id=UserID(author.id),
        author_display_name=getattr(author, "display_name", None) or author.name,
        content=message.content or "",
        author_is_bot=bool(author.bot),
        author_is_admin=has_admin_permissions(author),
        author_is_member=is_member,
        author_role_ids=role_ids,
        author_created_at=author.created_at,
        mentioned_user_ids=tuple(dict.fromkeys(UserID(user.id) for user in message.mentions)),
        mentioned_role_ids=tuple(dict.fromkeys(RoleID(role.id) for role in message.role_mentions)),
        mentions_everyone=bool(message.mention_everyone),
    )


async def safe_delete_message(message: discord.Message) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning("No permission to delete message %s", message.id)
    except discord.HTTPException as exc:
        logger.error("Error deleting message %s: %s", message.id, exc)
    return False


# ==========================================
# Embeds
# ==========================================

def build_automod_notice_embed(notice: AutomodNotice, ttl_seconds: float) -> discord.Embed:
    """The orange in-channel warning shown to the author after a violation."""
    embed = discord.Embed(
        title="⚠️ Automod Warning",
        description=f"<@{notice.user_id}>, your message was flagged by automod.",
        color=discord.Color.orange(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="Reason", value=notice.reason, inline=True)
    embed.add_field(name="Total Warnings", value=str(notice.active_count), inline=True)
    embed.set_footer(text=f"This message will be deleted in {ttl_seconds:g} seconds")
    return embed


def build_audit_embed(entry: AuditEntry) -> discord.Embed:
    """Mod-log embed for an audit entry."""
    embed = discord.Embed(
        title=f"[MODERATION] {entry.action.upper()}",
        color=AUDIT_COLORS.get(entry.action.lower(), DEFAULT_AUDIT_COLOR),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="Target User", value=f"{entry.target_name}\n`{entry.target_id}`", inline=True)
    embed.add_field(name="Moderator", value=entry.moderator_name, inline=True)
    embed.add_field(name="Reason", value=entry.reason or "No reason provided", inline=False)
    for name, value in entry.extra.items():
        embed.add_field(name=name, value=str(value), inline=True)
    embed.set_footer(text="Case logged at")
    return embed


# ==========================================
# Discord sinks
# ==========================================

class DiscordPunishmentSink:
    """Applies automatic punishments through the bot's guild cache."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot

    async def _member(self, guild: discord.Guild, user_id: UserID) -> Optional[discord.Member]:
        member = guild.get_member(user_id.to_int())
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id.to_int())
        except (discord.NotFound, discord.HTTPException):
            return None

    def _guild(self, guild_id: GuildID) -> Optional[discord.Guild]:
        return self.bot.get_guild(GuildID(guild_id).to_int())

    async def mute(self, guild_id: GuildID, user_id: UserID, duration_ms: int, reason: str) -> PunishmentResult:
        guild = self._guild(guild_id)
        if guild is None:
            return PunishmentResult(ActionType.MUTE, False, "guild not available")
        member = await self._member(guild, UserID(user_id))
        if member is None:
            return PunishmentResult(ActionType.MUTE, False, "member not found")

        duration = min(datetime.timedelta(milliseconds=duration_ms), MAX_TIMEOUT)
        until = discord.utils.utcnow() + duration
        try:
            await member.timeout(until, reason=reason)
        except discord.Forbidden:
            return PunishmentResult(ActionType.MUTE, False, "missing permissions")
        except discord.HTTPException as exc:
            return PunishmentResult(ActionType.MUTE, False, str(exc))
        return PunishmentResult(ActionType.MUTE, True)

    async def kick(self, guild_id: GuildID, user_id: UserID, reason: str) -> PunishmentResult:
        guild = self._guild(guild_id)
        if guild is None:
            return PunishmentResult(ActionType.KICK, False, "guild not available")
        member = await self._member(guild, UserID(user_id))
        if member is None:
            return PunishmentResult(ActionType.KICK, False, "member not found")
        try:
            await member.kick(reason=reason)
        except discord.Forbidden:
            return PunishmentResult(ActionType.KICK, False, "missing permissions")
        except discord.HTTPException as exc:
            return PunishmentResult(ActionType.KICK, False, str(exc))
        return PunishmentResult(ActionType.KICK, True)

    async def ban(self, guild_id: GuildID, user_id: UserID, reason: str) -> PunishmentResult:
        guild = self._guild(guild_id)
        if guild is None:
            return PunishmentResult(ActionType.BAN, False, "guild not available")
        try:
            # Banning by id also works for users who already left
            await guild.ban(discord.Object(id=UserID(user_id).to_int()), reason=reason)
        except discord.Forbidden:
            return PunishmentResult(ActionType.BAN, False, "missing permissions")
        except discord.HTTPException as exc:
            return PunishmentResult(ActionType.BAN, False, str(exc))
        return PunishmentResult(ActionType.BAN, True)


class DiscordNotificationSink:
    """Posts automod notices and mod-log entries."""

    def __init__(self, bot: discord.Client, log_channel_name: str = "mod-logs") -> None:
        self.bot = bot
        self.log_channel_name = log_channel_name

    async def post_transient_notice(self, channel_id: ChannelID, notice: AutomodNotice, ttl_seconds: float) -> bool:
        channel = self.bot.get_channel(ChannelID(channel_id).to_int())
        if channel is None:
            logger.debug("Channel %s not cached; skipping automod notice", channel_id)
            return False
        try:
            await channel.send(embed=build_automod_notice_embed(notice, ttl_seconds), delete_after=ttl_seconds)
        except discord.HTTPException as exc:
            raise NotificationFailed(f"Could not post automod notice in channel {channel_id}: {exc}") from exc
        return True

    async def audit_log(self, guild_id: GuildID, entry: AuditEntry) -> bool:
        guild = self.bot.get_guild(GuildID(guild_id).to_int())
        if guild is None:
            return False
        channel = discord.utils.get(guild.text_channels, name=self.log_channel_name)
        if channel is None:
            logger.warning('Mod-log channel "%s" not found in guild %s', self.log_channel_name, guild.name)
            return False
        try:
            await channel.send(embed=build_audit_embed(entry))
        except discord.HTTPException as exc:
            raise NotificationFailed(f"Could not post audit entry in guild {guild_id}: {exc}") from exc
        logger.debug("[MOD-LOG] %s logged for %s", entry.action, entry.target_name)
        return True
