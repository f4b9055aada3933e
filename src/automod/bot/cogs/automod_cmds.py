"""
Automod cog: the /automod command group.

Subcommands toggle automod, manage the banned-word list and exemptions, and
set individual filter limits. Every change goes through the guild settings
manager, which persists it in the background.

All subcommands require the Manage Server permission and reply ephemerally.

Quick usage example
    from automod.bot.cogs import automod_cmds
    automod_cmds.setup(bot, guild_settings_manager)
"""

import discord
from discord import Option
from discord.ext import commands

from automod.configuration.guild_settings import GuildSettingsManager
from automod.datatypes.policy_datatypes import BOOLEAN_SETTINGS, EffectivePolicy
from automod.moderation.detectors import censor_word
from automod.util.logger import get_logger

logger = get_logger("automod_cog")

SETTING_CHOICES = [
    discord.OptionChoice(name="Filter Invites", value="filter_invites"),
    discord.OptionChoice(name="Filter Links", value="filter_links"),
    discord.OptionChoice(name="Max Mentions", value="max_mentions"),
    discord.OptionChoice(name="Max Caps Percent", value="max_caps_percent"),
    discord.OptionChoice(name="Min Caps Length", value="min_caps_length"),
    discord.OptionChoice(name="Min Account Age (days)", value="min_account_age_days"),
    discord.OptionChoice(name="Spam Threshold", value="spam_threshold"),
    discord.OptionChoice(name="Spam Interval (ms)", value="spam_interval_ms"),
]

ADD_REMOVE_CHOICES = [
    discord.OptionChoice(name="Add", value="add"),
    discord.OptionChoice(name="Remove", value="remove"),
]


def parse_setting_value(setting: str, raw: str):
    """Turn the text typed by the moderator into a bool or int for ``update_automod``."""
    if setting in BOOLEAN_SETTINGS:
        return raw.strip().lower() in ("true", "1", "yes", "on")
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"Please provide a number for {setting}.") from None


def build_status_embed(guild_name: str, policy: EffectivePolicy) -> discord.Embed:
    """Summary of the effective automod policy for ``/automod status``."""
    embed = discord.Embed(
        title="Automod Status",
        description=f"Automod configuration for {guild_name}",
        color=discord.Color.green() if policy.enabled else discord.Color.red(),
    )
    embed.add_field(name="Status", value="Enabled" if policy.enabled else "Disabled", inline=True)
    embed.add_field(name="🔗 Filter Invites", value="Yes" if policy.filter_invites else "No", inline=True)
    embed.add_field(name="🌐 Filter Links", value="Yes" if policy.filter_links else "No", inline=True)
    embed.add_field(
        name="📢 Max Mentions",
        value=str(policy.max_mentions) if policy.max_mentions else "Disabled",
        inline=True,
    )
    embed.add_field(name="🔠 Max Caps %", value=f"{policy.max_caps_percent}%", inline=True)
    embed.add_field(
        name="📅 Min Account Age",
        value=f"{policy.min_account_age_days} days" if policy.min_account_age_days > 0 else "Disabled",
        inline=True,
    )
    embed.add_field(
        name="📨 Spam Threshold",
        value=(
            f"{policy.spam_threshold} msgs / {policy.spam_interval_ms / 1000:g}s"
            if policy.spam_threshold > 0
            else "Disabled"
        ),
        inline=True,
    )
    embed.add_field(name="🚫 Banned Words", value=f"{len(policy.banned_words)} word(s)", inline=True)
    embed.add_field(name="📁 Exempt Channels", value=f"{len(policy.exempt_channel_ids)} channel(s)", inline=True)
    embed.add_field(name="👥 Exempt Roles", value=f"{len(policy.exempt_role_ids)} role(s)", inline=True)
    embed.set_footer(text="Use /automod set to modify settings")
    return embed


class AutomodCog(commands.Cog):
    """Guild-level automod configuration commands."""

    automod = discord.SlashCommandGroup(
        "automod",
        "Configure automatic moderation for this server.",
        default_member_permissions=discord.Permissions(manage_guild=True),
        guild_only=True,
    )

    def __init__(self, discord_bot_instance, settings: GuildSettingsManager):
        self.discord_bot_instance = discord_bot_instance
        self.settings = settings
        logger.info("Automod cog loaded")

    async def _ensure_manage_guild(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        permissions = getattr(ctx.user, "guild_permissions", None)
        if not getattr(permissions, "manage_guild", False):
            await ctx.respond("You need the Manage Server permission to configure automod.", ephemeral=True)
            return False
        return True

    @automod.command(name="enable", description="Enable automod for this server.")
    async def enable(self, ctx: discord.ApplicationContext):
        if not await self._ensure_manage_guild(ctx):
            return
        self.settings.set_enabled(ctx.guild_id, True)
        logger.info("[AUTOMOD] Enabled in guild %s by %s", ctx.guild_id, ctx.user)
        await ctx.respond(
            "Automod has been **enabled** for this server.\n"
            "• Use `/automod addword <word>` to add banned words\n"
            "• Use `/automod set` to configure filters\n"
            "• Use `/automod status` to view settings",
            ephemeral=True,
        )

    @automod.command(name="disable", description="Disable automod for this server.")
    async def disable(self, ctx: discord.ApplicationContext):
        if not await self._ensure_manage_guild(ctx):
            return
        self.settings.set_enabled(ctx.guild_id, False)
        logger.info("[AUTOMOD] Disabled in guild %s by %s", ctx.guild_id, ctx.user)
        await ctx.respond("Automod has been **disabled** for this server.", ephemeral=True)

    @automod.command(name="status", description="Show the current automod configuration.")
    async def status(self, ctx: discord.ApplicationContext):
        if not await self._ensure_manage_guild(ctx):
            return
        policy = self.settings.get_effective_policy(ctx.guild_id)
        await ctx.respond(embed=build_status_embed(ctx.guild.name, policy), ephemeral=True)

    @automod.command(name="addword", description="Add a word to the banned list.")
    async def addword(
        self,
        ctx: discord.ApplicationContext,
        word: Option(str, "The word to ban.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return
        try:
            added = self.settings.add_banned_word(ctx.guild_id, word)
        except ValueError as exc:
            await ctx.respond(str(exc), ephemeral=True)
            return
        total = len(self.settings.get_overrides(ctx.guild_id).banned_words)
        if not added:
            await ctx.respond(f"`{censor_word(word.strip().lower())}` is already banned.", ephemeral=True)
            return
        await ctx.respond(
            f"Added `{censor_word(word.strip().lower())}` to the banned words list. Total banned words: {total}",
            ephemeral=True,
        )

    @automod.command(name="removeword", description="Remove a word from the banned list.")
    async def removeword(
        self,
        ctx: discord.ApplicationContext,
        word: Option(str, "The word to unban.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return
        if not self.settings.remove_banned_word(ctx.guild_id, word):
            await ctx.respond("That word is not in the banned list.", ephemeral=True)
            return
        total = len(self.settings.get_overrides(ctx.guild_id).banned_words)
        await ctx.respond(f"Removed the word from the banned list. Total banned words: {total}", ephemeral=True)

    @automod.command(name="listwords", description="List banned words (censored).")
    async def listwords(self, ctx: discord.ApplicationContext):
        if not await self._ensure_manage_guild(ctx):
            return
        words = self.settings.get_effective_policy(ctx.guild_id).banned_words
        if not words:
            await ctx.respond("No banned words are configured.", ephemeral=True)
            return
        embed = discord.Embed(
            title="Banned Words",
            description="\n".join(f"• `{censor_word(word)}`" for word in words)[:4000],
            color=discord.Color.orange(),
        )
        embed.set_footer(text=f"{len(words)} word(s)")
        await ctx.respond(embed=embed, ephemeral=True)

    @automod.command(name="set", description="Configure an automod setting.")
    async def set_setting(
        self,
        ctx: discord.ApplicationContext,
        setting: Option(str, "The setting to configure.", choices=SETTING_CHOICES, required=True),  # type: ignore
        value: Option(str, "true/false for toggles, a number for limits.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return
        try:
            parsed = parse_setting_value(setting, value)
            self.settings.update_automod(ctx.guild_id, **{setting: parsed})
        except ValueError as exc:
            await ctx.respond(f"Invalid value: {exc}", ephemeral=True)
            return
        logger.info("[AUTOMOD] Set %s=%s in guild %s", setting, parsed, ctx.guild_id)
        await ctx.respond(f"**{setting}** has been set to **{parsed}**.", ephemeral=True)

    @automod.command(name="exemptchannel", description="Exempt a channel from automod, or remove the exemption.")
    async def exemptchannel(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "The channel.", required=True),  # type: ignore
        action: Option(str, "Add or remove the exemption.", choices=ADD_REMOVE_CHOICES, required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return
        add = action == "add"
        changed = self.settings.set_exempt_channel(ctx.guild_id, channel.id, add)
        if not changed:
            state = "already exempt" if add else "not exempt"
            await ctx.respond(f"{channel.mention} is {state}.", ephemeral=True)
            return
        verb = "is now exempt from" if add else "is no longer exempt from"
        await ctx.respond(f"{channel.mention} {verb} automod.", ephemeral=True)

    @automod.command(name="exemptrole", description="Exempt a role from automod, or remove the exemption.")
    async def exemptrole(
        self,
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, "The role.", required=True),  # type: ignore
        action: Option(str, "Add or remove the exemption.", choices=ADD_REMOVE_CHOICES, required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return
        add = action == "add"
        changed = self.settings.set_exempt_role(ctx.guild_id, role.id, add)
        if not changed:
            state = "already exempt" if add else "not exempt"
            await ctx.respond(f"{role.mention} is {state}.", ephemeral=True)
            return
        verb = "is now exempt from" if add else "is no longer exempt from"
        await ctx.respond(f"{role.mention} {verb} automod.", ephemeral=True)


def setup(discord_bot_instance, settings: GuildSettingsManager):
    """Register the automod cog with the bot."""
    discord_bot_instance.add_cog(AutomodCog(discord_bot_instance, settings))
