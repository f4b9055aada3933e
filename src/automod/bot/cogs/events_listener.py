"""Event listener Cog for automod.

This cog handles bot lifecycle events (on_ready) and slash command errors.
Message handling lives in the MessageListenerCog.
"""

import discord
from discord.ext import commands

from automod.datatypes.warning_datatypes import ActorRef
from automod.moderation.orchestrator import AutomodOrchestrator
from automod.util.logger import get_logger

logger = get_logger("events_listener_cog")


class EventsListenerCog(commands.Cog):
    """Cog containing bot lifecycle and command error handlers."""

    def __init__(self, discord_bot_instance, orchestrator: AutomodOrchestrator):
        self.bot = discord_bot_instance
        self.discord_bot_instance = discord_bot_instance
        self.orchestrator = orchestrator
        logger.info("Events listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self):
        """Stamp automod warnings with the bot's identity once it is known."""
        if not self.bot.user:
            logger.warning("Bot partially connected, but user information not yet available.")
            return

        self.orchestrator.bot_actor = ActorRef.from_user(self.bot.user)
        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="for rule breakers"),
        )
        logger.info("Bot connected as %s (ID: %s) in %d guild(s)", self.bot.user, self.bot.user.id, len(self.bot.guilds))

    @commands.Cog.listener(name="on_application_command_error")
    async def on_application_command_error(self, ctx: discord.ApplicationContext, error: Exception):
        """Log unexpected command failures and tell the invoker something went wrong."""
        if isinstance(error, commands.CheckFailure):
            await ctx.respond("You do not have permission to use this command.", ephemeral=True)
            return

        logger.error("Error in command %s: %s", getattr(ctx.command, "qualified_name", "?"), error, exc_info=error)
        try:
            if ctx.response.is_done():
                await ctx.followup.send("An error occurred while processing the command.", ephemeral=True)
            else:
                await ctx.respond("An error occurred while processing the command.", ephemeral=True)
        except discord.HTTPException as exc:
            logger.debug("Could not report command error: %s", exc)


def setup(discord_bot_instance, orchestrator: AutomodOrchestrator):
    """Register the events listener cog with the bot."""
    discord_bot_instance.add_cog(EventsListenerCog(discord_bot_instance, orchestrator))
