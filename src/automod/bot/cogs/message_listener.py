"""Message listener Cog for automod.

This cog feeds every guild message into the automod orchestrator. py-cord
dispatches each event in its own task, so a slow platform call for one
message never holds up the next one.
"""

import discord
from discord.ext import commands

from automod.moderation.orchestrator import AutomodOrchestrator
from automod.util import discord_utils
from automod.util.logger import get_logger

logger = get_logger("message_listener_cog")


class MessageListenerCog(commands.Cog):
    """Cog responsible for running automod on message creation."""

    def __init__(self, discord_bot_instance, orchestrator: AutomodOrchestrator):
        self.discord_bot_instance = discord_bot_instance
        self.orchestrator = orchestrator
        logger.info("Message listener cog loaded")

    @commands.Cog.listener(name="on_message")
    async def on_message(self, message: discord.Message):
        """Convert the message and hand it to the orchestrator."""
        automod_message = discord_utils.build_automod_message(message)
        if automod_message is None:
            return

        outcome = await self.orchestrator.handle_message(
            automod_message,
            delete_message=lambda: discord_utils.safe_delete_message(message),
        )
        if outcome.violated:
            logger.debug(
                "[AUTOMOD] Message %s: %s (deleted=%s)",
                message.id,
                ", ".join(str(violation.kind) for violation in outcome.violations),
                outcome.message_deleted,
            )


def setup(discord_bot_instance, orchestrator: AutomodOrchestrator):
    """Register the message listener cog with the bot."""
    discord_bot_instance.add_cog(MessageListenerCog(discord_bot_instance, orchestrator))
