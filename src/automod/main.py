"""
Discord Automod Bot
===================

A Discord bot that filters messages against per-server rules, records
warnings in an append-only ledger and escalates repeat offenders to a mute,
kick or ban.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. AUTOMOD_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("AUTOMOD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from automod.configuration.app_configuration import app_config
from automod.configuration.guild_settings import guild_settings_manager
from automod.database.database import get_db
from automod.datatypes.warning_datatypes import ActorRef
from automod.moderation.orchestrator import AutomodOrchestrator
from automod.moderation.rate_tracker import RateTracker
from automod.moderation.warning_ledger import WarningLedger
from automod.util.discord_utils import DiscordNotificationSink, DiscordPunishmentSink
from automod.util.logger import get_logger, handle_exception

logger = get_logger("main")

# Placeholder until on_ready replaces it with the bot's own user
DEFAULT_BOT_ACTOR = ActorRef(id=0, display_name="Automod")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild, member and message content events."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.members = True
    return intents


def build_orchestrator(bot: discord.Bot, rate_tracker: RateTracker) -> AutomodOrchestrator:
    """Wire the automod core to the Discord sinks and the process-wide stores."""
    return AutomodOrchestrator(
        guild_settings_manager,
        WarningLedger(get_db()),
        rate_tracker,
        DiscordPunishmentSink(bot),
        DiscordNotificationSink(bot, app_config.mod_log_channel_name),
        DEFAULT_BOT_ACTOR,
        notice_ttl_seconds=app_config.notice_ttl_seconds,
        call_timeout=app_config.platform_call_timeout,
    )


def load_cogs(discord_bot_instance: discord.Bot, orchestrator: AutomodOrchestrator) -> None:
    """Register all operational cogs with the provided Discord bot instance."""
    from automod.bot.cogs import automod_cmds, events_listener, message_listener, warning_cmds

    events_listener.setup(discord_bot_instance, orchestrator)
    message_listener.setup(discord_bot_instance, orchestrator)
    automod_cmds.setup(discord_bot_instance, orchestrator.settings)
    warning_cmds.setup(discord_bot_instance, orchestrator)

    logger.info("All cogs loaded successfully.")


def create_bot(rate_tracker: RateTracker) -> discord.Bot:
    """Instantiate the Discord bot and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    load_cogs(bot, build_orchestrator(bot, rate_tracker))
    return bot


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot | None, rate_tracker: RateTracker) -> None:
    """Gracefully stop the bot, the rate tracker cleanup and the settings manager."""
    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord client: %s", exc)

    await rate_tracker.stop()

    try:
        await guild_settings_manager.shutdown()
    except Exception as exc:
        logger.exception("Error during guild settings shutdown: %s", exc)

    await get_db().shutdown()
    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap storage and the bot, returning an exit code."""
    token = load_environment()

    try:
        logger.info("Initializing database and loading guild settings...")
        await guild_settings_manager.async_init()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    rate_tracker = RateTracker(
        cleanup_interval=app_config.rate_tracker_cleanup_interval,
        max_idle_ms=app_config.rate_tracker_max_idle_ms,
    )

    try:
        bot = create_bot(rate_tracker)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None, rate_tracker)
        return 1

    exit_code = 0
    rate_tracker.start()
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, rate_tracker)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    logger.info("Starting Discord Automod Bot…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except SystemExit as exit_exc:
        code = exit_exc.code
        if isinstance(code, int):
            return code
        return 1
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.excepthook = handle_exception
    print(f"Exited with code: {main()}")
