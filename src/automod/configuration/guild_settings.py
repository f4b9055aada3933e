"""
Persistent per-guild automod configuration.

Responsibilities:
- Cache each guild's automod overrides in memory and persist them to SQLite
- Resolve the effective policy a message is evaluated against by merging the
  overrides onto the global defaults from the YAML app config

Persistence is scheduled in a non-blocking manner; ``shutdown`` awaits any
writes still in flight.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Any, Dict, Optional, Set

from automod.configuration.app_configuration import BUILTIN_MUTE_DURATION_MS, AppConfig, app_config
from automod.database.database import Database, get_db
from automod.datatypes.action_datatypes import ActionType
from automod.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from automod.datatypes.policy_datatypes import (
    BOOLEAN_SETTINGS,
    NUMERIC_SETTINGS,
    AutomodOverrides,
    EffectivePolicy,
    Thresholds,
)
from automod.errors import ConfigInvalid, ThresholdOrderError
from automod.repositories.automod_settings_repo import AutomodSettingsRepository
from automod.util.logger import get_logger

logger = get_logger("guild_settings_manager")

# Numeric settings that may be set to 0 to switch the check off
_ZERO_DISABLES = {"min_account_age_days"}


def validate_setting(name: str, value: Any) -> Any:
    """
    Check a value for ``update_automod`` and return it normalised.

    Raises:
        ValueError: Unknown setting or a value outside the accepted range.
    """
    if name in BOOLEAN_SETTINGS:
        return bool(value)
    if name not in NUMERIC_SETTINGS:
        raise ValueError(f"Unknown automod setting: {name}")
    if isinstance(value, bool):
        raise ValueError(f"{name} must be a number.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Please provide a number for {name}.") from None

    if name == "max_caps_percent":
        if not 0 <= number <= 100:
            raise ValueError("max_caps_percent must be between 0 and 100.")
    elif name in _ZERO_DISABLES:
        if number < 0:
            raise ValueError(f"{name} must be zero or a positive number.")
    elif number <= 0:
        raise ValueError(f"{name} must be a positive number greater than zero.")
    return number


def check_threshold_order(thresholds: Thresholds) -> None:
    """Raise ThresholdOrderError unless the configured rungs satisfy mute < kick < ban."""
    rungs = [(name, value) for name, value in thresholds.as_dict().items() if value]
    for (lower_name, lower), (higher_name, higher) in zip(rungs, rungs[1:]):
        if lower >= higher:
            raise ThresholdOrderError(lower_name, higher_name)


class GuildSettingsManager:
    """
    Manager for persistent per-guild automod overrides.

    Args:
        config: Application config supplying the global defaults.
        database: Database used for persistence. Defaults to the process-wide one.
    """

    def __init__(self, config: AppConfig | None = None, database: Database | None = None):
        """Instantiate caches and persistence helpers."""
        self.config = config or app_config
        self.database = database

        # guild_id -> overrides configured for that guild
        self.guilds: Dict[GuildID, AutomodOverrides] = {}
        self.repo = AutomodSettingsRepository()

        self._persist_lock = asyncio.Lock()
        self._active_persists: Set[asyncio.Task] = set()
        self._db_initialized = False

        logger.info("[GUILD SETTINGS MANAGER] Guild settings manager initialized")

    def _db(self) -> Database:
        return self.database or get_db()

    async def async_init(self, database: Database | None = None) -> None:
        """Initialize the database and load settings from disk (async)."""
        if database is not None:
            self.database = database
        if not self._db_initialized:
            if not self._db().initialized and not await self._db().initialize():
                raise RuntimeError(f"Could not open database at {self._db().db_path}")
            await self.load_from_disk()
            self._db_initialized = True
            logger.info("[GUILD SETTINGS MANAGER] Database initialized and settings loaded")

    def ensure_guild(self, guild_id: GuildID) -> AutomodOverrides:
        """Create empty overrides for a guild if none exist and return the record."""
        guild_id = GuildID(guild_id)
        overrides = self.guilds.get(guild_id)
        if overrides is None:
            overrides = AutomodOverrides()
            self.guilds[guild_id] = overrides
        return overrides

    def get_overrides(self, guild_id: GuildID) -> AutomodOverrides:
        """Return the cached overrides of a guild (empty when never configured)."""
        return self.ensure_guild(guild_id)

    # --- automod settings ---
    def update_automod(self, guild_id: GuildID, **settings: Any) -> AutomodOverrides:
        """
        Set one or more automod settings for a guild and persist the change.

        Raises:
            ValueError: A setting name is unknown or its value is out of range.
        """
        validated = {name: validate_setting(name, value) for name, value in settings.items()}
        overrides = self.ensure_guild(guild_id)
        for name, value in validated.items():
            setattr(overrides, name, value)
        logger.debug("[GUILD SETTINGS MANAGER] Updated %s for guild %s", validated, GuildID(guild_id).to_int())

        self._trigger_persist(GuildID(guild_id))
        return overrides

    def set_enabled(self, guild_id: GuildID, enabled: bool) -> None:
        self.update_automod(guild_id, enabled=enabled)

    def add_banned_word(self, guild_id: GuildID, word: str) -> bool:
        """Add a word to the guild's list. Returns False if it is already there."""
        word = word.strip().lower()
        if not word:
            raise ValueError("Banned word must not be empty.")
        overrides = self.ensure_guild(guild_id)
        if word in overrides.banned_words:
            return False
        overrides.banned_words.append(word)
        self._trigger_persist(GuildID(guild_id))
        return True

    def remove_banned_word(self, guild_id: GuildID, word: str) -> bool:
        """Remove a word from the guild's list. Returns False if it was not listed."""
        word = word.strip().lower()
        overrides = self.ensure_guild(guild_id)
        if word not in overrides.banned_words:
            return False
        overrides.banned_words.remove(word)
        self._trigger_persist(GuildID(guild_id))
        return True

    def set_exempt_channel(self, guild_id: GuildID, channel_id: ChannelID, add: bool) -> bool:
        """Add or remove an exempt channel. Returns False when nothing changed."""
        channel_id = ChannelID(channel_id)
        overrides = self.ensure_guild(guild_id)
        if add == (channel_id in overrides.exempt_channel_ids):
            return False
        if add:
            overrides.exempt_channel_ids.append(channel_id)
        else:
            overrides.exempt_channel_ids.remove(channel_id)
        self._trigger_persist(GuildID(guild_id))
        return True

    def set_exempt_role(self, guild_id: GuildID, role_id: RoleID, add: bool) -> bool:
        """Add or remove an exempt role. Returns False when nothing changed."""
        role_id = RoleID(role_id)
        overrides = self.ensure_guild(guild_id)
        if add == (role_id in overrides.exempt_role_ids):
            return False
        if add:
            overrides.exempt_role_ids.append(role_id)
        else:
            overrides.exempt_role_ids.remove(role_id)
        self._trigger_persist(GuildID(guild_id))
        return True

    # --- warning escalation settings ---
    def get_thresholds(self, guild_id: GuildID) -> Thresholds:
        """Thresholds in force for the guild (its own if configured, else the global ones)."""
        overrides = self.guilds.get(GuildID(guild_id))
        if overrides is not None and overrides.thresholds is not None:
            return overrides.thresholds
        return self.config.warning_thresholds

    def set_threshold(self, guild_id: GuildID, action: ActionType, value: Optional[int]) -> Thresholds:
        """
        Set the warning count for one punishment rung. ``0`` or ``None`` disables it.

        Raises:
            ValueError: ``action`` is not a punishment or ``value`` is negative.
            ThresholdOrderError: The change would break mute < kick < ban.
        """
        if action is ActionType.NONE:
            raise ValueError("Only mute, kick and ban have thresholds.")
        if value is not None and value < 0:
            raise ValueError("Threshold must be zero or a positive number.")

        updated = replace(self.get_thresholds(guild_id), **{action.value: value or None})
        check_threshold_order(updated)

        overrides = self.ensure_guild(guild_id)
        overrides.thresholds = updated
        logger.debug(
            "[GUILD SETTINGS MANAGER] Set %s threshold to %s for guild %s",
            action, value or "disabled", GuildID(guild_id).to_int(),
        )
        self._trigger_persist(GuildID(guild_id))
        return updated

    def set_mute_duration(self, guild_id: GuildID, duration_ms: int) -> None:
        if duration_ms <= 0:
            raise ValueError("Mute duration must be positive.")
        self.ensure_guild(guild_id).mute_duration_ms = int(duration_ms)
        self._trigger_persist(GuildID(guild_id))

    def reset_warning_config(self, guild_id: GuildID) -> None:
        """Drop the guild's thresholds and mute duration so the global ones apply again."""
        overrides = self.ensure_guild(guild_id)
        overrides.thresholds = None
        overrides.mute_duration_ms = None
        logger.debug("[GUILD SETTINGS MANAGER] Reset warning config for guild %s", GuildID(guild_id).to_int())
        self._trigger_persist(GuildID(guild_id))

    # --- resolution ---
    def get_effective_policy(self, guild_id: GuildID) -> EffectivePolicy:
        """
        Merge the guild's overrides onto the global defaults.

        Malformed values (negative numbers, caps percent outside 0-100, mis-ordered
        thresholds) never raise: they are replaced by a safe value and logged.
        """
        defaults = self.config.automod_defaults
        overrides = self.guilds.get(GuildID(guild_id)) or AutomodOverrides()

        def pick(name: str) -> Any:
            value = getattr(overrides, name)
            return getattr(defaults, name) if value is None else value

        numeric = {name: _clamp_numeric(name, pick(name)) for name in NUMERIC_SETTINGS}

        thresholds = overrides.thresholds if overrides.thresholds is not None else defaults.thresholds
        thresholds = _clamp_thresholds(thresholds)

        mute_duration_ms = pick("mute_duration_ms")
        if not isinstance(mute_duration_ms, int) or isinstance(mute_duration_ms, bool) or mute_duration_ms <= 0:
            _log_invalid(ConfigInvalid("mute_duration_ms", mute_duration_ms, BUILTIN_MUTE_DURATION_MS))
            mute_duration_ms = BUILTIN_MUTE_DURATION_MS

        return EffectivePolicy(
            enabled=bool(pick("enabled")),
            banned_words=tuple(dict.fromkeys(str(word).lower() for word in overrides.banned_words)),
            filter_invites=bool(pick("filter_invites")),
            filter_links=bool(pick("filter_links")),
            exempt_channel_ids=frozenset(overrides.exempt_channel_ids),
            exempt_role_ids=frozenset(overrides.exempt_role_ids),
            thresholds=thresholds,
            mute_duration_ms=mute_duration_ms,
            **numeric,
        )

    # --- persistence ---
    def _trigger_persist(self, guild_id: GuildID) -> None:
        """Schedule a best-effort persist of a single guild's overrides to database."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[GUILD SETTINGS MANAGER] Cannot persist guild %s: no running event loop", guild_id.to_int())
            return

        task = loop.create_task(self.persist_guild(guild_id))
        self._active_persists.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._active_persists.discard(completed)
            if completed.cancelled():
                return
            if not completed.result():
                logger.error("[GUILD SETTINGS MANAGER] Failed to persist guild %s to database", guild_id.to_int())

        task.add_done_callback(_cleanup)

    async def persist_guild(self, guild_id: GuildID) -> bool:
        """Write one guild's overrides to the database. Returns whether the write succeeded."""
        guild_id = GuildID(guild_id)
        overrides = self.guilds.get(guild_id)
        if overrides is None:
            logger.warning("[GUILD SETTINGS MANAGER] Cannot persist guild %s: not in cache", guild_id.to_int())
            return False

        async with self._persist_lock:
            try:
                async with self._db().transaction() as conn:
                    await self.repo.save(conn, guild_id, overrides)
                logger.debug("[GUILD SETTINGS MANAGER] Persisted guild %s to database", guild_id.to_int())
                return True
            except Exception:
                logger.exception("[GUILD SETTINGS MANAGER] Failed to persist guild %s to database", guild_id.to_int())
                return False

    async def load_from_disk(self) -> bool:
        """Load persisted guild overrides from database into memory."""
        try:
            async with self._db().read() as conn:
                rows = await self.repo.get_all(conn)
        except Exception:
            logger.exception("[GUILD SETTINGS MANAGER] Failed to load guild settings from database")
            return False

        self.guilds = {GuildID.from_int(guild_id): overrides for guild_id, overrides in rows.items()}
        if rows:
            logger.info("[GUILD SETTINGS MANAGER] Loaded %d guild settings from database", len(rows))
        return bool(rows)

    async def shutdown(self) -> None:
        """Await any pending persistence tasks during shutdown."""
        pending = list(self._active_persists)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._active_persists.clear()

        logger.info("[GUILD SETTINGS MANAGER] Guild settings manager shutdown complete")


def _log_invalid(error: ConfigInvalid) -> None:
    logger.warning("[GUILD SETTINGS MANAGER] %s", error)


def _clamp_numeric(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _log_invalid(ConfigInvalid(name, value, 0))
        return 0
    value = int(value)
    if value < 0:
        _log_invalid(ConfigInvalid(name, value, 0))
        return 0
    if name == "max_caps_percent" and value > 100:
        _log_invalid(ConfigInvalid(name, value, 100))
        return 100
    return value


def _clamp_thresholds(thresholds: Thresholds) -> Thresholds:
    cleaned = {}
    for name, value in thresholds.as_dict().items():
        if value is None:
            cleaned[name] = None
        elif isinstance(value, bool) or not isinstance(value, int) or value < 0:
            _log_invalid(ConfigInvalid(f"thresholds.{name}", value, None))
            cleaned[name] = None
        else:
            cleaned[name] = value or None
    result = Thresholds(**cleaned)
    try:
        check_threshold_order(result)
    except ThresholdOrderError as exc:
        # Out-of-order rungs still escalate correctly because bans are checked first
        logger.warning("[GUILD SETTINGS MANAGER] Thresholds %s are out of order: %s", result.as_dict(), exc)
    return result


# Global guild settings manager instance
guild_settings_manager = GuildSettingsManager()
