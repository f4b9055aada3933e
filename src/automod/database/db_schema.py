"""
Database schema initialization.

Handles creation of tables, indexes, triggers, and schema version tracking.
"""

import aiosqlite
from automod.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the automod tables, indexes and triggers."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all database tables, indexes, and triggers.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized")

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Per-guild automod overrides; NULL means "use the global default"
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_automod_settings (
                guild_id INTEGER PRIMARY KEY,
                enabled INTEGER,
                filter_invites INTEGER,
                filter_links INTEGER,
                max_mentions INTEGER,
                max_caps_percent INTEGER,
                min_caps_length INTEGER,
                min_account_age_days INTEGER,
                spam_threshold INTEGER,
                spam_interval_ms INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_banned_words (
                guild_id INTEGER NOT NULL,
                word TEXT NOT NULL,
                position INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (guild_id, word),
                FOREIGN KEY (guild_id) REFERENCES guild_automod_settings(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_exempt_channels (
                guild_id INTEGER NOT NULL,
                channel_id INTEGER NOT NULL,
                PRIMARY KEY (guild_id, channel_id),
                FOREIGN KEY (guild_id) REFERENCES guild_automod_settings(guild_id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_exempt_roles (
                guild_id INTEGER NOT NULL,
                role_id INTEGER NOT NULL,
                PRIMARY KEY (guild_id, role_id),
                FOREIGN KEY (guild_id) REFERENCES guild_automod_settings(guild_id) ON DELETE CASCADE
            )
        """)

        # Warning escalation overrides. thresholds_set = 0 means the guild
        # inherits the global thresholds; otherwise NULL columns are disabled rungs.
        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_warning_config (
                guild_id INTEGER PRIMARY KEY,
                thresholds_set INTEGER NOT NULL DEFAULT 0,
                mute_threshold INTEGER,
                kick_threshold INTEGER,
                ban_threshold INTEGER,
                mute_duration_ms INTEGER,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Warning history; rows are deactivated, never deleted
        await db.execute("""
            CREATE TABLE IF NOT EXISTS warnings (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL,
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                reason TEXT NOT NULL,
                issued_by_id INTEGER NOT NULL,
                issued_by_name TEXT NOT NULL,
                issued_at TEXT NOT NULL,
                active INTEGER NOT NULL DEFAULT 1,
                source TEXT NOT NULL DEFAULT 'manual',
                violation_type TEXT,
                cleared_by_id INTEGER,
                cleared_by_name TEXT,
                cleared_at TEXT,
                clear_reason TEXT,
                UNIQUE (guild_id, user_id, id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for the hot lookups."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_warnings_user ON warnings(guild_id, user_id, active)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_warnings_issued_at ON warnings(guild_id, issued_at DESC)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_banned_words_guild ON guild_banned_words(guild_id, position)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers for automatic timestamp updates."""
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_guild_automod_settings_timestamp
            AFTER UPDATE ON guild_automod_settings
            FOR EACH ROW
            BEGIN
                UPDATE guild_automod_settings SET updated_at = CURRENT_TIMESTAMP
                WHERE guild_id = NEW.guild_id;
            END
        """)

        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS update_guild_warning_config_timestamp
            AFTER UPDATE ON guild_warning_config
            FOR EACH ROW
            BEGIN
                UPDATE guild_warning_config SET updated_at = CURRENT_TIMESTAMP
                WHERE guild_id = NEW.guild_id;
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        """Record the schema version."""
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
