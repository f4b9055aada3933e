"""
Violation ledger: append-only warning history per (guild, user).

Warnings are never deleted. Clearing flips ``active`` and stamps who cleared
it, when and why. All writes run in a serialised transaction of the shared
connection, so a ``count_active`` issued right after an ``append`` sees that
append.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from automod.database.database import Database, get_db
from automod.datatypes.discord_datatypes import GuildID, UserID
from automod.datatypes.warning_datatypes import ActorRef, WarningRecord
from automod.errors import RecordNotFound
from automod.repositories.warnings_repo import WarningsRepository
from automod.util.logger import get_logger

logger = get_logger("warning_ledger")


class WarningLedger:
    """
    Warning store keyed by ``(guild_id, user_id)``.

    Args:
        database: Initialized database to read from and write to. Defaults to
            the process-wide instance.
    """

    def __init__(self, database: Database | None = None) -> None:
        self.database = database or get_db()
        self.repo = WarningsRepository()

    async def append(self, guild_id: GuildID, user_id: UserID, record: WarningRecord) -> None:
        """Store a new warning for the user."""
        if GuildID(guild_id) != record.guild_id or UserID(user_id) != record.user_id:
            raise ValueError(f"Warning {record.id} does not belong to user {user_id} in guild {guild_id}")

        async with self.database.transaction() as conn:
            await self.repo.insert(conn, record)
        logger.debug(
            "[WARNING LEDGER] Appended warning %s (%s) for user %s in guild %s",
            record.id, record.source, user_id, guild_id,
        )

    async def count_active(self, guild_id: GuildID, user_id: UserID) -> int:
        """Number of warnings of the user that have not been cleared."""
        async with self.database.read() as conn:
            return await self.repo.count_active(conn, guild_id, user_id)

    async def get(self, guild_id: GuildID, user_id: UserID, record_id: str) -> WarningRecord | None:
        async with self.database.read() as conn:
            return await self.repo.get(conn, guild_id, user_id, record_id)

    async def list_warnings(
        self, guild_id: GuildID, user_id: UserID, *, include_inactive: bool = False
    ) -> List[WarningRecord]:
        """Warnings of the user, oldest first."""
        async with self.database.read() as conn:
            return await self.repo.list_for_user(conn, guild_id, user_id, include_inactive=include_inactive)

    async def clear_one(
        self,
        guild_id: GuildID,
        user_id: UserID,
        record_id: str,
        cleared_by: ActorRef,
        reason: str,
    ) -> WarningRecord:
        """
        Deactivate a single warning and return the updated record.

        Clearing a warning that is already inactive succeeds and overwrites the
        previous clear metadata.

        Raises:
            RecordNotFound: No warning with ``record_id`` exists for the user.
        """
        cleared_at = datetime.now(timezone.utc)
        async with self.database.transaction() as conn:
            touched = await self.repo.deactivate(conn, guild_id, user_id, record_id, cleared_by, cleared_at, reason)
            if not touched:
                raise RecordNotFound(guild_id, user_id, record_id)
            record = await self.repo.get(conn, guild_id, user_id, record_id)

        logger.info(
            "[WARNING LEDGER] Warning %s of user %s in guild %s cleared by %s",
            record_id, user_id, guild_id, cleared_by.display_name,
        )
        return record

    async def clear_all(self, guild_id: GuildID, user_id: UserID, cleared_by: ActorRef, reason: str) -> int:
        """Deactivate every active warning of the user. Returns how many were cleared (0 if none)."""
        cleared_at = datetime.now(timezone.utc)
        async with self.database.transaction() as conn:
            cleared = await self.repo.deactivate_all_active(conn, guild_id, user_id, cleared_by, cleared_at, reason)

        if cleared:
            logger.info(
                "[WARNING LEDGER] Cleared %d warnings of user %s in guild %s (by %s)",
                cleared, user_id, guild_id, cleared_by.display_name,
            )
        return cleared
