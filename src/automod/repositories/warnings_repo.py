"""
Repository for the warnings table.

Handles only row <-> WarningRecord mapping and SQL; locking and business rules
live in the warning ledger.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import aiosqlite

from automod.datatypes.discord_datatypes import GuildID, UserID
from automod.datatypes.warning_datatypes import ActorRef, WarningRecord, WarningSource
from automod.util.logger import get_logger

logger = get_logger("warnings_repo")

_COLUMNS = """
    id, guild_id, user_id, reason, issued_by_id, issued_by_name, issued_at,
    active, source, violation_type, cleared_by_id, cleared_by_name, cleared_at, clear_reason
"""


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_record(row: aiosqlite.Row) -> WarningRecord:
    cleared_by = None
    if row["cleared_by_id"] is not None:
        cleared_by = ActorRef(id=row["cleared_by_id"], display_name=row["cleared_by_name"] or "")
    return WarningRecord(
        id=row["id"],
        guild_id=GuildID(row["guild_id"]),
        user_id=UserID(row["user_id"]),
        reason=row["reason"],
        issued_by=ActorRef(id=row["issued_by_id"], display_name=row["issued_by_name"]),
        issued_at=datetime.fromisoformat(row["issued_at"]),
        active=bool(row["active"]),
        source=WarningSource(row["source"]),
        violation_type=row["violation_type"],
        cleared_by=cleared_by,
        cleared_at=_parse_time(row["cleared_at"]),
        clear_reason=row["clear_reason"],
    )


class WarningsRepository:
    """CRUD for the warnings table."""

    async def insert(self, conn: aiosqlite.Connection, record: WarningRecord) -> None:
        """Insert a new warning row."""
        await conn.execute(
            f"INSERT INTO warnings ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.guild_id.to_int(),
                record.user_id.to_int(),
                record.reason,
                record.issued_by.id,
                record.issued_by.display_name,
                record.issued_at.isoformat(),
                1 if record.active else 0,
                record.source.value,
                record.violation_type,
                record.cleared_by.id if record.cleared_by else None,
                record.cleared_by.display_name if record.cleared_by else None,
                record.cleared_at.isoformat() if record.cleared_at else None,
                record.clear_reason,
            ),
        )

    async def get(
        self, conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID, record_id: str
    ) -> WarningRecord | None:
        """Fetch a single warning of a user by id."""
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM warnings WHERE guild_id = ? AND user_id = ? AND id = ?",
            (GuildID(guild_id).to_int(), UserID(user_id).to_int(), record_id),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def list_for_user(
        self,
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        user_id: UserID,
        *,
        include_inactive: bool = True,
    ) -> List[WarningRecord]:
        """All warnings of a user, oldest first."""
        query = f"SELECT {_COLUMNS} FROM warnings WHERE guild_id = ? AND user_id = ?"
        if not include_inactive:
            query += " AND active = 1"
        query += " ORDER BY seq ASC"
        async with conn.execute(query, (GuildID(guild_id).to_int(), UserID(user_id).to_int())) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def count_active(self, conn: aiosqlite.Connection, guild_id: GuildID, user_id: UserID) -> int:
        async with conn.execute(
            "SELECT COUNT(*) FROM warnings WHERE guild_id = ? AND user_id = ? AND active = 1",
            (GuildID(guild_id).to_int(), UserID(user_id).to_int()),
        ) as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def deactivate(
        self,
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        user_id: UserID,
        record_id: str,
        cleared_by: ActorRef,
        cleared_at: datetime,
        reason: str,
    ) -> int:
        """Mark one warning inactive (re-stamping metadata if already inactive). Returns rows touched."""
        cursor = await conn.execute(
            """
            UPDATE warnings
            SET active = 0, cleared_by_id = ?, cleared_by_name = ?, cleared_at = ?, clear_reason = ?
            WHERE guild_id = ? AND user_id = ? AND id = ?
            """,
            (
                cleared_by.id,
                cleared_by.display_name,
                cleared_at.isoformat(),
                reason,
                GuildID(guild_id).to_int(),
                UserID(user_id).to_int(),
                record_id,
            ),
        )
        return cursor.rowcount

    async def deactivate_all_active(
        self,
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        user_id: UserID,
        cleared_by: ActorRef,
        cleared_at: datetime,
        reason: str,
    ) -> int:
        """Mark every active warning of a user inactive. Returns rows touched."""
        cursor = await conn.execute(
            """
            UPDATE warnings
            SET active = 0, cleared_by_id = ?, cleared_by_name = ?, cleared_at = ?, clear_reason = ?
            WHERE guild_id = ? AND user_id = ? AND active = 1
            """,
            (
                cleared_by.id,
                cleared_by.display_name,
                cleared_at.isoformat(),
                reason,
                GuildID(guild_id).to_int(),
                UserID(user_id).to_int(),
            ),
        )
        return cursor.rowcount
