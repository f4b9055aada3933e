"""
Repository for per-guild automod overrides.

Covers guild_automod_settings and its child tables (banned words, exempt
channels, exempt roles) plus guild_warning_config. A guild's overrides are
always written as a whole inside one transaction.
"""

from __future__ import annotations

from typing import Dict, Optional

import aiosqlite

from automod.datatypes.discord_datatypes import ChannelID, GuildID, RoleID
from automod.datatypes.policy_datatypes import AutomodOverrides, Thresholds
from automod.util.logger import get_logger

logger = get_logger("automod_settings_repo")

_SCALAR_COLUMNS = (
    "enabled",
    "filter_invites",
    "filter_links",
    "max_mentions",
    "max_caps_percent",
    "min_caps_length",
    "min_account_age_days",
    "spam_threshold",
    "spam_interval_ms",
)
_BOOL_COLUMNS = {"enabled", "filter_invites", "filter_links"}


def _to_db(column: str, value):
    if value is None:
        return None
    if column in _BOOL_COLUMNS:
        return 1 if value else 0
    return int(value)


def _from_db(column: str, value):
    if value is None:
        return None
    if column in _BOOL_COLUMNS:
        return bool(value)
    return int(value)


class AutomodSettingsRepository:
    """CRUD for automod override tables."""

    async def get(self, conn: aiosqlite.Connection, guild_id: GuildID) -> Optional[AutomodOverrides]:
        """Fetch one guild's overrides, or None when the guild never configured anything."""
        all_overrides = await self._load(conn, GuildID(guild_id).to_int())
        return all_overrides.get(GuildID(guild_id).to_int())

    async def get_all(self, conn: aiosqlite.Connection) -> Dict[int, AutomodOverrides]:
        """Fetch every guild's overrides keyed by guild_id int."""
        return await self._load(conn, None)

    async def _load(self, conn: aiosqlite.Connection, guild_id: Optional[int]) -> Dict[int, AutomodOverrides]:
        where = " WHERE guild_id = ?" if guild_id is not None else ""
        params = (guild_id,) if guild_id is not None else ()
        result: Dict[int, AutomodOverrides] = {}

        async with conn.execute(
            f"SELECT guild_id, {', '.join(_SCALAR_COLUMNS)} FROM guild_automod_settings{where}", params
        ) as cursor:
            for row in await cursor.fetchall():
                result[row["guild_id"]] = AutomodOverrides(
                    **{column: _from_db(column, row[column]) for column in _SCALAR_COLUMNS}
                )

        async with conn.execute(
            f"SELECT guild_id, word FROM guild_banned_words{where} ORDER BY guild_id, position", params
        ) as cursor:
            for row in await cursor.fetchall():
                result.setdefault(row["guild_id"], AutomodOverrides()).banned_words.append(row["word"])

        async with conn.execute(f"SELECT guild_id, channel_id FROM guild_exempt_channels{where}", params) as cursor:
            for row in await cursor.fetchall():
                result.setdefault(row["guild_id"], AutomodOverrides()).exempt_channel_ids.append(
                    ChannelID(row["channel_id"])
                )

        async with conn.execute(f"SELECT guild_id, role_id FROM guild_exempt_roles{where}", params) as cursor:
            for row in await cursor.fetchall():
                result.setdefault(row["guild_id"], AutomodOverrides()).exempt_role_ids.append(RoleID(row["role_id"]))

        async with conn.execute(
            f"""
            SELECT guild_id, thresholds_set, mute_threshold, kick_threshold, ban_threshold, mute_duration_ms
            FROM guild_warning_config{where}
            """,
            params,
        ) as cursor:
            for row in await cursor.fetchall():
                overrides = result.setdefault(row["guild_id"], AutomodOverrides())
                if row["thresholds_set"]:
                    overrides.thresholds = Thresholds(
                        mute=row["mute_threshold"], kick=row["kick_threshold"], ban=row["ban_threshold"]
                    )
                overrides.mute_duration_ms = row["mute_duration_ms"]

        return result

    async def save(self, conn: aiosqlite.Connection, guild_id: GuildID, overrides: AutomodOverrides) -> None:
        """Insert or replace all overrides of a guild. Call inside a transaction."""
        gid = GuildID(guild_id).to_int()
        values = [_to_db(column, getattr(overrides, column)) for column in _SCALAR_COLUMNS]
        assignments = ",\n                ".join(f"{column} = excluded.{column}" for column in _SCALAR_COLUMNS)

        await conn.execute(
            f"""
            INSERT INTO guild_automod_settings (guild_id, {', '.join(_SCALAR_COLUMNS)})
            VALUES ({', '.join('?' for _ in range(len(_SCALAR_COLUMNS) + 1))})
            ON CONFLICT(guild_id) DO UPDATE SET
                {assignments}
            """,
            (gid, *values),
        )

        await conn.execute("DELETE FROM guild_banned_words WHERE guild_id = ?", (gid,))
        await conn.executemany(
            "INSERT INTO guild_banned_words (guild_id, word, position) VALUES (?, ?, ?)",
            [(gid, word, position) for position, word in enumerate(dict.fromkeys(overrides.banned_words))],
        )

        await conn.execute("DELETE FROM guild_exempt_channels WHERE guild_id = ?", (gid,))
        await conn.executemany(
            "INSERT INTO guild_exempt_channels (guild_id, channel_id) VALUES (?, ?)",
            [(gid, channel_id.to_int()) for channel_id in dict.fromkeys(overrides.exempt_channel_ids)],
        )

        await conn.execute("DELETE FROM guild_exempt_roles WHERE guild_id = ?", (gid,))
        await conn.executemany(
            "INSERT INTO guild_exempt_roles (guild_id, role_id) VALUES (?, ?)",
            [(gid, role_id.to_int()) for role_id in dict.fromkeys(overrides.exempt_role_ids)],
        )

        thresholds = overrides.thresholds
        await conn.execute(
            """
            INSERT INTO guild_warning_config (
                guild_id, thresholds_set, mute_threshold, kick_threshold, ban_threshold, mute_duration_ms
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                thresholds_set   = excluded.thresholds_set,
                mute_threshold   = excluded.mute_threshold,
                kick_threshold   = excluded.kick_threshold,
                ban_threshold    = excluded.ban_threshold,
                mute_duration_ms = excluded.mute_duration_ms
            """,
            (
                gid,
                1 if thresholds is not None else 0,
                thresholds.mute if thresholds else None,
                thresholds.kick if thresholds else None,
                thresholds.ban if thresholds else None,
                overrides.mute_duration_ms,
            ),
        )

    async def delete(self, conn: aiosqlite.Connection, guild_id: GuildID) -> None:
        """Delete all overrides of a guild (CASCADE removes child rows)."""
        gid = GuildID(guild_id).to_int()
        await conn.execute("DELETE FROM guild_automod_settings WHERE guild_id = ?", (gid,))
        await conn.execute("DELETE FROM guild_warning_config WHERE guild_id = ?", (gid,))
