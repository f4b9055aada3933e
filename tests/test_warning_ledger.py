import asyncio
import sqlite3

import pytest

from automod.database.database import Database
from automod.datatypes.warning_datatypes import ActorRef, WarningSource, new_warning
from automod.errors import RecordNotFound
from automod.moderation.warning_ledger import WarningLedger

GUILD = 100
USER = 200
MOD = ActorRef(id=1, display_name="mod")


async def open_ledger(tmp_path):
    database = Database(tmp_path / "ledger.db")
    assert await database.initialize() is True
    return database, WarningLedger(database)


async def add(ledger, reason="spam", user=USER, **kwargs):
    record = new_warning(GUILD, user, reason, MOD, **kwargs)
    await ledger.append(GUILD, user, record)
    return record


@pytest.mark.asyncio
async def test_append_then_count(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        assert await ledger.count_active(GUILD, USER) == 0
        await add(ledger)
        await add(ledger, "caps", source=WarningSource.AUTOMOD, violation_type="caps_spam")

        assert await ledger.count_active(GUILD, USER) == 2
        assert await ledger.count_active(GUILD, USER + 1) == 0
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_append_rejects_record_of_other_user(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        record = new_warning(GUILD, USER, "spam", MOD)
        with pytest.raises(ValueError):
            await ledger.append(GUILD, USER + 1, record)
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_records_round_trip(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        stored = await add(ledger, "bad words", source=WarningSource.AUTOMOD, violation_type="banned_word")

        fetched = await ledger.get(GUILD, USER, stored.id)

        assert fetched == stored
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_clear_one_keeps_history(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        first = await add(ledger, "one")
        await add(ledger, "two")

        cleared = await ledger.clear_one(GUILD, USER, first.id, MOD, "appealed")

        assert cleared.active is False
        assert cleared.clear_reason == "appealed"
        assert cleared.cleared_by == MOD
        assert cleared.reason == "one"
        assert await ledger.count_active(GUILD, USER) == 1

        everything = await ledger.list_warnings(GUILD, USER, include_inactive=True)
        assert [w.reason for w in everything] == ["one", "two"]
        active_only = await ledger.list_warnings(GUILD, USER)
        assert [w.reason for w in active_only] == ["two"]
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_clear_one_unknown_id(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        record = await add(ledger)
        with pytest.raises(RecordNotFound):
            await ledger.clear_one(GUILD, USER, "missing", MOD, "x")
        # Ids are scoped to the author
        with pytest.raises(RecordNotFound):
            await ledger.clear_one(GUILD, USER + 1, record.id, MOD, "x")
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_reclearing_restamps_metadata(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        record = await add(ledger)
        await ledger.clear_one(GUILD, USER, record.id, MOD, "first")
        other = ActorRef(id=2, display_name="admin")

        cleared = await ledger.clear_one(GUILD, USER, record.id, other, "second")

        assert cleared.clear_reason == "second"
        assert cleared.cleared_by == other
        assert await ledger.count_active(GUILD, USER) == 0
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_clear_all(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        for reason in ("a", "b", "c"):
            await add(ledger, reason)
        await add(ledger, "other user", user=USER + 1)

        assert await ledger.clear_all(GUILD, USER, MOD, "fresh start") == 3
        assert await ledger.count_active(GUILD, USER) == 0
        assert await ledger.count_active(GUILD, USER + 1) == 1
        assert await ledger.clear_all(GUILD, USER, MOD, "again") == 0
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_concurrent_appends_are_all_counted(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        await asyncio.gather(*(add(ledger, f"w{i}") for i in range(10)))
        assert await ledger.count_active(GUILD, USER) == 10
    finally:
        await database.shutdown()


@pytest.mark.asyncio
async def test_rows_are_never_deleted(tmp_path):
    database, ledger = await open_ledger(tmp_path)
    try:
        for reason in ("a", "b"):
            await add(ledger, reason)
        await ledger.clear_all(GUILD, USER, MOD, "cleanup")
    finally:
        await database.shutdown()

    conn = sqlite3.connect(tmp_path / "ledger.db")
    try:
        total, active = conn.execute("SELECT COUNT(*), SUM(active) FROM warnings").fetchone()
    finally:
        conn.close()
    assert total == 2
    assert active == 0
