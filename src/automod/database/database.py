"""
Database initialization and lifecycle for the automod SQLite store.

The Database class owns the connection manager and the schema; repositories
borrow its connection through ``read()`` and ``transaction()``.

Lifecycle:
    1. ``await get_db().initialize()`` at program startup
    2. Repositories and the warning ledger use ``read()`` / ``transaction()``
    3. ``await get_db().shutdown()`` at program end
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from automod.database.db_connection import ConnectionManager
from automod.database.db_schema import SchemaManager
from automod.util.logger import get_logger

logger = get_logger("database")

DB_PATH = Path(os.getenv("AUTOMOD_DB_PATH", "./data/automod.db")).resolve()


class Database:
    """
    Coordinator for the automod database.

    Attributes:
        db_path: Location of the SQLite file.
        connection_manager: Owner of the single long-lived connection.
    """

    def __init__(self, db_path: Path = DB_PATH):
        self.db_path = Path(db_path)
        self.connection_manager = ConnectionManager()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> bool:
        """
        Open the connection and create the schema.

        Returns:
            True if initialization succeeded, False otherwise
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return True

        try:
            await self.connection_manager.open(self.db_path)
            await SchemaManager.initialize_schema(self.connection_manager.connection)
            self._initialized = True
            logger.info("[DATABASE] Database initialized at %s", self.db_path)
            return True
        except Exception as e:
            logger.error("[DATABASE] Database initialization failed: %s", e)
            await self.connection_manager.close()
            return False

    async def shutdown(self) -> None:
        """Close the connection. Safe to call when never initialized."""
        if not self._initialized:
            return
        await self.connection_manager.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self.connection_manager.read() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self.connection_manager.transaction() as conn:
            yield conn


# Global Database instance
database = Database()


def get_db() -> Database:
    """Return the process-wide Database instance."""
    return database
