"""
Burst-spam detection with debounced alerts.

The tracker keeps, per (guild, author), a sliding window of recent message
timestamps plus the time of the last alert. It is an explicitly constructed
component owned by whoever wires the bot together; its periodic cleanup task
is started and stopped alongside the bot.

Timestamps are plain millisecond floats so callers (and tests) control the
clock.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from automod.datatypes.discord_datatypes import GuildID, UserID
from automod.util.keyed_lock import KeyedLock
from automod.util.logger import get_logger

logger = get_logger("rate_tracker")

DEFAULT_CLEANUP_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_IDLE_MS = 60_000


def now_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000


@dataclass(slots=True)
class RateWindow:
    """Recent message timestamps of one author in one guild."""

    timestamps: Deque[float] = field(default_factory=deque)
    last_alert_at: Optional[float] = None


class RateTracker:
    """
    Sliding-window message counter with a per-author alert debounce.

    Attributes:
        windows: guild_id -> user_id -> RateWindow.
        cleanup_interval: Seconds between background cleanup passes.
        max_idle_ms: Windows whose newest entry is older than this are evicted.
    """

    def __init__(
        self,
        *,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        max_idle_ms: float = DEFAULT_MAX_IDLE_MS,
    ) -> None:
        self.windows: Dict[GuildID, Dict[UserID, RateWindow]] = {}
        self.cleanup_interval = cleanup_interval
        self.max_idle_ms = max_idle_ms
        self._locks = KeyedLock()
        self._cleanup_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    async def record_and_check(
        self,
        guild_id: GuildID,
        user_id: UserID,
        now: float,
        threshold: int,
        interval_ms: int,
    ) -> bool:
        """
        Record a message at ``now`` and report whether it completes a burst.

        Returns True when at least ``threshold`` messages fall inside the last
        ``interval_ms`` and no alert was raised for this author within
        ``2 * interval_ms``. A suppressed burst returns False without moving
        the debounce window.
        """
        if threshold <= 0 or interval_ms <= 0:
            return False

        guild_id, user_id = GuildID(guild_id), UserID(user_id)
        async with self._locks.hold((guild_id, user_id)):
            window = self.windows.setdefault(guild_id, {}).setdefault(user_id, RateWindow())
            window.timestamps.append(now)

            while window.timestamps and now - window.timestamps[0] >= interval_ms:
                window.timestamps.popleft()

            if len(window.timestamps) < threshold:
                return False

            if window.last_alert_at is not None and now - window.last_alert_at < interval_ms * 2:
                logger.debug(
                    "[RATE TRACKER] Suppressed repeat alert for user %s in guild %s", user_id, guild_id
                )
                return False

            window.last_alert_at = now
            logger.debug(
                "[RATE TRACKER] %d messages within %dms from user %s in guild %s",
                len(window.timestamps), interval_ms, user_id, guild_id,
            )
            return True

    def window_size(self, guild_id: GuildID, user_id: UserID) -> int:
        """Number of timestamps currently held for an author (0 when untracked)."""
        window = self.windows.get(GuildID(guild_id), {}).get(UserID(user_id))
        return len(window.timestamps) if window else 0

    def __len__(self) -> int:
        return sum(len(users) for users in self.windows.values())

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self, now: float | None = None, max_idle_ms: float | None = None) -> int:
        """
        Evict idle windows and empty guild maps.

        A window is idle when it holds no timestamps or its newest timestamp is
        older than ``max_idle_ms``. Windows whose lock is currently held are
        left alone for the next pass.

        Returns:
            int: Number of author windows evicted.
        """
        now = now_ms() if now is None else now
        max_idle_ms = self.max_idle_ms if max_idle_ms is None else max_idle_ms
        evicted = 0

        for guild_id in list(self.windows):
            users = self.windows[guild_id]
            for user_id in list(users):
                if self._locks.is_held((guild_id, user_id)):
                    continue
                window = users[user_id]
                if not window.timestamps or now - window.timestamps[-1] > max_idle_ms:
                    del users[user_id]
                    evicted += 1
            if not users:
                del self.windows[guild_id]

        if evicted:
            logger.debug("[RATE TRACKER] Evicted %d idle windows", evicted)
        return evicted

    def start(self) -> None:
        """Start the periodic cleanup task if it is not already running."""
        if self._cleanup_task is None or self._cleanup_task.done():
            loop = asyncio.get_running_loop()
            self._cleanup_task = loop.create_task(self._run_cleanup(), name="automod-rate-tracker-cleanup")
            logger.info("[RATE TRACKER] Cleanup task started (every %.0fs)", self.cleanup_interval)

    async def stop(self) -> None:
        """Cancel the cleanup task and wait for it to finish. Safe to call twice."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[RATE TRACKER] Cleanup task stopped")

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _run_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                await self.cleanup()
            except Exception as exc:
                logger.error("[RATE TRACKER] Cleanup pass failed: %s", exc)
