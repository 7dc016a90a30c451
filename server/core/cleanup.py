"""Periodic archive cache eviction for the long-running server.

Follows the start/stop/loop shape of the other background services.
All configuration from Settings (environment variables).
"""
import asyncio
from typing import Optional, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.config import Settings
    from services.downloads.store import ArchiveCacheStore

logger = get_logger(__name__)


class ArchiveJanitor:
    """Background sweep that deletes archives past their retention.

    Removes installed archives and orphaned temp files whose mtime is older
    than ARCHIVE_RETENTION_SECONDS, every ARCHIVE_JANITOR_INTERVAL seconds.
    Eviction runs in a worker thread and tolerates files vanishing under it.
    """

    def __init__(self, store: "ArchiveCacheStore", settings: "Settings"):
        self.store = store
        self.settings = settings
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.sweeps = 0
        self.last_removed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the janitor background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            "Archive janitor started",
            interval=self.settings.archive_janitor_interval,
            retention_seconds=self.settings.archive_retention_seconds,
            cache_dir=str(self.store.cache_dir)
        )

    async def stop(self) -> None:
        """Stop the janitor gracefully."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Archive janitor stopped")

    async def _cleanup_loop(self) -> None:
        """Main loop - sweeps at the configured interval."""
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("Archive cache sweep failed", error=str(e))
            await asyncio.sleep(self.settings.archive_janitor_interval)

    async def run_once(self) -> int:
        """Sweep once and return the number of files removed."""
        removed = await asyncio.to_thread(self.store.evict_stale)
        self.sweeps += 1
        self.last_removed = removed
        # Only log if something was cleaned up
        if removed > 0:
            logger.info("Archive cache sweep completed", removed=removed)
        return removed
