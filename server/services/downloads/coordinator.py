"""Single-flight archive build coordination.

At most one build runs per cache key; later callers for the same key await
the in-flight build's future instead of starting their own. The number of
distinct keys building at once is capped, and callers beyond the cap are
turned away immediately rather than queued.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from constants import BUILD_RETRY_AFTER_SECONDS
from core.logging import get_logger
from .exceptions import TooManyConcurrentBuilds

logger = get_logger(__name__)

BuildFn = Callable[[], Awaitable[Any]]


class BuildCoordinator:
    """Owns the table of in-flight builds.

    The slot table is only read or written while holding ``self._lock``.
    Builds run as detached tasks and waiters use ``asyncio.shield`` so a
    disconnecting requester never cancels a build others are waiting on.
    """

    def __init__(self, max_concurrent_builds: int = 3,
                 retry_after: int = BUILD_RETRY_AFTER_SECONDS):
        if max_concurrent_builds < 1:
            raise ValueError("max_concurrent_builds must be >= 1")
        self.max_concurrent_builds = max_concurrent_builds
        self.retry_after = retry_after
        self._lock = asyncio.Lock()
        self._slots: Dict[str, asyncio.Future] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.builds_started = 0

    async def run_exclusive(self, cache_key: str, build_fn: BuildFn) -> Any:
        """Run ``build_fn`` for ``cache_key`` unless a build is already running.

        Returns the build result, or raises the build's exception. Every
        caller for the same key gets the same outcome.
        """
        async with self._lock:
            future = self._slots.get(cache_key)
            if future is None:
                if len(self._slots) >= self.max_concurrent_builds:
                    logger.warning("Build rejected, capacity reached",
                                   cache_key=cache_key[:12],
                                   in_flight=len(self._slots),
                                   limit=self.max_concurrent_builds)
                    raise TooManyConcurrentBuilds(self.max_concurrent_builds, self.retry_after)

                future = asyncio.get_running_loop().create_future()
                self._slots[cache_key] = future
                self.builds_started += 1
                task = asyncio.create_task(self._run(cache_key, build_fn, future))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                logger.info("Archive build started",
                            cache_key=cache_key[:12],
                            in_flight=len(self._slots))
            else:
                logger.debug("Joining in-flight archive build", cache_key=cache_key[:12])

        return await asyncio.shield(future)

    async def _run(self, cache_key: str, build_fn: BuildFn, future: asyncio.Future) -> None:
        try:
            result = await build_fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            logger.error("Archive build failed",
                         cache_key=cache_key[:12],
                         error=f"{type(e).__name__}: {e}")
            future.set_exception(e)
            # Mark retrieved so an unawaited failure is not reported twice.
            future.exception()
        else:
            future.set_result(result)
        finally:
            async with self._lock:
                if self._slots.get(cache_key) is future:
                    del self._slots[cache_key]

    def in_flight(self) -> int:
        """Number of builds currently running."""
        return len(self._slots)

    def is_building(self, cache_key: str) -> bool:
        return cache_key in self._slots

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel outstanding builds and wait for them to unwind."""
        tasks = list(self._tasks)
        if tasks:
            logger.info("Cancelling in-flight archive builds", count=len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.wait(tasks, timeout=timeout)

        # A task cancelled before its first step never reaches its finally block.
        async with self._lock:
            for future in self._slots.values():
                if not future.done():
                    future.cancel()
            self._slots.clear()
