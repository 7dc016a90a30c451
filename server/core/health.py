"""Health check utilities for server monitoring.

Provides uptime tracking and comprehensive health status for /health endpoint.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

import psutil

if TYPE_CHECKING:
    from core.database import Database
    from core.cleanup import ArchiveJanitor
    from services.downloads.coordinator import BuildCoordinator
    from services.downloads.store import ArchiveCacheStore

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


def get_disk_percent(path: str = ".") -> float:
    """Get disk usage percentage for given path."""
    try:
        return psutil.disk_usage(path).percent
    except OSError:
        return 0.0


async def check_database(database: "Database") -> bool:
    """Check database connectivity."""
    try:
        async with database.get_session() as session:
            from sqlalchemy import text
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


async def get_health_status(
    database: "Database",
    store: "ArchiveCacheStore",
    coordinator: "BuildCoordinator",
    janitor: "ArchiveJanitor",
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    Returns:
        Dict containing status, uptime, resource usage, cache and build state.
    """
    db_healthy = await check_database(database)
    cache_writable = store.cache_dir.is_dir()

    overall_status = "healthy" if (db_healthy and cache_writable) else "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "disk_percent": round(get_disk_percent(str(store.cache_dir) if cache_writable else "."), 1),
        "checks": {
            "database": db_healthy,
            "archive_cache": cache_writable,
        },
        "archives": {
            **store.stats(),
            "builds_in_flight": coordinator.in_flight(),
            "builds_started": coordinator.builds_started,
        },
        "janitor": {
            "running": janitor.running,
            "sweeps": janitor.sweeps,
            "last_removed": janitor.last_removed,
        },
    }
