"""Health report contents."""

from types import SimpleNamespace

from core.cleanup import ArchiveJanitor
from core.config import Settings
from core.database import Database
from core.health import get_health_status, set_startup_time


async def test_health_reports_cache_and_builds(tmp_path, store, coordinator):
    settings = Settings(
        download_token_secret="health-secret-0123456789abcdef01234567",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'health.db'}",
    )
    database = Database(settings)
    await database.startup()
    janitor = ArchiveJanitor(store, SimpleNamespace(archive_janitor_interval=3600,
                                                    archive_retention_seconds=3600))
    set_startup_time()
    try:
        health = await get_health_status(database, store, coordinator, janitor)
    finally:
        await database.shutdown()

    assert health["status"] == "healthy"
    assert health["checks"] == {"database": True, "archive_cache": True}
    assert health["archives"]["entries"] == 0
    assert health["archives"]["builds_in_flight"] == 0
    assert health["janitor"]["running"] is False
    assert health["uptime_seconds"] >= 0


async def test_health_degraded_without_database(store, coordinator):
    settings = Settings(
        download_token_secret="health-secret-0123456789abcdef01234567",
        database_url="sqlite+aiosqlite:///:memory:",
    )
    janitor = ArchiveJanitor(store, SimpleNamespace(archive_janitor_interval=3600,
                                                    archive_retention_seconds=3600))
    health = await get_health_status(Database(settings), store, coordinator, janitor)
    assert health["status"] == "degraded"
    assert health["checks"]["database"] is False
