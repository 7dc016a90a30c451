"""Archive janitor lifecycle and sweeps."""

import asyncio
import hashlib
from types import SimpleNamespace

from core.cleanup import ArchiveJanitor

from conftest import RETENTION


def _settings(interval=3600):
    return SimpleNamespace(archive_janitor_interval=interval,
                           archive_retention_seconds=RETENTION)


def _install(store, seed: bytes):
    key = hashlib.sha256(seed).hexdigest()
    temp = store.temp_path(key)
    temp.write_bytes(seed)
    return store.install(key, temp)


async def test_run_once_evicts_stale_archives(store, clock):
    old = _install(store, b"old")
    clock.advance(RETENTION + 1)
    fresh = _install(store, b"fresh")

    janitor = ArchiveJanitor(store, _settings())
    assert await janitor.run_once() == 1
    assert not old.exists()
    assert fresh.exists()
    assert janitor.sweeps == 1
    assert janitor.last_removed == 1


async def test_start_sweeps_immediately_and_stop_is_clean(store, clock):
    stale = _install(store, b"stale")
    clock.advance(RETENTION + 1)

    janitor = ArchiveJanitor(store, _settings(interval=3600))
    await janitor.start()
    assert janitor.running
    for _ in range(50):
        if janitor.sweeps:
            break
        await asyncio.sleep(0.01)
    await janitor.stop()

    assert not janitor.running
    assert janitor.sweeps == 1
    assert not stale.exists()


async def test_sweep_errors_do_not_stop_the_loop(store, monkeypatch):
    calls = 0

    def flaky_evict(retention_seconds=None):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise PermissionError("read-only filesystem")
        return 0

    monkeypatch.setattr(store, "evict_stale", flaky_evict)
    janitor = ArchiveJanitor(store, _settings(interval=0.01))
    await janitor.start()
    for _ in range(100):
        if calls >= 2:
            break
        await asyncio.sleep(0.01)
    await janitor.stop()

    assert calls >= 2


async def test_start_twice_is_a_no_op(store):
    janitor = ArchiveJanitor(store, _settings())
    await janitor.start()
    task = janitor._task
    await janitor.start()
    assert janitor._task is task
    await janitor.stop()
