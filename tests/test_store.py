"""Archive cache lookup, install and eviction."""

import os
import hashlib

import pytest

from services.downloads import CacheStatus

from conftest import RETENTION

KEY = hashlib.sha256(b"token-one").hexdigest()
OTHER_KEY = hashlib.sha256(b"token-two").hexdigest()


def _write_temp(store, key, data=b"zip-bytes"):
    path = store.temp_path(key)
    path.write_bytes(data)
    return path


def test_lookup_absent(store):
    lookup = store.lookup(KEY)
    assert lookup.status is CacheStatus.ABSENT
    assert not lookup.is_fresh


def test_install_makes_entry_fresh(store, clock):
    temp = _write_temp(store, KEY)
    final = store.install(KEY, temp)

    assert final == store.path_for(KEY)
    assert final.read_bytes() == b"zip-bytes"
    assert not temp.exists()
    lookup = store.lookup(KEY)
    assert lookup.is_fresh
    assert lookup.created_at == pytest.approx(clock.now)


def test_entry_goes_stale_at_retention(store, clock):
    store.install(KEY, _write_temp(store, KEY))

    clock.advance(RETENTION - 1)
    assert store.lookup(KEY).status is CacheStatus.FRESH

    clock.advance(1)
    assert store.lookup(KEY).status is CacheStatus.STALE


def test_install_replaces_stale_entry(store, clock):
    store.install(KEY, _write_temp(store, KEY, b"old"))
    clock.advance(RETENTION + 10)
    assert store.lookup(KEY).status is CacheStatus.STALE

    store.install(KEY, _write_temp(store, KEY, b"new"))
    assert store.lookup(KEY).is_fresh
    assert store.path_for(KEY).read_bytes() == b"new"


def test_temp_paths_are_unique_and_private(store):
    first = store.temp_path(KEY)
    second = store.temp_path(KEY)
    assert first != second
    assert first.parent == store.temp_dir
    assert store.lookup(KEY).status is CacheStatus.ABSENT


@pytest.mark.parametrize("key", ["", "../etc/passwd", "ABC", KEY[:-1], KEY + "0"])
def test_invalid_keys_are_refused(store, key):
    with pytest.raises(ValueError):
        store.path_for(key)


def test_evict_stale_removes_only_expired_entries(store, clock):
    store.install(KEY, _write_temp(store, KEY))
    clock.advance(RETENTION + 1)
    store.install(OTHER_KEY, _write_temp(store, OTHER_KEY))

    removed = store.evict_stale()

    assert removed == 1
    assert store.lookup(KEY).status is CacheStatus.ABSENT
    assert store.lookup(OTHER_KEY).is_fresh


def test_evict_stale_removes_orphaned_temp_files(store, clock):
    orphan = _write_temp(store, KEY)
    old = clock.now - RETENTION - 5
    os.utime(orphan, (old, old))
    in_progress = _write_temp(store, OTHER_KEY)
    os.utime(in_progress, (clock.now, clock.now))

    assert store.evict_stale() == 1
    assert not orphan.exists()
    assert in_progress.exists()


def test_evict_stale_tolerates_vanishing_files(store, clock, monkeypatch):
    store.install(KEY, _write_temp(store, KEY))
    clock.advance(RETENTION + 1)
    victim = store.path_for(KEY)
    real_unlink = type(victim).unlink

    def racing_unlink(self, *args, **kwargs):
        # Another sweeper got there first.
        real_unlink(self, *args, **kwargs)
        raise FileNotFoundError(str(self))

    monkeypatch.setattr(type(victim), "unlink", racing_unlink)
    assert store.evict_stale() == 0
    assert not victim.exists()


def test_evict_on_missing_directory(tmp_path, clock):
    from services.downloads import ArchiveCacheStore

    store = ArchiveCacheStore(tmp_path / "never-created", retention_seconds=RETENTION, clock=clock)
    assert store.evict_stale() == 0
    assert store.stats() == {"entries": 0, "total_bytes": 0}


def test_stats_counts_installed_archives(store):
    store.install(KEY, _write_temp(store, KEY, b"12345"))
    store.install(OTHER_KEY, _write_temp(store, OTHER_KEY, b"123"))
    _write_temp(store, KEY, b"ignored temp file")
    assert store.stats() == {"entries": 2, "total_bytes": 8}
