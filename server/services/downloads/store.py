"""Filesystem-backed archive cache.

Layout::

    <cache_dir>/<sha256>.zip          installed archives, one per cache key
    <cache_dir>/.tmp/<key>-<id>.part   archives being written (private)

Readers only ever see files that were moved into place with a single
``os.replace``, so a partially written archive is never visible under its
final name. Freshness is the installed file's mtime.
"""

import enum
import os
import re
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from core.logging import get_logger, log_cache_event

logger = get_logger(__name__)

ARCHIVE_SUFFIX = ".zip"
TEMP_DIR_NAME = ".tmp"
TEMP_SUFFIX = ".part"

_CACHE_KEY_RE = re.compile(r"^[0-9a-f]{64}$")


class CacheStatus(str, enum.Enum):
    FRESH = "fresh"
    STALE = "stale"
    ABSENT = "absent"


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache lookup."""
    status: CacheStatus
    path: Path
    created_at: Optional[float] = None

    @property
    def is_fresh(self) -> bool:
        return self.status is CacheStatus.FRESH


class ArchiveCacheStore:
    """Map from cache key to a completed archive file on local disk."""

    def __init__(self, cache_dir, retention_seconds: int,
                 clock: Callable[[], float] = time.time):
        self.cache_dir = Path(cache_dir)
        self.temp_dir = self.cache_dir / TEMP_DIR_NAME
        self.retention_seconds = retention_seconds
        self._clock = clock

    def ensure_dirs(self) -> None:
        """Create the cache and temp directories if missing."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, cache_key: str) -> Path:
        if not _CACHE_KEY_RE.match(cache_key or ""):
            raise ValueError(f"Invalid cache key: {cache_key!r}")
        return self.cache_dir / f"{cache_key}{ARCHIVE_SUFFIX}"

    def lookup(self, cache_key: str) -> CacheLookup:
        """Classify the entry for ``cache_key`` as fresh, stale or absent."""
        path = self.path_for(cache_key)
        try:
            created_at = path.stat().st_mtime
        except FileNotFoundError:
            log_cache_event(logger, "lookup", cache_key, hit=False)
            return CacheLookup(CacheStatus.ABSENT, path)

        age = self._clock() - created_at
        if age >= self.retention_seconds:
            log_cache_event(logger, "lookup", cache_key, hit=False, stale=True,
                            age_seconds=round(age, 1))
            return CacheLookup(CacheStatus.STALE, path, created_at)

        log_cache_event(logger, "lookup", cache_key, hit=True)
        return CacheLookup(CacheStatus.FRESH, path, created_at)

    def temp_path(self, cache_key: str) -> Path:
        """Unique private path for a new archive, on the cache filesystem."""
        self.path_for(cache_key)  # validates the key
        self.ensure_dirs()
        return self.temp_dir / f"{cache_key}-{uuid.uuid4().hex}{TEMP_SUFFIX}"

    def install(self, cache_key: str, temp_path: Path) -> Path:
        """Atomically move a finished archive into the cache.

        Any previous (necessarily stale) entry under the same key is replaced.
        The mtime is reset so freshness counts from installation.
        """
        final_path = self.path_for(cache_key)
        now = self._clock()
        os.utime(temp_path, (now, now))
        os.replace(temp_path, final_path)
        log_cache_event(logger, "install", cache_key,
                        size_bytes=final_path.stat().st_size)
        return final_path

    def discard(self, path: Path) -> None:
        """Remove a file if it still exists."""
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass

    def evict_stale(self, retention_seconds: Optional[int] = None) -> int:
        """Remove installed archives and orphaned temp files past retention.

        Files that disappear between listing and removal are skipped, so this
        can run while other requests install or evict the same entries.
        """
        retention = self.retention_seconds if retention_seconds is None else retention_seconds
        cutoff = self._clock() - retention
        removed = 0

        if not self.cache_dir.exists():
            return 0

        candidates = list(self.cache_dir.glob(f"*{ARCHIVE_SUFFIX}"))
        if self.temp_dir.exists():
            candidates.extend(self.temp_dir.glob(f"*{TEMP_SUFFIX}"))

        for path in candidates:
            try:
                if path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
                removed += 1
                logger.debug("Evicted cached archive", path=path.name)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to evict cached archive", path=path.name, error=str(e))

        return removed

    def stats(self) -> Dict[str, int]:
        """Entry count and total size of installed archives."""
        count = 0
        total = 0
        if self.cache_dir.exists():
            for path in self.cache_dir.glob(f"*{ARCHIVE_SUFFIX}"):
                try:
                    total += path.stat().st_size
                    count += 1
                except FileNotFoundError:
                    continue
        return {"entries": count, "total_bytes": total}
