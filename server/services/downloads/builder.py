"""Archive builder: resolves items, fetches their bytes and writes a zip.

Each item is first spooled to a private file and only then added to the
archive, so an object that fails half-way through its download leaves no
truncated entry behind. Individual failures are logged and skipped; an
archive with no entries at all is a build failure.
"""

import asyncio
import time
import zipfile
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, List, Protocol, Sequence, Set

from core.logging import get_logger, log_build_timing
from models.database import StoredItem
from .exceptions import NoContent

logger = get_logger(__name__)

_UNSAFE_NAME_PARTS = ("/", "\\", "\0", "..")


class MetadataStore(Protocol):
    """Resolves item ids to stored objects, omitting unknown ids."""

    async def list_items_by_ids(self, ids: Sequence[str]) -> List[StoredItem]:
        ...


class ObjectStore(Protocol):
    """Issues short-lived fetch locations and streams object bytes."""

    async def resolve_download_location(self, object_key: str) -> str:
        ...

    def fetch_bytes(self, url: str) -> AsyncIterator[bytes]:
        ...


@dataclass
class BuildReport:
    """Outcome of a successful build."""
    included: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    size_bytes: int = 0

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped or self.missing)


def sanitize_filename(filename: str) -> str:
    """Make a display name safe to use as a flat archive entry name."""
    sanitized = filename
    for part in _UNSAFE_NAME_PARTS:
        sanitized = sanitized.replace(part, "_")
    sanitized = sanitized.strip(". ")
    return sanitized or "unnamed"


def unique_entry_name(name: str, used: Set[str]) -> str:
    """Return ``name`` or ``name (n)`` so that no two entries collide."""
    if name not in used:
        used.add(name)
        return name
    stem, dot, suffix = name.rpartition(".")
    if not dot or not stem:
        stem, suffix = name, ""
    n = 1
    while True:
        candidate = f"{stem} ({n}).{suffix}" if suffix else f"{stem} ({n})"
        if candidate not in used:
            used.add(candidate)
            return candidate
        n += 1


class ArchiveBuilder:
    """Builds a zip of stored items into a destination path."""

    def __init__(self, metadata: MetadataStore, object_store: ObjectStore,
                 compression_level: int = 6, item_timeout: float = 30.0):
        self.metadata = metadata
        self.object_store = object_store
        self.compression_level = compression_level
        self.item_timeout = item_timeout

    async def build(self, item_ids: Sequence[str], destination: Path) -> BuildReport:
        """Write the archive for ``item_ids`` to ``destination``.

        ``destination`` is closed and complete when this returns. On any
        failure it is removed before the exception propagates.
        """
        start = time.time()
        destination = Path(destination)
        report = BuildReport()

        items = await self.metadata.list_items_by_ids(list(item_ids))
        resolved = {item.id for item in items}
        report.missing = [i for i in item_ids if i not in resolved]
        if report.missing:
            logger.info("Dropping unresolved items", missing=report.missing)
        if not items:
            raise NoContent("none of the requested items exist")

        archive = await asyncio.to_thread(
            zipfile.ZipFile, destination, "w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
        )
        try:
            used_names: Set[str] = set()
            for index, item in enumerate(items):
                spool = destination.with_name(f"{destination.name}.{index}.part")
                try:
                    try:
                        await asyncio.wait_for(self._fetch_to_file(item, spool), timeout=self.item_timeout)
                    except Exception as e:
                        logger.warning("Skipping item that failed to fetch",
                                       item_id=item.id,
                                       object_key=item.object_key,
                                       error=f"{type(e).__name__}: {e}")
                        report.skipped.append(item.id)
                        continue

                    arcname = unique_entry_name(sanitize_filename(item.display_name), used_names)
                    await asyncio.to_thread(archive.write, spool, arcname)
                    report.included.append(item.id)
                finally:
                    await asyncio.to_thread(_remove_quietly, spool)

            await asyncio.to_thread(archive.close)
        except BaseException:
            await asyncio.to_thread(archive.close)
            await asyncio.to_thread(_remove_quietly, destination)
            raise

        if not report.included:
            await asyncio.to_thread(_remove_quietly, destination)
            raise NoContent(f"all {len(items)} items failed to fetch")

        report.size_bytes = destination.stat().st_size
        log_build_timing(logger, start, time.time(),
                         included=len(report.included),
                         skipped=len(report.skipped),
                         missing=len(report.missing),
                         size_bytes=report.size_bytes)
        return report

    async def _fetch_to_file(self, item: StoredItem, spool: Path) -> None:
        url = await self.object_store.resolve_download_location(item.object_key)
        handle = await asyncio.to_thread(open, spool, "wb")
        try:
            async with aclosing(self.object_store.fetch_bytes(url)) as chunks:
                async for chunk in chunks:
                    await asyncio.to_thread(handle.write, chunk)
        finally:
            await asyncio.to_thread(handle.close)


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
