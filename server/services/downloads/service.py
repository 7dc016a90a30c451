"""Download orchestration: issue links, serve archives.

``retrieve`` is the whole per-request state machine. The token is checked
first, then the cache; only on a miss or a stale entry does the request go
through the build coordinator, and every build re-checks the cache before
doing any work because an earlier build for the same key may have just
installed its archive.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Sequence

from constants import SECONDS_PER_DAY, STREAM_CHUNK_SIZE
from core.logging import get_logger
from services.mailer import MailerProtocol
from .builder import ArchiveBuilder
from .coordinator import BuildCoordinator
from .exceptions import DeliveryError
from .store import ArchiveCacheStore
from .tokens import DownloadTokenCodec, cache_key_for, normalize_item_ids

logger = get_logger(__name__)


@dataclass
class ArchiveDownload:
    """An installed archive opened for one response.

    The file handle is opened before the response starts, so the bytes stay
    readable even if the cache entry is evicted or replaced mid-stream.
    """
    file: BinaryIO
    size: int
    filename: str
    cache_key: str
    built: bool = False

    def iter_chunks(self, chunk_size: int = STREAM_CHUNK_SIZE) -> Iterator[bytes]:
        try:
            while True:
                chunk = self.file.read(chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            self.file.close()

    def close(self) -> None:
        self.file.close()


@dataclass
class IssuedLink:
    token: str
    url: str
    item_count: int
    channel: str


class DownloadService:
    """Ties the token codec, archive cache, coordinator and builder together."""

    def __init__(self, codec: DownloadTokenCodec, store: ArchiveCacheStore,
                 coordinator: BuildCoordinator, builder: ArchiveBuilder,
                 mailer: MailerProtocol, public_base_url: str,
                 archive_name_prefix: str = "photos"):
        self.codec = codec
        self.store = store
        self.coordinator = coordinator
        self.builder = builder
        self.mailer = mailer
        self.public_base_url = public_base_url.rstrip("/")
        self.archive_name_prefix = archive_name_prefix

    def download_url(self, token: str) -> str:
        return f"{self.public_base_url}/api/download/{token}"

    def archive_filename(self, cache_key: str) -> str:
        return f"{self.archive_name_prefix}-{cache_key[:12]}.zip"

    async def issue_link(self, item_ids: Sequence, recipient: str) -> IssuedLink:
        """Mint a token for ``item_ids`` and mail its URL to ``recipient``.

        Raises:
            InvalidInput: empty or oversized selection
            DeliveryError: the mail backend reported a failure
        """
        token = self.codec.issue(item_ids)
        url = self.download_url(token)
        item_count = len(normalize_item_ids(item_ids))
        validity_days = max(1, self.codec.validity_seconds // SECONDS_PER_DAY)

        result = await self.mailer.send_download_link(recipient, url, item_count, validity_days)
        if not result.success:
            raise DeliveryError(result.detail or "delivery failed")

        logger.info("Download link issued",
                    item_count=item_count,
                    channel=result.channel)
        return IssuedLink(token=token, url=url, item_count=item_count, channel=result.channel)

    async def retrieve(self, token: str) -> ArchiveDownload:
        """Return an open archive for ``token``, building it if needed.

        Raises:
            TokenInvalid / TokenExpired: before any cache access
            TooManyConcurrentBuilds: build capacity reached
            NoContent: nothing could be packed
        """
        claims = self.codec.verify(token)
        cache_key = cache_key_for(token)

        lookup = self.store.lookup(cache_key)
        if lookup.is_fresh:
            download = await self._open(lookup.path, cache_key)
            if download is not None:
                return download

        async def build() -> Path:
            current = self.store.lookup(cache_key)
            if current.is_fresh:
                return current.path

            temp_path = self.store.temp_path(cache_key)
            try:
                report = await self.builder.build(list(claims.item_ids), temp_path)
                final_path = await asyncio.to_thread(self.store.install, cache_key, temp_path)
            except BaseException:
                await asyncio.to_thread(self.store.discard, temp_path)
                raise

            if report.is_partial:
                logger.warning("Installed partial archive",
                               cache_key=cache_key[:12],
                               included=len(report.included),
                               skipped=report.skipped,
                               missing=report.missing)
            return final_path

        path = await self.coordinator.run_exclusive(cache_key, build)
        download = await self._open(path, cache_key)
        if download is None:
            # Evicted between install and open; only possible with a tiny retention.
            path = await self.coordinator.run_exclusive(cache_key, build)
            download = await self._open(path, cache_key)
            if download is None:
                raise FileNotFoundError(f"archive for {cache_key[:12]} vanished after build")
        download.built = True
        return download

    async def _open(self, path: Path, cache_key: str):
        try:
            handle = await asyncio.to_thread(open, path, "rb")
        except FileNotFoundError:
            logger.debug("Cached archive disappeared before open", cache_key=cache_key[:12])
            return None
        size = os.fstat(handle.fileno()).st_size
        return ArchiveDownload(
            file=handle,
            size=size,
            filename=self.archive_filename(cache_key),
            cache_key=cache_key,
        )
