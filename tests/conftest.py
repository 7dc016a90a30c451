"""Shared fixtures: in-memory collaborators and a controllable clock."""

import asyncio
import os
from typing import Dict, List, Optional, Sequence, Set

import pytest

os.environ.setdefault("DOWNLOAD_TOKEN_SECRET", "test-secret-" + "x" * 32)

from models.database import StoredItem
from services.downloads import (
    ArchiveBuilder,
    ArchiveCacheStore,
    BuildCoordinator,
    DownloadService,
    DownloadTokenCodec,
)
from services.mailer import DeliveryResult

SECRET = "unit-test-secret-0123456789abcdef0123456789"
VALIDITY = 7 * 24 * 3600
RETENTION = 3600


class FakeClock:
    """Settable wall clock shared by codec and cache store."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMetadataStore:
    def __init__(self, items: Optional[Dict[str, StoredItem]] = None):
        self.items = dict(items or {})
        self.calls: List[List[str]] = []

    def add(self, item_id: str, object_key: str, display_name: str) -> StoredItem:
        item = StoredItem(id=item_id, object_key=object_key, display_name=display_name)
        self.items[item_id] = item
        return item

    async def list_items_by_ids(self, ids: Sequence[str]) -> List[StoredItem]:
        self.calls.append(list(ids))
        return [self.items[i] for i in ids if i in self.items]


class FakeObjectStore:
    """Serves object bytes from a dict; keys in ``failing`` error mid-stream."""

    def __init__(self, blobs: Optional[Dict[str, bytes]] = None, delay: float = 0.0):
        self.blobs = dict(blobs or {})
        self.failing: Set[str] = set()
        self.delay = delay
        self.fetches: List[str] = []

    async def resolve_download_location(self, object_key: str) -> str:
        return f"memory://{object_key}"

    async def fetch_bytes(self, url: str):
        key = url[len("memory://"):]
        self.fetches.append(key)
        if self.delay:
            await asyncio.sleep(self.delay)
        if key not in self.blobs:
            raise FileNotFoundError(key)
        data = self.blobs[key]
        yield data[: len(data) // 2]
        if key in self.failing:
            raise ConnectionError(f"connection reset while fetching {key}")
        yield data[len(data) // 2:]


class FakeMailer:
    channel = "fake"

    def __init__(self, success: bool = True):
        self.success = success
        self.sent: List[dict] = []

    async def send_download_link(self, recipient, url, item_count, validity_days):
        self.sent.append({
            "recipient": recipient,
            "url": url,
            "item_count": item_count,
            "validity_days": validity_days,
        })
        if self.success:
            return DeliveryResult(self.channel, True)
        return DeliveryResult(self.channel, False, "mailbox unavailable")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def codec(clock):
    return DownloadTokenCodec(SECRET, validity_seconds=VALIDITY, max_items=50, clock=clock)


@pytest.fixture
def store(tmp_path, clock):
    cache = ArchiveCacheStore(tmp_path / "archive-cache", retention_seconds=RETENTION, clock=clock)
    cache.ensure_dirs()
    return cache


@pytest.fixture
def metadata():
    meta = FakeMetadataStore()
    meta.add("a", "uploads/a.jpg", "a.jpg")
    meta.add("b", "uploads/b.jpg", "b.jpg")
    meta.add("c", "uploads/c.jpg", "c.jpg")
    return meta


@pytest.fixture
def object_store():
    return FakeObjectStore({
        "uploads/a.jpg": b"A" * 4096,
        "uploads/b.jpg": b"B" * 2048,
        "uploads/c.jpg": b"C" * 1024,
    })


@pytest.fixture
def builder(metadata, object_store):
    return ArchiveBuilder(metadata, object_store, compression_level=6, item_timeout=5.0)


@pytest.fixture
def coordinator():
    return BuildCoordinator(max_concurrent_builds=3)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def service(codec, store, coordinator, builder, mailer):
    return DownloadService(
        codec=codec,
        store=store,
        coordinator=coordinator,
        builder=builder,
        mailer=mailer,
        public_base_url="https://photos.example.com/",
        archive_name_prefix="photos",
    )
