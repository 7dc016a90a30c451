"""Archive builder: partial content, failures and entry naming."""

import asyncio
import zipfile

import pytest

from services.downloads import ArchiveBuilder, NoContent, sanitize_filename, unique_entry_name


def _entries(path):
    with zipfile.ZipFile(path) as archive:
        return {info.filename: archive.read(info.filename) for info in archive.infolist()}


async def test_builds_archive_with_all_items(builder, tmp_path):
    destination = tmp_path / "out.zip"
    report = await builder.build(["a", "b", "c"], destination)

    assert _entries(destination) == {
        "a.jpg": b"A" * 4096,
        "b.jpg": b"B" * 2048,
        "c.jpg": b"C" * 1024,
    }
    assert report.included == ["a", "b", "c"]
    assert not report.is_partial
    assert report.size_bytes == destination.stat().st_size


async def test_one_failing_item_gives_partial_archive(builder, object_store, tmp_path):
    object_store.failing.add("uploads/b.jpg")
    destination = tmp_path / "out.zip"

    report = await builder.build(["a", "b", "c"], destination)

    assert set(_entries(destination)) == {"a.jpg", "c.jpg"}
    assert report.skipped == ["b"]
    assert report.is_partial


async def test_all_items_failing_raises_and_leaves_no_file(builder, object_store, tmp_path):
    object_store.failing.update({"uploads/a.jpg", "uploads/b.jpg", "uploads/c.jpg"})
    destination = tmp_path / "out.zip"

    with pytest.raises(NoContent):
        await builder.build(["a", "b", "c"], destination)
    assert list(tmp_path.iterdir()) == []


async def test_unknown_ids_are_dropped(builder, tmp_path):
    destination = tmp_path / "out.zip"
    report = await builder.build(["a", "ghost"], destination)

    assert set(_entries(destination)) == {"a.jpg"}
    assert report.missing == ["ghost"]


async def test_no_resolvable_ids_raises_before_writing(builder, object_store, tmp_path):
    destination = tmp_path / "out.zip"
    with pytest.raises(NoContent):
        await builder.build(["ghost", "phantom"], destination)
    assert not destination.exists()
    assert object_store.fetches == []


async def test_slow_item_is_skipped_after_timeout(metadata, object_store, tmp_path):
    metadata.add("slow", "uploads/slow.jpg", "slow.jpg")
    object_store.blobs["uploads/slow.jpg"] = b"S" * 10

    class SlowOnce:
        async def resolve_download_location(self, object_key):
            return await object_store.resolve_download_location(object_key)

        async def fetch_bytes(self, url):
            if url.endswith("slow.jpg"):
                await asyncio.sleep(10)
            async for chunk in object_store.fetch_bytes(url):
                yield chunk

    builder = ArchiveBuilder(metadata, SlowOnce(), item_timeout=0.05)
    destination = tmp_path / "out.zip"
    report = await builder.build(["a", "slow"], destination)

    assert set(_entries(destination)) == {"a.jpg"}
    assert report.skipped == ["slow"]


async def test_duplicate_and_unsafe_names(metadata, object_store, tmp_path):
    metadata.add("d1", "uploads/d1.jpg", "IMG_0001.jpg")
    metadata.add("d2", "uploads/d2.jpg", "IMG_0001.jpg")
    metadata.add("evil", "uploads/evil.jpg", "../../etc/passwd")
    for key in ("uploads/d1.jpg", "uploads/d2.jpg", "uploads/evil.jpg"):
        object_store.blobs[key] = key.encode()

    builder = ArchiveBuilder(metadata, object_store)
    destination = tmp_path / "out.zip"
    await builder.build(["d1", "d2", "evil"], destination)

    names = set(_entries(destination))
    assert names == {"IMG_0001.jpg", "IMG_0001 (1).jpg", "____etc_passwd"}
    assert all("/" not in name for name in names)


async def test_spool_files_are_cleaned_up(builder, object_store, tmp_path):
    object_store.failing.add("uploads/b.jpg")
    destination = tmp_path / "out.zip"
    await builder.build(["a", "b", "c"], destination)
    assert [p.name for p in tmp_path.iterdir()] == ["out.zip"]


@pytest.mark.parametrize("raw, expected", [
    ("photo.jpg", "photo.jpg"),
    ("a/b.jpg", "a_b.jpg"),
    ("a\\b.jpg", "a_b.jpg"),
    ("..", "_"),
    ("", "unnamed"),
    ("  . ", "unnamed"),
])
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_unique_entry_name_without_extension():
    used = set()
    assert unique_entry_name("README", used) == "README"
    assert unique_entry_name("README", used) == "README (1)"
    assert unique_entry_name("README", used) == "README (2)"
