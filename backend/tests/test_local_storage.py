from __future__ import annotations

import pytest

from chatsync.core.storage import BlobStoreError, LocalBlobStore


@pytest.fixture()
def local_store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "media", "https://cdn.test/media/", max_upload_size=16)


@pytest.mark.anyio("asyncio")
async def test_upload_bytes_and_build_url(local_store):
    await local_store.upload("alice/r1/my photo.png", b"pixels")

    assert (local_store.root / "alice" / "r1" / "my photo.png").read_bytes() == b"pixels"
    assert await local_store.download_url("alice/r1/my photo.png") == (
        "https://cdn.test/media/alice/r1/my%20photo.png"
    )


@pytest.mark.anyio("asyncio")
async def test_upload_from_path(local_store, tmp_path):
    source = tmp_path / "clip.mp4"
    source.write_bytes(b"0123456789")

    await local_store.upload("alice/clip.mp4", source, "video/mp4")

    assert (local_store.root / "alice" / "clip.mp4").read_bytes() == b"0123456789"


@pytest.mark.anyio("asyncio")
async def test_oversized_upload_leaves_nothing_behind(local_store, tmp_path):
    source = tmp_path / "big.bin"
    source.write_bytes(b"x" * 32)

    with pytest.raises(BlobStoreError):
        await local_store.upload("alice/big.bin", source)
    with pytest.raises(BlobStoreError):
        await local_store.upload("alice/big2.bin", b"y" * 17)

    assert not (local_store.root / "alice" / "big.bin").exists()
    assert not (local_store.root / "alice" / "big2.bin").exists()


@pytest.mark.parametrize("path", ["", "/etc/passwd", "../escape.txt", "a/../../b"])
def test_rejects_paths_outside_root(local_store, path):
    with pytest.raises(BlobStoreError):
        local_store.resolve_path(path)


@pytest.mark.anyio("asyncio")
async def test_missing_blobs(local_store):
    with pytest.raises(BlobStoreError):
        await local_store.download_url("nobody/here.png")
    with pytest.raises(BlobStoreError):
        await local_store.delete("nobody/here.png")


@pytest.mark.anyio("asyncio")
async def test_delete_removes_blob(local_store):
    await local_store.upload("a.txt", b"a")
    await local_store.delete("a.txt")
    assert not (local_store.root / "a.txt").exists()


def test_from_settings_uses_media_settings(settings):
    store = LocalBlobStore.from_settings(settings)
    assert store.root == settings.media_root
