"""Tests for the blob stores."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from canopy.fs.blobs import LocalBlobStore, MemoryBlobStore
from canopy.fs.exceptions import StorageError
from canopy.fs.protocol import BlobStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(params=["memory", "local"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return MemoryBlobStore()
    return LocalBlobStore(tmp_path / "blobs")


class TestBlobStore:
    def test_satisfies_protocol(self, store) -> None:
        assert isinstance(store, BlobStore)

    async def test_put_get(self, store) -> None:
        await store.put("abc123", b"hello")
        assert await store.get("abc123") == b"hello"

    async def test_put_replaces(self, store) -> None:
        await store.put("abc123", b"one")
        await store.put("abc123", b"two")
        assert await store.get("abc123") == b"two"

    async def test_missing(self, store) -> None:
        with pytest.raises(StorageError, match="not found"):
            await store.get("missing")

    async def test_delete_is_idempotent(self, store) -> None:
        await store.put("abc123", b"x")
        await store.delete("abc123")
        await store.delete("abc123")
        with pytest.raises(StorageError):
            await store.get("abc123")

    @pytest.mark.parametrize(
        "key",
        [
            pytest.param("", id="empty"),
            pytest.param("../etc/passwd", id="traversal"),
            pytest.param("a/b", id="separator"),
            pytest.param("x" * 129, id="too-long"),
        ],
    )
    async def test_invalid_keys(self, store, key: str) -> None:
        with pytest.raises(StorageError, match="Invalid blob key"):
            await store.put(key, b"x")


class TestLocalBlobStore:
    async def test_sharded_layout(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        await store.put("abcdef", b"data")
        assert (tmp_path / "ab" / "abcdef").read_bytes() == b"data"
        assert await store.exists("abcdef")
        assert not await store.exists("zzzzzz")

    async def test_no_temp_files_left(self, tmp_path: Path) -> None:
        store = LocalBlobStore(tmp_path)
        await store.put("abcdef", b"data")
        assert not list(tmp_path.rglob("*.tmp"))

    def test_root_must_be_directory(self, tmp_path: Path) -> None:
        target = tmp_path / "file"
        target.write_text("x")
        with pytest.raises(OSError):
            LocalBlobStore(target)


class TestMemoryBlobStore:
    async def test_copies_input(self) -> None:
        store = MemoryBlobStore()
        data = bytearray(b"abc")
        await store.put("k1", data)
        data[0] = ord("z")
        assert await store.get("k1") == b"abc"
        assert "k1" in store
        assert len(store) == 1
