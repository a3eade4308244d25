"""Blob stores: where file bytes live.

``LocalBlobStore`` keeps one file per blob key under a root directory;
``MemoryBlobStore`` keeps bytes in a dict (tests, ephemeral deployments).
Both implement the ``BlobStore`` protocol.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import re
import tempfile
from pathlib import Path

from .exceptions import StorageError

_KEY_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def _check_key(key: str) -> str:
    if not _KEY_RE.match(key):
        raise StorageError(f"Invalid blob key: {key!r}")
    return key


class MemoryBlobStore:
    """Dict-backed blob store."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes:
        try:
            return self._blobs[_check_key(key)]
        except KeyError:
            raise StorageError(f"Blob not found: {key}") from None

    async def put(self, key: str, data: bytes) -> None:
        self._blobs[_check_key(key)] = bytes(data)

    async def delete(self, key: str) -> None:
        self._blobs.pop(_check_key(key), None)

    def __contains__(self, key: object) -> bool:
        return key in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)


class LocalBlobStore:
    """Blob store on the local disk.

    Blobs are sharded into two-character sub-directories
    (``ab/abcdef...``).  Keys are restricted to ``[A-Za-z0-9_-]`` so a key
    can never escape ``root``.  Writes go to a temp file that is renamed
    into place, so readers never observe a half-written blob.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        if not self.root.is_dir():
            raise NotADirectoryError(f"Blob root is not a directory: {self.root}")

    def _path_for(self, key: str) -> Path:
        key = _check_key(key)
        return self.root / key[:2] / key

    async def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise StorageError(f"Blob not found: {key}") from None
        except OSError as e:
            raise StorageError(f"Cannot read blob {key}: {e}") from e

    async def put(self, key: str, data: bytes) -> None:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                Path(tmp_path).replace(path)
            except Exception:
                with contextlib.suppress(OSError):
                    Path(tmp_path).unlink()
                raise

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageError(f"Failed to write blob {key}: {e}") from e

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise StorageError(f"Failed to delete blob {key}: {e}") from e

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path_for(key).is_file)
