"""InMemoryBlobStore: dict-based blob storage for development and testing."""

from __future__ import annotations

import hashlib
import io
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import BinaryIO

from assetkeeper.blobs.store import (
    BlobEntry,
    StorageStats,
    iter_chunks,
    new_blob_id,
    select_orphan_candidates,
    sorted_entries,
    summarize,
)
from assetkeeper.errors import BlobNotFoundError, BlobStoreError


class InMemoryBlobStore:
    """In-memory blob store for development and testing."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._entries: dict[str, BlobEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)

    def __contains__(self, blob_id: object) -> bool:
        with self._lock:
            return blob_id in self._blobs

    def store(
        self,
        stream: BinaryIO,
        *,
        media_type: str | None = None,
        filename: str | None = None,
    ) -> BlobEntry:
        """Read the stream fully and keep it under a fresh id."""
        digest = hashlib.sha256()
        buffer = bytearray()
        try:
            for chunk in iter_chunks(stream):
                digest.update(chunk)
                buffer.extend(chunk)
        except OSError as exc:
            raise BlobStoreError(f"Failed to read upload stream: {exc}") from exc

        entry = BlobEntry(
            id=new_blob_id(),
            sha256=digest.hexdigest(),
            size=len(buffer),
            media_type=media_type,
            filename=filename,
        )
        with self._lock:
            self._blobs[entry.id] = bytes(buffer)
            self._entries[entry.id] = entry
        return entry

    def fetch(self, blob_id: str) -> BinaryIO:
        with self._lock:
            data = self._blobs.get(blob_id)
        if data is None:
            raise BlobNotFoundError(blob_id)
        return io.BytesIO(data)

    def delete(self, blob_id: str) -> bool:
        with self._lock:
            self._entries.pop(blob_id, None)
            return self._blobs.pop(blob_id, None) is not None

    def exists(self, blob_id: str) -> bool:
        return blob_id in self

    def get_entry(self, blob_id: str) -> BlobEntry | None:
        with self._lock:
            return self._entries.get(blob_id)

    def list_blobs(self) -> tuple[BlobEntry, ...]:
        with self._lock:
            return sorted_entries(self._entries.values())

    def list_orphan_candidates(
        self,
        *,
        older_than: datetime,
        exclude: Iterable[str] = (),
    ) -> tuple[BlobEntry, ...]:
        return select_orphan_candidates(self.list_blobs(), older_than=older_than, exclude=exclude)

    def stats(self) -> StorageStats:
        return summarize(self.list_blobs())
