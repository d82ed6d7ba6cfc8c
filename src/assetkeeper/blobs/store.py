"""BlobStore: protocol for content-addressable asset storage.

A blob store allocates and frees opaque binary payloads.  It knows
nothing about which record owns a blob; that bookkeeping belongs to the
lifecycle coordinator.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import BinaryIO, Protocol, runtime_checkable

from pydantic import BaseModel, Field

CHUNK_SIZE = 1024 * 1024


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""
    return datetime.now(tz=UTC)


def new_blob_id() -> str:
    return uuid.uuid4().hex


def normalize_cutoff(older_than: datetime) -> datetime:
    """Normalize an age cutoff into timezone-aware UTC."""
    if older_than.tzinfo is None:
        return older_than.replace(tzinfo=UTC)
    return older_than.astimezone(UTC)


def iter_chunks(stream: BinaryIO) -> Iterable[bytes]:
    while True:
        chunk = stream.read(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


class BlobEntry(BaseModel):
    """One stored blob and its store-side metadata."""

    id: str
    sha256: str
    size: int
    media_type: str | None = None
    filename: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class StorageStats(BaseModel):
    """Aggregate usage of a blob store."""

    total_blobs: int = 0
    total_bytes: int = 0
    bytes_by_media_type: dict[str, int] = Field(default_factory=dict)


def sorted_entries(entries: Iterable[BlobEntry]) -> tuple[BlobEntry, ...]:
    """Order entries oldest first (``created_at``, then ``id``)."""
    return tuple(sorted(entries, key=lambda entry: (entry.created_at, entry.id)))


def select_orphan_candidates(
    entries: Iterable[BlobEntry],
    *,
    older_than: datetime,
    exclude: Iterable[str] = (),
) -> tuple[BlobEntry, ...]:
    """Pick entries created before *older_than* whose id is not excluded."""
    cutoff = normalize_cutoff(older_than)
    excluded = set(exclude)
    return sorted_entries(
        entry for entry in entries if entry.created_at < cutoff and entry.id not in excluded
    )


def summarize(entries: Iterable[BlobEntry]) -> StorageStats:
    by_type: dict[str, int] = defaultdict(int)
    count = 0
    total = 0
    for entry in entries:
        count += 1
        total += entry.size
        by_type[entry.media_type or "application/octet-stream"] += entry.size
    return StorageStats(total_blobs=count, total_bytes=total, bytes_by_media_type=dict(by_type))


@runtime_checkable
class BlobStore(Protocol):
    """Blob storage protocol.

    ``delete`` must be idempotent: removing an absent blob returns
    ``False`` and is not an error, because compensations and retried
    cleanup tasks repeat deletes freely.  Genuine I/O failures raise
    ``BlobStoreError``.
    """

    def store(
        self,
        stream: BinaryIO,
        *,
        media_type: str | None = None,
        filename: str | None = None,
    ) -> BlobEntry:
        """Persist the stream under a fresh id and return its entry."""
        ...

    def fetch(self, blob_id: str) -> BinaryIO:
        """Open a blob for reading. Raises BlobNotFoundError."""
        ...

    def delete(self, blob_id: str) -> bool:
        """Delete a blob. Return ``True`` if it existed."""
        ...

    def exists(self, blob_id: str) -> bool: ...

    def get_entry(self, blob_id: str) -> BlobEntry | None: ...

    def list_blobs(self) -> tuple[BlobEntry, ...]:
        """List stored blobs oldest first."""
        ...

    def list_orphan_candidates(
        self,
        *,
        older_than: datetime,
        exclude: Iterable[str] = (),
    ) -> tuple[BlobEntry, ...]:
        """Blobs created before *older_than* whose id is not in *exclude*.

        The reconciliation sweep passes every referenced blob id plus
        every id with a pending cleanup task as *exclude*.
        """
        ...

    def stats(self) -> StorageStats: ...
