"""FileBlobStore: file-system-based blob storage."""

from __future__ import annotations

import hashlib
import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from pydantic import ValidationError as PydanticValidationError

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

logger = logging.getLogger(__name__)

_PAYLOAD_SUFFIX = ".blob"
_META_SUFFIX = ".meta.json"
_PARTIAL_SUFFIX = ".partial"


class FileBlobStore:
    """File-system-based blob store.

    Store each blob payload as ``<id>.blob`` and metadata as
    ``<id>.meta.json`` under a root directory.  Payloads are written to a
    ``.partial`` file and renamed into place, so a failed write never
    leaves a readable half blob.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._entries: dict[str, BlobEntry] = {}
        self._lock = threading.Lock()
        self._load_entries()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve_path(self, blob_id: str, *, suffix: str) -> Path | None:
        """Resolve blob path and ensure it stays under the store root."""
        root = self._root.resolve()
        candidate = (self._root / f"{blob_id}{suffix}").resolve()
        try:
            candidate.relative_to(root)
        except ValueError:
            return None
        return candidate

    def _payload_path(self, blob_id: str) -> Path | None:
        return self._resolve_path(blob_id, suffix=_PAYLOAD_SUFFIX)

    def _meta_path(self, blob_id: str) -> Path | None:
        return self._resolve_path(blob_id, suffix=_META_SUFFIX)

    def _load_entries(self) -> None:
        """Load metadata sidecars into the in-memory index."""
        for partial in self._root.glob(f"*{_PARTIAL_SUFFIX}"):
            logger.info("Removing interrupted blob write %s", partial.name)
            partial.unlink(missing_ok=True)

        for meta_path in self._root.glob(f"*{_META_SUFFIX}"):
            blob_id = meta_path.name[: -len(_META_SUFFIX)]
            payload_path = self._payload_path(blob_id)
            if payload_path is None or not payload_path.exists():
                continue
            try:
                entry = BlobEntry.model_validate_json(meta_path.read_text(encoding="utf-8"))
            except (OSError, PydanticValidationError):
                logger.warning("Skipping unreadable blob metadata %s", meta_path)
                continue
            if entry.id != blob_id:
                logger.warning("Blob metadata %s names a different id %s", meta_path, entry.id)
                continue
            self._entries[blob_id] = entry

    def store(
        self,
        stream: BinaryIO,
        *,
        media_type: str | None = None,
        filename: str | None = None,
    ) -> BlobEntry:
        """Copy the stream to a new blob file and write its sidecar."""
        blob_id = new_blob_id()
        payload_path = self._payload_path(blob_id)
        meta_path = self._meta_path(blob_id)
        if payload_path is None or meta_path is None:
            raise BlobStoreError(f"Generated blob ID {blob_id!r} resolves outside store root.")
        partial_path = payload_path.with_suffix(_PARTIAL_SUFFIX)

        digest = hashlib.sha256()
        size = 0
        try:
            with open(partial_path, "wb") as out:
                for chunk in iter_chunks(stream):
                    digest.update(chunk)
                    size += len(chunk)
                    out.write(chunk)
            entry = BlobEntry(
                id=blob_id,
                sha256=digest.hexdigest(),
                size=size,
                media_type=media_type,
                filename=filename,
            )
            meta_path.write_text(entry.model_dump_json(), encoding="utf-8")
            partial_path.replace(payload_path)
        except BaseException as exc:
            # A failed store returns no id, so it must leave nothing behind.
            partial_path.unlink(missing_ok=True)
            meta_path.unlink(missing_ok=True)
            if isinstance(exc, OSError):
                raise BlobStoreError(f"Failed to store blob: {exc}", blob_id=blob_id) from exc
            raise

        with self._lock:
            self._entries[blob_id] = entry
        logger.debug("Stored blob %s (%d bytes)", blob_id, size)
        return entry

    def fetch(self, blob_id: str) -> BinaryIO:
        path = self._payload_path(blob_id)
        if path is None or not path.exists():
            raise BlobNotFoundError(blob_id)
        try:
            return open(path, "rb")
        except FileNotFoundError as exc:
            raise BlobNotFoundError(blob_id) from exc
        except OSError as exc:
            raise BlobStoreError(f"Failed to open blob: {exc}", blob_id=blob_id) from exc

    def delete(self, blob_id: str) -> bool:
        """Delete a blob payload and metadata sidecar."""
        deleted = False
        try:
            payload_path = self._payload_path(blob_id)
            if payload_path is not None and payload_path.exists():
                payload_path.unlink()
                deleted = True

            meta_path = self._meta_path(blob_id)
            if meta_path is not None and meta_path.exists():
                meta_path.unlink()
                deleted = True
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise BlobStoreError(f"Failed to delete blob: {exc}", blob_id=blob_id) from exc

        with self._lock:
            self._entries.pop(blob_id, None)
        return deleted

    def exists(self, blob_id: str) -> bool:
        path = self._payload_path(blob_id)
        return path is not None and path.exists()

    def get_entry(self, blob_id: str) -> BlobEntry | None:
        with self._lock:
            return self._entries.get(blob_id)

    def list_blobs(self) -> tuple[BlobEntry, ...]:
        with self._lock:
            entries = list(self._entries.values())
        stale_ids = [entry.id for entry in entries if not self.exists(entry.id)]
        if stale_ids:
            with self._lock:
                for blob_id in stale_ids:
                    self._entries.pop(blob_id, None)
        return sorted_entries(entry for entry in entries if entry.id not in stale_ids)

    def list_orphan_candidates(
        self,
        *,
        older_than: datetime,
        exclude: Iterable[str] = (),
    ) -> tuple[BlobEntry, ...]:
        return select_orphan_candidates(self.list_blobs(), older_than=older_than, exclude=exclude)

    def stats(self) -> StorageStats:
        return summarize(self.list_blobs())
