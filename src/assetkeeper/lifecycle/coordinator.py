"""Lifecycle coordinator: keeps content records and their blobs consistent.

The metadata repository and the blob store share no transaction, so
consistency comes from ordering plus compensating actions:

- Blobs are uploaded *before* the metadata write.  If anything fails or
  the call is cancelled before the write commits, every blob uploaded by
  this call is deleted right away; nothing ever referenced it.
- Blobs a commit stops referencing (replaced, cleared, or owned by a
  deleted record) are handed to the CleanupQueue *after* the commit and
  deleted asynchronously.  They are never deleted before the commit is
  visible.

The coordinator holds no locks.  Concurrent writers to the same record
race at ``MetadataRepository.update``; the loser gets ConcurrencyConflict
and its uploads are compensated.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, BinaryIO

from pydantic import ValidationError as PydanticValidationError

from assetkeeper.blobs.store import BlobEntry, BlobStore
from assetkeeper.content.models import (
    BlobRef,
    ContentInput,
    ContentPatch,
    ContentRecord,
    ContentType,
    Upload,
    new_record_id,
)
from assetkeeper.content.repository import MetadataRepository
from assetkeeper.content.slots import SlotPolicy
from assetkeeper.errors import (
    AssetKeeperError,
    BlobStoreError,
    ConcurrencyConflict,
    RecordNotFoundError,
    SlotNotFoundError,
    ValidationError,
)
from assetkeeper.lifecycle.cache import CacheInvalidator, NullCacheInvalidator
from assetkeeper.lifecycle.queue import CleanupQueue, CleanupReason
from assetkeeper.lifecycle.tracker import diff, ensure_unique

logger = logging.getLogger(__name__)

# A bare stream or bytes is wrapped in an Upload with no media type.
UploadSource = Upload | BinaryIO | bytes


def _blob_ref(entry: BlobEntry, *, record_id: str, slot: str) -> BlobRef:
    return BlobRef(
        blob_id=entry.id,
        record_id=record_id,
        slot=slot,
        created_at=entry.created_at,
        media_type=entry.media_type,
        size=entry.size,
        sha256=entry.sha256,
    )


class LifecycleCoordinator:
    """Create, update and delete content records together with their assets."""

    def __init__(
        self,
        blob_store: BlobStore,
        repository: MetadataRepository,
        cleanup_queue: CleanupQueue,
        *,
        slot_policy: SlotPolicy | None = None,
        cache: CacheInvalidator | None = None,
    ) -> None:
        self._blob_store = blob_store
        self._repository = repository
        self._queue = cleanup_queue
        self._policy = slot_policy or SlotPolicy()
        self._cache = cache or NullCacheInvalidator()

    # ── Public API ───────────────────────────────────────────────

    def create_content(
        self,
        content_type: ContentType | str,
        fields: ContentInput | Mapping[str, Any],
        uploads: Mapping[str, UploadSource] | None = None,
    ) -> ContentRecord:
        """Store *uploads*, then persist a new record that owns them.

        Raises:
            ValidationError: Bad input; neither store was touched.
            BlobStoreError: An upload failed; blobs already stored by
                this call were deleted.
            AssetKeeperError: The metadata write failed; every blob
                stored by this call was deleted.
        """
        kind = self._coerce_type(content_type)
        data = self._coerce_input(fields)
        pending = self._coerce_uploads(uploads)
        self._policy.check_uploads(kind, pending)

        record_id = new_record_id()
        slots = self._store_uploads(record_id, pending)
        try:
            record = ContentRecord(
                id=record_id,
                content_type=kind,
                title=data.title,
                body=data.body,
                fields=data.fields,
                status=data.status,
                slots=slots,
            )
            created = self._repository.create(record)
        except BaseException:
            logger.warning("Create of %s record %s failed, compensating uploads", kind, record_id)
            self._compensate(ref.blob_id for ref in slots.values())
            raise

        logger.info(
            "Created %s record %s with slots %s", kind, created.id, sorted(created.slots) or "none"
        )
        self._invalidate(created)
        return created

    def update_content(
        self,
        record_id: str,
        patch: ContentPatch | Mapping[str, Any] | None = None,
        uploads: Mapping[str, UploadSource] | None = None,
        *,
        clear_slots: Iterable[str] = (),
    ) -> ContentRecord:
        """Apply *patch*, replace slots with *uploads*, drop *clear_slots*.

        Blobs the update stops referencing are queued for cleanup only
        after the new version commits.

        Raises:
            RecordNotFoundError: No record with *record_id*.
            ValidationError: Bad input; neither store was touched.
            BlobStoreError: An upload failed; this call's blobs were deleted.
            ConcurrencyConflict: The record changed since it was read;
                this call's blobs were deleted and nothing was applied.
        """
        current = self._repository.get(record_id)
        changes_in = self._coerce_patch(patch)
        pending = self._coerce_uploads(uploads)
        cleared = frozenset(clear_slots)
        both = cleared & pending.keys()
        if both:
            raise ValidationError(
                f"Slots both uploaded and cleared: {', '.join(sorted(both))}", slot=min(both)
            )
        self._policy.check_uploads(
            current.content_type,
            pending,
            existing=frozenset(current.slots),
            cleared=cleared,
        )

        new_refs = self._store_uploads(record_id, pending)
        # Until the diff exists, everything this call stored is unreferenced.
        orphans_on_failure = frozenset(ref.blob_id for ref in new_refs.values())
        try:
            candidate = {
                slot: ref
                for slot, ref in current.slots.items()
                if slot not in cleared and slot not in new_refs
            }
            candidate.update(new_refs)
            slot_diff = diff(current.slots, candidate)
            orphans_on_failure = slot_diff.introduced
            ensure_unique(candidate)

            def mutate(record: ContentRecord) -> ContentRecord:
                return changes_in.apply(record).model_copy(update={"slots": candidate})

            updated = self._repository.update(record_id, current.version, mutate)
        except ConcurrencyConflict:
            logger.info(
                "Update of record %s lost a version race, compensating %d upload(s)",
                record_id,
                len(orphans_on_failure),
            )
            self._compensate(orphans_on_failure)
            raise
        except BaseException:
            logger.warning("Update of record %s failed, compensating uploads", record_id)
            self._compensate(orphans_on_failure)
            raise

        self._schedule_cleanup(slot_diff.retired, CleanupReason.SUPERSEDED)
        logger.info(
            "Updated record %s to v%d (added %d, replaced %d, removed %d slot(s))",
            record_id,
            updated.version,
            len(slot_diff.added),
            len(slot_diff.replaced),
            len(slot_diff.removed),
        )
        self._invalidate(updated)
        return updated

    def delete_content(self, record_id: str) -> None:
        """Delete a record and queue its blobs for cleanup.

        Deleting an absent record succeeds and queues nothing.
        """
        try:
            removed = self._repository.delete(record_id)
        except RecordNotFoundError:
            logger.debug("Delete of absent record %s is a no-op", record_id)
            return

        self._schedule_cleanup(removed.blob_ids().values(), CleanupReason.RECORD_DELETED)
        logger.info("Deleted %s record %s", removed.content_type, record_id)
        self._invalidate(removed)

    def get_asset_slots(self, record_id: str) -> dict[str, str]:
        """Return ``slot -> blob_id`` for a record. Raises RecordNotFoundError."""
        return self._repository.get(record_id).blob_ids()

    def open_asset(self, record_id: str, slot: str) -> BinaryIO:
        """Open the blob in *slot* of a record for streaming to a client.

        The caller closes the returned stream.
        """
        record = self._repository.get(record_id)
        ref = record.slots.get(slot)
        if ref is None:
            raise SlotNotFoundError(record_id, slot)
        return self._blob_store.fetch(ref.blob_id)

    # ── Internals ────────────────────────────────────────────────

    def _coerce_type(self, content_type: ContentType | str) -> ContentType:
        try:
            return ContentType(content_type)
        except ValueError as exc:
            raise ValidationError(f"Unknown content type: {content_type!r}") from exc

    def _coerce_input(self, fields: ContentInput | Mapping[str, Any]) -> ContentInput:
        try:
            data = fields if isinstance(fields, ContentInput) else ContentInput.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid content fields: {exc}") from exc
        if not data.title.strip():
            raise ValidationError("Title is required")
        return data

    def _coerce_uploads(
        self, uploads: Mapping[str, UploadSource] | None
    ) -> dict[str, Upload]:
        coerced: dict[str, Upload] = {}
        for slot, value in (uploads or {}).items():
            if isinstance(value, Upload):
                coerced[slot] = value
            elif isinstance(value, (bytes, bytearray)):
                coerced[slot] = Upload.from_bytes(bytes(value))
            elif callable(getattr(value, "read", None)):
                coerced[slot] = Upload(stream=value)
            else:
                raise ValidationError(
                    f"Upload for slot {slot!r} must be an Upload, a binary stream or bytes, "
                    f"got {type(value).__name__}",
                    slot=slot,
                )
        return coerced

    def _coerce_patch(self, patch: ContentPatch | Mapping[str, Any] | None) -> ContentPatch:
        if patch is None:
            return ContentPatch()
        try:
            data = patch if isinstance(patch, ContentPatch) else ContentPatch.model_validate(patch)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid content patch: {exc}") from exc
        if data.title is not None and not data.title.strip():
            raise ValidationError("Title cannot be blank")
        return data

    def _store_uploads(self, record_id: str, uploads: Mapping[str, Upload]) -> dict[str, BlobRef]:
        """Store every upload or none of them."""
        stored: dict[str, BlobRef] = {}
        for slot, upload in uploads.items():
            try:
                entry = self._blob_store.store(
                    self._policy.bounded(slot, upload.stream),
                    media_type=upload.media_type,
                    filename=upload.filename,
                )
            except BaseException as exc:
                logger.warning(
                    "Upload for slot %r of record %s failed, compensating %d stored blob(s)",
                    slot,
                    record_id,
                    len(stored),
                )
                self._compensate(ref.blob_id for ref in stored.values())
                if isinstance(exc, AssetKeeperError) or not isinstance(exc, Exception):
                    raise
                raise BlobStoreError(f"Upload for slot {slot!r} failed: {exc}") from exc
            stored[slot] = _blob_ref(entry, record_id=record_id, slot=slot)
        return stored

    def _compensate(self, blob_ids: Iterable[str]) -> None:
        """Delete blobs nothing references, handing failures to the queue."""
        for blob_id in blob_ids:
            try:
                self._blob_store.delete(blob_id)
            except Exception:
                logger.error(
                    "Compensating delete of blob %s failed, queueing for retry",
                    blob_id,
                    exc_info=True,
                )
                self._schedule_cleanup([blob_id], CleanupReason.COMPENSATION)

    def _schedule_cleanup(self, blob_ids: Iterable[str], reason: CleanupReason) -> None:
        for blob_id in sorted(blob_ids):
            try:
                self._queue.enqueue(blob_id, reason)
            except Exception:
                logger.error(
                    "Could not queue blob %s for cleanup (%s); "
                    "the reconciliation sweep will reclaim it",
                    blob_id,
                    reason,
                    exc_info=True,
                )

    def _invalidate(self, record: ContentRecord) -> None:
        try:
            self._cache.invalidate(record.content_type, record.id)
        except Exception:
            logger.warning("Cache invalidation failed for record %s", record.id, exc_info=True)
