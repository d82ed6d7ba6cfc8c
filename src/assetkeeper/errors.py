"""Typed errors for the content-asset lifecycle.

Every failure a caller can see during create/update/delete is one of the
classes below.  Deleting a blob that is already gone is never an error.
"""

from __future__ import annotations


class AssetKeeperError(Exception):
    """Base error for all assetkeeper failures."""


class ValidationError(AssetKeeperError):
    """Raised for bad input before any store mutation was attempted."""

    def __init__(self, message: str, *, slot: str | None = None) -> None:
        self.slot = slot
        super().__init__(message)


class BlobStoreError(AssetKeeperError):
    """Raised when a blob store or delete call fails on I/O."""

    def __init__(self, message: str, *, blob_id: str | None = None) -> None:
        self.blob_id = blob_id
        super().__init__(message)


class ConcurrencyConflict(AssetKeeperError):
    """Raised when an update's expected version no longer matches storage."""

    def __init__(self, record_id: str, expected_version: int, actual_version: int) -> None:
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on record {record_id}: "
            f"expected v{expected_version}, found v{actual_version}"
        )


class NotFoundError(AssetKeeperError):
    """Raised when a record or blob is absent."""


class RecordNotFoundError(NotFoundError):
    """Raised when a content record id does not resolve."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Content record not found: {record_id}")


class BlobNotFoundError(NotFoundError):
    """Raised when a blob id does not resolve in a BlobStore."""

    def __init__(self, blob_id: str) -> None:
        self.blob_id = blob_id
        super().__init__(f"Blob not found: {blob_id}")


class SlotNotFoundError(NotFoundError):
    """Raised when a record has no blob in the requested slot."""

    def __init__(self, record_id: str, slot: str) -> None:
        self.record_id = record_id
        self.slot = slot
        super().__init__(f"Record {record_id} has no asset in slot {slot!r}")
