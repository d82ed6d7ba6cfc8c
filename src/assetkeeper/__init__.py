"""assetkeeper: keeps magazine content records and their binary assets consistent."""

import importlib.metadata as importlib_metadata

from assetkeeper.blobs import BlobEntry, BlobStore, FileBlobStore, InMemoryBlobStore
from assetkeeper.content import (
    BlobRef,
    ContentInput,
    ContentPatch,
    ContentRecord,
    ContentStatus,
    ContentType,
    InMemoryMetadataRepository,
    JsonMetadataRepository,
    MetadataRepository,
    SlotPolicy,
    Upload,
)
from assetkeeper.errors import (
    AssetKeeperError,
    BlobNotFoundError,
    BlobStoreError,
    ConcurrencyConflict,
    NotFoundError,
    RecordNotFoundError,
    SlotNotFoundError,
    ValidationError,
)
from assetkeeper.lifecycle import (
    CleanupQueue,
    CleanupReason,
    CleanupTask,
    CleanupWorker,
    LifecycleCoordinator,
    RetryPolicy,
    sweep_orphans,
)


def _detect_version() -> str:
    """Return installed package version or a local fallback when metadata is unavailable."""
    try:
        return importlib_metadata.version("assetkeeper")
    except importlib_metadata.PackageNotFoundError:
        return "0.0.0+unknown"


__version__ = _detect_version()

__all__ = [
    "AssetKeeperError",
    "BlobEntry",
    "BlobNotFoundError",
    "BlobRef",
    "BlobStore",
    "BlobStoreError",
    "CleanupQueue",
    "CleanupReason",
    "CleanupTask",
    "CleanupWorker",
    "ConcurrencyConflict",
    "ContentInput",
    "ContentPatch",
    "ContentRecord",
    "ContentStatus",
    "ContentType",
    "FileBlobStore",
    "InMemoryBlobStore",
    "InMemoryMetadataRepository",
    "JsonMetadataRepository",
    "LifecycleCoordinator",
    "MetadataRepository",
    "NotFoundError",
    "RecordNotFoundError",
    "RetryPolicy",
    "SlotNotFoundError",
    "SlotPolicy",
    "Upload",
    "ValidationError",
    "sweep_orphans",
]
