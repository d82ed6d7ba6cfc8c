"""BlobStore protocol and reference stores for binary content assets."""

from assetkeeper.blobs.file import FileBlobStore
from assetkeeper.blobs.memory import InMemoryBlobStore
from assetkeeper.blobs.store import BlobEntry, BlobStore, StorageStats

__all__ = [
    "BlobEntry",
    "BlobStore",
    "FileBlobStore",
    "InMemoryBlobStore",
    "StorageStats",
]
