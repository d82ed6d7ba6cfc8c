"""Content domain — records, asset slot rules and metadata repositories.

A ContentRecord owns its large binary assets only through BlobRefs in
its ``slots`` map; the repositories here never touch blob storage.
"""

from assetkeeper.content.models import (
    BlobRef,
    ContentInput,
    ContentPatch,
    ContentRecord,
    ContentStatus,
    ContentType,
    Upload,
)
from assetkeeper.content.repository import (
    InMemoryMetadataRepository,
    JsonMetadataRepository,
    MetadataRepository,
)
from assetkeeper.content.slots import SlotPolicy, SlotRule, TypeRule

__all__ = [
    "BlobRef",
    "ContentInput",
    "ContentPatch",
    "ContentRecord",
    "ContentStatus",
    "ContentType",
    "InMemoryMetadataRepository",
    "JsonMetadataRepository",
    "MetadataRepository",
    "SlotPolicy",
    "SlotRule",
    "TypeRule",
    "Upload",
]
