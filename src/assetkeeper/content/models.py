"""Content domain models — pure Pydantic v2 data types.

A ContentRecord is one piece of magazine content (article, event,
magazine issue, livestock guide, auction...).  Its large binary assets
live in a BlobStore; the record only holds BlobRefs keyed by slot name.
"""

from __future__ import annotations

import io
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, BinaryIO

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""
    return datetime.now(tz=UTC)


def new_record_id() -> str:
    return uuid.uuid4().hex


class ContentType(StrEnum):
    """Kind of content a record holds."""

    ARTICLE = "article"
    NEWS = "news"
    EVENT = "event"
    MAGAZINE = "magazine"
    AUCTION = "auction"
    BASIC = "basic"
    FARM = "farm"
    PIGGERY = "piggery"
    GOAT = "goat"
    DAIRY = "dairy"
    BEEF = "beef"


class ContentStatus(StrEnum):
    """Lifecycle status of a content record."""

    DRAFT = "draft"
    PUBLISHED = "published"


class BlobRef(BaseModel):
    """A blob owned by one record slot.

    Only the lifecycle coordinator builds these, from the entry a
    successful ``BlobStore.store`` call returned.
    """

    blob_id: str
    record_id: str
    slot: str
    created_at: datetime = Field(default_factory=utc_now)
    media_type: str | None = None
    size: int = 0
    sha256: str = ""


class ContentRecord(BaseModel):
    """Structured metadata for one piece of content plus its asset slots."""

    id: str = Field(default_factory=new_record_id)
    content_type: ContentType
    title: str
    body: str = ""
    fields: dict[str, Any] = Field(default_factory=dict)
    slots: dict[str, BlobRef] = Field(default_factory=dict)
    version: int = 1
    status: ContentStatus = ContentStatus.DRAFT
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def blob_ids(self) -> dict[str, str]:
        """Return the ``slot -> blob_id`` view of this record's assets."""
        return {slot: ref.blob_id for slot, ref in self.slots.items()}


class ContentInput(BaseModel):
    """Caller-supplied fields for a new record."""

    title: str
    body: str = ""
    fields: dict[str, Any] = Field(default_factory=dict)
    status: ContentStatus = ContentStatus.DRAFT


class ContentPatch(BaseModel):
    """Partial update; ``None`` leaves a field untouched.

    ``fields`` is merged key-by-key into the existing payload.
    """

    title: str | None = None
    body: str | None = None
    fields: dict[str, Any] | None = None
    status: ContentStatus | None = None

    def apply(self, record: ContentRecord) -> ContentRecord:
        update: dict[str, Any] = {}
        if self.title is not None:
            update["title"] = self.title
        if self.body is not None:
            update["body"] = self.body
        if self.fields is not None:
            update["fields"] = {**record.fields, **self.fields}
        if self.status is not None:
            update["status"] = self.status
        return record.model_copy(update=update)


@dataclass(frozen=True)
class Upload:
    """One pending asset upload for a slot."""

    stream: BinaryIO
    media_type: str | None = None
    filename: str | None = None

    @classmethod
    def from_bytes(
        cls, data: bytes, *, media_type: str | None = None, filename: str | None = None
    ) -> Upload:
        return cls(stream=io.BytesIO(data), media_type=media_type, filename=filename)

    @property
    def size(self) -> int | None:
        """Byte length of the remaining stream, or None if it can't seek."""
        try:
            if not self.stream.seekable():
                return None
            position = self.stream.tell()
            end = self.stream.seek(0, io.SEEK_END)
            self.stream.seek(position)
        except (OSError, ValueError):
            return None
        return end - position
