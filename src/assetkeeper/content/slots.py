"""Slot policy: which asset slots each content type may own.

Validation here runs before any blob is stored, so a rejected request
never touches either store.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import BinaryIO

from pydantic import BaseModel, Field

from assetkeeper.content.models import ContentType, Upload
from assetkeeper.errors import ValidationError

MIB = 1024 * 1024

IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
PDF_TYPES = frozenset({"application/pdf"})
MEDIA_TYPES = frozenset(
    {
        "audio/mpeg",
        "audio/wav",
        "video/mp4",
        "video/avi",
        "video/quicktime",
        "video/x-ms-wmv",
    }
)


class BoundedReader:
    """Read-through wrapper that rejects a stream once it passes *limit* bytes.

    Streams that can't report their size up front are only measured
    while the blob store copies them, so the limit is enforced here.
    """

    def __init__(self, stream: BinaryIO, limit: int, *, slot: str) -> None:
        self._stream = stream
        self._limit = limit
        self._slot = slot
        self._consumed = 0

    @property
    def consumed(self) -> int:
        return self._consumed

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        chunk = self._stream.read(size)
        self._consumed += len(chunk)
        if self._consumed > self._limit:
            raise ValidationError(
                f"Upload for slot {self._slot!r} exceeds {self._limit} bytes",
                slot=self._slot,
            )
        return chunk


class SlotRule(BaseModel):
    """Accepted media types and size ceiling for one slot name."""

    media_types: frozenset[str]
    max_bytes: int


class TypeRule(BaseModel):
    """Slots a content type may own, and those it must own on create."""

    allowed: frozenset[str]
    required: frozenset[str] = frozenset()


def default_slot_rules(
    *,
    image_max_bytes: int = 10 * MIB,
    thumbnail_max_bytes: int = 10 * MIB,
    pdf_max_bytes: int = 10 * MIB,
    media_max_bytes: int = 100 * MIB,
) -> dict[str, SlotRule]:
    return {
        "image": SlotRule(media_types=IMAGE_TYPES, max_bytes=image_max_bytes),
        "thumbnail": SlotRule(media_types=IMAGE_TYPES, max_bytes=thumbnail_max_bytes),
        "pdf": SlotRule(media_types=PDF_TYPES, max_bytes=pdf_max_bytes),
        "media": SlotRule(media_types=MEDIA_TYPES, max_bytes=media_max_bytes),
    }


def default_type_rules() -> dict[ContentType, TypeRule]:
    image_only = TypeRule(allowed=frozenset({"image"}))
    rules = {content_type: image_only for content_type in ContentType}
    rules[ContentType.ARTICLE] = TypeRule(allowed=frozenset({"image", "thumbnail"}))
    rules[ContentType.NEWS] = TypeRule(allowed=frozenset({"image", "thumbnail"}))
    rules[ContentType.MAGAZINE] = TypeRule(
        allowed=frozenset({"image", "pdf", "thumbnail"}),
        required=frozenset({"image", "pdf"}),
    )
    rules[ContentType.BASIC] = TypeRule(
        allowed=frozenset({"media", "image"}),
        required=frozenset({"media"}),
    )
    return rules


class SlotPolicy(BaseModel):
    """Per-type slot rules applied to create and update requests."""

    slots: dict[str, SlotRule] = Field(default_factory=default_slot_rules)
    types: dict[ContentType, TypeRule] = Field(default_factory=default_type_rules)

    def bounded(self, slot: str, stream: BinaryIO) -> BinaryIO:
        """Wrap *stream* so reading past the slot's size ceiling fails."""
        rule = self.slots.get(slot)
        if rule is None:
            return stream
        return BoundedReader(stream, rule.max_bytes, slot=slot)  # type: ignore[return-value]

    def check_uploads(
        self,
        content_type: ContentType,
        uploads: Mapping[str, Upload],
        *,
        existing: frozenset[str] = frozenset(),
        cleared: frozenset[str] = frozenset(),
    ) -> None:
        """Raise ValidationError if the uploads break this type's rules.

        ``existing`` are slots the record already fills; they count
        towards required slots unless listed in ``cleared``.
        """
        type_rule = self.types.get(content_type)
        if type_rule is None:
            raise ValidationError(f"Unknown content type: {content_type}")

        for slot, upload in uploads.items():
            if slot not in type_rule.allowed:
                raise ValidationError(
                    f"Slot {slot!r} is not allowed for {content_type} content", slot=slot
                )
            rule = self.slots.get(slot)
            if rule is None:
                raise ValidationError(f"No rule configured for slot {slot!r}", slot=slot)
            if upload.media_type not in rule.media_types:
                raise ValidationError(
                    f"Invalid file type {upload.media_type!r} for slot {slot!r}. "
                    f"Allowed: {', '.join(sorted(rule.media_types))}",
                    slot=slot,
                )
            size = upload.size
            if size is not None and size > rule.max_bytes:
                raise ValidationError(
                    f"Upload for slot {slot!r} is {size} bytes, limit is {rule.max_bytes}",
                    slot=slot,
                )

        for slot in cleared:
            if slot not in type_rule.allowed:
                raise ValidationError(
                    f"Slot {slot!r} is not allowed for {content_type} content", slot=slot
                )

        filled = (existing - cleared) | frozenset(uploads)
        missing = type_rule.required - filled
        if missing:
            raise ValidationError(
                f"{content_type} content requires slots: {', '.join(sorted(missing))}",
                slot=min(missing),
            )
