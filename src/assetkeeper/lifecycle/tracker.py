"""Reference tracking: which blobs a record's slots own.

Pure functions over slot maps.  No storage access happens here, which
keeps the coordinator's failure handling testable without I/O.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict

from assetkeeper.content.models import BlobRef, ContentRecord

SlotPair = tuple[str, str]


class SlotDiff(BaseModel):
    """Difference between two slot maps as ``(slot, blob_id)`` pairs.

    - ``added``: slots absent before, filled now (new blob).
    - ``replaced``: slots whose blob changed (the *old* blob).
    - ``removed``: slots filled before, absent now (the old blob).
    - ``incoming``: the *new* blob of every added or replaced slot.
    """

    model_config = ConfigDict(frozen=True)

    added: frozenset[SlotPair] = frozenset()
    replaced: frozenset[SlotPair] = frozenset()
    removed: frozenset[SlotPair] = frozenset()
    incoming: frozenset[SlotPair] = frozenset()

    @property
    def retired(self) -> frozenset[str]:
        """Blob ids no longer referenced once the new slots commit."""
        return frozenset(blob_id for _, blob_id in self.replaced | self.removed)

    @property
    def introduced(self) -> frozenset[str]:
        """Blob ids first referenced by the new slots; orphans if the commit fails."""
        return frozenset(blob_id for _, blob_id in self.incoming)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.replaced or self.removed)


def slot_blob_ids(slots: Mapping[str, BlobRef | str]) -> dict[str, str]:
    """Normalize a slot map to ``slot -> blob_id``."""
    return {
        slot: ref if isinstance(ref, str) else ref.blob_id
        for slot, ref in slots.items()
    }


def diff(
    old_slots: Mapping[str, BlobRef | str],
    new_slots: Mapping[str, BlobRef | str],
) -> SlotDiff:
    """Compare two slot maps."""
    old = slot_blob_ids(old_slots)
    new = slot_blob_ids(new_slots)

    added = {(slot, blob_id) for slot, blob_id in new.items() if slot not in old}
    removed = {(slot, blob_id) for slot, blob_id in old.items() if slot not in new}
    replaced = {
        (slot, blob_id)
        for slot, blob_id in old.items()
        if slot in new and new[slot] != blob_id
    }
    incoming = {
        (slot, blob_id)
        for slot, blob_id in new.items()
        if slot not in old or old[slot] != blob_id
    }
    return SlotDiff(
        added=frozenset(added),
        replaced=frozenset(replaced),
        removed=frozenset(removed),
        incoming=frozenset(incoming),
    )


def ensure_unique(slots: Mapping[str, BlobRef | str]) -> None:
    """Raise ValueError if one blob id fills two slots of the same record."""
    counts = Counter(slot_blob_ids(slots).values())
    duplicated = sorted(blob_id for blob_id, count in counts.items() if count > 1)
    if duplicated:
        raise ValueError(f"Blob ids referenced by more than one slot: {', '.join(duplicated)}")


def referenced_blob_ids(records: Iterable[ContentRecord]) -> set[str]:
    """Every blob id referenced by any of *records*."""
    referenced: set[str] = set()
    for record in records:
        referenced.update(record.blob_ids().values())
    return referenced
