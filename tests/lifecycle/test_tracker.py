"""Tests for slot-map diffing and reference bookkeeping."""

import pytest

from assetkeeper.content.models import BlobRef, ContentRecord, ContentType
from assetkeeper.lifecycle.tracker import (
    diff,
    ensure_unique,
    referenced_blob_ids,
    slot_blob_ids,
)


def _ref(blob_id: str, slot: str = "image") -> BlobRef:
    return BlobRef(blob_id=blob_id, record_id="r1", slot=slot)


class TestDiff:
    def test_identical_maps(self):
        slots = {"image": "b1", "pdf": "b2"}
        result = diff(slots, dict(slots))
        assert result.is_empty
        assert result.retired == frozenset()

    def test_added_slot(self):
        result = diff({}, {"image": "b1"})
        assert result.added == {("image", "b1")}
        assert result.retired == frozenset()

    def test_replaced_slot_reports_old_blob(self):
        result = diff({"image": "old"}, {"image": "new"})
        assert result.replaced == {("image", "old")}
        assert result.added == frozenset()
        assert result.retired == {"old"}

    def test_removed_slot(self):
        result = diff({"image": "b1", "pdf": "b2"}, {"image": "b1"})
        assert result.removed == {("pdf", "b2")}
        assert result.retired == {"b2"}

    def test_mixed_changes(self):
        result = diff(
            {"image": "img1", "thumbnail": "th1"},
            {"image": "img2", "pdf": "pdf1"},
        )
        assert result.added == {("pdf", "pdf1")}
        assert result.replaced == {("image", "img1")}
        assert result.removed == {("thumbnail", "th1")}
        assert result.retired == {"img1", "th1"}

    def test_introduced_covers_added_and_replaced(self):
        result = diff(
            {"image": "img1", "thumbnail": "th1", "pdf": "pdf1"},
            {"image": "img2", "thumbnail": "th1", "media": "m1"},
        )
        assert result.introduced == {"img2", "m1"}
        assert result.retired == {"img1", "pdf1"}

    def test_nothing_introduced_when_only_removing(self):
        assert diff({"image": "b1"}, {}).introduced == frozenset()

    def test_accepts_blob_refs(self):
        result = diff({"image": _ref("b1")}, {"image": _ref("b2")})
        assert result.retired == {"b1"}


class TestEnsureUnique:
    def test_distinct_blobs_ok(self):
        ensure_unique({"image": "b1", "thumbnail": "b2"})

    def test_shared_blob_rejected(self):
        with pytest.raises(ValueError, match="b1"):
            ensure_unique({"image": "b1", "thumbnail": "b1"})


class TestReferences:
    def test_slot_blob_ids_normalizes(self):
        assert slot_blob_ids({"image": _ref("b1"), "pdf": "b2"}) == {"image": "b1", "pdf": "b2"}

    def test_referenced_blob_ids_spans_records(self):
        records = [
            ContentRecord(
                id="r1",
                content_type=ContentType.MAGAZINE,
                title="Issue 1",
                slots={"image": _ref("b1"), "pdf": _ref("b2", "pdf")},
            ),
            ContentRecord(id="r2", content_type=ContentType.NEWS, title="No assets"),
            ContentRecord(
                id="r3",
                content_type=ContentType.GOAT,
                title="Boer goats",
                slots={"image": _ref("b3")},
            ),
        ]
        assert referenced_blob_ids(records) == {"b1", "b2", "b3"}
