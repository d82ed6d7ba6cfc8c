"""Tests for content domain models."""

import io

from assetkeeper.content.models import (
    BlobRef,
    ContentPatch,
    ContentRecord,
    ContentStatus,
    ContentType,
    Upload,
)


class TestContentStatus:
    def test_all_values(self):
        values = {s.value for s in ContentStatus}
        assert values == {"draft", "published"}


class TestContentType:
    def test_enum_values(self):
        assert ContentType.ARTICLE == "article"
        assert ContentType.MAGAZINE == "magazine"
        assert ContentType.AUCTION == "auction"

    def test_livestock_guides_present(self):
        values = {t.value for t in ContentType}
        assert {"piggery", "goat", "dairy", "beef"} <= values


class TestContentRecord:
    def test_defaults(self):
        record = ContentRecord(content_type=ContentType.NEWS, title="Rain forecast")
        assert record.version == 1
        assert record.status == ContentStatus.DRAFT
        assert record.slots == {}
        assert len(record.id) == 32

    def test_ids_are_unique(self):
        a = ContentRecord(content_type=ContentType.NEWS, title="a")
        b = ContentRecord(content_type=ContentType.NEWS, title="b")
        assert a.id != b.id

    def test_blob_ids(self):
        record = ContentRecord(
            id="r1",
            content_type=ContentType.MAGAZINE,
            title="Issue 12",
            slots={
                "image": BlobRef(blob_id="b1", record_id="r1", slot="image"),
                "pdf": BlobRef(blob_id="b2", record_id="r1", slot="pdf"),
            },
        )
        assert record.blob_ids() == {"image": "b1", "pdf": "b2"}

    def test_json_round_trip_keeps_slots(self):
        record = ContentRecord(
            id="r1",
            content_type=ContentType.EVENT,
            title="Goat fair",
            slots={"image": BlobRef(blob_id="b1", record_id="r1", slot="image")},
        )
        restored = ContentRecord.model_validate_json(record.model_dump_json())
        assert restored == record


class TestContentPatch:
    def _record(self) -> ContentRecord:
        return ContentRecord(
            content_type=ContentType.ARTICLE,
            title="Old",
            body="Body",
            fields={"category": "dairy", "author": "Ann"},
        )

    def test_empty_patch_changes_nothing(self):
        record = self._record()
        assert ContentPatch().apply(record) == record

    def test_sets_given_fields(self):
        patched = ContentPatch(title="New", status=ContentStatus.PUBLISHED).apply(self._record())
        assert patched.title == "New"
        assert patched.body == "Body"
        assert patched.status == ContentStatus.PUBLISHED

    def test_merges_type_specific_fields(self):
        patched = ContentPatch(fields={"category": "beef"}).apply(self._record())
        assert patched.fields == {"category": "beef", "author": "Ann"}


class TestUpload:
    def test_from_bytes_size(self):
        upload = Upload.from_bytes(b"12345", media_type="image/png")
        assert upload.size == 5
        assert upload.media_type == "image/png"

    def test_size_counts_from_current_position(self):
        stream = io.BytesIO(b"0123456789")
        stream.read(4)
        upload = Upload(stream=stream)
        assert upload.size == 6
        assert stream.tell() == 4

    def test_size_unknown_for_unseekable_stream(self):
        class Pipe(io.RawIOBase):
            def readable(self):
                return True

            def seekable(self):
                return False

        assert Upload(stream=Pipe()).size is None  # type: ignore[arg-type]
