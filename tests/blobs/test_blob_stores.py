"""Behavior shared by every BlobStore implementation."""

import hashlib
import io
from datetime import timedelta
from pathlib import Path

import pytest

from assetkeeper.blobs import BlobStore, FileBlobStore, InMemoryBlobStore
from assetkeeper.blobs.store import utc_now
from assetkeeper.errors import BlobNotFoundError


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path: Path):
    if request.param == "memory":
        return InMemoryBlobStore()
    return FileBlobStore(tmp_path / "blobs")


class TestProtocol:
    def test_implementations_satisfy_protocol(self, store):
        assert isinstance(store, BlobStore)


class TestStoreAndFetch:
    def test_round_trip(self, store):
        entry = store.store(io.BytesIO(b"cover image"), media_type="image/png", filename="c.png")
        with store.fetch(entry.id) as stream:
            assert stream.read() == b"cover image"

    def test_entry_metadata(self, store):
        data = b"%PDF-1.7 issue"
        entry = store.store(io.BytesIO(data), media_type="application/pdf")
        assert entry.size == len(data)
        assert entry.sha256 == hashlib.sha256(data).hexdigest()
        assert entry.media_type == "application/pdf"
        assert store.get_entry(entry.id) == entry

    def test_each_store_gets_fresh_id(self, store):
        a = store.store(io.BytesIO(b"same"))
        b = store.store(io.BytesIO(b"same"))
        assert a.id != b.id

    def test_fetch_missing_raises(self, store):
        with pytest.raises(BlobNotFoundError):
            store.fetch("0" * 32)


class TestDelete:
    def test_delete_existing(self, store):
        entry = store.store(io.BytesIO(b"x"))
        assert store.delete(entry.id) is True
        assert store.exists(entry.id) is False
        assert store.get_entry(entry.id) is None

    def test_delete_is_idempotent(self, store):
        entry = store.store(io.BytesIO(b"x"))
        store.delete(entry.id)
        assert store.delete(entry.id) is False

    def test_delete_unknown_is_not_an_error(self, store):
        assert store.delete("never-existed") is False


class TestListing:
    def test_list_blobs_oldest_first(self, store):
        first = store.store(io.BytesIO(b"1"))
        second = store.store(io.BytesIO(b"2"))
        ids = [entry.id for entry in store.list_blobs()]
        assert set(ids) == {first.id, second.id}
        assert ids == sorted(ids, key=lambda i: (store.get_entry(i).created_at, i))

    def test_orphan_candidates_respect_exclusions(self, store):
        kept = store.store(io.BytesIO(b"referenced"))
        orphan = store.store(io.BytesIO(b"orphan"))
        cutoff = utc_now() + timedelta(seconds=1)

        candidates = store.list_orphan_candidates(older_than=cutoff, exclude={kept.id})
        assert [entry.id for entry in candidates] == [orphan.id]

    def test_orphan_candidates_respect_age(self, store):
        store.store(io.BytesIO(b"fresh"))
        cutoff = utc_now() - timedelta(hours=1)
        assert store.list_orphan_candidates(older_than=cutoff) == ()

    def test_stats(self, store):
        store.store(io.BytesIO(b"12345"), media_type="image/png")
        store.store(io.BytesIO(b"123"), media_type="application/pdf")
        store.store(io.BytesIO(b"12"), media_type="image/png")

        stats = store.stats()
        assert stats.total_blobs == 3
        assert stats.total_bytes == 10
        assert stats.bytes_by_media_type == {"image/png": 7, "application/pdf": 3}
