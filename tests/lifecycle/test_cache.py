"""Tests for the response cache and its invalidation keys."""

from assetkeeper.content.models import ContentType
from assetkeeper.lifecycle.cache import (
    CacheInvalidator,
    NullCacheInvalidator,
    ResponseCache,
    item_key,
    list_key,
)


class TestKeys:
    def test_key_format(self):
        assert list_key(ContentType.DAIRY) == "content:dairy"
        assert item_key(ContentType.DAIRY, "abc") == "content:dairy:abc"


class TestResponseCache:
    def test_get_set(self):
        cache = ResponseCache()
        cache.set("content:news", [1, 2])
        assert cache.get("content:news") == [1, 2]
        assert cache.get("content:event") is None

    def test_invalidate_prefix_counts(self):
        cache = ResponseCache()
        cache.set("content:news", [])
        cache.set("content:news:1", {})
        cache.set("content:event", [])
        assert cache.invalidate_prefix("content:news") == 2
        assert cache.keys() == ["content:event"]

    def test_invalidate_record_drops_listing_and_items(self):
        cache = ResponseCache()
        cache.set(list_key(ContentType.BEEF), [])
        cache.set(item_key(ContentType.BEEF, "r1"), {})
        cache.set(item_key(ContentType.BEEF, "r2"), {})
        cache.set(list_key(ContentType.GOAT), [])

        cache.invalidate(ContentType.BEEF, "r1")

        assert cache.keys() == [list_key(ContentType.GOAT)]


class TestProtocol:
    def test_implementations_satisfy_protocol(self):
        assert isinstance(ResponseCache(), CacheInvalidator)
        assert isinstance(NullCacheInvalidator(), CacheInvalidator)

    def test_null_invalidator_is_silent(self):
        assert NullCacheInvalidator().invalidate(ContentType.NEWS, "r1") is None
