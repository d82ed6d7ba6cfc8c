"""Cache invalidation after committed content writes."""

from __future__ import annotations

import threading
from typing import Any, Protocol, runtime_checkable

from assetkeeper.content.models import ContentType


def list_key(content_type: ContentType | str) -> str:
    return f"content:{content_type}"


def item_key(content_type: ContentType | str, record_id: str) -> str:
    return f"content:{content_type}:{record_id}"


@runtime_checkable
class CacheInvalidator(Protocol):
    """Told about every committed create, update and delete."""

    def invalidate(self, content_type: ContentType, record_id: str) -> None: ...


class NullCacheInvalidator:
    """Invalidator for deployments without a response cache."""

    def invalidate(self, content_type: ContentType, record_id: str) -> None:
        return None


class ResponseCache:
    """In-process key/value cache for rendered content responses.

    Keys follow ``content:<type>`` for listings and
    ``content:<type>:<id>`` for single records.  Invalidating a record
    drops its item key and every key under its type's listing prefix.
    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with *prefix*; return how many."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def invalidate(self, content_type: ContentType, record_id: str) -> None:
        self.invalidate_prefix(list_key(content_type))
