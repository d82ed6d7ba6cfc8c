"""Metadata repositories for content records.

Both implementations offer the same optimistic-versioning contract:
``update`` applies a mutator to a copy of the stored record and persists
the result only if the stored version still equals the caller's
``expected_version``.  That check-and-set is the only concurrency
primitive the lifecycle coordinator relies on.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from assetkeeper.content.models import ContentRecord, ContentStatus, ContentType, utc_now
from assetkeeper.errors import ConcurrencyConflict, RecordNotFoundError, ValidationError

logger = logging.getLogger(__name__)

RECORDS_FILENAME = ".assetkeeper-records.json"

# Alias to avoid shadowing by the repositories' list method
_list = list

Mutator = Callable[[ContentRecord], ContentRecord]


@runtime_checkable
class MetadataRepository(Protocol):
    """CRUD over content records keyed by id, with optimistic versioning."""

    def create(self, record: ContentRecord) -> ContentRecord: ...

    def get(self, record_id: str) -> ContentRecord: ...

    def update(self, record_id: str, expected_version: int, mutator: Mutator) -> ContentRecord:
        """Apply *mutator* and persist if the stored version matches.

        Raises RecordNotFoundError or ConcurrencyConflict.
        """
        ...

    def delete(self, record_id: str) -> ContentRecord:
        """Remove a record and return it. Raises RecordNotFoundError."""
        ...

    def list(
        self,
        content_type: ContentType | None = None,
        status: ContentStatus | None = None,
    ) -> _list[ContentRecord]: ...


class InMemoryMetadataRepository:
    """Dict-backed repository for development and testing."""

    def __init__(self) -> None:
        self._records: dict[str, ContentRecord] = {}
        self._lock = threading.Lock()

    # ── Hooks for subclasses ─────────────────────────────────────

    def _persist(self) -> None:
        """Called under the lock after every successful mutation."""

    # ── Write operations ─────────────────────────────────────────

    def create(self, record: ContentRecord) -> ContentRecord:
        """Insert a new record. Raises ValidationError on duplicate id."""
        with self._lock:
            if record.id in self._records:
                raise ValidationError(f"Content record {record.id} already exists")
            stored = record.model_copy(deep=True)
            self._records[stored.id] = stored
            try:
                self._persist()
            except BaseException:
                del self._records[stored.id]
                raise
        logger.debug("Created %s record %s", record.content_type, record.id)
        return stored.model_copy(deep=True)

    def update(self, record_id: str, expected_version: int, mutator: Mutator) -> ContentRecord:
        """Apply *mutator* to a copy of the stored record and save it.

        The mutator only runs when the version check passes.  Identity
        fields are restored afterwards, whatever the mutator returned.

        Args:
            record_id: Record to update.
            expected_version: Version the caller read.
            mutator: Function returning the new record state.

        Returns:
            The stored record at ``expected_version + 1``.

        Raises:
            RecordNotFoundError: No record with *record_id*.
            ConcurrencyConflict: The stored version differs.
        """
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise RecordNotFoundError(record_id)
            if current.version != expected_version:
                raise ConcurrencyConflict(record_id, expected_version, current.version)

            mutated = mutator(current.model_copy(deep=True))
            stored = mutated.model_copy(
                update={
                    "id": record_id,
                    "version": expected_version + 1,
                    "created_at": current.created_at,
                    "updated_at": utc_now(),
                }
            )
            self._records[record_id] = stored
            try:
                self._persist()
            except BaseException:
                self._records[record_id] = current
                raise
        logger.debug("Updated record %s to v%d", record_id, stored.version)
        return stored.model_copy(deep=True)

    def delete(self, record_id: str) -> ContentRecord:
        with self._lock:
            removed = self._records.pop(record_id, None)
            if removed is None:
                raise RecordNotFoundError(record_id)
            try:
                self._persist()
            except BaseException:
                self._records[record_id] = removed
                raise
        logger.debug("Deleted record %s", record_id)
        return removed

    # ── Read operations ──────────────────────────────────────────

    def get(self, record_id: str) -> ContentRecord:
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise RecordNotFoundError(record_id)
            return record.model_copy(deep=True)

    def exists(self, record_id: str) -> bool:
        with self._lock:
            return record_id in self._records

    def list(
        self,
        content_type: ContentType | None = None,
        status: ContentStatus | None = None,
    ) -> _list[ContentRecord]:
        """Return records, optionally filtered by type and/or status.

        Args:
            content_type: Only records of this type.
            status: Only records with this status.

        Returns:
            Copies of the matching records.
        """
        with self._lock:
            results = _list(self._records.values())
        if content_type is not None:
            results = [r for r in results if r.content_type == content_type]
        if status is not None:
            results = [r for r in results if r.status == status]
        return [r.model_copy(deep=True) for r in results]


class _RepositoryData(BaseModel):
    """Internal wrapper for JSON serialization."""

    records: _list[ContentRecord] = Field(default_factory=_list)


class JsonMetadataRepository(InMemoryMetadataRepository):
    """JSON-backed repository.

    Loads the records file on init and saves after every mutation.
    """

    def __init__(self, data_dir: Path, filename: str = RECORDS_FILENAME) -> None:
        super().__init__()
        self._path = data_dir / filename
        for record in self._load().records:
            self._records[record.id] = record

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> _RepositoryData:
        if not self._path.exists():
            return _RepositoryData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _RepositoryData.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError, OSError):
            logger.warning("Corrupt records file at %s, starting fresh", self._path)
            return _RepositoryData()

    def _persist(self) -> None:
        data = _RepositoryData(records=_list(self._records.values()))
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(data.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(self._path)
