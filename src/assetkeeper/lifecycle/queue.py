"""Durable, retrying queue of blob deletions.

Deleting a blob is never done on the caller's write path.  The
coordinator enqueues a CleanupTask and a drain loop (usually a
CleanupWorker thread) performs the delete later.  A failing task is
retried with exponential backoff until it succeeds or reaches the
dead-letter threshold, where it waits for an operator instead of being
dropped.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from assetkeeper.blobs.store import BlobStore, utc_now

logger = logging.getLogger(__name__)

QUEUE_FILENAME = ".assetkeeper-cleanup.json"


class CleanupReason(StrEnum):
    """Why a blob is scheduled for deletion."""

    SUPERSEDED = "superseded"
    RECORD_DELETED = "record-deleted"
    COMPENSATION = "compensation"
    ORPHANED = "orphaned"


class CleanupTask(BaseModel):
    """A pending request to delete one blob."""

    blob_id: str
    reason: CleanupReason
    attempts: int = 0
    next_attempt_at: datetime = Field(default_factory=utc_now)
    enqueued_at: datetime = Field(default_factory=utc_now)
    last_error: str = ""


class RetryPolicy(BaseModel):
    """Exponential backoff and dead-letter threshold for cleanup tasks."""

    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 3600.0
    max_attempts: int = 8

    def delay(self, attempts: int) -> timedelta:
        """Delay before the next try after *attempts* failures."""
        exponent = max(attempts - 1, 0)
        seconds = min(self.base_delay_seconds * (2**exponent), self.max_delay_seconds)
        return timedelta(seconds=seconds)


class DrainReport(BaseModel):
    """Outcome of one drain pass."""

    deleted: list[str] = Field(default_factory=list)
    already_absent: list[str] = Field(default_factory=list)
    retried: list[str] = Field(default_factory=list)
    dead_lettered: list[str] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        return (
            len(self.deleted)
            + len(self.already_absent)
            + len(self.retried)
            + len(self.dead_lettered)
        )


class _QueueData(BaseModel):
    """Internal wrapper for JSON serialization."""

    pending: list[CleanupTask] = Field(default_factory=list)
    dead_letters: list[CleanupTask] = Field(default_factory=list)


class CleanupQueue:
    """FIFO queue of CleanupTasks, deduplicated by blob id.

    Durable when given a directory: the queue file is loaded on init and
    saved after every mutation.  Without one it lives in memory only.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        data_dir: Path | None = None,
        *,
        policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
        filename: str = QUEUE_FILENAME,
    ) -> None:
        self._blob_store = blob_store
        self._policy = policy or RetryPolicy()
        self._clock = clock
        self._path = data_dir / filename if data_dir is not None else None
        self._lock = threading.Lock()
        self._drain_lock = threading.Lock()
        self._pending: dict[str, CleanupTask] = {}
        self._dead: dict[str, CleanupTask] = {}
        self._load()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    # ── Persistence ──────────────────────────────────────────────

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            data = _QueueData.model_validate(raw)
        except (json.JSONDecodeError, PydanticValidationError, OSError):
            logger.error(
                "Corrupt cleanup queue at %s; pending deletions lost, run a reconciliation sweep",
                self._path,
            )
            return
        self._pending = {task.blob_id: task for task in data.pending}
        self._dead = {task.blob_id: task for task in data.dead_letters}

    def _save(self) -> None:
        """Write the queue file. Caller holds ``_lock``."""
        if self._path is None:
            return
        data = _QueueData(
            pending=list(self._pending.values()),
            dead_letters=list(self._dead.values()),
        )
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(data.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    # ── Enqueue ──────────────────────────────────────────────────

    def enqueue(self, blob_id: str, reason: CleanupReason) -> CleanupTask:
        """Schedule *blob_id* for deletion.

        A blob that already has a pending or dead-lettered task keeps it;
        the existing task is returned.
        """
        with self._lock:
            existing = self._pending.get(blob_id) or self._dead.get(blob_id)
            if existing is not None:
                logger.debug("Blob %s already queued (%s)", blob_id, existing.reason)
                return existing.model_copy()
            now = self._clock()
            task = CleanupTask(
                blob_id=blob_id, reason=reason, next_attempt_at=now, enqueued_at=now
            )
            self._pending[blob_id] = task
            self._save()
        logger.debug("Queued blob %s for cleanup (%s)", blob_id, reason)
        return task.model_copy()

    # ── Inspection ───────────────────────────────────────────────

    def pending(self) -> list[CleanupTask]:
        """Pending tasks in FIFO order."""
        with self._lock:
            return [task.model_copy() for task in self._pending.values()]

    def pending_blob_ids(self) -> set[str]:
        with self._lock:
            return set(self._pending)

    def dead_letters(self) -> list[CleanupTask]:
        with self._lock:
            return [task.model_copy() for task in self._dead.values()]

    def requeue_dead_letter(self, blob_id: str) -> CleanupTask:
        """Move a dead-lettered task back to pending with a fresh budget.

        Raises KeyError if *blob_id* is not dead-lettered.
        """
        with self._lock:
            task = self._dead.pop(blob_id)
            revived = task.model_copy(update={"attempts": 0, "next_attempt_at": self._clock()})
            self._pending[blob_id] = revived
            self._save()
        logger.info("Requeued dead-lettered blob %s", blob_id)
        return revived.model_copy()

    # ── Draining ─────────────────────────────────────────────────

    def drain(self, now: datetime | None = None, *, limit: int | None = None) -> DrainReport:
        """Process every task due at *now* once.

        Blob deletes run without ``_lock`` held, so enqueue never waits
        on blob-store latency.  Only one drain runs at a time.
        """
        report = DrainReport()
        with self._drain_lock:
            at = now or self._clock()
            with self._lock:
                due = [task for task in self._pending.values() if task.next_attempt_at <= at]
            if limit is not None:
                due = due[:limit]

            for task in due:
                self._process(task, report, at)

        if report.processed:
            logger.info(
                "Cleanup drain: %d deleted, %d already absent, %d retrying, %d dead-lettered",
                len(report.deleted),
                len(report.already_absent),
                len(report.retried),
                len(report.dead_lettered),
            )
        return report

    def _process(self, task: CleanupTask, report: DrainReport, at: datetime) -> None:
        try:
            existed = self._blob_store.delete(task.blob_id)
        except Exception as exc:
            self._record_failure(task, exc, report, at)
            return

        with self._lock:
            self._pending.pop(task.blob_id, None)
            self._save()
        if existed:
            report.deleted.append(task.blob_id)
        else:
            report.already_absent.append(task.blob_id)

    def _record_failure(
        self, task: CleanupTask, exc: Exception, report: DrainReport, at: datetime
    ) -> None:
        attempts = task.attempts + 1
        error = f"{type(exc).__name__}: {exc}"
        with self._lock:
            if attempts >= self._policy.max_attempts:
                dead = task.model_copy(update={"attempts": attempts, "last_error": error})
                self._pending.pop(task.blob_id, None)
                self._dead[task.blob_id] = dead
                self._save()
                dead_lettered = True
            else:
                retry = task.model_copy(
                    update={
                        "attempts": attempts,
                        "last_error": error,
                        "next_attempt_at": at + self._policy.delay(attempts),
                    }
                )
                self._pending[task.blob_id] = retry
                self._save()
                dead_lettered = False

        if dead_lettered:
            logger.error(
                "Blob %s dead-lettered after %d failed deletes (%s): %s",
                task.blob_id,
                attempts,
                task.reason,
                error,
            )
            report.dead_lettered.append(task.blob_id)
        else:
            logger.warning(
                "Delete of blob %s failed (attempt %d/%d): %s",
                task.blob_id,
                attempts,
                self._policy.max_attempts,
                error,
            )
            report.retried.append(task.blob_id)


class CleanupWorker:
    """Background thread that drains a CleanupQueue on an interval."""

    def __init__(self, queue: CleanupQueue, interval_seconds: float = 5.0) -> None:
        self._queue = queue
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="assetkeeper-cleanup", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def __enter__(self) -> CleanupWorker:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._queue.drain()
            except Exception:
                logger.exception("Cleanup drain pass failed")
            self._stop.wait(self._interval)
