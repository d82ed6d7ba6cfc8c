"""Reconciliation sweep for blobs no record or cleanup task accounts for.

A crash between a record delete and its cleanup enqueue (or a lost queue
file) leaves blobs nobody will ever delete.  The sweep finds blobs older
than a cutoff that are neither referenced by a live record nor pending
cleanup, and queues them.  The age cutoff keeps in-flight uploads, which
are stored before their record commits, out of the sweep.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from pydantic import BaseModel, Field

from assetkeeper.blobs.store import BlobStore, utc_now
from assetkeeper.content.repository import MetadataRepository
from assetkeeper.lifecycle.queue import CleanupQueue, CleanupReason
from assetkeeper.lifecycle.tracker import referenced_blob_ids

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    """Result of a reconciliation sweep."""

    examined: int = 0
    orphans: list[str] = Field(default_factory=list)
    orphan_bytes: int = 0
    dry_run: bool = False


def sweep_orphans(
    blob_store: BlobStore,
    repository: MetadataRepository,
    queue: CleanupQueue,
    *,
    older_than: timedelta = timedelta(hours=24),
    dry_run: bool = False,
) -> SweepReport:
    """Queue every orphaned blob older than *older_than* for cleanup."""
    cutoff = utc_now() - older_than
    # Snapshot the exclusions before listing blobs, so a blob committed
    # mid-sweep is either excluded or younger than the cutoff.
    exclude = referenced_blob_ids(repository.list()) | queue.pending_blob_ids()
    exclude |= {task.blob_id for task in queue.dead_letters()}
    candidates = blob_store.list_orphan_candidates(older_than=cutoff, exclude=exclude)

    report = SweepReport(
        examined=len(blob_store.list_blobs()),
        orphans=[entry.id for entry in candidates],
        orphan_bytes=sum(entry.size for entry in candidates),
        dry_run=dry_run,
    )
    if dry_run:
        logger.info("Sweep (dry run) found %d orphaned blob(s)", len(candidates))
        return report

    for entry in candidates:
        queue.enqueue(entry.id, CleanupReason.ORPHANED)
    if candidates:
        logger.warning("Sweep queued %d orphaned blob(s) for cleanup", len(candidates))
    return report
