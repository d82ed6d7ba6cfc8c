"""Asset lifecycle — coordinator, reference tracking and deferred cleanup."""

from assetkeeper.lifecycle.cache import CacheInvalidator, NullCacheInvalidator, ResponseCache
from assetkeeper.lifecycle.coordinator import LifecycleCoordinator
from assetkeeper.lifecycle.queue import (
    CleanupQueue,
    CleanupReason,
    CleanupTask,
    CleanupWorker,
    DrainReport,
    RetryPolicy,
)
from assetkeeper.lifecycle.reconcile import SweepReport, sweep_orphans
from assetkeeper.lifecycle.tracker import SlotDiff, diff

__all__ = [
    "CacheInvalidator",
    "CleanupQueue",
    "CleanupReason",
    "CleanupTask",
    "CleanupWorker",
    "DrainReport",
    "LifecycleCoordinator",
    "NullCacheInvalidator",
    "ResponseCache",
    "RetryPolicy",
    "SlotDiff",
    "SweepReport",
    "diff",
    "sweep_orphans",
]
