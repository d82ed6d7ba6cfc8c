"""Wire file-backed stores and the coordinator from configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from assetkeeper.blobs.file import FileBlobStore
from assetkeeper.config import AssetKeeperConfig
from assetkeeper.content.repository import JsonMetadataRepository
from assetkeeper.lifecycle.cache import CacheInvalidator
from assetkeeper.lifecycle.coordinator import LifecycleCoordinator
from assetkeeper.lifecycle.queue import CleanupQueue, CleanupWorker

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler or operator command needs."""

    config: AssetKeeperConfig
    blob_store: FileBlobStore
    repository: JsonMetadataRepository
    queue: CleanupQueue
    coordinator: LifecycleCoordinator

    def cleanup_worker(self) -> CleanupWorker:
        return CleanupWorker(self.queue, self.config.cleanup.poll_interval_seconds)


def build_services(
    config: AssetKeeperConfig,
    *,
    cache: CacheInvalidator | None = None,
) -> Services:
    storage = config.storage
    blob_store = FileBlobStore(storage.blob_path)
    repository = JsonMetadataRepository(storage.data_path, storage.records_file)
    queue = CleanupQueue(
        blob_store,
        storage.data_path,
        policy=config.cleanup.to_retry_policy(),
        filename=storage.queue_file,
    )
    coordinator = LifecycleCoordinator(
        blob_store,
        repository,
        queue,
        slot_policy=config.slots.to_slot_policy(),
        cache=cache,
    )
    logger.debug("Services ready under %s", storage.data_path)
    return Services(
        config=config,
        blob_store=blob_store,
        repository=repository,
        queue=queue,
        coordinator=coordinator,
    )
