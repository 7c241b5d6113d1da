"""Composition root: builds one instance of every sync component."""

import logging
from dataclasses import dataclass

from .config import Config
from .storage import LocalStore, SQLiteBlobStore
from .sync import (
    BackgroundRetryLoop,
    EventBus,
    HTTPRemoteStore,
    PendingOperationQueue,
    RemoteStore,
    RetryExecutor,
    StatusChannel,
    SyncOrchestrator,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncEngine:
    """The wired-up engine for one process."""

    config: Config
    store: LocalStore
    blob_store: SQLiteBlobStore
    remote: RemoteStore
    queue: PendingOperationQueue
    status: StatusChannel
    events: EventBus
    orchestrator: SyncOrchestrator
    loop: BackgroundRetryLoop

    async def close(self) -> None:
        """Stop the retry loop and release connections."""
        await self.loop.stop()
        await self.remote.close()
        self.store.close()
        self.blob_store.close()


def build_engine(config: Config, remote: RemoteStore | None = None) -> SyncEngine:
    """Create and connect every component described by ``config``.

    Args:
        config: Loaded configuration.
        remote: Remote store to use instead of the configured HTTP one.

    Returns:
        A SyncEngine whose retry loop is not yet started.
    """
    store = LocalStore(config.storage.db_path)
    store.connect()
    blob_store = SQLiteBlobStore(config.storage.db_path)
    blob_store.connect()

    if remote is None:
        remote = HTTPRemoteStore(
            config.remote.url,
            timeout=config.remote.timeout_seconds,
            api_token=config.remote.api_token,
        )

    retry_config = config.retry.to_configuration()
    queue = PendingOperationQueue(blob_store, key=config.storage.queue_key)
    status = StatusChannel()
    events = EventBus()
    executor = RetryExecutor(status, retry_config)
    orchestrator = SyncOrchestrator(remote, store, queue, executor, events=events)
    loop = BackgroundRetryLoop(
        orchestrator,
        config=retry_config,
        interval_seconds=config.loop.interval_seconds,
    )

    logger.info(
        f"Sync engine ready for {config.node.name}: remote={config.remote.url}, "
        f"pending={queue.count}"
    )
    return SyncEngine(
        config=config,
        store=store,
        blob_store=blob_store,
        remote=remote,
        queue=queue,
        status=status,
        events=events,
        orchestrator=orchestrator,
        loop=loop,
    )
