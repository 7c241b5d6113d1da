"""Sync status values and the channels that carry them to subscribers."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)


class SyncState(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    RETRYING = "retrying"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SyncStatus:
    """Observed state of the sync engine.

    ``attempt``/``max_attempts`` are only set while retrying, ``message``
    only on error.
    """

    state: SyncState
    attempt: int | None = None
    max_attempts: int | None = None
    message: str | None = None

    @classmethod
    def idle(cls) -> "SyncStatus":
        return cls(SyncState.IDLE)

    @classmethod
    def syncing(cls) -> "SyncStatus":
        return cls(SyncState.SYNCING)

    @classmethod
    def retrying(cls, attempt: int, max_attempts: int) -> "SyncStatus":
        return cls(SyncState.RETRYING, attempt=attempt, max_attempts=max_attempts)

    @classmethod
    def success(cls) -> "SyncStatus":
        return cls(SyncState.SUCCESS)

    @classmethod
    def error(cls, message: str) -> "SyncStatus":
        return cls(SyncState.ERROR, message=message)

    def __str__(self) -> str:
        if self.state == SyncState.RETRYING:
            return f"retrying ({self.attempt}/{self.max_attempts})"
        if self.state == SyncState.ERROR:
            return f"error: {self.message}"
        return self.state.value

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "message": self.message,
        }


StatusCallback = Callable[[SyncStatus], None]


class StatusChannel:
    """Single source of truth for the current :class:`SyncStatus`.

    Subscribers either register a callback or listen on an
    ``asyncio.Queue`` obtained from :meth:`listen`.
    """

    def __init__(self, initial: SyncStatus | None = None):
        self._current = initial or SyncStatus.idle()
        self._callbacks: list[StatusCallback] = []
        self._queues: list[asyncio.Queue] = []

    @property
    def current(self) -> SyncStatus:
        return self._current

    def publish(self, status: SyncStatus) -> None:
        """Set the current status and notify every subscriber."""
        self._current = status
        logger.debug(f"Sync status -> {status}")

        for callback in list(self._callbacks):
            try:
                callback(status)
            except Exception as e:
                logger.error(f"Status subscriber failed: {e}", exc_info=True)

        for queue in self._queues:
            queue.put_nowait(status)

    def subscribe(self, callback: StatusCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def listen(self) -> asyncio.Queue:
        """Return a queue that receives every status published from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unlisten(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)


@dataclass(frozen=True)
class DataUpdated:
    """Emitted after a successful push or pull."""

    source: str  # "push" or "pull"
    entity_ids: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=datetime.now)


EventCallback = Callable[[DataUpdated], None]


class EventBus:
    """Fire-and-forget delivery of :class:`DataUpdated` events.

    Owned by the composition root; subscribers register for as long as they
    are interested. There is no delivery guarantee.
    """

    def __init__(self):
        self._subscribers: list[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: DataUpdated) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Event subscriber failed for {event.source} event: {e}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
