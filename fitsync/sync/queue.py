"""Durable queue of push operations waiting for another attempt."""

import json
import logging
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..storage.blob_store import SQLiteBlobStore

logger = logging.getLogger(__name__)

PENDING_OPERATIONS_KEY = "pending_sync_operations"


class OperationType(Enum):
    SYNC_PARTICIPANT = "sync_participant"
    SYNC_DAY_LOG = "sync_day_log"
    SYNC_ACTIVITY_DATA = "sync_activity_data"


@dataclass
class PendingSyncOperation:
    """A push that failed and will be retried by the background loop."""

    entity_id: str
    operation_type: OperationType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)
    attempt_count: int = 0
    last_attempt_at: datetime | None = None
    last_error: str | None = None

    @property
    def key(self) -> tuple[str, OperationType]:
        return (self.entity_id, self.operation_type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "entity_id": self.entity_id,
            "operation_type": self.operation_type.value,
            "created_at": self.created_at.isoformat(),
            "attempt_count": self.attempt_count,
            "last_attempt_at": (
                self.last_attempt_at.isoformat() if self.last_attempt_at else None
            ),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingSyncOperation":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            entity_id=data["entity_id"],
            operation_type=OperationType(data["operation_type"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            attempt_count=data.get("attempt_count", 0),
            last_attempt_at=(
                datetime.fromisoformat(data["last_attempt_at"])
                if data.get("last_attempt_at")
                else None
            ),
            last_error=data.get("last_error"),
        )


class PendingOperationQueue:
    """Typed view over one serialized blob of pending operations.

    The in-memory list mirrors the blob and every mutation writes it back
    immediately. Methods never suspend, so under asyncio each call is atomic
    with respect to other tasks. Entries are processed in storage order.
    """

    def __init__(
        self,
        blob_store: "SQLiteBlobStore",
        key: str = PENDING_OPERATIONS_KEY,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._blob_store = blob_store
        self._key = key
        self._clock = clock
        self._operations: list[PendingSyncOperation] = self._load()

    def _load(self) -> list[PendingSyncOperation]:
        data = self._blob_store.load_blob(self._key)
        if not data:
            return []

        try:
            return [PendingSyncOperation.from_dict(d) for d in json.loads(data)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Discarding unreadable pending operation queue: {e}")
            return []

    def _persist(self) -> None:
        payload = json.dumps([op.to_dict() for op in self._operations])
        self._blob_store.save_blob(self._key, payload.encode("utf-8"))

    def _index_of(self, op: PendingSyncOperation) -> int | None:
        for i, existing in enumerate(self._operations):
            if existing.key == op.key:
                return i
        return None

    def add(self, op: PendingSyncOperation) -> bool:
        """Queue ``op`` unless one for the same entity and type is already queued.

        Returns:
            True if the operation was added.
        """
        if self._index_of(op) is not None:
            logger.debug(
                f"{op.operation_type.value} for {op.entity_id} already queued"
            )
            return False

        self._operations.append(op)
        self._persist()
        logger.info(f"Queued {op.operation_type.value} for {op.entity_id}")
        return True

    def remove(self, op: PendingSyncOperation) -> bool:
        index = self._index_of(op)
        if index is None:
            return False

        del self._operations[index]
        self._persist()
        return True

    def update_after_attempt(
        self, op: PendingSyncOperation, error: str | None = None
    ) -> PendingSyncOperation:
        """Record a completed attempt on the queued entry matching ``op``.

        Returns:
            The stored entry after the update.

        Raises:
            KeyError: If no matching entry is queued.
        """
        index = self._index_of(op)
        if index is None:
            raise KeyError(f"No pending {op.operation_type.value} for {op.entity_id}")

        stored = self._operations[index]
        stored.attempt_count += 1
        stored.last_attempt_at = self._clock()
        stored.last_error = error
        self._persist()
        return stored

    def get(
        self, entity_id: str, operation_type: OperationType
    ) -> PendingSyncOperation | None:
        for op in self._operations:
            if op.key == (entity_id, operation_type):
                return op
        return None

    def all(self) -> list[PendingSyncOperation]:
        """Snapshot of queued operations in storage order."""
        return list(self._operations)

    def clear(self) -> int:
        """Drop every queued operation. Returns how many were dropped."""
        count = len(self._operations)
        self._operations = []
        self._persist()
        if count:
            logger.warning(f"Cleared {count} pending sync operations")
        return count

    @property
    def count(self) -> int:
        return len(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[PendingSyncOperation]:
        return iter(self.all())
