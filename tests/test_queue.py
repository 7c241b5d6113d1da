"""Tests for the durable pending operation queue."""

from datetime import datetime

import pytest

from fitsync.sync import OperationType, PendingOperationQueue, PendingSyncOperation
from fitsync.sync.queue import PENDING_OPERATIONS_KEY


class TestPendingSyncOperation:
    """Tests for PendingSyncOperation serialization."""

    def test_defaults(self):
        op = PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT)

        assert op.attempt_count == 0
        assert op.last_attempt_at is None
        assert op.last_error is None
        assert op.id

    def test_from_dict(self):
        data = {
            "id": "op-1",
            "entity_id": "d1",
            "operation_type": "sync_day_log",
            "created_at": "2026-03-01T08:00:00",
            "attempt_count": 2,
            "last_attempt_at": "2026-03-01T08:05:00",
            "last_error": "Network unavailable: offline",
        }

        op = PendingSyncOperation.from_dict(data)

        assert op.operation_type == OperationType.SYNC_DAY_LOG
        assert op.attempt_count == 2
        assert op.last_attempt_at == datetime(2026, 3, 1, 8, 5)
        assert op.to_dict() == data


class TestPendingOperationQueue:
    """Tests for PendingOperationQueue."""

    def test_add_and_dedupe(self, queue):
        first = PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT)
        duplicate = PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT)
        other_type = PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_DAY_LOG)

        assert queue.add(first) is True
        assert queue.add(duplicate) is False
        assert queue.add(other_type) is True
        assert queue.count == 2
        assert [op.id for op in queue] == [first.id, other_type.id]

    def test_persists_across_reload(self, blob_store):
        queue = PendingOperationQueue(blob_store)
        queue.add(PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT))
        queue.add(PendingSyncOperation(entity_id="a1", operation_type=OperationType.SYNC_ACTIVITY_DATA))

        reloaded = PendingOperationQueue(blob_store)

        assert [op.entity_id for op in reloaded.all()] == ["p1", "a1"]

    def test_update_after_attempt(self, blob_store):
        now = datetime(2026, 3, 2, 12, 0)
        queue = PendingOperationQueue(blob_store, clock=lambda: now)
        op = PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT)
        queue.add(op)

        stored = queue.update_after_attempt(op, "Remote store server error: busy")

        assert stored.attempt_count == 1
        assert stored.last_attempt_at == now
        assert stored.last_error == "Remote store server error: busy"

        reloaded = PendingOperationQueue(blob_store)
        assert reloaded.get("p1", OperationType.SYNC_PARTICIPANT).attempt_count == 1

    def test_update_missing_entry_raises(self, queue):
        op = PendingSyncOperation(entity_id="ghost", operation_type=OperationType.SYNC_DAY_LOG)

        with pytest.raises(KeyError):
            queue.update_after_attempt(op)

    def test_remove(self, queue):
        op = PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT)
        queue.add(op)

        assert queue.remove(op) is True
        assert queue.remove(op) is False
        assert len(queue) == 0

    def test_clear(self, blob_store):
        queue = PendingOperationQueue(blob_store)
        for i in range(3):
            queue.add(PendingSyncOperation(entity_id=f"p{i}", operation_type=OperationType.SYNC_PARTICIPANT))

        assert queue.clear() == 3
        assert queue.count == 0
        assert PendingOperationQueue(blob_store).count == 0

    def test_corrupt_blob_treated_as_empty(self, blob_store):
        blob_store.save_blob(PENDING_OPERATIONS_KEY, b"{not json")

        queue = PendingOperationQueue(blob_store)

        assert queue.count == 0

    def test_custom_key_is_isolated(self, blob_store):
        PendingOperationQueue(blob_store, key="other").add(
            PendingSyncOperation(entity_id="p1", operation_type=OperationType.SYNC_PARTICIPANT)
        )

        assert PendingOperationQueue(blob_store).count == 0
        assert PendingOperationQueue(blob_store, key="other").count == 1
