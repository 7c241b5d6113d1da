"""Tests for sync status and data-updated events."""

import pytest

from fitsync.sync import DataUpdated, EventBus, StatusChannel, SyncState, SyncStatus


class TestSyncStatus:
    """Tests for SyncStatus values."""

    def test_str(self):
        assert str(SyncStatus.idle()) == "idle"
        assert str(SyncStatus.retrying(2, 5)) == "retrying (2/5)"
        assert str(SyncStatus.error("offline")) == "error: offline"

    def test_to_dict(self):
        assert SyncStatus.retrying(3, 5).to_dict() == {
            "state": "retrying",
            "attempt": 3,
            "max_attempts": 5,
            "message": None,
        }


class TestStatusChannel:
    """Tests for StatusChannel."""

    def test_starts_idle(self):
        assert StatusChannel().current.state == SyncState.IDLE

    def test_publish_and_unsubscribe(self):
        channel = StatusChannel()
        seen = []
        unsubscribe = channel.subscribe(seen.append)

        channel.publish(SyncStatus.syncing())
        unsubscribe()
        channel.publish(SyncStatus.success())

        assert seen == [SyncStatus.syncing()]
        assert channel.current == SyncStatus.success()

    def test_failing_subscriber_does_not_block_others(self):
        channel = StatusChannel()
        seen = []

        def broken(status):
            raise RuntimeError("boom")

        channel.subscribe(broken)
        channel.subscribe(seen.append)
        channel.publish(SyncStatus.syncing())

        assert seen == [SyncStatus.syncing()]

    @pytest.mark.asyncio
    async def test_listen_queue(self):
        channel = StatusChannel()
        queue = channel.listen()

        channel.publish(SyncStatus.syncing())
        channel.publish(SyncStatus.success())
        channel.unlisten(queue)
        channel.publish(SyncStatus.idle())

        assert await queue.get() == SyncStatus.syncing()
        assert await queue.get() == SyncStatus.success()
        assert queue.empty()


class TestEventBus:
    """Tests for EventBus."""

    def test_emit_to_subscribers(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)

        bus.emit(DataUpdated("pull", ("p1",)))
        unsubscribe()
        bus.emit(DataUpdated("push"))

        assert [e.source for e in seen] == ["pull"]
        assert bus.subscriber_count == 0

    def test_subscriber_error_is_contained(self):
        bus = EventBus()
        seen = []

        def broken(event):
            raise ValueError("bad")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        bus.emit(DataUpdated("push"))

        assert len(seen) == 1
