"""Shared fixtures for the sync engine tests."""

import asyncio

import pytest

from fitsync.models import ActivityData, Challenge, DayLog, Participant
from fitsync.storage import LocalStore, SQLiteBlobStore
from fitsync.sync import (
    AccountStatus,
    DatabaseScope,
    PendingOperationQueue,
    RemoteStore,
    RetryConfiguration,
    RetryExecutor,
    ShareHandle,
    StatusChannel,
    SyncOrchestrator,
)


class FakeRemoteStore(RemoteStore):
    """In-memory remote store with scriptable failures."""

    def __init__(self):
        self.records = {}
        self.saved = []
        self.save_calls = 0
        self.query_calls = 0
        self.save_failures: list[BaseException] = []
        self.query_failures: list[BaseException] = []
        self.available = True
        self.closed = False
        # Called at the start of every save, while the call is in flight
        self.on_save = None
        # When set, saves block until the event fires
        self.save_gate: asyncio.Event | None = None
        self.active = 0
        self.max_active = 0

    async def _enter(self):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        # Yield so overlapping callers get a chance to interleave
        await asyncio.sleep(0)

    async def save(self, record):
        self.save_calls += 1
        try:
            await self._enter()
            if self.on_save is not None:
                self.on_save()
            if self.save_gate is not None:
                await self.save_gate.wait()
            if self.save_failures:
                raise self.save_failures.pop(0)
            self.records[record.record_id] = record
            self.saved.append(record)
            return record.record_id
        finally:
            self.active -= 1

    async def query(self, record_type, predicate, scope=DatabaseScope.SHARED):
        self.query_calls += 1
        await self._enter()
        self.active -= 1
        if self.query_failures:
            raise self.query_failures.pop(0)
        return [
            r for r in self.records.values()
            if r.record_type == record_type
            and all(r.fields.get(k) == v for k, v in predicate.items())
        ]

    async def account_status(self):
        if not self.available:
            raise ConnectionError("offline")
        return AccountStatus.AVAILABLE

    async def create_share(self, record):
        return ShareHandle(
            share_id=f"share-{record.record_id}",
            root_record_id=record.record_id,
            url=f"https://share.example.com/{record.record_id}",
        )

    async def close(self):
        self.closed = True


# Zero delays so retry tests never actually wait
FAST_RETRY = RetryConfiguration(max_attempts=5, base_delay=0.0, max_delay=0.0, jitter_factor=0.0)


@pytest.fixture
def store():
    """Create an in-memory local store."""
    s = LocalStore(":memory:")
    s.connect()
    yield s
    s.close()


@pytest.fixture
def blob_store():
    """Create an in-memory blob store."""
    s = SQLiteBlobStore(":memory:")
    s.connect()
    yield s
    s.close()


@pytest.fixture
def queue(blob_store):
    return PendingOperationQueue(blob_store)


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def status_channel():
    return StatusChannel()


@pytest.fixture
def published(status_channel):
    """Every status published on the channel, in order."""
    statuses = []
    status_channel.subscribe(statuses.append)
    return statuses


@pytest.fixture
def executor(status_channel):
    return RetryExecutor(status_channel, FAST_RETRY)


@pytest.fixture
def orchestrator(remote, store, queue, executor):
    return SyncOrchestrator(remote, store, queue, executor)


@pytest.fixture
def challenge():
    return Challenge(name="March Miles", creator_id="user-1", invite_code="MRCH42")


@pytest.fixture
def participant(challenge):
    """A dirty participant with two days logged, the second with activity data."""
    p = Participant(challenge_id=challenge.id, user_id="user-1", display_name="Alex")
    p.record_day(DayLog(participant_id=p.id, day_number=1, is_completed=True))
    day_two = DayLog(participant_id=p.id, day_number=2, is_completed=True)
    day_two.activity_data = ActivityData(
        day_log_id=day_two.id,
        duration_seconds=1800,
        distance_value=3.1,
        calories_burned=320,
    )
    p.record_day(day_two)
    return p
