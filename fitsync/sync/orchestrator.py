"""Push local changes to the remote store and pull other participants' progress.

All remote work goes through one :class:`RetryExecutor` and is serialized by
one lock per orchestrator, so two writes never race on the sync metadata of
the same entity. Push failures never reach the caller: they are converted
into durable :class:`PendingSyncOperation` entries that the background loop
replays later.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..models import ActivityData, Challenge, DayLog, Participant, SyncableEntity
from .errors import RecordMappingError, SyncCancelledError, SyncError
from .queue import OperationType, PendingOperationQueue, PendingSyncOperation
from .records import RecordMapper, RecordType, RemoteRecord, participant_record_id
from .remote_store import AccountStatus, DatabaseScope, RemoteStore, ShareHandle
from .retry import CancellationToken, RetryExecutor
from .status import DataUpdated, EventBus, StatusChannel, SyncStatus

if TYPE_CHECKING:
    from ..storage.local_store import LocalStore

logger = logging.getLogger(__name__)

_OPERATION_TYPES: dict[type, OperationType] = {
    Participant: OperationType.SYNC_PARTICIPANT,
    DayLog: OperationType.SYNC_DAY_LOG,
    ActivityData: OperationType.SYNC_ACTIVITY_DATA,
}


def operation_type_for(entity: SyncableEntity) -> OperationType:
    return _OPERATION_TYPES[type(entity)]


def needs_push(entity: SyncableEntity) -> bool:
    """True if the entity or anything it owns is flagged for sync."""
    if entity.needs_sync:
        return True
    if isinstance(entity, Participant):
        return any(needs_push(log) for log in entity.day_logs)
    if isinstance(entity, DayLog) and entity.activity_data is not None:
        return entity.activity_data.needs_sync
    return False


class SyncOrchestrator:
    """Top-level sync state machine for one process."""

    def __init__(
        self,
        remote: RemoteStore,
        store: "LocalStore",
        queue: PendingOperationQueue,
        executor: RetryExecutor,
        mapper: RecordMapper | None = None,
        events: EventBus | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the orchestrator.

        Args:
            remote: Remote record store.
            store: Local entity store whose sync metadata is updated.
            queue: Durable queue receiving failed pushes.
            executor: Retry executor; its status channel is the orchestrator's.
            mapper: Entity/record translator.
            events: Bus receiving DataUpdated after successful push or pull.
            clock: Source of timestamps.
        """
        self._remote = remote
        self._store = store
        self._queue = queue
        self._executor = executor
        self._mapper = mapper or RecordMapper(clock)
        self._events = events or EventBus()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._syncing = False
        self._last_synced_at: datetime | None = None
        # Replays count one queue attempt per call; the queue's attempt
        # counter drives their backoff.
        self._replay_config = dataclasses.replace(executor.config, max_attempts=1)

    @property
    def status_channel(self) -> StatusChannel:
        return self._executor.status

    @property
    def status(self) -> SyncStatus:
        return self._executor.status.current

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def queue(self) -> PendingOperationQueue:
        return self._queue

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def last_synced_at(self) -> datetime | None:
        return self._last_synced_at

    # ==================== Availability ====================

    async def check_availability(self) -> bool:
        """Return True if the remote store account is usable right now."""
        try:
            status = await self._remote.account_status()
        except Exception as e:
            logger.warning(f"Remote availability check failed: {e}")
            return False
        return status == AccountStatus.AVAILABLE

    # ==================== Push ====================

    async def sync_entity(
        self,
        entity: SyncableEntity,
        cancel_token: CancellationToken | None = None,
    ) -> bool:
        """Push ``entity`` and the children it owns.

        Failures are queued for the background loop instead of raised.

        Returns:
            True if the entity is in sync afterwards, False if it was queued.

        Raises:
            SyncCancelledError: If ``cancel_token`` fires; the entity is
                queued before the error propagates.
        """
        if not needs_push(entity):
            logger.debug(f"{type(entity).__name__} {entity.id} already in sync")
            return True

        async with self._lock:
            # An overlapping call may have pushed it while we waited
            if not needs_push(entity):
                return True

            self._syncing = True
            self.status_channel.publish(SyncStatus.syncing())
            try:
                await self._push(entity, cancel_token=cancel_token)
            except SyncCancelledError:
                self._enqueue(entity, "Sync cancelled before completion")
                raise
            except SyncError as e:
                self._enqueue(entity, e.message)
                return False
            finally:
                self._syncing = False

        return True

    async def sync_pending_entities(self, cancel_token: CancellationToken | None = None) -> int:
        """Push every participant the local store has flagged for sync.

        Returns:
            Number of participants pushed successfully.
        """
        participants = self._store.participants_needing_sync()
        if not participants:
            return 0

        logger.info(f"Syncing {len(participants)} participants with local changes")
        synced = 0
        for participant in participants:
            if await self.sync_entity(participant, cancel_token=cancel_token):
                synced += 1
        return synced

    async def replay(
        self,
        op: PendingSyncOperation,
        cancel_token: CancellationToken | None = None,
    ) -> bool:
        """Re-run a queued push once. Used by the background loop.

        Returns:
            True when nothing is left to do for ``op``.

        Raises:
            SyncError: If the push failed again. Nothing is queued.
        """
        async with self._lock:
            # Loaded under the lock so a push that finished meanwhile is seen
            entity = self._load_entity(op)
            if entity is None:
                logger.warning(
                    f"Dropping {op.operation_type.value} for {op.entity_id}: entity no longer exists"
                )
                return True
            if not needs_push(entity):
                return True

            self._syncing = True
            self.status_channel.publish(SyncStatus.syncing())
            try:
                await self._push(entity, config=self._replay_config, cancel_token=cancel_token)
            finally:
                self._syncing = False
        return True

    def _load_entity(self, op: PendingSyncOperation) -> SyncableEntity | None:
        if op.operation_type == OperationType.SYNC_PARTICIPANT:
            return self._store.get_participant(op.entity_id)
        if op.operation_type == OperationType.SYNC_DAY_LOG:
            return self._store.get_day_log(op.entity_id)
        return self._store.get_activity_data(op.entity_id)

    def _enqueue(self, entity: SyncableEntity, error: str) -> None:
        op = PendingSyncOperation(
            entity_id=entity.id,
            operation_type=operation_type_for(entity),
            created_at=self._clock(),
            last_error=error,
        )
        self._queue.add(op)

    def _parent_reference(self, entity: SyncableEntity) -> str | None:
        if isinstance(entity, DayLog):
            parent = self._store.get_participant(entity.participant_id)
            return participant_record_id(parent) if parent else entity.participant_id
        if isinstance(entity, ActivityData):
            parent = self._store.get_day_log(entity.day_log_id)
            if parent is not None:
                return parent.remote_record_id or parent.id
            return entity.day_log_id
        return None

    async def _push(self, entity: SyncableEntity, config=None, cancel_token=None) -> None:
        """Write the entity tree parent-first inside one retried block."""
        parent_reference = self._parent_reference(entity)
        written: list[tuple[Any, str]] = []

        async def save(target: Any, record: RemoteRecord) -> str:
            if not target.needs_sync:
                return record.record_id
            record_id = await self._remote.save(record)
            written.append((target, record_id))
            return record_id

        async def write_activity(data: ActivityData, day_log_ref: str) -> None:
            await save(data, self._mapper.activity_data_to_record(data, day_log_ref))

        async def write_day_log(day_log: DayLog, participant_ref: str) -> None:
            ref = await save(day_log, self._mapper.day_log_to_record(day_log, participant_ref))
            if day_log.activity_data is not None:
                await write_activity(day_log.activity_data, ref)

        async def write_tree() -> None:
            written.clear()
            if isinstance(entity, Participant):
                ref = await save(entity, self._mapper.participant_to_record(entity))
                for day_log in entity.day_logs:
                    await write_day_log(day_log, ref)
            elif isinstance(entity, DayLog):
                await write_day_log(entity, parent_reference)
            else:
                await write_activity(entity, parent_reference)

        name = f"sync {type(entity).__name__} {entity.id}"
        await self._executor.with_retry(name, write_tree, config=config, cancel_token=cancel_token)

        now = self._clock()
        for target, record_id in written:
            target.needs_sync = False
            target.last_synced_at = now
            target.remote_record_id = record_id

        if isinstance(entity, Participant):
            self._store.save_participant(entity)
        elif isinstance(entity, DayLog):
            self._store.save_day_log(entity)
        else:
            self._store.save_activity_data(entity)

        self._last_synced_at = now
        logger.info(f"Pushed {len(written)} records for {type(entity).__name__} {entity.id}")
        self._events.emit(
            DataUpdated("push", tuple(target.id for target, _ in written), timestamp=now)
        )

    # ==================== Pull ====================

    async def fetch_remote_updates(
        self,
        challenge: Challenge,
        cancel_token: CancellationToken | None = None,
    ) -> list[Participant]:
        """Fetch every participant of ``challenge`` with their day logs.

        Records that cannot be decoded are skipped. If the remote store keeps
        failing, the status moves to Error and an empty list is returned.
        """
        async def pull() -> list[Participant]:
            records = await self._remote.query(
                RecordType.PARTICIPANT, {"challengeID": challenge.id}, DatabaseScope.SHARED
            )
            participants = []
            for record in records:
                try:
                    participant = self._mapper.record_to_participant(record)
                except RecordMappingError as e:
                    logger.warning(f"Skipping participant record {record.record_id}: {e}")
                    continue
                participant.day_logs = await self._fetch_day_logs(record.record_id)
                participants.append(participant)
            return participants

        async with self._lock:
            self._syncing = True
            self.status_channel.publish(SyncStatus.syncing())
            try:
                participants = await self._executor.with_retry(
                    f"fetch challenge {challenge.id}", pull, cancel_token=cancel_token
                )
            except SyncError as e:
                logger.warning(f"Fetching updates for challenge {challenge.id} failed: {e.message}")
                return []
            finally:
                self._syncing = False

        self._last_synced_at = self._clock()
        self._events.emit(
            DataUpdated("pull", tuple(p.id for p in participants), timestamp=self._last_synced_at)
        )
        return participants

    async def _fetch_day_logs(self, participant_record: str) -> list[DayLog]:
        records = await self._remote.query(
            RecordType.DAY_LOG, {"participant": participant_record}, DatabaseScope.SHARED
        )
        day_logs = []
        for record in records:
            try:
                day_log = self._mapper.record_to_day_log(record)
            except RecordMappingError as e:
                logger.warning(f"Skipping day log record {record.record_id}: {e}")
                continue
            day_log.activity_data = await self._fetch_activity_data(record.record_id)
            day_logs.append(day_log)

        day_logs.sort(key=lambda log: log.day_number)
        return day_logs

    async def _fetch_activity_data(self, day_log_record: str) -> ActivityData | None:
        records = await self._remote.query(
            RecordType.ACTIVITY_DATA, {"dayLog": day_log_record}, DatabaseScope.SHARED
        )
        for record in records:
            try:
                return self._mapper.record_to_activity_data(record)
            except RecordMappingError as e:
                logger.warning(f"Skipping activity record {record.record_id}: {e}")
        return None

    # ==================== Sharing ====================

    async def create_challenge_share(
        self,
        challenge: Challenge,
        cancel_token: CancellationToken | None = None,
    ) -> ShareHandle | None:
        """Save the challenge as a shareable root record.

        Returns:
            The share handle, or None if the remote store kept failing.
        """
        record = self._mapper.challenge_to_record(challenge)

        async def share() -> ShareHandle:
            await self._remote.save(record)
            return await self._remote.create_share(record)

        async with self._lock:
            self._syncing = True
            self.status_channel.publish(SyncStatus.syncing())
            try:
                handle = await self._executor.with_retry(
                    f"share challenge {challenge.id}", share, cancel_token=cancel_token
                )
            except SyncError as e:
                logger.warning(f"Sharing challenge {challenge.id} failed: {e.message}")
                return None
            finally:
                self._syncing = False

        logger.info(f"Challenge {challenge.id} shared as {handle.share_id}")
        return handle

    async def join_challenge(
        self,
        invite_code: str,
        cancel_token: CancellationToken | None = None,
    ) -> Challenge | None:
        """Look up a shared challenge by invite code and store it locally.

        A challenge already stored locally under the code is returned without
        contacting the remote store.

        Returns:
            The first matching challenge, or None if there is no usable match.
        """
        code = invite_code.strip().upper()

        existing = self._store.find_challenge_by_invite_code(code)
        if existing is not None:
            logger.info(f"Challenge {existing.id} for invite code {code} already joined")
            return existing

        async def find() -> list[RemoteRecord]:
            return await self._remote.query(
                RecordType.CHALLENGE, {"inviteCode": code}, DatabaseScope.SHARED
            )

        async with self._lock:
            self._syncing = True
            self.status_channel.publish(SyncStatus.syncing())
            try:
                records = await self._executor.with_retry(
                    f"join challenge {code}", find, cancel_token=cancel_token
                )
            except SyncError as e:
                logger.warning(f"Joining challenge {code} failed: {e.message}")
                return None
            finally:
                self._syncing = False

        if not records:
            logger.info(f"No challenge found for invite code {code}")
            return None

        try:
            challenge = self._mapper.record_to_challenge(records[0])
        except RecordMappingError as e:
            logger.warning(f"Challenge record for invite code {code} is unusable: {e}")
            return None

        self._store.save_challenge(challenge)
        self._events.emit(DataUpdated("pull", (challenge.id,), timestamp=self._clock()))
        return challenge

    # ==================== Status ====================

    def get_sync_status(self) -> dict[str, Any]:
        """Get current sync status.

        Returns:
            Dictionary for display: status, last sync time, pending count.
        """
        return {
            "status": self.status.to_dict(),
            "is_syncing": self._syncing,
            "last_synced_at": self._last_synced_at.isoformat() if self._last_synced_at else None,
            "pending_operations": self._queue.count,
        }
