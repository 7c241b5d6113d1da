"""Background task that drains the pending operation queue."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .errors import SyncError
from .queue import PendingSyncOperation
from .retry import DEFAULT_RETRY_CONFIGURATION, RetryConfiguration, RetryPolicy

if TYPE_CHECKING:
    from .orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Outcome of one pass over the queue."""

    reachable: bool = True
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    dropped: int = 0
    deferred: int = 0


class BackgroundRetryLoop:
    """Periodically replays queued pushes while the remote store is reachable.

    Stopping never interrupts a replay in flight: the stop request is only
    observed between operations and while waiting for the next tick, so the
    queue entry of the current operation is always updated. Cancelling the
    loop task does not cut a replay short either.
    """

    def __init__(
        self,
        orchestrator: "SyncOrchestrator",
        config: RetryConfiguration = DEFAULT_RETRY_CONFIGURATION,
        interval_seconds: float = 30.0,
        policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize the loop.

        Args:
            orchestrator: Orchestrator used to replay operations.
            config: Retry limits; ``max_attempts`` bounds queue attempts.
            interval_seconds: Seconds between ticks.
            policy: Backoff policy deciding when an entry is due again.
            clock: Source of the current time.
        """
        self._orchestrator = orchestrator
        self._queue = orchestrator.queue
        self._config = config
        self._policy = policy or RetryPolicy(config)
        self._interval = interval_seconds
        self._clock = clock
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._running = False
        # One pass over the queue at a time (background tick or "retry now")
        self._pass_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop as a background task."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Background retry loop started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop the loop after the operation in flight, if any, completes."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if self._task:
            if not self._task.done():
                await self._task
            self._task = None
        logger.info("Background retry loop stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                result = await self.run_once()
                if result.attempted or result.dropped:
                    logger.info(
                        f"Retry tick: attempted={result.attempted}, "
                        f"succeeded={result.succeeded}, failed={result.failed}, "
                        f"dropped={result.dropped}, pending={self._queue.count}"
                    )
            except Exception as e:
                logger.error(f"Retry loop tick failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    def is_due(self, op: PendingSyncOperation, now: datetime | None = None) -> bool:
        """True once the backoff for the entry's last attempt has elapsed."""
        if op.last_attempt_at is None or op.attempt_count < 1:
            return True
        now = now or self._clock()
        wait = timedelta(seconds=self._policy.delay(op.attempt_count))
        return now - op.last_attempt_at >= wait

    async def run_once(self, ignore_backoff: bool = False) -> TickResult:
        """Process every queued operation once.

        Passes never overlap: a "retry now" requested during a background
        tick waits for the tick to finish and then sees the updated queue.

        Args:
            ignore_backoff: Replay entries even if their backoff has not
                elapsed ("retry now").

        Returns:
            Counts of what happened during the pass.
        """
        async with self._pass_lock:
            return await self._run_pass(ignore_backoff)

    async def _run_pass(self, ignore_backoff: bool) -> TickResult:
        result = TickResult()

        if not self._queue.count:
            return result

        if not await self._orchestrator.check_availability():
            logger.debug("Remote store unreachable, skipping retry tick")
            result.reachable = False
            return result

        for snapshot in self._queue.all():
            if self._stop_event.is_set():
                break

            # The queue may have been cleared or trimmed since the snapshot
            op = self._queue.get(snapshot.entity_id, snapshot.operation_type)
            if op is None:
                continue

            if op.attempt_count >= self._config.max_attempts:
                self._drop(op)
                result.dropped += 1
                continue

            if not ignore_backoff and not self.is_due(op):
                result.deferred += 1
                continue

            result.attempted += 1
            if await self._replay(op):
                result.succeeded += 1
            else:
                result.failed += 1
                stored = self._queue.get(op.entity_id, op.operation_type)
                if stored is not None and stored.attempt_count >= self._config.max_attempts:
                    self._drop(stored)
                    result.dropped += 1

        return result

    async def retry_now(self) -> TickResult:
        """Replay every queued operation immediately, ignoring backoff."""
        return await self.run_once(ignore_backoff=True)

    async def _replay(self, op: PendingSyncOperation) -> bool:
        """Replay ``op`` and record the outcome in the queue.

        If the governing task is cancelled mid-replay, the attempt still runs
        to completion and is recorded before the cancellation propagates.
        """
        attempt = asyncio.ensure_future(self._attempt(op))
        try:
            return await asyncio.shield(attempt)
        except asyncio.CancelledError:
            await asyncio.wait([attempt])
            raise

    async def _attempt(self, op: PendingSyncOperation) -> bool:
        try:
            await self._orchestrator.replay(op)
        except SyncError as e:
            try:
                stored = self._queue.update_after_attempt(op, e.message)
            except KeyError:
                logger.info(
                    f"{op.operation_type.value} for {op.entity_id} left the queue "
                    f"during replay: {e.message}"
                )
                return False
            logger.warning(
                f"Replay of {op.operation_type.value} for {op.entity_id} failed "
                f"(attempt {stored.attempt_count}/{self._config.max_attempts}): {e.message}"
            )
            return False

        self._queue.remove(op)
        logger.info(f"Replayed {op.operation_type.value} for {op.entity_id}")
        return True

    def _drop(self, op: PendingSyncOperation) -> None:
        self._queue.remove(op)
        logger.error(
            f"Giving up on {op.operation_type.value} for {op.entity_id} after "
            f"{op.attempt_count} attempts: {op.last_error}"
        )
