"""Backoff policy and the retry executor every remote call goes through."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .errors import SyncCancelledError, SyncError, classify_error
from .status import StatusChannel, SyncStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfiguration:
    """Retry limits and backoff shape.

    Attributes:
        max_attempts: Total attempts, including the first one.
        base_delay: Delay in seconds after the first failed attempt.
        max_delay: Cap in seconds for the exponential delay (before jitter).
        jitter_factor: Symmetric jitter as a fraction of the delay, in [0, 1].
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter_factor: float = 0.2

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be non-negative, got {self.base_delay}")
        if self.max_delay < 0:
            raise ValueError(f"max_delay must be non-negative, got {self.max_delay}")
        if not 0.0 <= self.jitter_factor <= 1.0:
            raise ValueError(f"jitter_factor must be in [0, 1], got {self.jitter_factor}")


DEFAULT_RETRY_CONFIGURATION = RetryConfiguration()


class RetryPolicy:
    """Exponential backoff with a cap and symmetric jitter."""

    def __init__(
        self,
        config: RetryConfiguration = DEFAULT_RETRY_CONFIGURATION,
        rng: random.Random | None = None,
    ):
        self.config = config
        self._rng = rng or random.Random()

    def base_delay(self, attempt: int) -> float:
        """Capped exponential delay for ``attempt`` without jitter."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        exponential = self.config.base_delay * (2 ** (attempt - 1))
        return min(exponential, self.config.max_delay)

    def delay(self, attempt: int) -> float:
        """Delay in seconds to wait after failed attempt number ``attempt``.

        The result lies in ``[clamped * (1 - jitter), clamped * (1 + jitter)]``
        and is never negative.
        """
        clamped = self.base_delay(attempt)
        jitter = clamped * self.config.jitter_factor * self._rng.uniform(-1.0, 1.0)
        return max(0.0, clamped + jitter)


class CancellationToken:
    """Cooperative cancellation for retry loops and their backoff sleeps."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SyncCancelledError("Sync cancelled")

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless cancelled first.

        Raises:
            SyncCancelledError: If the token is, or becomes, cancelled.
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise SyncCancelledError("Sync cancelled during backoff")


class RetryExecutor:
    """Runs async operations with classification, backoff and status updates.

    This is the single place where remote calls are retried, so backoff and
    classification behave the same for push, pull and replay.
    """

    def __init__(
        self,
        status: StatusChannel,
        config: RetryConfiguration = DEFAULT_RETRY_CONFIGURATION,
        rng: random.Random | None = None,
    ):
        """Initialize the executor.

        Args:
            status: Channel receiving Retrying/Success/Error transitions.
            config: Default configuration for calls that do not override it.
            rng: Random source for jitter.
        """
        self.status = status
        self.config = config
        self._rng = rng

    def policy_for(self, config: RetryConfiguration | None = None) -> RetryPolicy:
        return RetryPolicy(config or self.config, self._rng)

    async def _sleep(self, delay: float, cancel_token: CancellationToken | None) -> None:
        if cancel_token is not None:
            await cancel_token.sleep(delay)
        else:
            await asyncio.sleep(delay)

    async def with_retry(
        self,
        operation_name: str,
        block: Callable[[], Awaitable[T]],
        config: RetryConfiguration | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> T:
        """Run ``block`` until it succeeds, fails permanently or runs out of attempts.

        Args:
            operation_name: Label used in log messages.
            block: Zero-argument coroutine function performing the remote call.
            config: Per-call override of the executor's configuration.
            cancel_token: Token checked before each attempt and during sleeps.

        Returns:
            Whatever ``block`` returns on its first successful attempt.

        Raises:
            SyncError: On a non-retryable failure or after the last attempt.
            SyncCancelledError: If cancelled before an attempt or mid-backoff.
        """
        config = config or self.config
        policy = self.policy_for(config)
        last_error: SyncError | None = None

        for attempt in range(1, config.max_attempts + 1):
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            if attempt > 1:
                self.status.publish(SyncStatus.retrying(attempt, config.max_attempts))

            try:
                result = await block()
            except (SyncCancelledError, asyncio.CancelledError):
                raise
            except Exception as e:
                last_error = classify_error(e)
            else:
                if attempt > 1:
                    logger.info(f"{operation_name} succeeded on attempt {attempt}")
                self.status.publish(SyncStatus.success())
                return result

            if not last_error.retryable:
                logger.warning(
                    f"{operation_name} failed with non-retryable "
                    f"{last_error.kind.value}: {last_error.message}"
                )
                self.status.publish(SyncStatus.error(last_error.message))
                raise last_error

            if attempt == config.max_attempts:
                break

            delay = policy.delay(attempt)
            logger.warning(
                f"{operation_name} failed ({last_error.kind.value}), "
                f"attempt {attempt}/{config.max_attempts}, retrying in {delay:.2f}s"
            )
            await self._sleep(delay, cancel_token)

        logger.error(
            f"{operation_name} failed after {config.max_attempts} attempts: "
            f"{last_error.message}"
        )
        self.status.publish(SyncStatus.error(last_error.message))
        raise last_error
