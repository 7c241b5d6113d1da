"""Sync engine for challenge progress.

Pushes local changes to a remote record store and pulls other participants'
progress back, retrying transient failures with backoff and queueing
anything that still fails for the background retry loop.
"""

from .errors import (
    ErrorKind,
    RecordMappingError,
    RemoteErrorCode,
    RemoteStoreError,
    SyncCancelledError,
    SyncError,
    classify_error,
)
from .orchestrator import SyncOrchestrator
from .queue import OperationType, PendingOperationQueue, PendingSyncOperation
from .records import RecordMapper, RecordType, RemoteRecord
from .remote_store import (
    AccountStatus,
    DatabaseScope,
    HTTPRemoteStore,
    RemoteStore,
    ShareHandle,
)
from .retry import (
    DEFAULT_RETRY_CONFIGURATION,
    CancellationToken,
    RetryConfiguration,
    RetryExecutor,
    RetryPolicy,
)
from .retry_loop import BackgroundRetryLoop, TickResult
from .status import DataUpdated, EventBus, StatusChannel, SyncState, SyncStatus

__all__ = [
    "AccountStatus",
    "BackgroundRetryLoop",
    "CancellationToken",
    "DataUpdated",
    "DatabaseScope",
    "DEFAULT_RETRY_CONFIGURATION",
    "ErrorKind",
    "EventBus",
    "HTTPRemoteStore",
    "OperationType",
    "PendingOperationQueue",
    "PendingSyncOperation",
    "RecordMapper",
    "RecordMappingError",
    "RecordType",
    "RemoteErrorCode",
    "RemoteRecord",
    "RemoteStore",
    "RemoteStoreError",
    "RetryConfiguration",
    "RetryExecutor",
    "RetryPolicy",
    "ShareHandle",
    "StatusChannel",
    "SyncCancelledError",
    "SyncError",
    "SyncOrchestrator",
    "SyncState",
    "SyncStatus",
    "TickResult",
    "classify_error",
]
