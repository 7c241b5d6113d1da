"""Error taxonomy for remote store failures.

Every failure coming out of the remote store is funnelled through
:func:`classify_error`, which decides whether the engine may try again.
Permanent failures (missing account, quota, permissions) cannot heal by
themselves and are never retried; anything unrecognised is treated as
transient.
"""

import asyncio
import logging
from enum import Enum

import httpx

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """Kind of sync failure."""

    NETWORK_UNAVAILABLE = "network_unavailable"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS = frozenset(
    {ErrorKind.NETWORK_UNAVAILABLE, ErrorKind.SERVER_ERROR, ErrorKind.UNKNOWN}
)


class RemoteErrorCode(Enum):
    """Failure codes reported by the remote record store."""

    NETWORK_UNAVAILABLE = "networkUnavailable"
    NETWORK_FAILURE = "networkFailure"
    NOT_AUTHENTICATED = "notAuthenticated"
    ACCOUNT_RESTRICTED = "accountRestricted"
    QUOTA_EXCEEDED = "quotaExceeded"
    UNKNOWN_ITEM = "unknownItem"
    PERMISSION_FAILURE = "permissionFailure"
    SERVER_REJECTED_REQUEST = "serverRejectedRequest"
    SERVICE_UNAVAILABLE = "serviceUnavailable"
    REQUEST_RATE_LIMITED = "requestRateLimited"


_CODE_KINDS = {
    RemoteErrorCode.NETWORK_UNAVAILABLE: ErrorKind.NETWORK_UNAVAILABLE,
    RemoteErrorCode.NETWORK_FAILURE: ErrorKind.NETWORK_UNAVAILABLE,
    RemoteErrorCode.NOT_AUTHENTICATED: ErrorKind.BACKEND_UNAVAILABLE,
    RemoteErrorCode.ACCOUNT_RESTRICTED: ErrorKind.BACKEND_UNAVAILABLE,
    RemoteErrorCode.QUOTA_EXCEEDED: ErrorKind.QUOTA_EXCEEDED,
    RemoteErrorCode.UNKNOWN_ITEM: ErrorKind.NOT_FOUND,
    RemoteErrorCode.PERMISSION_FAILURE: ErrorKind.PERMISSION_DENIED,
    RemoteErrorCode.SERVER_REJECTED_REQUEST: ErrorKind.SERVER_ERROR,
    RemoteErrorCode.SERVICE_UNAVAILABLE: ErrorKind.SERVER_ERROR,
    RemoteErrorCode.REQUEST_RATE_LIMITED: ErrorKind.SERVER_ERROR,
}

_MESSAGES = {
    ErrorKind.NETWORK_UNAVAILABLE: "Network unavailable",
    ErrorKind.BACKEND_UNAVAILABLE: "Remote store account unavailable",
    ErrorKind.QUOTA_EXCEEDED: "Remote storage quota exceeded",
    ErrorKind.NOT_FOUND: "Record not found",
    ErrorKind.PERMISSION_DENIED: "Permission denied",
    ErrorKind.SERVER_ERROR: "Remote store server error",
    ErrorKind.UNKNOWN: "Unknown sync error",
}


class RemoteStoreError(Exception):
    """Failure reported by a remote store implementation."""

    def __init__(self, code: RemoteErrorCode | None, message: str, status_code: int | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class SyncError(Exception):
    """A classified sync failure.

    Attributes:
        kind: Taxonomy entry for the failure.
        message: Human readable description.
        cause: The original exception, if any.
    """

    def __init__(self, kind: ErrorKind, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"SyncError({self.kind.value!r}, {self.message!r})"


class SyncCancelledError(Exception):
    """Raised when a retry loop is cancelled through its token."""


class RecordMappingError(ValueError):
    """A remote record is missing a required field or has the wrong type."""


def _kind_for_status(status_code: int) -> ErrorKind:
    if status_code == 401:
        return ErrorKind.BACKEND_UNAVAILABLE
    if status_code == 403:
        return ErrorKind.PERMISSION_DENIED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (413, 507):
        return ErrorKind.QUOTA_EXCEEDED
    if status_code == 429 or status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def _describe(kind: ErrorKind, detail: str) -> str:
    base = _MESSAGES[kind]
    return f"{base}: {detail}" if detail else base


def classify_error(error: BaseException) -> SyncError:
    """Map a transport-level failure onto the sync error taxonomy.

    Args:
        error: Exception raised by a remote store call.

    Returns:
        SyncError carrying the kind and retryable verdict.
    """
    if isinstance(error, SyncError):
        return error

    if isinstance(error, RemoteStoreError):
        if error.code is not None:
            kind = _CODE_KINDS[error.code]
        elif error.status_code is not None:
            kind = _kind_for_status(error.status_code)
        else:
            kind = ErrorKind.UNKNOWN
        return SyncError(kind, _describe(kind, error.message), cause=error)

    if isinstance(error, httpx.HTTPStatusError):
        kind = _kind_for_status(error.response.status_code)
        return SyncError(
            kind, _describe(kind, f"HTTP {error.response.status_code}"), cause=error
        )

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.ConnectError)):
        kind = ErrorKind.NETWORK_UNAVAILABLE
        return SyncError(kind, _describe(kind, type(error).__name__), cause=error)

    if isinstance(error, (ConnectionError, asyncio.TimeoutError, TimeoutError, OSError)):
        kind = ErrorKind.NETWORK_UNAVAILABLE
        return SyncError(kind, _describe(kind, str(error)), cause=error)

    logger.debug(f"Unrecognised sync failure {type(error).__name__}: {error}")
    return SyncError(ErrorKind.UNKNOWN, _describe(ErrorKind.UNKNOWN, str(error)), cause=error)
