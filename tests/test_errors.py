"""Tests for sync error classification."""

import httpx
import pytest

from fitsync.sync import (
    ErrorKind,
    RemoteErrorCode,
    RemoteStoreError,
    SyncError,
    classify_error,
)


def http_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://sync.test/records")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError("failed", request=request, response=response)


class TestErrorKind:
    """Tests for the retryable verdict of each kind."""

    @pytest.mark.parametrize(
        "kind,retryable",
        [
            (ErrorKind.NETWORK_UNAVAILABLE, True),
            (ErrorKind.SERVER_ERROR, True),
            (ErrorKind.UNKNOWN, True),
            (ErrorKind.BACKEND_UNAVAILABLE, False),
            (ErrorKind.QUOTA_EXCEEDED, False),
            (ErrorKind.NOT_FOUND, False),
            (ErrorKind.PERMISSION_DENIED, False),
        ],
    )
    def test_retryable(self, kind, retryable):
        assert kind.retryable is retryable
        assert SyncError(kind, "x").retryable is retryable


class TestClassifyError:
    """Tests for classify_error."""

    @pytest.mark.parametrize(
        "code,kind",
        [
            (RemoteErrorCode.NETWORK_UNAVAILABLE, ErrorKind.NETWORK_UNAVAILABLE),
            (RemoteErrorCode.NETWORK_FAILURE, ErrorKind.NETWORK_UNAVAILABLE),
            (RemoteErrorCode.NOT_AUTHENTICATED, ErrorKind.BACKEND_UNAVAILABLE),
            (RemoteErrorCode.ACCOUNT_RESTRICTED, ErrorKind.BACKEND_UNAVAILABLE),
            (RemoteErrorCode.QUOTA_EXCEEDED, ErrorKind.QUOTA_EXCEEDED),
            (RemoteErrorCode.UNKNOWN_ITEM, ErrorKind.NOT_FOUND),
            (RemoteErrorCode.PERMISSION_FAILURE, ErrorKind.PERMISSION_DENIED),
            (RemoteErrorCode.SERVER_REJECTED_REQUEST, ErrorKind.SERVER_ERROR),
            (RemoteErrorCode.SERVICE_UNAVAILABLE, ErrorKind.SERVER_ERROR),
            (RemoteErrorCode.REQUEST_RATE_LIMITED, ErrorKind.SERVER_ERROR),
        ],
    )
    def test_remote_codes(self, code, kind):
        error = RemoteStoreError(code, "boom")
        classified = classify_error(error)

        assert classified.kind == kind
        assert classified.cause is error
        assert "boom" in classified.message

    @pytest.mark.parametrize(
        "status_code,kind",
        [
            (401, ErrorKind.BACKEND_UNAVAILABLE),
            (403, ErrorKind.PERMISSION_DENIED),
            (404, ErrorKind.NOT_FOUND),
            (413, ErrorKind.QUOTA_EXCEEDED),
            (507, ErrorKind.QUOTA_EXCEEDED),
            (429, ErrorKind.SERVER_ERROR),
            (500, ErrorKind.SERVER_ERROR),
            (503, ErrorKind.SERVER_ERROR),
            (418, ErrorKind.UNKNOWN),
        ],
    )
    def test_http_status(self, status_code, kind):
        assert classify_error(http_status_error(status_code)).kind == kind
        assert classify_error(RemoteStoreError(None, "x", status_code=status_code)).kind == kind

    def test_code_wins_over_status(self):
        error = RemoteStoreError(RemoteErrorCode.QUOTA_EXCEEDED, "full", status_code=503)
        assert classify_error(error).kind == ErrorKind.QUOTA_EXCEEDED

    def test_remote_error_without_code_or_status(self):
        assert classify_error(RemoteStoreError(None, "odd")).kind == ErrorKind.UNKNOWN

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            ConnectionError("reset"),
            TimeoutError("timed out"),
        ],
    )
    def test_network_failures(self, error):
        classified = classify_error(error)
        assert classified.kind == ErrorKind.NETWORK_UNAVAILABLE
        assert classified.message.startswith("Network unavailable")
        assert classified.retryable

    def test_unknown_failure_is_retryable(self):
        classified = classify_error(RuntimeError("weird"))
        assert classified.kind == ErrorKind.UNKNOWN
        assert classified.retryable

    def test_sync_error_passes_through(self):
        error = SyncError(ErrorKind.NOT_FOUND, "gone")
        assert classify_error(error) is error
