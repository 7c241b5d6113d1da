"""Remote record store interface and its HTTP implementation."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from .errors import RecordMappingError, RemoteErrorCode, RemoteStoreError
from .records import RecordType, RemoteRecord

logger = logging.getLogger(__name__)


class AccountStatus(Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class DatabaseScope(Enum):
    """Which database a query runs against."""

    PRIVATE = "private"  # records owned by this user
    SHARED = "shared"  # records shared with this user by others


@dataclass
class ShareHandle:
    """A share created for a root record."""

    share_id: str
    root_record_id: str
    url: str | None = None
    title: str | None = None


class RemoteStore(ABC):
    """Remote record store the sync engine writes to and reads from.

    Every call may take arbitrary wall-clock time and may fail with any
    exception; failures are classified by the caller.
    """

    @abstractmethod
    async def save(self, record: RemoteRecord) -> str:
        """Atomically write one record; returns the stored record id."""

    @abstractmethod
    async def query(
        self,
        record_type: RecordType,
        predicate: dict[str, Any],
        scope: DatabaseScope = DatabaseScope.SHARED,
    ) -> list[RemoteRecord]:
        """Return records of ``record_type`` whose fields equal ``predicate``."""

    @abstractmethod
    async def account_status(self) -> AccountStatus:
        """Report whether the store is usable for this account."""

    async def create_share(self, record: RemoteRecord) -> ShareHandle:
        """Share ``record`` with other users. Optional capability."""
        raise RemoteStoreError(
            RemoteErrorCode.PERMISSION_FAILURE,
            f"{type(self).__name__} does not support sharing",
        )

    async def close(self) -> None:
        """Release any held connections."""


class HTTPRemoteStore(RemoteStore):
    """JSON-over-HTTP remote store.

    Endpoints:
    - ``POST /records`` with a record body, returns ``{"record_id": ...}``
    - ``POST /records/query`` with type, predicate and scope, returns ``{"records": [...]}``
    - ``GET /account/status`` returns ``{"status": "available" | ...}``
    - ``POST /shares`` with a record body, returns the share handle

    Error responses carry ``{"code": "<RemoteErrorCode>", "message": ...}``
    when the server knows why the request failed.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        api_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the store.

        Args:
            base_url: Base URL of the record service (e.g. "https://sync.example.com").
            timeout: Per-request timeout in seconds.
            api_token: Optional bearer token sent with every request.
            transport: Optional httpx transport, mainly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, json_data: Any = None) -> Any:
        response = await self._client.request(method, path, json=json_data)

        if response.status_code >= 400:
            raise self._error_from_response(response)

        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> RemoteStoreError:
        code = None
        message = f"HTTP {response.status_code}"
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            message = body.get("message") or message
            raw_code = body.get("code")
            if raw_code:
                try:
                    code = RemoteErrorCode(raw_code)
                except ValueError:
                    logger.debug(f"Unknown remote error code {raw_code!r}")

        return RemoteStoreError(code, message, status_code=response.status_code)

    async def save(self, record: RemoteRecord) -> str:
        data = await self._request("POST", "/records", record.to_dict())
        record_id = data.get("record_id", record.record_id)
        logger.debug(f"Saved {record.record_type.value} {record_id}")
        return record_id

    async def query(
        self,
        record_type: RecordType,
        predicate: dict[str, Any],
        scope: DatabaseScope = DatabaseScope.SHARED,
    ) -> list[RemoteRecord]:
        data = await self._request(
            "POST",
            "/records/query",
            {
                "record_type": record_type.value,
                "predicate": predicate,
                "scope": scope.value,
            },
        )
        records = []
        for raw in data.get("records", []):
            try:
                records.append(RemoteRecord.from_dict(raw))
            except RecordMappingError as e:
                logger.warning(f"Skipping malformed {record_type.value} record: {e}")
        return records

    async def account_status(self) -> AccountStatus:
        data = await self._request("GET", "/account/status")
        if data.get("status") == AccountStatus.AVAILABLE.value:
            return AccountStatus.AVAILABLE
        return AccountStatus.UNAVAILABLE

    async def create_share(self, record: RemoteRecord) -> ShareHandle:
        data = await self._request("POST", "/shares", record.to_dict())
        return ShareHandle(
            share_id=data["share_id"],
            root_record_id=data.get("root_record_id", record.record_id),
            url=data.get("url"),
            title=data.get("title"),
        )
