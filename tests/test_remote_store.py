"""Tests for the HTTP remote store."""

import json

import httpx
import pytest

from fitsync.sync import (
    AccountStatus,
    DatabaseScope,
    HTTPRemoteStore,
    RemoteErrorCode,
    RemoteRecord,
    RemoteStoreError,
    RecordType,
)


def make_store(handler, **kwargs) -> HTTPRemoteStore:
    return HTTPRemoteStore(
        "http://sync.test/", transport=httpx.MockTransport(handler), **kwargs
    )


def participant_record(record_id: str = "p1") -> RemoteRecord:
    return RemoteRecord(RecordType.PARTICIPANT, record_id, {"id": record_id, "challengeID": "c1"})


class TestHTTPRemoteStore:
    """Tests for HTTPRemoteStore."""

    @pytest.mark.asyncio
    async def test_save(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"record_id": "stored-p1"})

        store = make_store(handler)
        record_id = await store.save(participant_record())
        await store.close()

        assert record_id == "stored-p1"
        assert seen["path"] == "/records"
        assert seen["body"]["record_type"] == "ChallengeParticipant"
        assert seen["body"]["fields"]["challengeID"] == "c1"

    @pytest.mark.asyncio
    async def test_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"status": "available"})

        store = make_store(handler, api_token="secret")
        assert await store.account_status() == AccountStatus.AVAILABLE
        await store.close()

        assert seen["auth"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_error_with_code(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(507, json={"code": "quotaExceeded", "message": "Storage full"})

        store = make_store(handler)
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.save(participant_record())
        await store.close()

        assert exc_info.value.code == RemoteErrorCode.QUOTA_EXCEEDED
        assert exc_info.value.status_code == 507
        assert exc_info.value.message == "Storage full"

    @pytest.mark.asyncio
    async def test_error_without_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        store = make_store(handler)
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.save(participant_record())
        await store.close()

        assert exc_info.value.code is None
        assert exc_info.value.status_code == 502
        assert exc_info.value.message == "HTTP 502"

    @pytest.mark.asyncio
    async def test_query_skips_malformed_records(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "records": [
                        participant_record("p1").to_dict(),
                        {"record_type": "Bogus", "record_id": "x"},
                        participant_record("p2").to_dict(),
                    ]
                },
            )

        store = make_store(handler)
        records = await store.query(RecordType.PARTICIPANT, {"challengeID": "c1"})
        await store.close()

        assert [r.record_id for r in records] == ["p1", "p2"]
        assert seen["body"] == {
            "record_type": "ChallengeParticipant",
            "predicate": {"challengeID": "c1"},
            "scope": DatabaseScope.SHARED.value,
        }

    @pytest.mark.asyncio
    async def test_account_unavailable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": "noAccount"})

        store = make_store(handler)
        assert await store.account_status() == AccountStatus.UNAVAILABLE
        await store.close()

    @pytest.mark.asyncio
    async def test_create_share(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/shares"
            return httpx.Response(200, json={"share_id": "s1", "url": "https://share.test/s1"})

        store = make_store(handler)
        record = RemoteRecord(RecordType.CHALLENGE, "c1", {"id": "c1"})
        handle = await store.create_share(record)
        await store.close()

        assert handle.share_id == "s1"
        assert handle.root_record_id == "c1"
        assert handle.url == "https://share.test/s1"
