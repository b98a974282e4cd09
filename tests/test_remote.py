"""Tests for the Kinto HTTP client."""

import httpx
import pytest

from notesync.exceptions import RecordConflictError, RemoteError, UnauthorizedError
from notesync.remote import KintoHTTPClient

from tests.fakes import REMOTE_URL, FakeKintoServer


@pytest.fixture
def api(server):
    return KintoHTTPClient(REMOTE_URL, transport=server.transport)


class TestListRecords:
    """Tests for KintoHTTPClient.list_records."""

    @pytest.mark.asyncio
    async def test_sorted_most_recent_first(self, api, server):
        server.add_record({"id": "a", "content": "x", "kid": "k", "last_modified": 10})
        server.add_record({"id": "b", "content": "y", "kid": "k", "last_modified": 20})

        records, timestamp = await api.list_records("default", "notes")

        assert [r["id"] for r in records] == ["b", "a"]
        assert timestamp == 1000
        assert str(server.requests[0].url).endswith(
            "/v1/buckets/default/collections/notes/records?_sort=-last_modified"
        )

    @pytest.mark.asyncio
    async def test_since(self, api, server):
        server.add_record({"id": "a", "content": "x", "kid": "k", "last_modified": 10})
        server.add_record({"id": "b", "content": "y", "kid": "k", "last_modified": 20})

        records, _ = await api.list_records("default", "notes", since=10)

        assert [r["id"] for r in records] == ["b"]
        assert server.requests[0].url.params["_since"] == "10"

    @pytest.mark.asyncio
    async def test_passes_headers(self, api, server):
        await api.list_records(
            "default", "notes", headers={"Authorization": "Bearer token"}
        )

        assert server.requests[0].headers["Authorization"] == "Bearer token"


class TestPutRecord:
    """Tests for KintoHTTPClient.put_record."""

    @pytest.mark.asyncio
    async def test_new_record_uses_if_none_match(self, api, server):
        stored = await api.put_record("default", "notes", {"id": "a", "content": "x"})

        assert stored["last_modified"] == 1001
        assert server.requests[0].headers["If-None-Match"] == "*"

    @pytest.mark.asyncio
    async def test_existing_record_uses_if_match(self, api, server):
        server.add_record({"id": "a", "content": "x", "last_modified": 1234})

        stored = await api.put_record(
            "default", "notes", {"id": "a", "content": "y"}, if_match=1234
        )

        assert stored["content"] == "y"
        assert server.requests[0].headers["If-Match"] == '"1234"'

    @pytest.mark.asyncio
    async def test_stale_if_match_is_conflict(self, api, server):
        server.add_record({"id": "a", "content": "x", "last_modified": 1234})

        with pytest.raises(RecordConflictError) as exc_info:
            await api.put_record(
                "default", "notes", {"id": "a", "content": "y"}, if_match=1200
            )

        assert exc_info.value.status_code == 412
        assert exc_info.value.existing["content"] == "x"
        assert exc_info.value.existing["last_modified"] == 1234

    @pytest.mark.asyncio
    async def test_conflict_without_existing_record(self, api, server):
        with pytest.raises(RecordConflictError) as exc_info:
            await api.put_record(
                "default", "notes", {"id": "a", "content": "y"}, if_match=1200
            )

        assert exc_info.value.existing is None


class TestErrors:
    """Tests for HTTP error translation."""

    @pytest.mark.asyncio
    async def test_401_is_unauthorized(self):
        api = KintoHTTPClient(REMOTE_URL, transport=FakeKintoServer(status=401).transport)

        with pytest.raises(UnauthorizedError) as exc_info:
            await api.list_records("default", "notes")

        assert exc_info.value.status_code == 401
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_500_is_remote_error(self):
        api = KintoHTTPClient(REMOTE_URL, transport=FakeKintoServer(status=503).transport)

        with pytest.raises(RemoteError) as exc_info:
            await api.server_info()

        assert not isinstance(exc_info.value, UnauthorizedError)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = KintoHTTPClient(REMOTE_URL, transport=httpx.MockTransport(refuse))

        with pytest.raises(RemoteError) as exc_info:
            await api.list_records("default", "notes")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, server):
        async with KintoHTTPClient(REMOTE_URL, transport=server.transport) as api:
            info = await api.server_info()

        assert info["settings"]["readonly"] is False
        assert api.client.is_closed
