"""Tests for loading and saving the note."""

from unittest.mock import AsyncMock, MagicMock, call

import pytest

from notesync.client import NotesClient
from notesync.config import SyncSettings
from notesync.controllers import NotesController, load_from_kinto, save_to_kinto
from notesync.messaging import DEFAULT_RECIPIENT
from notesync.records import NoteRecord, RecordStatus
from notesync.sync import SyncOrchestrator, SyncOutcome, SyncState

from tests.fakes import REMOTE_URL, FakeKintoServer


@pytest.fixture
def collection():
    collection = MagicMock()
    collection.upsert = AsyncMock(return_value=None)
    collection.get_any = AsyncMock(return_value=None)
    return collection


@pytest.fixture
def mock_client(collection):
    client = MagicMock()
    client.collection.return_value = collection
    return client


@pytest.fixture
def sink():
    return MagicMock()


@pytest.fixture
def failing_sync():
    orchestrator = MagicMock()
    orchestrator.attempt = AsyncMock(
        return_value=SyncOutcome(
            SyncState.FAILED, error=Exception("server busy playing Minesweeper")
        )
    )
    return orchestrator


def sent_messages(sink):
    return [c.args[1] for c in sink.send_message.call_args_list]


class TestLoad:
    """Tests for load_from_kinto."""

    @pytest.mark.asyncio
    async def test_sends_null_data_when_no_note(self, mock_client, sink, failing_sync):
        await load_from_kinto(mock_client, None, sink, orchestrator=failing_sync)

        sink.send_message.assert_called_once_with(
            DEFAULT_RECIPIENT,
            {"action": "kinto-loaded", "data": None, "last_modified": None},
        )

    @pytest.mark.asyncio
    async def test_sends_null_data_when_sync_ok_but_empty(self, mock_client, sink):
        orchestrator = MagicMock()
        orchestrator.attempt = AsyncMock(return_value=SyncOutcome(SyncState.OK))

        await load_from_kinto(mock_client, None, sink, orchestrator=orchestrator)

        sink.send_message.assert_called_once_with(
            DEFAULT_RECIPIENT,
            {"action": "kinto-loaded", "data": None, "last_modified": None},
        )

    @pytest.mark.asyncio
    async def test_does_not_fail_if_sync_fails(
        self, mock_client, collection, sink, failing_sync
    ):
        collection.get_any.return_value = NoteRecord(
            id="singleNote", content="def", last_modified="abc"
        )

        await load_from_kinto(mock_client, None, sink, orchestrator=failing_sync)

        sink.send_message.assert_called_once_with(
            DEFAULT_RECIPIENT,
            {"action": "kinto-loaded", "data": "def", "last_modified": "abc"},
        )

    @pytest.mark.asyncio
    async def test_does_not_fail_if_sync_raises(self, mock_client, collection, sink):
        orchestrator = MagicMock()
        orchestrator.attempt = AsyncMock(side_effect=RuntimeError("boom"))
        collection.get_any.return_value = NoteRecord(
            id="singleNote", content="def", last_modified="abc"
        )

        record = await NotesController(mock_client, sink, orchestrator).load()

        assert record.content == "def"
        assert sink.send_message.call_count == 1

    @pytest.mark.asyncio
    async def test_syncs_before_reading(self, mock_client, collection, sink, failing_sync):
        order = []

        async def attempt():
            order.append("sync")
            return SyncOutcome(SyncState.OK)

        failing_sync.attempt.side_effect = attempt
        collection.get_any.side_effect = lambda record_id: order.append("read")

        await NotesController(mock_client, sink, failing_sync).load()

        assert order == ["sync", "read"]


class TestSave:
    """Tests for save_to_kinto."""

    @pytest.mark.asyncio
    async def test_does_not_fail_if_sync_fails(
        self, mock_client, collection, sink, failing_sync
    ):
        collection.get_any.return_value = NoteRecord(
            id="singleNote", content="def", last_modified="abc"
        )

        await save_to_kinto(
            mock_client, None, "imaginary content", sink, orchestrator=failing_sync
        )

        assert sink.send_message.call_args_list == [
            call(DEFAULT_RECIPIENT, {"action": "text-editing"}),
            call(DEFAULT_RECIPIENT, {"action": "text-saved"}),
            call(DEFAULT_RECIPIENT, {"action": "text-synced", "last_modified": "abc"}),
        ]

    @pytest.mark.asyncio
    async def test_upserts_single_note(self, mock_client, collection, sink, failing_sync):
        await save_to_kinto(
            mock_client, None, "imaginary content", sink, orchestrator=failing_sync
        )

        collection.upsert.assert_awaited_once_with(
            {"id": "singleNote", "content": "imaginary content"}
        )
        failing_sync.attempt.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recovered_401_still_reports_synced(
        self, mock_client, collection, sink
    ):
        orchestrator = MagicMock()
        orchestrator.attempt = AsyncMock(
            return_value=SyncOutcome(SyncState.UNAUTHORIZED_RECOVERED)
        )

        await NotesController(mock_client, sink, orchestrator).save({"ops": []})

        assert sent_messages(sink)[-1] == {"action": "text-synced", "last_modified": None}

    @pytest.mark.asyncio
    async def test_custom_recipient(self, mock_client, sink, failing_sync):
        controller = NotesController(
            mock_client, sink, failing_sync, recipient_id="other@example.com"
        )

        await controller.save({"ops": []})

        assert {c.args[0] for c in sink.send_message.call_args_list} == {
            "other@example.com"
        }


class TestEndToEnd:
    """Tests running the controllers against a fake remote."""

    @pytest.mark.asyncio
    async def test_save_then_load(self, client, server, credentials, sink):
        await save_to_kinto(client, credentials, {"ops": [{"insert": "Hi"}]}, sink)

        record = await load_from_kinto(client, credentials, sink)

        stored_lm = server.records["singleNote"]["last_modified"]
        assert record.status is RecordStatus.SYNCED
        assert sent_messages(sink)[2] == {
            "action": "text-synced",
            "last_modified": stored_lm,
        }
        assert sent_messages(sink)[3] == {
            "action": "kinto-loaded",
            "data": {"ops": [{"insert": "Hi"}]},
            "last_modified": stored_lm,
        }

    @pytest.mark.asyncio
    async def test_save_offline_keeps_local_note(self, credentials, sink):
        client = NotesClient(
            remote=REMOTE_URL, transport=FakeKintoServer(status=503).transport
        )

        record = await save_to_kinto(client, credentials, {"ops": []}, sink)

        assert record.status is RecordStatus.CREATED
        assert sent_messages(sink)[-1] == {"action": "text-synced", "last_modified": None}
        credentials.clear.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_after_empty_sync_sends_null_data(self, client, credentials, sink):
        """Test a successful sync with nothing remote still reports an empty note."""
        orchestrator = SyncOrchestrator(client, credentials)

        await load_from_kinto(client, credentials, sink, orchestrator=orchestrator)

        credentials.get.assert_awaited_once()
        sink.send_message.assert_called_once_with(
            DEFAULT_RECIPIENT,
            {"action": "kinto-loaded", "data": None, "last_modified": None},
        )

    @pytest.mark.asyncio
    async def test_configured_record_id(self, client, server, credentials, sink):
        settings = SyncSettings(record_id="workNote")
        controller = NotesController.from_settings(settings, client, sink, credentials)

        record = await controller.save({"ops": [{"insert": "Hi"}]})

        assert record.id == "workNote"
        assert record.status is RecordStatus.SYNCED
        assert sent_messages(sink) == [
            {"action": "text-editing"},
            {"action": "text-saved"},
            {
                "action": "text-synced",
                "last_modified": server.records["workNote"]["last_modified"],
            },
        ]
