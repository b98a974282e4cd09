"""Shared fixtures for notesync tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from notesync.client import NotesClient
from notesync.credentials import Credentials

from tests.fakes import REMOTE_URL, FakeKintoServer, make_key


@pytest.fixture
def crypto_key():
    return make_key()


@pytest.fixture
def server():
    return FakeKintoServer()


@pytest.fixture
def client(server):
    return NotesClient(remote=REMOTE_URL, bucket="default", transport=server.transport)


@pytest.fixture
def credentials(crypto_key):
    """Credential manager double returning a valid key and token."""
    manager = MagicMock()
    manager.get = AsyncMock(
        return_value=Credentials(key=crypto_key, access_token="access_token")
    )
    manager.clear = MagicMock()
    return manager
