"""Entry point for working with remote note collections."""

from pathlib import Path
from typing import Optional

import httpx

from notesync.collection import Collection, IdSchema, LocalStore, RemoteTransformer
from notesync.config import SyncSettings
from notesync.remote import KintoHTTPClient


class NotesClient:
    """Binds a Kinto server and bucket to local collection stores.

    Collections returned for the same name share one local store, so a
    collection built with a fresh transformer for each sync pass sees the
    records written through any other instance.

    Example:
        client = NotesClient(remote="https://kinto.example.com/v1", bucket="default")
        notes = client.collection("notes", id_schema=NotesIdSchema())
        await notes.upsert({"id": "singleNote", "content": {"ops": []}})
    """

    def __init__(
        self,
        remote: str,
        bucket: str = "default",
        storage_dir: Optional[Path] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            remote: Kinto server URL
            bucket: Bucket holding the collections
            storage_dir: Where local stores are persisted (None keeps them in memory)
            timeout: HTTP timeout in seconds
            verify_ssl: Whether to verify SSL certificates
            transport: Optional httpx transport override
        """
        self.remote = remote
        self.bucket = bucket
        self.storage_dir = Path(storage_dir) if storage_dir else None
        self.api = KintoHTTPClient(
            remote, timeout=timeout, verify_ssl=verify_ssl, transport=transport
        )
        self._stores: dict[str, LocalStore] = {}

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "NotesClient":
        return cls(
            remote=settings.remote_url,
            bucket=settings.bucket,
            storage_dir=settings.storage_dir,
            timeout=settings.timeout,
            verify_ssl=settings.verify_ssl,
            transport=transport,
        )

    def collection(
        self,
        name: str,
        id_schema: Optional[IdSchema] = None,
        remote_transformer: Optional[RemoteTransformer] = None,
    ) -> Collection:
        if name not in self._stores:
            self._stores[name] = LocalStore(name, self.storage_dir)
        return Collection(
            name,
            self.bucket,
            self.api,
            self._stores[name],
            id_schema=id_schema,
            remote_transformer=remote_transformer,
        )

    async def close(self):
        await self.api.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
