"""Load and save the note, with best-effort sync around local access.

Sync never decides whether a load or save succeeds: the local record is
always read or written, and the UI is always told the resulting state.
"""

import logging
from typing import Any, Optional

from notesync.client import NotesClient
from notesync.collection import NotesIdSchema
from notesync.config import SyncSettings
from notesync.credentials import CredentialManager
from notesync.messaging import DEFAULT_RECIPIENT, MessagingSink
from notesync.records import NoteRecord
from notesync.sync import SyncOrchestrator, SyncOutcome, SyncState

logger = logging.getLogger(__name__)


class NotesController:
    """Reads and writes the single note and reports lifecycle events.

    Messages sent to the recipient:
    - load: {"action": "kinto-loaded", "data", "last_modified"}
    - save: {"action": "text-editing"}, {"action": "text-saved"},
      {"action": "text-synced", "last_modified"}
    """

    def __init__(
        self,
        client: NotesClient,
        sink: MessagingSink,
        orchestrator: SyncOrchestrator,
        record_id: str = NotesIdSchema.RECORD_ID,
        collection_name: str = "notes",
        recipient_id: str = DEFAULT_RECIPIENT,
    ):
        self.client = client
        self.sink = sink
        self.orchestrator = orchestrator
        self.record_id = record_id
        self.collection_name = collection_name
        self.recipient_id = recipient_id

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        client: NotesClient,
        sink: MessagingSink,
        credentials: CredentialManager,
    ) -> "NotesController":
        orchestrator = SyncOrchestrator(
            client,
            credentials,
            collection_name=settings.collection,
            id_schema=NotesIdSchema(settings.record_id),
        )
        return cls(
            client,
            sink,
            orchestrator,
            record_id=settings.record_id,
            collection_name=settings.collection,
            recipient_id=settings.recipient_id,
        )

    def _collection(self):
        return self.client.collection(
            self.collection_name, id_schema=NotesIdSchema(self.record_id)
        )

    def _notify(self, message: dict) -> None:
        self.sink.send_message(self.recipient_id, message)

    async def _sync_best_effort(self) -> Optional[SyncOutcome]:
        try:
            outcome = await self.orchestrator.attempt()
        except Exception as e:
            logger.warning(f"Sync raised, continuing with local state: {e}")
            return None

        if outcome.state is SyncState.FAILED:
            logger.warning(f"Sync failed, continuing with local state: {outcome.error}")
        elif outcome.state is SyncState.UNAUTHORIZED_RECOVERED:
            logger.info("Sync skipped until fresh credentials are available")
        return outcome

    async def load(self) -> Optional[NoteRecord]:
        """Sync, then report the local note to the UI."""
        await self._sync_best_effort()

        record = await self._collection().get_any(self.record_id)
        self._notify(
            {
                "action": "kinto-loaded",
                "data": record.content if record else None,
                "last_modified": record.last_modified if record else None,
            }
        )
        return record

    async def save(self, content: Any) -> Optional[NoteRecord]:
        """Write the note locally, then sync and report the synced state."""
        self._notify({"action": "text-editing"})

        collection = self._collection()
        await collection.upsert({"id": self.record_id, "content": content})
        self._notify({"action": "text-saved"})

        await self._sync_best_effort()

        record = await collection.get_any(self.record_id)
        self._notify(
            {
                "action": "text-synced",
                "last_modified": record.last_modified if record else None,
            }
        )
        return record


def _controller(
    client: NotesClient,
    credentials: CredentialManager,
    sink: MessagingSink,
    orchestrator: Optional[SyncOrchestrator],
) -> NotesController:
    orchestrator = orchestrator or SyncOrchestrator(client, credentials)
    return NotesController(client, sink, orchestrator)


async def load_from_kinto(
    client: NotesClient,
    credentials: CredentialManager,
    sink: MessagingSink,
    orchestrator: Optional[SyncOrchestrator] = None,
) -> Optional[NoteRecord]:
    """Sync best-effort and send the "kinto-loaded" message."""
    return await _controller(client, credentials, sink, orchestrator).load()


async def save_to_kinto(
    client: NotesClient,
    credentials: CredentialManager,
    content: Any,
    sink: MessagingSink,
    orchestrator: Optional[SyncOrchestrator] = None,
) -> Optional[NoteRecord]:
    """Save locally, sync best-effort, and send the three save messages."""
    return await _controller(client, credentials, sink, orchestrator).save(content)
