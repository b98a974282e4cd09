"""Sync orchestration for encrypted notes.

One sync pass:
1. Fetch credentials (encryption key + access token)
2. Build the notes collection with a JWE transformer for that key
3. Pull, merge and push; conflicting records are merged with the
   conflict resolver and published by a further pass. Conflicts that
   cannot be merged fail the pass
4. On 401, drop the access token and report the pass as recovered

The outcome of a pass is returned as a SyncOutcome rather than raised, so
callers that treat sync as best-effort can branch on it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from notesync.client import NotesClient
from notesync.collection import IdSchema, NotesIdSchema, RemoteTransformer, SyncResult
from notesync.conflict_resolver import AppendConflictResolver, ConflictResolver
from notesync.credentials import CredentialManager
from notesync.crypto import CryptoKey, JWETransformer
from notesync.exceptions import UnauthorizedError, UnresolvedConflictError

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    OK = "ok"
    UNAUTHORIZED_RECOVERED = "unauthorized_recovered"
    FAILED = "failed"


@dataclass
class SyncStatus:
    """Counts for a completed sync pass."""

    pulled: int = 0
    published: int = 0
    conflicts: int = 0
    skipped: int = 0

    def add(self, result: SyncResult) -> None:
        self.pulled += result.pulled
        self.published += len(result.published)
        self.skipped += len(result.skipped)


@dataclass
class SyncOutcome:
    """Result of one sync pass."""

    state: SyncState
    status: Optional[SyncStatus] = None
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.state is SyncState.FAILED


class SyncOrchestrator:
    """Runs sync passes for the notes collection."""

    def __init__(
        self,
        client: NotesClient,
        credentials: CredentialManager,
        conflict_resolver: Optional[ConflictResolver] = None,
        collection_name: str = "notes",
        id_schema: Optional[IdSchema] = None,
        transformer_factory: Callable[[CryptoKey], RemoteTransformer] = JWETransformer,
        max_passes: int = 3,
    ):
        """Initialize orchestrator.

        Args:
            client: Notes client (remote server + local stores)
            credentials: Source of the key and access token
            conflict_resolver: Merge policy for conflicts (default: append)
            collection_name: Remote collection holding the notes
            id_schema: Id schema for the collection (default: single note)
            transformer_factory: Builds the record transformer for a key
            max_passes: Sync passes allowed before leftover conflicts fail the sync
        """
        self.client = client
        self.credentials = credentials
        self.conflict_resolver = conflict_resolver or AppendConflictResolver()
        self.collection_name = collection_name
        self.id_schema = id_schema or NotesIdSchema()
        self.transformer_factory = transformer_factory
        self.max_passes = max_passes

    async def attempt(self) -> SyncOutcome:
        """Run one sync pass and report how it went. Does not raise."""
        try:
            status = await self._run()
        except UnauthorizedError as e:
            # The token is stale; the next pass fetches a fresh one
            logger.warning(f"Remote rejected access token, clearing it: {e}")
            self.credentials.clear()
            return SyncOutcome(SyncState.UNAUTHORIZED_RECOVERED, error=e)
        except Exception as e:
            logger.warning(f"Sync failed: {e}")
            return SyncOutcome(SyncState.FAILED, error=e)

        return SyncOutcome(SyncState.OK, status=status)

    async def sync(self) -> SyncOutcome:
        """Run one sync pass.

        Raises:
            Exception: Whatever made the pass fail, except a 401
        """
        outcome = await self.attempt()
        if outcome.failed:
            raise outcome.error
        return outcome

    async def _run(self) -> SyncStatus:
        creds = await self.credentials.get()
        collection = self.client.collection(
            self.collection_name,
            id_schema=self.id_schema,
            remote_transformer=self.transformer_factory(creds.key),
        )
        headers = creds.authorization_header

        status = SyncStatus()
        for pass_number in range(1, self.max_passes + 1):
            result = await collection.sync(headers=headers)
            status.add(result)
            if not result.conflicts:
                break

            unmergeable = [c for c in result.conflicts if c.remote is None]
            if unmergeable or pass_number == self.max_passes:
                logger.warning(
                    f"{len(result.conflicts)} conflicts left after pass {pass_number}"
                )
                raise UnresolvedConflictError(result.conflicts)

            for conflict in result.conflicts:
                merged = self.conflict_resolver.resolve(
                    conflict.local.content, conflict.remote.content
                )
                await collection.resolve(conflict, merged)
            status.conflicts += len(result.conflicts)

        logger.info(
            f"Sync complete: pulled={status.pulled}, published={status.published}, "
            f"conflicts={status.conflicts}, skipped={status.skipped}"
        )
        return status


async def sync_kinto(
    client: NotesClient,
    credentials: CredentialManager,
    conflict_resolver: Optional[ConflictResolver] = None,
) -> SyncOutcome:
    """Run one sync pass of the notes collection.

    Raises:
        Exception: Whatever made the pass fail, except a 401
    """
    orchestrator = SyncOrchestrator(
        client, credentials, conflict_resolver=conflict_resolver
    )
    return await orchestrator.sync()
