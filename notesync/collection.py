"""Local note collection with remote pull/merge/push.

Components:
- IdSchema: Generate and validate record ids
- LocalStore: Local records plus the last seen remote timestamp
- RemoteTransformer: Hook applied to every record crossing the wire
- Collection: Local CRUD and the sync cycle against a Kinto collection
"""

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from notesync.exceptions import (
    InvalidRecordIdError,
    NoteSyncError,
    RecordConflictError,
)
from notesync.records import EncryptedEnvelope, NoteRecord, RecordStatus
from notesync.remote import KintoHTTPClient

logger = logging.getLogger(__name__)


class IdSchema(ABC):
    """Generates and validates record ids for a collection."""

    @abstractmethod
    def generate(self) -> str:
        """Generate an id for a new record."""

    @abstractmethod
    def validate(self, record_id: str) -> bool:
        """Check that an id is acceptable."""


class UUIDSchema(IdSchema):
    def generate(self) -> str:
        return str(uuid.uuid4())

    def validate(self, record_id: str) -> bool:
        try:
            uuid.UUID(record_id)
        except (TypeError, ValueError, AttributeError):
            return False
        return True


class NotesIdSchema(IdSchema):
    """The notes collection holds a single record with a fixed id."""

    RECORD_ID = "singleNote"

    def __init__(self, record_id: str = RECORD_ID):
        self.record_id = record_id

    def generate(self) -> str:
        return self.record_id

    def validate(self, record_id: str) -> bool:
        return record_id == self.record_id


class RemoteTransformer(ABC):
    """Converts records to and from their remote representation."""

    @abstractmethod
    async def encode(self, record: NoteRecord) -> EncryptedEnvelope:
        """Prepare a local record for the remote store."""

    @abstractmethod
    async def decode(self, envelope: EncryptedEnvelope) -> NoteRecord:
        """Turn a remote record back into a local one."""


class PlainTransformer(RemoteTransformer):
    """Stores content unencrypted."""

    async def encode(self, record: NoteRecord) -> EncryptedEnvelope:
        return EncryptedEnvelope(
            id=record.id,
            content=record.content,
            kid=None,
            last_modified=record.last_modified,
        )

    async def decode(self, envelope: EncryptedEnvelope) -> NoteRecord:
        return NoteRecord(
            id=envelope.id,
            content=envelope.content,
            last_modified=envelope.last_modified,
            status=RecordStatus.SYNCED,
        )


class SyncStrategy(str, Enum):
    """How incoming conflicts are handled during a pull."""

    MANUAL = "manual"
    SERVER_WINS = "server_wins"
    CLIENT_WINS = "client_wins"


@dataclass
class Conflict:
    """A record changed both locally and remotely."""

    type: str  # "incoming", "outgoing"
    local: NoteRecord
    remote: Optional[NoteRecord] = None


@dataclass
class SyncResult:
    """Result of one collection sync."""

    created: list[NoteRecord] = field(default_factory=list)
    updated: list[NoteRecord] = field(default_factory=list)
    published: list[NoteRecord] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    resolved: list[NoteRecord] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)
    last_modified: Optional[int] = None

    @property
    def ok(self) -> bool:
        """True when nothing is left for the caller to handle."""
        return not self.conflicts and not self.errors

    @property
    def pulled(self) -> int:
        return len(self.created) + len(self.updated)


class LocalStore:
    """Local records for one collection.

    Kept in memory; when a base directory is given the records are also
    persisted as JSON after every change.

    Stored as: <base_dir>/.notes-<collection>.json
    """

    def __init__(self, collection: str, base_dir: Optional[Path] = None):
        self.collection = collection
        self.base_dir = Path(base_dir) if base_dir else None
        self.store_file = (
            self.base_dir / f".notes-{collection}.json" if self.base_dir else None
        )
        self._records: dict[str, NoteRecord] = {}
        self._last_modified: Optional[int] = None
        self._loaded = self.store_file is None

    def load(self) -> None:
        """Load records from disk."""
        self._loaded = True
        if self.store_file is None or not self.store_file.exists():
            return

        try:
            with open(self.store_file, "r") as f:
                data = json.load(f)
            self._records = {
                record_id: NoteRecord.from_dict(record)
                for record_id, record in data.get("records", {}).items()
            }
            self._last_modified = data.get("last_modified")
            logger.debug(
                f"Loaded {len(self._records)} records for {self.collection}"
            )
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.error(f"Failed to load local store {self.store_file}: {e}")
            self._records = {}
            self._last_modified = None

    def save(self) -> None:
        """Save records to disk (no-op for in-memory stores)."""
        if self.store_file is None:
            return

        self.base_dir.mkdir(parents=True, exist_ok=True)
        data = {
            "records": {
                record_id: record.to_dict()
                for record_id, record in self._records.items()
            },
            "last_modified": self._last_modified,
        }
        try:
            with open(self.store_file, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save local store {self.store_file}: {e}")
            raise

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def get(self, record_id: str) -> Optional[NoteRecord]:
        self._ensure_loaded()
        record = self._records.get(record_id)
        return record.copy() if record else None

    def put(self, record: NoteRecord) -> None:
        self._ensure_loaded()
        self._records[record.id] = record.copy()
        self.save()

    def all(self) -> list[NoteRecord]:
        self._ensure_loaded()
        return [record.copy() for record in self._records.values()]

    def pending(self) -> list[NoteRecord]:
        """Records with local changes not yet published."""
        return [record for record in self.all() if record.status.is_pending]

    @property
    def last_modified(self) -> Optional[int]:
        self._ensure_loaded()
        return self._last_modified

    @last_modified.setter
    def last_modified(self, value: Optional[int]) -> None:
        self._ensure_loaded()
        self._last_modified = value
        self.save()


class Collection:
    """A local collection of notes that syncs against a remote Kinto collection."""

    def __init__(
        self,
        name: str,
        bucket: str,
        api: KintoHTTPClient,
        store: LocalStore,
        id_schema: Optional[IdSchema] = None,
        remote_transformer: Optional[RemoteTransformer] = None,
    ):
        """Initialize collection.

        Args:
            name: Remote collection name
            bucket: Remote bucket name
            api: Kinto HTTP client
            store: Local record store (shared between collection instances)
            id_schema: Id generation/validation (default: UUIDs)
            remote_transformer: Applied to every record pulled or pushed
        """
        self.name = name
        self.bucket = bucket
        self.api = api
        self.store = store
        self.id_schema = id_schema or UUIDSchema()
        self.remote_transformer = remote_transformer or PlainTransformer()

    async def upsert(self, record: NoteRecord | dict) -> NoteRecord:
        """Create or update a local record, marking it for publication.

        Raises:
            InvalidRecordIdError: If the id is rejected by the id schema
        """
        if isinstance(record, dict):
            record_id = record.get("id") or self.id_schema.generate()
            content = record.get("content")
        else:
            record_id = record.id or self.id_schema.generate()
            content = record.content

        if not self.id_schema.validate(record_id):
            raise InvalidRecordIdError(f"Invalid record id: {record_id!r}")

        existing = self.store.get(record_id)
        if existing is None:
            updated = NoteRecord(id=record_id, content=content)
        else:
            status = (
                RecordStatus.CREATED
                if existing.status is RecordStatus.CREATED
                else RecordStatus.UPDATED
            )
            updated = NoteRecord(
                id=record_id,
                content=content,
                last_modified=existing.last_modified,
                status=status,
            )

        self.store.put(updated)
        logger.debug(f"Upserted {self.name}/{record_id} ({updated.status.value})")
        return updated.copy()

    def with_transformers(self, remote_transformer: RemoteTransformer) -> "Collection":
        """Return a view of this collection using another remote transformer.

        The view shares the local store, so records written through either
        instance are visible to both.
        """
        return Collection(
            self.name,
            self.bucket,
            self.api,
            self.store,
            id_schema=self.id_schema,
            remote_transformer=remote_transformer,
        )

    async def get(self, record_id: str) -> NoteRecord:
        """Return the local record with this id.

        Raises:
            KeyError: If there is no such record
        """
        record = self.store.get(record_id)
        if record is None:
            raise KeyError(f"Record not found: {record_id}")
        return record

    async def get_any(self, record_id: str) -> Optional[NoteRecord]:
        """Return the local record with this id, whatever its status."""
        return self.store.get(record_id)

    async def list(self) -> list[NoteRecord]:
        return self.store.all()

    async def resolve(self, conflict: Conflict, resolution: Any) -> NoteRecord:
        """Replace a conflicting record with resolved content.

        The record is rebased onto the remote version so the next push
        overwrites it.
        """
        remote_last_modified = (
            conflict.remote.last_modified
            if conflict.remote is not None
            else conflict.local.last_modified
        )
        record = NoteRecord(
            id=conflict.local.id,
            content=resolution,
            last_modified=remote_last_modified,
            status=RecordStatus.UPDATED,
        )
        self.store.put(record)
        logger.info(f"Resolved {conflict.type} conflict for {self.name}/{record.id}")
        return record.copy()

    async def sync(
        self,
        headers: Optional[dict] = None,
        strategy: SyncStrategy = SyncStrategy.MANUAL,
    ) -> SyncResult:
        """Pull remote changes, merge them, then publish local changes.

        Records in conflict are not published; with the manual strategy they are
        returned in the result for the caller to resolve. An outgoing conflict
        carries the remote record when the server returned it with the 412.
        The pull timestamp only advances when nothing was skipped or left in
        conflict, so unmerged remote changes are pulled again.

        Raises:
            UnauthorizedError: The remote rejected the credentials
            RemoteError: Any other transport failure
        """
        result = SyncResult(last_modified=self.store.last_modified)

        await self.pull_changes(result, headers=headers, strategy=strategy)
        await self.push_changes(result, headers=headers)

        logger.info(
            f"Synced {self.bucket}/{self.name}: pulled={result.pulled}, "
            f"published={len(result.published)}, conflicts={len(result.conflicts)}, "
            f"skipped={len(result.skipped)}"
        )
        return result

    async def pull_changes(
        self,
        result: SyncResult,
        headers: Optional[dict] = None,
        strategy: SyncStrategy = SyncStrategy.MANUAL,
    ) -> None:
        raw_records, timestamp = await self.api.list_records(
            self.bucket, self.name, since=self.store.last_modified, headers=headers
        )

        decoded = await asyncio.gather(
            *(self._decode_remote(raw, result) for raw in raw_records)
        )

        for remote in decoded:
            if remote is not None:
                self._import_change(remote, result, strategy)

        seen = [r["last_modified"] for r in raw_records if r.get("last_modified")]
        newest = max([timestamp or 0, *seen]) or None
        # Skipped and conflicting records must come back on the next pull
        if result.skipped or result.conflicts:
            logger.debug(
                f"Keeping {self.name} timestamp at {self.store.last_modified}: "
                f"{len(result.skipped)} skipped, {len(result.conflicts)} in conflict"
            )
        elif newest is not None:
            self.store.last_modified = max(newest, self.store.last_modified or 0)
            result.last_modified = self.store.last_modified

    async def push_changes(
        self, result: SyncResult, headers: Optional[dict] = None
    ) -> None:
        in_conflict = {conflict.local.id for conflict in result.conflicts}

        for record in self.store.pending():
            if record.id in in_conflict:
                continue

            envelope = await self.remote_transformer.encode(record)
            try:
                stored = await self.api.put_record(
                    self.bucket,
                    self.name,
                    envelope.to_wire(),
                    if_match=record.last_modified,
                    headers=headers,
                )
            except RecordConflictError as e:
                logger.warning(f"Remote changed while publishing {record.id}: {e}")
                remote = None
                if e.existing is not None:
                    remote = await self._decode_remote(e.existing, result)
                result.conflicts.append(
                    Conflict(type="outgoing", local=record, remote=remote)
                )
                continue

            record.last_modified = stored.get("last_modified", record.last_modified)
            record.status = RecordStatus.SYNCED
            self.store.put(record)
            result.published.append(record.copy())
            logger.debug(f"Published {self.name}/{record.id} ({record.last_modified})")

    async def _decode_remote(
        self, raw: dict, result: SyncResult
    ) -> Optional[NoteRecord]:
        try:
            return await self.remote_transformer.decode(EncryptedEnvelope.from_wire(raw))
        except NoteSyncError as e:
            logger.warning(f"Skipping remote record {raw.get('id')}: {e}")
            result.skipped.append({"id": raw.get("id"), "error": str(e)})
            return None

    def _import_change(
        self, remote: NoteRecord, result: SyncResult, strategy: SyncStrategy
    ) -> None:
        local = self.store.get(remote.id)

        if local is None:
            self.store.put(remote)
            result.created.append(remote.copy())
            return

        if not local.status.is_pending:
            self.store.put(remote)
            result.updated.append(remote.copy())
            return

        if local.last_modified is not None and local.last_modified == remote.last_modified:
            # Local edits are already based on this remote version
            return

        if local.content == remote.content:
            self.store.put(remote)
            result.updated.append(remote.copy())
            return

        if strategy is SyncStrategy.SERVER_WINS:
            self.store.put(remote)
            result.resolved.append(remote.copy())
        elif strategy is SyncStrategy.CLIENT_WINS:
            local.last_modified = remote.last_modified
            self.store.put(local)
            result.resolved.append(local.copy())
        else:
            result.conflicts.append(Conflict(type="incoming", local=local, remote=remote))
