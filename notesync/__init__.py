"""Encrypted note synchronization.

This package provides:
- JWETransformer: Encrypt/decrypt note records, rejecting stale keys
- AppendConflictResolver: Deterministic merge of diverging edits
- SyncOrchestrator: Credentials, pull/merge/push and 401 recovery
- NotesController: Load/save with best-effort sync and UI notifications
"""

from notesync.client import NotesClient
from notesync.collection import (
    Collection,
    Conflict,
    NotesIdSchema,
    SyncResult,
    SyncStrategy,
    UUIDSchema,
)
from notesync.config import SyncSettings, load_settings
from notesync.conflict_resolver import (
    DIVIDER,
    AppendConflictResolver,
    ConflictResolver,
)
from notesync.controllers import NotesController, load_from_kinto, save_to_kinto
from notesync.credentials import CredentialManager, Credentials, CredentialStore
from notesync.crypto import CryptoKey, JWETransformer
from notesync.exceptions import (
    CredentialsUnavailableError,
    DecryptionError,
    InvalidContentError,
    InvalidRecordIdError,
    NoteSyncError,
    RecordConflictError,
    RemoteError,
    StaleKeyError,
    UnauthorizedError,
    UnresolvedConflictError,
)
from notesync.messaging import CallbackSink, MessagingSink, QueueSink
from notesync.records import EncryptedEnvelope, NoteRecord, RecordStatus
from notesync.sync import SyncOrchestrator, SyncOutcome, SyncState, sync_kinto

__all__ = [
    # Client and collections
    "NotesClient",
    "Collection",
    "Conflict",
    "SyncResult",
    "SyncStrategy",
    "NotesIdSchema",
    "UUIDSchema",
    # Records
    "NoteRecord",
    "EncryptedEnvelope",
    "RecordStatus",
    # Crypto
    "CryptoKey",
    "JWETransformer",
    # Conflicts
    "ConflictResolver",
    "AppendConflictResolver",
    "DIVIDER",
    # Credentials
    "Credentials",
    "CredentialManager",
    "CredentialStore",
    # Sync
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncState",
    "sync_kinto",
    # Controllers
    "NotesController",
    "load_from_kinto",
    "save_to_kinto",
    # Messaging
    "MessagingSink",
    "QueueSink",
    "CallbackSink",
    # Config
    "SyncSettings",
    "load_settings",
    # Exceptions
    "NoteSyncError",
    "StaleKeyError",
    "DecryptionError",
    "InvalidContentError",
    "InvalidRecordIdError",
    "CredentialsUnavailableError",
    "RemoteError",
    "UnauthorizedError",
    "RecordConflictError",
    "UnresolvedConflictError",
]
