"""
Exceptions for note synchronization.
"""

from typing import Optional

import httpx


class NoteSyncError(Exception):
    """Base exception for note sync operations."""


class StaleKeyError(NoteSyncError):
    """Raised when a record was encrypted under a different key than the one held.

    The caller must not retry decoding with the same key.
    """

    def __init__(self, record_kid, current_kid):
        self.record_kid = record_kid
        self.current_kid = current_kid
        super().__init__(
            f"Record encrypted with key {record_kid!r}, but current key is {current_kid!r}"
        )


class InvalidContentError(NoteSyncError):
    """Raised when a decrypted payload has no recognizable content shape."""


class DecryptionError(NoteSyncError):
    """Raised when ciphertext cannot be decrypted with the held key."""


class InvalidRecordIdError(NoteSyncError):
    """Raised when a record id is rejected by the collection's id schema."""


class CredentialsUnavailableError(NoteSyncError):
    """Raised when no credentials are stored for the sync account."""


class RemoteError(NoteSyncError):
    """Raised when a call to the remote record store fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[httpx.Response] = None,
    ):
        self.status_code = status_code
        self.response = response
        super().__init__(message)


class UnauthorizedError(RemoteError):
    """Raised when the remote store answers 401 (expired or revoked token)."""


class RecordConflictError(RemoteError):
    """Raised when a conditional write fails with 412."""

    @property
    def existing(self) -> Optional[dict]:
        """The current remote record, when the server sent it back."""
        if self.response is None:
            return None
        try:
            body = self.response.json()
        except ValueError:
            return None
        if not isinstance(body, dict):
            return None
        return (body.get("details") or {}).get("existing")


class UnresolvedConflictError(NoteSyncError):
    """Raised when a sync pass ends with conflicts it could not merge."""

    def __init__(self, conflicts):
        self.conflicts = conflicts
        ids = ", ".join(sorted({conflict.local.id for conflict in conflicts}))
        super().__init__(f"{len(conflicts)} unresolved conflicts: {ids}")
