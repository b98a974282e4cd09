"""Credential storage for note sync.

Credentials pair the note encryption key with a short-lived access token for
the remote store. They are kept in the system keyring, with a fallback to
file storage when no keyring is available.

Usage:
    store = CredentialStore()

    store.store_credentials(Credentials(
        key=CryptoKey(kid="20171005", k="..."),
        access_token="...",
    ))

    creds = await store.get()
    # after the remote rejects the token
    store.clear()
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from notesync.crypto import CryptoKey
from notesync.exceptions import CredentialsUnavailableError

logger = logging.getLogger(__name__)

# Service name for keyring
KEYRING_SERVICE = "notesync"

# Fallback storage path
FALLBACK_STORAGE_DIR = Path.home() / ".notesync" / "credentials"


@dataclass
class Credentials:
    """Encryption key plus access token for one sync account.

    Attributes:
        key: Key used to encrypt and decrypt notes
        access_token: Bearer token for the remote store
    """

    key: CryptoKey
    access_token: Optional[str] = None

    @property
    def authorization_header(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"key": self.key.to_dict(), "access_token": self.access_token}

    @classmethod
    def from_dict(cls, data: dict) -> "Credentials":
        """Create from dictionary."""
        return cls(
            key=CryptoKey.from_dict(data["key"]),
            access_token=data.get("access_token"),
        )


class CredentialManager(ABC):
    """Supplies credentials for a sync pass and forgets stale tokens."""

    @abstractmethod
    async def get(self) -> Credentials:
        """Return current credentials.

        Raises:
            CredentialsUnavailableError: If there is nothing usable to return
        """

    @abstractmethod
    def clear(self) -> None:
        """Drop the access token. Safe to call when nothing is stored."""


class CredentialBackend(ABC):
    """Where serialized credentials live, keyed by sync account."""

    @abstractmethod
    def get(self, account: str) -> Optional[str]:
        """Return the stored JSON blob, or None."""

    @abstractmethod
    def set(self, account: str, value: str) -> None:
        """Replace the stored JSON blob."""

    @abstractmethod
    def delete(self, account: str) -> None:
        """Forget the account. Missing accounts are not an error."""


class KeyringBackend(CredentialBackend):
    """Keeps each account's credentials as one password entry in the OS keyring."""

    def __init__(self, service: str = KEYRING_SERVICE):
        self.service = service
        self._keyring = None

    def _get_keyring(self):
        if self._keyring is None:
            try:
                import keyring

                self._keyring = keyring
            except ImportError:
                raise RuntimeError("keyring package not installed")
        return self._keyring

    def get(self, account: str) -> Optional[str]:
        try:
            return self._get_keyring().get_password(self.service, account)
        except Exception as e:
            # A locked or missing keyring reads as "no credentials"
            logger.warning(f"Keyring read failed for {account}: {e}")
            return None

    def set(self, account: str, value: str) -> None:
        try:
            self._get_keyring().set_password(self.service, account, value)
        except Exception as e:
            logger.warning(f"Keyring write failed for {account}: {e}")
            raise

    def delete(self, account: str) -> None:
        try:
            self._get_keyring().delete_password(self.service, account)
        except Exception as e:
            logger.debug(f"Nothing deleted from keyring for {account}: {e}")


class FileBackend(CredentialBackend):
    """One JSON file per account, readable only by the owner.

    The access token and key material are stored unencrypted, so this is only
    used on machines without a keyring.
    """

    def __init__(self, storage_dir: Path = FALLBACK_STORAGE_DIR):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _account_file(self, account: str) -> Path:
        # Account names are often email addresses
        stem = "".join(c if c.isalnum() or c in "-_" else "_" for c in account)
        return self.storage_dir / f"{stem}.json"

    def get(self, account: str) -> Optional[str]:
        path = self._account_file(account)
        if not path.exists():
            return None
        try:
            return path.read_text()
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

    def set(self, account: str, value: str) -> None:
        path = self._account_file(account)
        path.write_text(value)
        path.chmod(0o600)

    def delete(self, account: str) -> None:
        path = self._account_file(account)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove {path}: {e}")


class CredentialStore(CredentialManager):
    """Credentials for one sync account, in the OS keyring when there is one.

    Example:
        store = CredentialStore(account="work")
        if store.has_credentials():
            creds = await store.get()
    """

    def __init__(
        self,
        account: str = "default",
        backend: Optional[CredentialBackend] = None,
        fallback_dir: Path = FALLBACK_STORAGE_DIR,
    ):
        """Initialize credential store.

        Args:
            account: Sync account the key and token belong to
            backend: Storage to use; None picks the keyring, or files under
                fallback_dir when keyring can't be imported
            fallback_dir: Directory for per-account credential files
        """
        self.account = account
        if backend is not None:
            self._backend = backend
        else:
            try:
                self._backend = KeyringBackend()
                self._backend._get_keyring()
            except RuntimeError:
                logger.info("Keyring unavailable, using file-based credential storage")
                self._backend = FileBackend(fallback_dir)

    def get_credentials(self) -> Optional[Credentials]:
        """Return stored credentials, or None if missing or unreadable."""
        raw = self._backend.get(self.account)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            return Credentials.from_dict(data["credentials"])
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Failed to parse credentials for {self.account}: {e}")
            return None

    def store_credentials(self, credentials: Credentials) -> None:
        data = {
            "credentials": credentials.to_dict(),
            "stored_at": datetime.now(timezone.utc).isoformat(),
        }
        self._backend.set(self.account, json.dumps(data))
        logger.info(f"Stored credentials for {self.account} (kid={credentials.key.kid})")

    def has_credentials(self) -> bool:
        creds = self.get_credentials()
        return creds is not None and creds.access_token is not None

    async def get(self) -> Credentials:
        creds = self.get_credentials()
        if creds is None or creds.access_token is None:
            raise CredentialsUnavailableError(
                f"No access token stored for {self.account}"
            )
        return creds

    def clear(self) -> None:
        """Forget the access token but keep the encryption key."""
        creds = self.get_credentials()
        if creds is None:
            self._backend.delete(self.account)
            return

        creds.access_token = None
        try:
            self.store_credentials(creds)
        except Exception as e:
            logger.warning(f"Failed to clear access token, deleting credentials: {e}")
            self._backend.delete(self.account)
            return
        logger.info(f"Cleared access token for {self.account}")
