"""Encryption transform for note records.

Notes are stored remotely as compact JWE tokens (direct encryption, A256GCM)
tagged with the id of the key that produced them. The transform holds exactly
one key for its whole lifetime; rotating keys means building a new transform.

Usage:
    transformer = JWETransformer(CryptoKey(kid="20171005", k="..."))

    envelope = await transformer.encode(record)
    record = await transformer.decode(envelope)
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from jose import jwe
from jose.exceptions import JOSEError
from jose.utils import base64url_decode

from notesync.collection import RemoteTransformer
from notesync.exceptions import DecryptionError, StaleKeyError
from notesync.records import (
    EncryptedEnvelope,
    NoteRecord,
    RecordStatus,
    normalize_content,
)

logger = logging.getLogger(__name__)

ALGORITHM = "dir"
ENCRYPTION = "A256GCM"


@dataclass(frozen=True)
class CryptoKey:
    """Symmetric JWK used to encrypt notes.

    Attributes:
        kid: Key identifier, compared by equality only
        kty: JWK key type
        k: Base64url-encoded key material (32 bytes for A256GCM)
    """

    kid: Any
    kty: str = "oct"
    k: Optional[str] = None

    @property
    def key_bytes(self) -> bytes:
        if self.k is None:
            raise DecryptionError(f"Key {self.kid!r} has no key material")
        return base64url_decode(self.k.encode("utf-8"))

    def to_dict(self) -> dict:
        data = {"kid": self.kid, "kty": self.kty}
        if self.k is not None:
            data["k"] = self.k
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CryptoKey":
        return cls(kid=data["kid"], kty=data.get("kty", "oct"), k=data.get("k"))


class JWETransformer(RemoteTransformer):
    """Remote transformer that encrypts records on push and decrypts on pull."""

    def __init__(self, key: CryptoKey):
        self._key = key

    @property
    def kid(self) -> Any:
        return self._key.kid

    async def encode(self, record: NoteRecord) -> EncryptedEnvelope:
        """Encrypt a record's content into an envelope tagged with the current kid."""
        plaintext = json.dumps({"id": record.id, "content": record.content})
        ciphertext = await asyncio.to_thread(self._encrypt, plaintext)
        return EncryptedEnvelope(
            id=record.id,
            content=ciphertext,
            kid=self._key.kid,
            last_modified=record.last_modified,
        )

    async def decode(self, envelope: EncryptedEnvelope) -> NoteRecord:
        """Decrypt an envelope back into a record with normalized content.

        Raises:
            StaleKeyError: If the envelope was made with a different key
            DecryptionError: If the ciphertext cannot be decrypted
            InvalidContentError: If the plaintext has no recognizable content
        """
        if envelope.kid != self._key.kid:
            raise StaleKeyError(envelope.kid, self._key.kid)

        payload = await asyncio.to_thread(self._decrypt, envelope.content)
        content = normalize_content(_content_from_payload(payload))
        logger.debug(f"Decoded record {envelope.id} ({len(content['ops'])} ops)")

        return NoteRecord(
            id=envelope.id,
            content=content,
            last_modified=envelope.last_modified,
            status=RecordStatus.SYNCED,
        )

    def _encrypt(self, plaintext: str) -> str:
        token = jwe.encrypt(
            plaintext,
            self._key.key_bytes,
            encryption=ENCRYPTION,
            algorithm=ALGORITHM,
            kid=str(self._key.kid),
        )
        return token.decode("ascii") if isinstance(token, bytes) else token

    def _decrypt(self, ciphertext: str) -> Any:
        if not isinstance(ciphertext, (str, bytes)):
            raise DecryptionError("Record has no ciphertext")
        try:
            plaintext = jwe.decrypt(ciphertext, self._key.key_bytes)
        except JOSEError as e:
            raise DecryptionError(f"Failed to decrypt record: {e}") from e
        if plaintext is None:
            raise DecryptionError("Failed to decrypt record: empty plaintext")
        try:
            return json.loads(plaintext)
        except json.JSONDecodeError as e:
            raise DecryptionError(f"Decrypted payload is not JSON: {e}") from e


def _content_from_payload(payload: Any) -> Any:
    # Current clients encrypt {"id", "content"}; the oldest encrypted the delta list alone
    if isinstance(payload, dict) and "content" in payload:
        return payload["content"]
    return payload
