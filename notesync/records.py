"""Record types for note sync.

A note travels in two forms:
- NoteRecord: plaintext content as the local collection stores it
- EncryptedEnvelope: ciphertext tagged with the key id, as the remote stores it

Content is a rich-text delta document, ``{"ops": [{"insert": "..."}]}``. Older
clients stored the bare list of deltas without the ``ops`` wrapper; those
payloads are normalized on read.
"""

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from notesync.exceptions import InvalidContentError


class RecordStatus(str, Enum):
    """Local sync status of a record."""

    CREATED = "created"
    UPDATED = "updated"
    SYNCED = "synced"

    @property
    def is_pending(self) -> bool:
        return self is not RecordStatus.SYNCED


class ContentShape(Enum):
    """Wire shapes a decrypted content payload can take."""

    OPS = "ops"  # {"ops": [...]}
    LEGACY = "legacy"  # [...]


def detect_shape(raw: Any) -> ContentShape:
    """Classify a content payload.

    Raises:
        InvalidContentError: If the payload matches neither shape
    """
    if isinstance(raw, dict) and isinstance(raw.get("ops"), list):
        return ContentShape.OPS
    if isinstance(raw, list):
        return ContentShape.LEGACY
    raise InvalidContentError(
        f"Unrecognized content payload of type {type(raw).__name__}"
    )


def normalize_content(raw: Any) -> dict:
    """Return content in the ``{"ops": [...]}`` shape."""
    shape = detect_shape(raw)
    if shape is ContentShape.OPS:
        return {**raw, "ops": list(raw["ops"])}
    elif shape is ContentShape.LEGACY:
        return {"ops": list(raw)}
    raise InvalidContentError(f"Unhandled content shape: {shape}")


@dataclass
class NoteRecord:
    """A note as held by the local collection."""

    id: str
    content: Any = None
    last_modified: int | str | None = None
    status: RecordStatus = RecordStatus.CREATED

    def copy(self) -> "NoteRecord":
        return NoteRecord(
            id=self.id,
            content=deepcopy(self.content),
            last_modified=self.last_modified,
            status=self.status,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for local persistence."""
        return {
            "id": self.id,
            "content": self.content,
            "last_modified": self.last_modified,
            "_status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NoteRecord":
        """Create from a persisted dictionary."""
        return cls(
            id=data["id"],
            content=data.get("content"),
            last_modified=data.get("last_modified"),
            status=RecordStatus(data.get("_status", RecordStatus.CREATED.value)),
        )


@dataclass
class EncryptedEnvelope:
    """A note as stored remotely: ciphertext plus the id of the key that made it."""

    id: str
    content: str
    kid: Any
    last_modified: int | None = None
    extra: dict = field(default_factory=dict)

    def to_wire(self) -> dict:
        """Body for a remote write (server assigns last_modified)."""
        return {**self.extra, "id": self.id, "content": self.content, "kid": self.kid}

    @classmethod
    def from_wire(cls, data: dict) -> "EncryptedEnvelope":
        known = {"id", "content", "kid", "last_modified"}
        return cls(
            id=data["id"],
            content=data.get("content"),
            kid=data.get("kid"),
            last_modified=data.get("last_modified"),
            extra={k: v for k, v in data.items() if k not in known},
        )
