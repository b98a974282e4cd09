"""Conflict resolution for note sync.

This module provides an abstract interface for resolving sync conflicts,
with the append policy used by default: the remote text first, then a divider,
then the text written on this computer.
"""

from abc import ABC, abstractmethod
from copy import deepcopy

from notesync.records import normalize_content

DIVIDER = "\n====== On this computer: ======\n\n"


class ConflictResolver(ABC):
    """Abstract interface for resolving sync conflicts."""

    @abstractmethod
    def resolve(self, local_content: dict, remote_content: dict) -> dict:
        """Merge local and remote content of the same record.

        Args:
            local_content: Content with pending local edits
            remote_content: Content pulled from the remote store

        Returns:
            Merged content in the ``{"ops": [...]}`` shape
        """


class AppendConflictResolver(ConflictResolver):
    """Keep both sides: remote deltas, a divider, then local deltas.

    Nothing is dropped, and the divider is present even when a side is empty.
    """

    def __init__(self, divider: str = DIVIDER):
        self.divider = divider

    def resolve(self, local_content: dict, remote_content: dict) -> dict:
        remote_ops = normalize_content(remote_content)["ops"]
        local_ops = normalize_content(local_content)["ops"]
        return {
            "ops": [
                *deepcopy(remote_ops),
                {"insert": self.divider},
                *deepcopy(local_ops),
            ]
        }
