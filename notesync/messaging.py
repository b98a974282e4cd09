"""Lifecycle notifications for the UI hosting the notes editor.

Messages are fire-and-forget: a sink never blocks and never reports failure
back to the sync code.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

# Recipient id of the notes UI surface
DEFAULT_RECIPIENT = "notes@mozilla.com"


class MessagingSink(ABC):
    """Receives (recipient_id, message) notifications."""

    @abstractmethod
    def send_message(self, recipient_id: str, message: dict) -> None:
        """Deliver a message without waiting for the recipient."""


class QueueSink(MessagingSink):
    """Puts messages on an asyncio queue for a consumer task to drain."""

    def __init__(self, queue: asyncio.Queue | None = None):
        self.queue = queue if queue is not None else asyncio.Queue()

    def send_message(self, recipient_id: str, message: dict) -> None:
        try:
            self.queue.put_nowait((recipient_id, message))
        except asyncio.QueueFull:
            logger.warning(f"Dropping {message.get('action')} for {recipient_id}: queue full")


class CallbackSink(MessagingSink):
    """Hands messages to a plain callable."""

    def __init__(self, callback: Callable[[str, dict], object]):
        self.callback = callback

    def send_message(self, recipient_id: str, message: dict) -> None:
        try:
            self.callback(recipient_id, message)
        except Exception as e:
            logger.warning(f"Message callback failed for {message.get('action')}: {e}")
