"""Chat client interface — the seam between the gateway and a chat account.

A client owns one account connection. The gateway drives it through three
coroutines (``initialize``, ``send_message``, ``destroy``) and observes it
through a fixed set of notification channels:

  pairing_code   {"code": str}
  authenticated  {}
  ready          {"info": dict}
  auth_failure   {"message": str}
  disconnected   {"reason": str}
  message        {"id", "from", "to", "body", "timestamp"}
  message_ack    {"messageId", "ack"}

Listeners are plain callables invoked synchronously, in emission order.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from chatgate.models.message import MediaAttachment

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]


class ClientEvent(StrEnum):
    PAIRING_CODE = "pairing_code"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    MESSAGE_ACK = "message_ack"


@dataclass
class SentMessage:
    id: str
    timestamp: datetime


class ChatClient(ABC):
    def __init__(self, tenant_id: str, credential_dir: Path) -> None:
        self.tenant_id = tenant_id
        self.credential_dir = credential_dir
        self._listeners: dict[ClientEvent, list[Listener]] = {e: [] for e in ClientEvent}

    def on(self, event: ClientEvent, listener: Listener) -> None:
        self._listeners[ClientEvent(event)].append(listener)

    def off(self, event: ClientEvent, listener: Listener) -> None:
        try:
            self._listeners[ClientEvent(event)].remove(listener)
        except ValueError:
            pass

    def emit(self, event: ClientEvent, payload: dict[str, Any] | None = None) -> None:
        for listener in list(self._listeners[ClientEvent(event)]):
            try:
                listener(payload or {})
            except Exception:
                logger.exception(
                    "Listener for %s failed on tenant %s", event, self.tenant_id
                )

    @abstractmethod
    async def initialize(self) -> None:
        """Start the account connection; pairing/ready arrive as notifications."""

    @abstractmethod
    async def send_message(
        self,
        destination: str,
        content: str,
        media: MediaAttachment | None = None,
    ) -> SentMessage:
        ...

    @abstractmethod
    async def destroy(self) -> None:
        """Release the connection and the credential directory."""


ClientFactory = Callable[[str, Path], ChatClient]
