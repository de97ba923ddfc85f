"""Registry event stream.

The SessionRegistry publishes a GatewayEvent for every lifecycle transition
and every message notification. Listeners run synchronously in publish
order; a failing listener is logged and does not stop the others.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from chatgate.models.base import utcnow

logger = logging.getLogger(__name__)


class EventName(StrEnum):
    PAIRING_CODE = "pairing_code"
    AUTHENTICATED = "authenticated"
    CONNECTED = "connected"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    MESSAGE_ACK = "message_ack"
    PAIRING_WINDOW_EXPIRED = "pairing_window_expired"
    SESSION_DESTROYED = "session_destroyed"


@dataclass
class GatewayEvent:
    name: EventName
    tenant_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


EventListener = Callable[[GatewayEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(
        self,
        name: EventName,
        tenant_id: str,
        data: dict[str, Any] | None = None,
    ) -> GatewayEvent:
        event = GatewayEvent(name=name, tenant_id=tenant_id, data=data or {})
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed for %s on tenant %s", name, tenant_id)
        return event
