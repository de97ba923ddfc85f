"""Chat client backed by an external chat bridge over a websocket.

The bridge runs the actual chat-network client and exchanges JSON frames:

  gateway -> bridge   {"type": "auth", "token"}
                      {"type": "init", "session", "dataPath"}
                      {"type": "send", "requestId", "to", "text", "media"}
                      {"type": "destroy"}
  bridge -> gateway   {"type": "qr", "qr"} | {"type": "authenticated"}
                      {"type": "ready", "info"} | {"type": "auth_failure", "message"}
                      {"type": "disconnected", "reason"}
                      {"type": "message", "id", "from", "to", "body", "timestamp"}
                      {"type": "message_ack", "messageId", "ack"}
                      {"type": "sent", "requestId", "id", "timestamp"}
                      {"type": "error", "requestId"?, "error"}

One websocket per tenant. Reconnecting is left to the registry: a dropped
connection is reported as ``disconnected``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import websockets

from chatgate.core.config import Settings
from chatgate.core.errors import InternalError, NotReadyError, OperationTimeoutError
from chatgate.models.message import MediaAttachment
from chatgate.services.client import ChatClient, ClientEvent, ClientFactory, SentMessage

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SECONDS = 30.0
BRIDGE_CLOSED_REASON = "BRIDGE_CLOSED"

_FRAME_EVENTS = {
    "authenticated": ClientEvent.AUTHENTICATED,
    "ready": ClientEvent.READY,
    "auth_failure": ClientEvent.AUTH_FAILURE,
    "disconnected": ClientEvent.DISCONNECTED,
    "message": ClientEvent.MESSAGE,
    "message_ack": ClientEvent.MESSAGE_ACK,
}


class BridgeClient(ChatClient):
    def __init__(
        self,
        tenant_id: str,
        credential_dir: Path,
        bridge_url: str,
        bridge_token: str = "",
    ) -> None:
        super().__init__(tenant_id, credential_dir)
        self.bridge_url = bridge_url
        self.bridge_token = bridge_token
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._closing = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def initialize(self) -> None:
        query = urlencode({"session": self.tenant_id})
        url = f"{self.bridge_url}?{query}"
        logger.info("Connecting tenant %s to chat bridge at %s", self.tenant_id, self.bridge_url)
        self._ws = await websockets.connect(url)
        if self.bridge_token:
            await self._send_frame({"type": "auth", "token": self.bridge_token})
        await self._send_frame(
            {"type": "init", "session": self.tenant_id, "dataPath": str(self.credential_dir)}
        )
        self._reader = asyncio.create_task(self._read_loop())

    async def send_message(
        self,
        destination: str,
        content: str,
        media: MediaAttachment | None = None,
    ) -> SentMessage:
        if self._ws is None:
            raise NotReadyError("Chat bridge not connected")

        request_id = uuid.uuid4().hex
        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = fut
        frame: dict[str, Any] = {
            "type": "send",
            "requestId": request_id,
            "to": destination,
            "text": content,
        }
        if media is not None:
            frame["media"] = media.model_dump()
        try:
            await self._send_frame(frame)
            reply = await asyncio.wait_for(fut, timeout=SEND_TIMEOUT_SECONDS)
        except TimeoutError as exc:
            raise OperationTimeoutError("Chat bridge did not confirm the message") from exc
        finally:
            self._pending.pop(request_id, None)

        return SentMessage(id=str(reply["id"]), timestamp=_parse_timestamp(reply.get("timestamp")))

    async def destroy(self) -> None:
        self._closing = True
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.send(json.dumps({"type": "destroy"}))
            finally:
                await ws.close()
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        self._fail_pending(NotReadyError("Chat client destroyed"))

    async def _send_frame(self, frame: dict[str, Any]) -> None:
        if self._ws is None:
            raise NotReadyError("Chat bridge not connected")
        await self._ws.send(json.dumps(frame))

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Chat bridge connection error for tenant %s: %s", self.tenant_id, exc)

        if not self._closing:
            self._ws = None
            self._fail_pending(NotReadyError("Chat bridge connection closed"))
            self.emit(ClientEvent.DISCONNECTED, {"reason": BRIDGE_CLOSED_REASON})

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from chat bridge: %s", str(raw)[:100])
            return

        frame_type = data.pop("type", None)
        if frame_type == "qr":
            self.emit(ClientEvent.PAIRING_CODE, {"code": data.get("qr")})
        elif frame_type in _FRAME_EVENTS:
            self.emit(_FRAME_EVENTS[frame_type], data)
        elif frame_type == "sent":
            fut = self._pending.get(data.get("requestId", ""))
            if fut is not None and not fut.done():
                fut.set_result(data)
        elif frame_type == "error":
            fut = self._pending.get(data.get("requestId", ""))
            if fut is not None and not fut.done():
                fut.set_exception(InternalError(f"Chat bridge error: {data.get('error')}"))
            else:
                logger.error("Chat bridge error for tenant %s: %s", self.tenant_id, data.get("error"))
        else:
            logger.debug("Unhandled chat bridge frame %r", frame_type)

    def _fail_pending(self, exc: Exception) -> None:
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(exc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.now(timezone.utc)


def bridge_client_factory(settings: Settings) -> ClientFactory:
    return partial(
        BridgeClient,
        bridge_url=settings.bridge_url,
        bridge_token=settings.bridge_token,
    )
