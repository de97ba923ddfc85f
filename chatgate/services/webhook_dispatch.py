"""Webhook dispatch — fire HTTP notifications for tenant session events."""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from datetime import datetime
from typing import Any

import httpx

from chatgate.models.base import utcnow
from chatgate.models.webhook import WebhookEvent, WebhookSubscription
from chatgate.services.events import EventBus, GatewayEvent

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-ChatGate-Signature"
EVENT_HEADER = "X-ChatGate-Event"

_DELIVERABLE = frozenset(e.value for e in WebhookEvent)


def sign(secret: str, body: str) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def build_envelope(
    event: str, tenant_id: str, data: dict[str, Any], timestamp: datetime | None = None
) -> dict:
    return {
        "event": event,
        "tenantId": tenant_id,
        "timestamp": (timestamp or utcnow()).isoformat(),
        "data": data,
    }


class WebhookDispatcher:
    """Per-tenant webhook subscriptions plus best-effort delivery.

    Deliveries are one attempt each; failures are logged, never raised.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._subscriptions: dict[str, list[WebhookSubscription]] = {}
        self._tasks: set[asyncio.Task] = set()

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(self.handle_event)

    # ── Subscriptions ────────────────────────────────────────

    def subscribe(
        self,
        tenant_id: str,
        url: str,
        events: list[WebhookEvent],
        headers: dict[str, str] | None = None,
        secret: str | None = None,
        description: str = "",
    ) -> WebhookSubscription:
        sub = WebhookSubscription(
            tenant_id=tenant_id,
            url=url,
            events=list(dict.fromkeys(WebhookEvent(e) for e in events)),
            headers=dict(headers or {}),
            secret=secret,
            description=description,
        )
        self._subscriptions.setdefault(tenant_id, []).append(sub)
        logger.info("Webhook %s created for tenant %s", sub.id, tenant_id)
        return sub

    def unsubscribe(self, tenant_id: str, subscription_id: str) -> bool:
        subs = self._subscriptions.get(tenant_id, [])
        remaining = [s for s in subs if s.id != subscription_id]
        if len(remaining) == len(subs):
            return False
        self._subscriptions[tenant_id] = remaining
        logger.info("Webhook %s deleted for tenant %s", subscription_id, tenant_id)
        return True

    def list(self, tenant_id: str) -> list[WebhookSubscription]:
        return list(self._subscriptions.get(tenant_id, []))

    def get(self, tenant_id: str, subscription_id: str) -> WebhookSubscription | None:
        for sub in self._subscriptions.get(tenant_id, []):
            if sub.id == subscription_id:
                return sub
        return None

    # ── Dispatch ─────────────────────────────────────────────

    def handle_event(self, event: GatewayEvent) -> int:
        """Schedule one delivery per matching subscription; returns the count."""
        if event.name not in _DELIVERABLE:
            return 0
        matches = [s for s in self._subscriptions.get(event.tenant_id, []) if s.wants(event.name)]
        if not matches:
            return 0

        envelope = build_envelope(event.name, event.tenant_id, event.data, event.timestamp)
        body = json.dumps(envelope, default=_json_default)
        for sub in matches:
            task = asyncio.create_task(self._send_webhook(sub, event.name, body))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(matches)

    async def _send_webhook(
        self, sub: WebhookSubscription, event_type: str, body: str
    ) -> httpx.Response | None:
        headers = {"Content-Type": "application/json", **sub.headers, EVENT_HEADER: event_type}
        if sub.secret:
            headers[SIGNATURE_HEADER] = sign(sub.secret, body)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(sub.url, content=body, headers=headers)
        except Exception as exc:
            logger.warning(
                "Webhook %s delivery of %s to %s failed: %s", sub.id, event_type, sub.url, exc
            )
            return None
        if not resp.is_success:
            logger.warning(
                "Webhook %s delivery of %s returned HTTP %s", sub.id, event_type, resp.status_code
            )
        return resp

    async def ping(self, sub: WebhookSubscription) -> httpx.Response | None:
        """Send a signed test.ping envelope straight away."""
        envelope = build_envelope("test.ping", sub.tenant_id, {"webhookId": sub.id})
        return await self._send_webhook(sub, "test.ping", json.dumps(envelope, default=_json_default))

    async def aclose(self) -> None:
        """Wait for in-flight deliveries."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
