"""Webhook subscription model for session event notifications."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from pydantic import Field

from chatgate.models.base import CamelModel, new_id, utcnow


class WebhookEvent(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    MESSAGE = "message"
    MESSAGE_ACK = "message_ack"


@dataclass
class WebhookSubscription:
    tenant_id: str
    url: str
    events: list[WebhookEvent]
    headers: dict[str, str] = field(default_factory=dict)
    secret: str | None = None  # for HMAC signing
    description: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def wants(self, event: str) -> bool:
        return event in self.events


# ── Pydantic schemas ─────────────────────────────────────────


class WebhookCreate(CamelModel):
    url: str = Field(max_length=2048, pattern=r"^https?://")
    events: list[WebhookEvent] = Field(min_length=1)
    headers: dict[str, str] | None = None
    secret: str | None = Field(default=None, max_length=256)
    description: str = Field(default="", max_length=500)


class WebhookRead(CamelModel):
    id: str
    tenant_id: str
    url: str
    events: list[WebhookEvent]
    header_names: list[str]
    description: str
    has_secret: bool
    created_at: datetime

    @classmethod
    def from_subscription(cls, sub: WebhookSubscription) -> "WebhookRead":
        return cls(
            id=sub.id,
            tenant_id=sub.tenant_id,
            url=sub.url,
            events=sub.events,
            header_names=sorted(sub.headers),
            description=sub.description,
            has_secret=bool(sub.secret),
            created_at=sub.created_at,
        )


class WebhookCreated(WebhookRead):
    """Returned exactly once at creation time — includes the raw secret."""

    secret: str | None = None


class WebhookPingResult(CamelModel):
    success: bool
    status_code: int | None = None
