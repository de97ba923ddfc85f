"""Re-export session, message and webhook models."""

from chatgate.models.message import MediaAttachment, MessageSent, SendMessageRequest
from chatgate.models.session import (
    TENANT_ID_PATTERN,
    PairingCodeRead,
    Session,
    SessionCreate,
    SessionCreated,
    SessionRead,
    SessionReplace,
    SessionReplaced,
    SessionStatus,
    SessionSummary,
)
from chatgate.models.webhook import (
    WebhookCreate,
    WebhookCreated,
    WebhookEvent,
    WebhookPingResult,
    WebhookRead,
    WebhookSubscription,
)

__all__ = [
    "TENANT_ID_PATTERN",
    "MediaAttachment",
    "MessageSent",
    "PairingCodeRead",
    "SendMessageRequest",
    "Session",
    "SessionCreate",
    "SessionCreated",
    "SessionRead",
    "SessionReplace",
    "SessionReplaced",
    "SessionStatus",
    "SessionSummary",
    "WebhookCreate",
    "WebhookCreated",
    "WebhookEvent",
    "WebhookPingResult",
    "WebhookRead",
    "WebhookSubscription",
]
