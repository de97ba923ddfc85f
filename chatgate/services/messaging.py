"""Outbound message sending through a tenant's ready session."""

import logging

from chatgate.core.errors import GatewayError, InternalError, NotReadyError
from chatgate.models.message import MediaAttachment, MessageSent
from chatgate.models.session import SessionStatus
from chatgate.services.phone import from_wire_address, to_wire_address
from chatgate.services.registry import SessionRegistry

logger = logging.getLogger(__name__)


async def send_message(
    registry: SessionRegistry,
    tenant_id: str,
    to: str,
    text: str,
    media: MediaAttachment | None = None,
    wait_seconds: float = 0,
) -> MessageSent:
    """Send ``text`` (optionally with media) to a phone number.

    The client is only invoked once the session is ``ready``; otherwise
    NotReadyError, unless ``wait_seconds`` allows waiting for readiness.
    """
    address = to_wire_address(to)
    session = await registry.lookup(tenant_id)

    if session.status is not SessionStatus.READY:
        if wait_seconds <= 0:
            raise NotReadyError(
                f"Session {tenant_id!r} not ready (status: {session.status}); "
                "check its status or pair it with a QR code"
            )
        session = await registry.wait_for_ready(tenant_id, wait_seconds)

    try:
        sent = await session.client.send_message(address, text, media)
    except GatewayError:
        raise
    except Exception as exc:
        logger.exception("Failed to send message for tenant %s", tenant_id)
        raise InternalError("Failed to send message") from exc

    logger.info(
        "Message %s sent for tenant %s (media: %s)", sent.id, tenant_id, media is not None
    )
    return MessageSent(id=sent.id, to=from_wire_address(address), timestamp=sent.timestamp)
