"""Outbound message route."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from chatgate.api.deps import PathTenant, Registry
from chatgate.core.config import Settings, get_settings
from chatgate.models.message import MessageSent, SendMessageRequest
from chatgate.services.messaging import send_message

router = APIRouter(prefix="/sessions", tags=["messages"])


@router.post(
    "/{tenant_id}/messages",
    response_model=MessageSent,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    tenant_id: PathTenant,
    body: SendMessageRequest,
    registry: Registry,
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageSent:
    return await send_message(
        registry,
        tenant_id,
        body.to,
        body.text,
        media=body.media,
        wait_seconds=min(body.wait_seconds, settings.ready_timeout_seconds),
    )
