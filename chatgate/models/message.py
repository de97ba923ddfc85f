"""Outbound message schemas."""

from datetime import datetime

from pydantic import Field

from chatgate.models.base import CamelModel


class MediaAttachment(CamelModel):
    filename: str = Field(max_length=255)
    mimetype: str = Field(max_length=255)
    data: str = Field(description="Base64 encoded media")


class SendMessageRequest(CamelModel):
    to: str = Field(pattern=r"^[0-9+\-\s()]+$", description="Phone number (various formats accepted)")
    text: str = Field(min_length=1, max_length=4096)
    media: MediaAttachment | None = None
    wait_seconds: float = Field(
        default=0, ge=0, le=120,
        description="Block up to this long for the session to become ready",
    )


class MessageSent(CamelModel):
    id: str
    to: str
    timestamp: datetime
