"""Session model — one chat-account session per tenant."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import Field

from chatgate.models.base import CamelModel, utcnow

if TYPE_CHECKING:
    from chatgate.services.client import ChatClient

# Tenant ids name credential directories, so keep them path-safe.
TENANT_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class SessionStatus(StrEnum):
    INITIALIZING = "initializing"
    WAITING_PAIRING = "waiting_pairing"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    AUTH_FAILURE = "auth_failure"
    DISCONNECTED = "disconnected"
    LOGGED_OUT = "logged_out"


@dataclass(eq=False)
class Session:
    """In-memory state of one tenant's chat account.

    Owned by the SessionRegistry; ``client`` is never shared between tenants.
    """

    tenant_id: str
    client: ChatClient
    status: SessionStatus = SessionStatus.INITIALIZING
    created_at: datetime = field(default_factory=utcnow)
    pairing_code: str | None = None
    connected_at: datetime | None = None
    error: str | None = None
    info: dict[str, Any] | None = None
    disconnect_reason: str | None = None
    restored: bool = False
    replaced_at: datetime | None = None
    previous_state: dict[str, Any] | None = None
    retired: bool = False

    ready: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _code_waiters: set[asyncio.Future[str | None]] = field(default_factory=set, repr=False)

    def set_status(self, status: SessionStatus) -> None:
        self.status = status
        if status is SessionStatus.READY:
            self.ready.set()
        else:
            self.ready.clear()

    def retire(self) -> None:
        """Mark the session torn down and release anyone waiting on readiness."""
        self.retired = True
        self.ready.set()

    def next_pairing_code(self) -> asyncio.Future[str | None]:
        """Future resolved with the next pairing code the client reports.

        Resolves to ``None`` when the account authenticates before a new code
        shows up.
        """
        fut: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._code_waiters.add(fut)
        fut.add_done_callback(self._code_waiters.discard)
        return fut

    def resolve_code_waiters(self, code: str | None) -> None:
        for fut in list(self._code_waiters):
            if not fut.done():
                fut.set_result(code)

    def fail_code_waiters(self, exc: Exception) -> None:
        for fut in list(self._code_waiters):
            if not fut.done():
                fut.set_exception(exc)


# ── Pydantic schemas ─────────────────────────────────────────


class SessionCreate(CamelModel):
    tenant_id: str | None = Field(default=None, pattern=TENANT_ID_PATTERN)


class SessionReplace(CamelModel):
    preserve_state: bool = False


class SessionCreated(CamelModel):
    tenant_id: str
    status: SessionStatus


class SessionRead(CamelModel):
    tenant_id: str
    status: SessionStatus
    pairing_active: bool
    pairing_seconds_remaining: int
    connected_at: datetime | None = None
    created_at: datetime
    error: str | None = None
    info: dict[str, Any] | None = None
    disconnect_reason: str | None = None
    restored: bool = False
    replaced_at: datetime | None = None
    previous_state: dict[str, Any] | None = None


class SessionReplaced(SessionRead):
    replaced: bool = True
    preserved_state: bool


class SessionSummary(CamelModel):
    tenant_id: str
    status: SessionStatus | None = Field(
        default=None, description="None when only known from disk"
    )
    in_memory: bool
    on_disk: bool


class PairingCodeRead(CamelModel):
    status: str  # "qr", "ready" or "authenticated"
    tenant_id: str
    code: str | None = None
    expires_in_seconds: int | None = None
    expires_at: datetime | None = None
    connected_at: datetime | None = None
    message: str
