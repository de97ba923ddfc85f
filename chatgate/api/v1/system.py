"""System health endpoint — uptime, runtime and per-tenant session detail."""

import platform
import sys
import time
from datetime import datetime
from typing import Annotated
from urllib.parse import urlparse, urlunparse

from fastapi import APIRouter, Depends

from chatgate.api.deps import Auth, Registry
from chatgate.core.config import Settings, get_settings
from chatgate.models.base import CamelModel
from chatgate.models.session import SessionStatus

router = APIRouter(prefix="/system", tags=["system"])

_start_time = time.time()


def uptime_seconds() -> int:
    return int(time.time() - _start_time)


class TenantHealth(CamelModel):
    tenant_id: str
    status: SessionStatus
    pairing_active: bool
    connected_at: datetime | None = None
    created_at: datetime


class DetailedHealthResponse(CamelModel):
    status: str
    uptime_seconds: int
    python_version: str
    platform: str

    sessions: dict[str, int]
    total_sessions: int
    pending_sessions: int
    stored_credentials: int
    tenants: list[TenantHealth]

    # Config (safe subset)
    config: dict


@router.get("/health", response_model=DetailedHealthResponse)
async def system_health(
    auth: Auth,
    registry: Registry,
    settings: Annotated[Settings, Depends(get_settings)],
) -> DetailedHealthResponse:
    tenants = [
        TenantHealth(
            tenant_id=s.tenant_id,
            status=s.status,
            pairing_active=registry.pairing.is_active(s.tenant_id),
            connected_at=s.connected_at,
            created_at=s.created_at,
        )
        for s in registry.sessions()
        if not auth.pinned or s.tenant_id == auth.tenant_id
    ]
    counts = registry.counts()
    return DetailedHealthResponse(
        status="ok",
        uptime_seconds=uptime_seconds(),
        python_version=sys.version.split()[0],
        platform=platform.platform(),
        sessions=counts,
        total_sessions=sum(counts.values()),
        pending_sessions=registry.pending_count(),
        stored_credentials=len(registry.probe.list_tenants()),
        tenants=tenants,
        config={
            "credential_path": settings.credential_path,
            "bridge_url": _mask_url(settings.bridge_url),
            "api_key_configured": bool(settings.api_key),
            "jwt_configured": bool(settings.jwt_secret_key),
            "webhooks_enabled": settings.enable_webhooks,
            "pairing_window_seconds": settings.pairing_window_seconds,
            "client_init_timeout_seconds": settings.client_init_timeout_seconds,
            "cors_origins": settings.allowed_origins,
        },
    )


def _mask_url(url: str) -> str:
    """Mask credentials embedded in the bridge URL."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    netloc = f"{parsed.username}:***@{parsed.hostname}"
    if parsed.port:
        netloc += f":{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))
