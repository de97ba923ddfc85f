"""Session lifecycle routes — create, inspect, pair, replace and destroy."""

import re
import uuid

from fastapi import APIRouter, status

from chatgate.api.deps import Auth, PathTenant, Registry
from chatgate.core.errors import BadRequestError
from chatgate.models.session import (
    TENANT_ID_PATTERN,
    PairingCodeRead,
    Session,
    SessionCreate,
    SessionCreated,
    SessionRead,
    SessionReplace,
    SessionReplaced,
    SessionSummary,
)
from chatgate.services.registry import SessionRegistry

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _to_read(session: Session, registry: SessionRegistry) -> SessionRead:
    return SessionRead(
        tenant_id=session.tenant_id,
        status=session.status,
        pairing_active=registry.pairing.is_active(session.tenant_id),
        pairing_seconds_remaining=registry.pairing.seconds_remaining(session.tenant_id),
        connected_at=session.connected_at,
        created_at=session.created_at,
        error=session.error,
        info=session.info,
        disconnect_reason=session.disconnect_reason,
        restored=session.restored,
        replaced_at=session.replaced_at,
        previous_state=session.previous_state,
    )


async def _create(tenant_id: str, registry: SessionRegistry) -> SessionCreated:
    session = await registry.get_or_create(tenant_id)
    return SessionCreated(tenant_id=session.tenant_id, status=session.status)


@router.post("", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_session(
    auth: Auth,
    registry: Registry,
    body: SessionCreate | None = None,
) -> SessionCreated:
    """Create (or return) a session; the tenant comes from the body, then the
    caller's identity, else a fresh id is generated."""
    tenant_id = (body.tenant_id if body else None) or auth.tenant_id or str(uuid.uuid4())
    if not re.fullmatch(TENANT_ID_PATTERN, tenant_id):
        raise BadRequestError(f"Invalid tenant id: {tenant_id!r}")
    auth.check_tenant(tenant_id)
    return await _create(tenant_id, registry)


@router.post("/{tenant_id}", response_model=SessionCreated, status_code=status.HTTP_201_CREATED)
async def create_tenant_session(tenant_id: PathTenant, registry: Registry) -> SessionCreated:
    return await _create(tenant_id, registry)


@router.get("", response_model=list[SessionSummary])
async def list_sessions(auth: Auth, registry: Registry) -> list[SessionSummary]:
    on_disk = set(registry.probe.list_tenants())
    summaries = []
    for tenant_id in registry.known_tenants():
        if auth.pinned and tenant_id != auth.tenant_id:
            continue
        session = registry.get(tenant_id)
        summaries.append(
            SessionSummary(
                tenant_id=tenant_id,
                status=session.status if session else None,
                in_memory=session is not None,
                on_disk=tenant_id in on_disk,
            )
        )
    return summaries


@router.get("/{tenant_id}", response_model=SessionRead)
async def get_session(tenant_id: PathTenant, registry: Registry) -> SessionRead:
    session = await registry.lookup(tenant_id)
    return _to_read(session, registry)


@router.get("/{tenant_id}/status", response_model=SessionRead)
async def get_session_status(tenant_id: PathTenant, registry: Registry) -> SessionRead:
    session = await registry.lookup(tenant_id)
    return _to_read(session, registry)


@router.get("/{tenant_id}/qr", response_model=PairingCodeRead)
async def get_pairing_code(tenant_id: PathTenant, registry: Registry) -> PairingCodeRead:
    """Issue a pairing code. At most one per tenant every pairing window."""
    result = await registry.request_pairing_code(tenant_id)
    return PairingCodeRead(
        status=result.status,
        tenant_id=result.tenant_id,
        code=result.code,
        expires_in_seconds=result.expires_in_seconds,
        expires_at=result.expires_at,
        connected_at=result.connected_at,
        message=result.message,
    )


@router.put("/{tenant_id}", response_model=SessionReplaced)
async def replace_session(
    tenant_id: PathTenant,
    registry: Registry,
    body: SessionReplace | None = None,
) -> SessionReplaced:
    preserve = body.preserve_state if body else False
    session = await registry.replace(tenant_id, preserve_state=preserve)
    read = _to_read(session, registry)
    return SessionReplaced(
        **read.model_dump(),
        preserved_state=session.previous_state is not None,
    )


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(tenant_id: PathTenant, registry: Registry) -> None:
    await registry.destroy(tenant_id)
