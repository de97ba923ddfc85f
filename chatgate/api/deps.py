"""FastAPI dependencies for authentication, tenant resolution and services."""

import re
import secrets
from typing import Annotated

from fastapi import Depends, Header, Path, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from chatgate.core.config import Settings, get_settings
from chatgate.core.errors import BadRequestError, ForbiddenError, UnauthorizedError
from chatgate.core.security import decode_jwt
from chatgate.models.session import TENANT_ID_PATTERN
from chatgate.services.registry import SessionRegistry
from chatgate.services.webhook_dispatch import WebhookDispatcher

bearer_scheme = HTTPBearer(auto_error=False)


class AuthContext:
    """Resolved identity carried through a request.

    ``pinned`` callers (tenant JWTs) may only touch their own tenant; API-key
    callers act for whichever tenant the request names.
    """

    __slots__ = ("tenant_id", "pinned")

    def __init__(self, tenant_id: str | None, pinned: bool = False) -> None:
        self.tenant_id = tenant_id
        self.pinned = pinned

    def check_tenant(self, tenant_id: str) -> None:
        if self.pinned and tenant_id != self.tenant_id:
            raise ForbiddenError()


def _resolve_jwt(token: str, settings: Settings) -> AuthContext:
    """Decode a tenant JWT and pin the request to its ``tid`` claim."""
    try:
        payload = decode_jwt(token, settings)
    except JWTError as exc:
        raise UnauthorizedError("Invalid or expired JWT") from exc

    tenant_id = payload.get("tid")
    if not isinstance(tenant_id, str) or not tenant_id:
        raise UnauthorizedError("Malformed JWT payload")
    return AuthContext(tenant_id=tenant_id, pinned=True)


async def get_auth_context(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    x_api_key: Annotated[str | None, Header()] = None,
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> AuthContext:
    """Resolve credentials to an AuthContext.

    Accepts:
    - ``Authorization: Bearer <api key>`` or ``X-API-Key: <api key>``, with
      the tenant taken from ``X-Tenant-Id`` (or the request path)
    - ``Authorization: Bearer <jwt>`` carrying a ``tid`` claim
    """
    raw = credentials.credentials if credentials else x_api_key
    if not raw:
        raise UnauthorizedError("Missing API key or bearer token")

    if settings.api_key and secrets.compare_digest(raw, settings.api_key):
        return AuthContext(tenant_id=x_tenant_id or None)
    if "." in raw and settings.jwt_secret_key:
        return _resolve_jwt(raw, settings)
    raise UnauthorizedError("Invalid API key")


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_webhooks(request: Request) -> WebhookDispatcher:
    return request.app.state.webhooks


Auth = Annotated[AuthContext, Depends(get_auth_context)]
Registry = Annotated[SessionRegistry, Depends(get_registry)]
Webhooks = Annotated[WebhookDispatcher, Depends(get_webhooks)]


async def get_path_tenant(
    auth: Auth,
    tenant_id: Annotated[str, Path(pattern=TENANT_ID_PATTERN)],
) -> str:
    auth.check_tenant(tenant_id)
    return tenant_id


async def get_header_tenant(auth: Auth) -> str:
    """Tenant for routes without a tenant in the path (e.g. /webhooks)."""
    if not auth.tenant_id:
        raise UnauthorizedError("Tenant ID is required (X-Tenant-Id header)")
    if not re.fullmatch(TENANT_ID_PATTERN, auth.tenant_id):
        raise BadRequestError(f"Invalid tenant id: {auth.tenant_id!r}")
    return auth.tenant_id


# Typed shorthand for use in route signatures
PathTenant = Annotated[str, Depends(get_path_tenant)]
HeaderTenant = Annotated[str, Depends(get_header_tenant)]
