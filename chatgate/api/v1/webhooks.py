"""Webhook CRUD — every lookup scoped to the caller's tenant."""

import secrets

from fastapi import APIRouter, status

from chatgate.api.deps import HeaderTenant, Webhooks
from chatgate.core.errors import NotFoundError
from chatgate.models.webhook import (
    WebhookCreate,
    WebhookCreated,
    WebhookPingResult,
    WebhookRead,
    WebhookSubscription,
)
from chatgate.services.webhook_dispatch import WebhookDispatcher

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("", response_model=WebhookCreated, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    body: WebhookCreate,
    tenant_id: HeaderTenant,
    webhooks: Webhooks,
) -> WebhookCreated:
    raw_secret = body.secret or secrets.token_urlsafe(32)
    sub = webhooks.subscribe(
        tenant_id,
        body.url,
        body.events,
        headers=body.headers,
        secret=raw_secret,
        description=body.description,
    )
    return WebhookCreated(
        **WebhookRead.from_subscription(sub).model_dump(),
        secret=raw_secret,
    )


@router.get("", response_model=list[WebhookRead])
async def list_webhooks(tenant_id: HeaderTenant, webhooks: Webhooks) -> list[WebhookRead]:
    return [WebhookRead.from_subscription(s) for s in webhooks.list(tenant_id)]


@router.get("/{webhook_id}", response_model=WebhookRead)
async def get_webhook(
    webhook_id: str,
    tenant_id: HeaderTenant,
    webhooks: Webhooks,
) -> WebhookRead:
    return WebhookRead.from_subscription(_get_or_404(webhooks, tenant_id, webhook_id))


@router.delete("/{webhook_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_webhook(
    webhook_id: str,
    tenant_id: HeaderTenant,
    webhooks: Webhooks,
) -> None:
    if not webhooks.unsubscribe(tenant_id, webhook_id):
        raise NotFoundError("Webhook not found")


@router.post("/{webhook_id}/test", response_model=WebhookPingResult)
async def test_webhook(
    webhook_id: str,
    tenant_id: HeaderTenant,
    webhooks: Webhooks,
) -> WebhookPingResult:
    """Send a signed test ping to the webhook URL."""
    sub = _get_or_404(webhooks, tenant_id, webhook_id)
    resp = await webhooks.ping(sub)
    if resp is None:
        return WebhookPingResult(success=False, status_code=None)
    return WebhookPingResult(success=resp.is_success, status_code=resp.status_code)


# ── Internal helper ───────────────────────────────────────────

def _get_or_404(
    webhooks: WebhookDispatcher, tenant_id: str, webhook_id: str
) -> WebhookSubscription:
    sub = webhooks.get(tenant_id, webhook_id)
    if sub is None:
        raise NotFoundError("Webhook not found")
    return sub
