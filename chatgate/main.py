"""FastAPI application entrypoint."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatgate import __version__
from chatgate.api.v1 import v1_router
from chatgate.api.v1.system import uptime_seconds
from chatgate.core.config import get_settings
from chatgate.core.errors import GatewayError, PairingActiveError
from chatgate.services.bridge_client import bridge_client_factory
from chatgate.services.credentials import CredentialProbe
from chatgate.services.events import EventBus
from chatgate.services.registry import SessionRegistry
from chatgate.services.shutdown import ShutdownCoordinator
from chatgate.services.webhook_dispatch import WebhookDispatcher

logger = logging.getLogger(__name__)


async def _restore_sessions(registry: SessionRegistry) -> None:
    tenant_ids = registry.probe.list_tenants()
    logger.info("Restoring %d stored session(s)", len(tenant_ids))
    results = await asyncio.gather(
        *(registry.get_or_create(t) for t in tenant_ids),
        return_exceptions=True,
    )
    for tenant_id, result in zip(tenant_ids, results):
        if isinstance(result, Exception):
            logger.warning("Could not restore session for tenant %s: %s", tenant_id, result)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    bus = EventBus()
    registry = SessionRegistry(
        bridge_client_factory(settings),
        CredentialProbe(settings.credential_path),
        bus,
        pairing_window_seconds=settings.pairing_window_seconds,
        pairing_code_timeout_seconds=settings.pairing_code_timeout_seconds,
        client_init_timeout_seconds=settings.client_init_timeout_seconds,
        replace_settle_seconds=settings.replace_settle_seconds,
    )
    webhooks = WebhookDispatcher(timeout=settings.webhook_timeout_seconds)
    if settings.enable_webhooks:
        webhooks.attach(bus)
    coordinator = ShutdownCoordinator(registry, webhooks)

    app.state.registry = registry
    app.state.webhooks = webhooks

    restore_task = None
    if settings.restore_on_startup:
        restore_task = asyncio.create_task(_restore_sessions(registry))

    logger.info("ChatGate %s started (credentials: %s)", __version__, settings.credential_path)
    yield

    # Shutdown: uvicorn runs this on SIGTERM / SIGINT
    if restore_task is not None and not restore_task.done():
        restore_task.cancel()
    await coordinator.drain_all()


app = FastAPI(
    title="ChatGate",
    version=__version__,
    description="Multi-tenant chat account gateway",
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in _settings.allowed_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error rendering ──────────────────────────────────────────
@app.exception_handler(GatewayError)
async def gateway_error_handler(_request: Request, exc: GatewayError) -> JSONResponse:
    headers = None
    if isinstance(exc, PairingActiveError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    if exc.status_code >= 500:
        logger.warning("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


# ── API routes ───────────────────────────────────────────────
app.include_router(v1_router)


@app.get("/health", tags=["system"])
async def health_check(request: Request) -> dict:
    registry: SessionRegistry = request.app.state.registry
    counts = registry.counts()
    return {
        "status": "ok",
        "sessions": counts,
        "total": sum(counts.values()),
        "pending": registry.pending_count(),
        "uptimeSeconds": uptime_seconds(),
    }
