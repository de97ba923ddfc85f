"""Shared test fixtures — fake chat clients, a live registry and a test client."""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from chatgate.core.config import Settings, get_settings
from chatgate.main import app
from chatgate.models.base import utcnow
from chatgate.services.client import ChatClient, ClientEvent, SentMessage
from chatgate.services.credentials import CredentialProbe
from chatgate.services.events import EventBus, GatewayEvent
from chatgate.services.registry import SessionRegistry
from chatgate.services.shutdown import ShutdownCoordinator
from chatgate.services.webhook_dispatch import WebhookDispatcher

API_KEY = "test-key"
JWT_SECRET = "test-jwt-secret"  # noqa: S105


class FakeChatClient(ChatClient):
    """Chat client whose notifications are driven by the test."""

    def __init__(self, tenant_id: str, credential_dir: Path) -> None:
        super().__init__(tenant_id, credential_dir)
        self.initialize_calls = 0
        self.init_delay = 0.0
        self.init_error: Exception | None = None
        self.destroy_error: Exception | None = None
        self.destroyed = False
        self.sent: list[tuple[str, str]] = []

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.init_delay:
            await asyncio.sleep(self.init_delay)
        if self.init_error is not None:
            raise self.init_error

    async def send_message(self, destination, content, media=None) -> SentMessage:
        self.sent.append((destination, content))
        return SentMessage(id=f"msg-{len(self.sent)}", timestamp=utcnow())

    async def destroy(self) -> None:
        self.destroyed = True
        if self.destroy_error is not None:
            raise self.destroy_error

    # ── Test drivers ─────────────────────────────────────────

    def show_code(self, code: str) -> None:
        self.emit(ClientEvent.PAIRING_CODE, {"code": code})

    def authenticate(self) -> None:
        self.emit(ClientEvent.AUTHENTICATED)

    def become_ready(self, info: dict | None = None) -> None:
        self.emit(ClientEvent.AUTHENTICATED)
        self.emit(ClientEvent.READY, {"info": info or {"wid": "5511999999999@c.us"}})

    def disconnect(self, reason: str = "NAVIGATION") -> None:
        self.emit(ClientEvent.DISCONNECTED, {"reason": reason})


class FakeClientFactory:
    """ClientFactory that records every client it builds.

    ``init_delay`` / ``init_error`` / ``destroy_error`` apply to the next
    client built.
    """

    def __init__(self) -> None:
        self.clients: list[FakeChatClient] = []
        self.init_delay = 0.0
        self.init_error: Exception | None = None
        self.destroy_error: Exception | None = None

    def __call__(self, tenant_id: str, credential_dir: Path) -> FakeChatClient:
        client = FakeChatClient(tenant_id, credential_dir)
        client.init_delay = self.init_delay
        client.init_error, self.init_error = self.init_error, None
        client.destroy_error = self.destroy_error
        self.clients.append(client)
        return client

    def for_tenant(self, tenant_id: str) -> list[FakeChatClient]:
        return [c for c in self.clients if c.tenant_id == tenant_id]


@pytest.fixture
def factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def probe(tmp_path) -> CredentialProbe:
    return CredentialProbe(tmp_path / "auth")


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(bus) -> list[GatewayEvent]:
    """Every event published on the bus, in order."""
    seen: list[GatewayEvent] = []
    bus.subscribe(seen.append)
    return seen


@pytest.fixture
async def registry(factory, probe, bus) -> AsyncGenerator[SessionRegistry, None]:
    reg = SessionRegistry(
        factory,
        probe,
        bus,
        pairing_window_seconds=60.0,
        pairing_code_timeout_seconds=0.2,
        client_init_timeout_seconds=1.0,
        replace_settle_seconds=1.0,
    )
    yield reg
    await ShutdownCoordinator(reg).drain_all()


@pytest.fixture
def webhooks(bus) -> WebhookDispatcher:
    dispatcher = WebhookDispatcher(timeout=1.0)
    dispatcher.attach(bus)
    return dispatcher


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        api_key=API_KEY,
        jwt_secret_key=JWT_SECRET,
        credential_path=str(tmp_path / "auth"),
        ready_timeout_seconds=1.0,
    )


@pytest.fixture
async def client(registry, webhooks, settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client wired to the test registry."""
    app.state.registry = registry
    app.state.webhooks = webhooks
    app.dependency_overrides[get_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def tenant_headers():
    """Operator API key scoped to a tenant through X-Tenant-Id."""

    def _make(tenant_id: str) -> dict[str, str]:
        return {"X-API-Key": API_KEY, "X-Tenant-Id": tenant_id}

    return _make
