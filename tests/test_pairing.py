"""QR pairing window tests — gate behaviour and the registry pairing flow."""

import asyncio

import pytest

from chatgate.core.errors import AuthFailureError, PairingActiveError, PairingTimeoutError
from chatgate.models.session import SessionStatus
from chatgate.services.events import EventName
from chatgate.services.pairing import PairingGate
from chatgate.services.registry import SessionRegistry


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_second_open_is_refused_with_remaining_time():
    clock = FakeClock()
    gate = PairingGate(window_seconds=60, clock=clock)
    gate.open("acct-1")

    clock.now += 12.4
    with pytest.raises(PairingActiveError) as exc_info:
        gate.open("acct-1")

    assert exc_info.value.retry_after_seconds == 48
    assert exc_info.value.to_body()["error"]["code"] == "ALREADY_ACTIVE"
    gate.drop_all()


@pytest.mark.asyncio
async def test_retry_after_never_negative():
    clock = FakeClock()
    gate = PairingGate(window_seconds=60, clock=clock)
    gate.open("acct-1")

    # Timer has not fired yet but the clock is past the window
    clock.now += 75
    assert gate.seconds_remaining("acct-1") == 0
    gate.drop_all()


@pytest.mark.asyncio
async def test_window_expires_on_timer_and_reopens():
    expired = []
    gate = PairingGate(window_seconds=0.05, on_expire=expired.append)
    first = gate.open("acct-1")
    gate.record_code("acct-1", "2@first")

    await asyncio.sleep(0.1)

    assert not gate.is_active("acct-1")
    assert expired == [first]
    # The code outlives the window
    assert gate.get("acct-1").code == "2@first"

    second = gate.open("acct-1")
    assert second is not first
    assert second.active
    assert second.code == "2@first"
    gate.drop_all()


@pytest.mark.asyncio
async def test_close_keeps_code_and_cancels_timer():
    expired = []
    gate = PairingGate(window_seconds=0.05, on_expire=expired.append)
    gate.open("acct-1")
    gate.record_code("acct-1", "2@abc")
    gate.close("acct-1")

    await asyncio.sleep(0.1)
    assert expired == []
    assert gate.get("acct-1").code == "2@abc"
    assert not gate.is_active("acct-1")


@pytest.mark.asyncio
async def test_windows_are_per_tenant():
    gate = PairingGate(window_seconds=60)
    gate.open("acct-1")
    gate.open("acct-2")
    assert gate.is_active("acct-1") and gate.is_active("acct-2")
    gate.drop("acct-1")
    assert not gate.is_active("acct-1")
    assert gate.is_active("acct-2")
    gate.drop_all()


# ── Registry pairing flow ────────────────────────────────────


@pytest.mark.asyncio
async def test_request_returns_cached_code(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].show_code("2@cached")

    result = await registry.request_pairing_code("acct-1")

    assert result.status == "qr"
    assert result.code == "2@cached"
    assert 0 < result.expires_in_seconds <= 60
    assert registry.pairing.is_active("acct-1")


@pytest.mark.asyncio
async def test_request_waits_for_next_code(registry, factory):
    await registry.get_or_create("acct-1")

    async def _emit_later():
        await asyncio.sleep(0.05)
        factory.clients[0].show_code("2@late")

    emitter = asyncio.create_task(_emit_later())
    result = await registry.request_pairing_code("acct-1")
    await emitter

    assert result.code == "2@late"
    assert registry.pairing.get("acct-1").code == "2@late"


@pytest.mark.asyncio
async def test_second_request_in_window_conflicts(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].show_code("2@abc")
    await registry.request_pairing_code("acct-1")

    with pytest.raises(PairingActiveError) as exc_info:
        await registry.request_pairing_code("acct-1")
    assert 0 <= exc_info.value.retry_after_seconds <= 60


@pytest.mark.asyncio
async def test_pairing_timeout_leaves_window_running(registry):
    await registry.get_or_create("acct-1")

    with pytest.raises(PairingTimeoutError):
        await registry.request_pairing_code("acct-1")

    assert registry.pairing.is_active("acct-1")
    with pytest.raises(PairingActiveError):
        await registry.request_pairing_code("acct-1")


@pytest.mark.asyncio
async def test_ready_session_needs_no_code(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].become_ready()

    result = await registry.request_pairing_code("acct-1")

    assert result.status == "ready"
    assert result.code is None
    assert result.connected_at is not None
    assert not registry.pairing.is_active("acct-1")


@pytest.mark.asyncio
async def test_authentication_while_waiting_returns_already_paired(registry, factory):
    await registry.get_or_create("acct-1")

    async def _scan():
        await asyncio.sleep(0.05)
        factory.clients[0].authenticate()

    scanner = asyncio.create_task(_scan())
    result = await registry.request_pairing_code("acct-1")
    await scanner

    assert result.status == "authenticated"
    assert not registry.pairing.is_active("acct-1")


@pytest.mark.asyncio
async def test_auth_failure_session_refuses_pairing(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].emit("auth_failure", {"message": "restore failed"})

    with pytest.raises(AuthFailureError):
        await registry.request_pairing_code("acct-1")


@pytest.mark.asyncio
async def test_disconnected_session_is_recycled_before_pairing(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].disconnect()

    task = asyncio.create_task(registry.request_pairing_code("acct-1"))
    await asyncio.sleep(0.05)
    assert len(factory.clients) == 2
    factory.clients[1].show_code("2@fresh")
    result = await task

    assert factory.clients[0].destroyed
    assert result.code == "2@fresh"


@pytest.mark.asyncio
async def test_window_expiry_is_published(factory, probe, bus, events):
    registry = SessionRegistry(
        factory, probe, bus,
        pairing_window_seconds=0.05,
        pairing_code_timeout_seconds=0.2,
    )
    await registry.get_or_create("acct-1")
    factory.clients[0].show_code("2@abc")
    await registry.request_pairing_code("acct-1")

    await asyncio.sleep(0.1)

    names = [e.name for e in events]
    assert EventName.PAIRING_WINDOW_EXPIRED in names
    await registry.destroy("acct-1")


@pytest.mark.asyncio
async def test_expired_code_is_not_reissued(factory, probe, bus):
    registry = SessionRegistry(
        factory, probe, bus,
        pairing_window_seconds=0.05,
        pairing_code_timeout_seconds=0.2,
    )
    await registry.get_or_create("acct-1")
    factory.clients[0].show_code("2@stale")
    await registry.request_pairing_code("acct-1")

    await asyncio.sleep(0.1)

    session = registry.get("acct-1")
    assert session.pairing_code is None
    assert session.status is SessionStatus.WAITING_PAIRING
    assert registry.pairing.get("acct-1").code == "2@stale"

    async def _refresh():
        await asyncio.sleep(0.02)
        factory.clients[0].show_code("2@fresh")

    refresher = asyncio.create_task(_refresh())
    result = await registry.request_pairing_code("acct-1")
    await refresher

    assert result.code == "2@fresh"
    await registry.destroy("acct-1")


@pytest.mark.asyncio
async def test_expired_code_without_refresh_times_out(factory, probe, bus):
    registry = SessionRegistry(
        factory, probe, bus,
        pairing_window_seconds=0.05,
        pairing_code_timeout_seconds=0.1,
    )
    await registry.get_or_create("acct-1")
    factory.clients[0].show_code("2@stale")
    await registry.request_pairing_code("acct-1")

    await asyncio.sleep(0.1)

    with pytest.raises(PairingTimeoutError):
        await registry.request_pairing_code("acct-1")
    await registry.destroy("acct-1")
