"""Outbound message tests."""

import asyncio

import pytest
from httpx import AsyncClient

from chatgate.core.errors import BadRequestError, NotFoundError, NotReadyError
from chatgate.services.messaging import send_message


@pytest.mark.asyncio
async def test_send_refused_unless_ready(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].show_code("2@abc")

    with pytest.raises(NotReadyError):
        await send_message(registry, "acct-1", "11999887766", "hi")

    assert factory.clients[0].sent == []


@pytest.mark.asyncio
async def test_send_after_ready(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].become_ready()

    sent = await send_message(registry, "acct-1", "+55 11 99988-7766", "hi")

    assert sent.id == "msg-1"
    assert sent.to == "5511999887766"
    assert factory.clients[0].sent == [("5511999887766@c.us", "hi")]


@pytest.mark.asyncio
async def test_send_can_wait_for_readiness(registry, factory):
    await registry.get_or_create("acct-1")

    async def _connect():
        await asyncio.sleep(0.05)
        factory.clients[0].become_ready()

    connector = asyncio.create_task(_connect())
    sent = await send_message(registry, "acct-1", "11999887766", "hi", wait_seconds=1)
    await connector

    assert sent.id == "msg-1"


@pytest.mark.asyncio
async def test_send_to_unknown_tenant(registry):
    with pytest.raises(NotFoundError):
        await send_message(registry, "nobody", "11999887766", "hi")


@pytest.mark.asyncio
async def test_invalid_number_rejected_before_client(registry, factory):
    await registry.get_or_create("acct-1")
    factory.clients[0].become_ready()

    with pytest.raises(BadRequestError):
        await send_message(registry, "acct-1", "123", "hi")
    assert factory.clients[0].sent == []


@pytest.mark.asyncio
async def test_message_route_not_ready(client: AsyncClient, headers, factory):
    await client.post("/v1/sessions/acct-1", headers=headers)

    resp = await client.post(
        "/v1/sessions/acct-1/messages",
        json={"to": "11999887766", "text": "hello"},
        headers=headers,
    )

    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "NOT_READY"
    assert factory.clients[0].sent == []


@pytest.mark.asyncio
async def test_message_route_validates_body(client: AsyncClient, headers):
    resp = await client.post(
        "/v1/sessions/acct-1/messages",
        json={"to": "not-a-number", "text": ""},
        headers=headers,
    )
    assert resp.status_code == 422
