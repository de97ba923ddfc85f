"""Authentication tests — API keys, tenant JWTs and tenant pinning."""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from chatgate.core.security import create_jwt, decode_jwt


@pytest.mark.asyncio
async def test_missing_credentials(client: AsyncClient):
    resp = await client.get("/v1/sessions")
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_wrong_api_key(client: AsyncClient):
    resp = await client.get("/v1/sessions", headers={"X-API-Key": "nope"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_api_key_header_and_bearer_both_accepted(client: AsyncClient, headers):
    assert (await client.get("/v1/sessions", headers=headers)).status_code == 200
    resp = await client.get("/v1/sessions", headers={"X-API-Key": "test-key"})
    assert resp.status_code == 200


def test_jwt_round_trip(settings):
    token = create_jwt("acct-1", settings)
    payload = decode_jwt(token, settings)
    assert payload["tid"] == "acct-1"


@pytest.mark.asyncio
async def test_jwt_pins_tenant(client: AsyncClient, settings, registry):
    token = create_jwt("acct-1", settings)
    jwt_headers = {"Authorization": f"Bearer {token}"}

    resp = await client.post("/v1/sessions/acct-1", headers=jwt_headers)
    assert resp.status_code == 201

    resp = await client.get("/v1/sessions/acct-2", headers=jwt_headers)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"

    resp = await client.post("/v1/sessions", json={"tenantId": "acct-2"}, headers=jwt_headers)
    assert resp.status_code == 403
    assert registry.get("acct-2") is None


@pytest.mark.asyncio
async def test_jwt_session_list_is_scoped(client: AsyncClient, settings, registry):
    await registry.get_or_create("acct-1")
    await registry.get_or_create("acct-2")
    token = create_jwt("acct-1", settings)

    resp = await client.get("/v1/sessions", headers={"Authorization": f"Bearer {token}"})

    assert [s["tenantId"] for s in resp.json()] == ["acct-1"]


@pytest.mark.asyncio
async def test_expired_jwt_rejected(client: AsyncClient, settings):
    token = create_jwt("acct-1", settings, expires_delta=timedelta(seconds=-5))
    resp = await client.get(
        "/v1/sessions/acct-1", headers={"Authorization": f"Bearer {token}"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_jwt_webhooks_use_token_tenant(client: AsyncClient, settings):
    token = create_jwt("acct-1", settings)
    resp = await client.post("/v1/webhooks", json={
        "url": "https://example.com/hook",
        "events": ["connected"],
    }, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 201
    assert resp.json()["tenantId"] == "acct-1"
