from __future__ import annotations

import pytest

from solveur.tests.utils.seed import create_tenant, tenant_headers


@pytest.mark.asyncio
async def test_health_reports_providers(client) -> None:
    raw = await client.get("/health")
    assert raw.status_code == 200
    body = raw.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["providers"]["embeddings"] == "fake"
    assert body["providers"]["vectors"] == "memory"
    assert body["providers"]["vectorsConfigured"] is True
    assert body["providers"]["openaiConfigured"] is False

    versioned = (await client.get("/v1/health")).json()
    assert versioned["data"]["status"] == "ok"
    assert versioned["meta"]["api_version"] == "v1"
    # The first /health call has been recorded by the request middleware.
    assert versioned["data"]["requestP95Ms"] is not None


@pytest.mark.asyncio
async def test_errors_are_enveloped_on_unversioned_routes(client) -> None:
    response = await client.get("/personalities")
    assert response.status_code == 404
    body = response.json()
    assert body["error"]["code"] == "TENANT_NOT_FOUND"
    assert body["meta"]["request_id"] == response.headers["X-Request-Id"]


@pytest.mark.asyncio
async def test_unknown_route_is_enveloped(client) -> None:
    response = await client.get("/v1/nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_delete_responses_have_no_body(client, session) -> None:
    tenant = await create_tenant(session)
    headers = tenant_headers(tenant)
    await client.post("/personalities", json={"name": "Main"}, headers=headers)
    extra = (await client.post("/personalities", json={"name": "Extra", "isActive": False}, headers=headers)).json()

    response = await client.delete(f"/v1/personalities/{extra['id']}", headers=headers)
    assert response.status_code == 204
    assert response.content == b""


@pytest.mark.asyncio
async def test_openapi_is_versioned_with_bearer_auth(client) -> None:
    schema = (await client.get("/v1/openapi.json")).json()
    assert "/v1/chat" in schema["paths"]
    assert "/chat" not in schema["paths"]
    assert schema["components"]["securitySchemes"]["BearerAuth"]["scheme"] == "bearer"
    assert "security" not in schema["paths"]["/v1/health"]["get"]
    assert schema["paths"]["/v1/chat"]["post"]["security"] == [{"BearerAuth": []}]
