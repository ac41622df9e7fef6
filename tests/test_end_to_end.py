"""Request-level isolation scenarios across the queue and web chat APIs."""

import pytest
from httpx import AsyncClient

from app.models.user import TenantUserRole


@pytest.fixture
async def two_tenants(make_tenant, make_merchant, make_queue):
    tenant_1 = await make_tenant("burger", id="tenant-1")
    tenant_2 = await make_tenant("pizza", id="tenant-2")
    burger = await make_merchant("owner@burger.test", tenant_1.id, max_queues=3)
    pizza = await make_merchant("owner@pizza.test", tenant_2.id)
    return {
        "tenant_1": tenant_1,
        "tenant_2": tenant_2,
        "burger": burger,
        "pizza": pizza,
        "burger_queue": await make_queue(burger.id, "Burger line"),
        "pizza_queue": await make_queue(pizza.id, "Pizza line"),
    }


@pytest.mark.asyncio
async def test_anonymous_request_with_tenant_header(client: AsyncClient, two_tenants):
    resp = await client.get("/v1/tenants/current", headers={"X-Tenant-ID": "tenant-1"})

    assert resp.status_code == 200
    assert resp.json()["id"] == "tenant-1"
    assert resp.json()["slug"] == "burger"


@pytest.mark.asyncio
async def test_merchant_cannot_read_other_tenants_queue(
    client: AsyncClient, two_tenants, merchant_headers
):
    headers = merchant_headers(two_tenants["burger"], "tenant-1")

    resp = await client.get(f"/v1/queues/{two_tenants['pizza_queue'].id}", headers=headers)

    assert resp.status_code == 404
    assert resp.json() == {"detail": "Queue not found or access denied"}

    own = await client.get(f"/v1/queues/{two_tenants['burger_queue'].id}", headers=headers)
    assert own.status_code == 200


@pytest.mark.asyncio
async def test_tenant_user_with_membership(
    client: AsyncClient, two_tenants, make_tenant_user, user_headers, security_events
):
    user = await make_tenant_user("manager@burger.test", "tenant-1", role=TenantUserRole.ADMIN)

    resp = await client.get("/v1/queues", headers=user_headers(user, "tenant-1"))

    assert resp.status_code == 200
    assert [q["name"] for q in resp.json()] == ["Burger line"]
    assert "VALID_TENANT_ACCESS" in security_events("INFO")


@pytest.mark.asyncio
async def test_merchant_queue_lifecycle(client: AsyncClient, two_tenants, merchant_headers):
    headers = merchant_headers(two_tenants["burger"], "tenant-1")

    resp = await client.post("/v1/queues", json={"name": "Drive-thru", "average_service_time": 4}, headers=headers)
    assert resp.status_code == 201
    queue_id = resp.json()["id"]

    for name in ("Ann", "Bob"):
        resp = await client.post(f"/v1/queues/{queue_id}/entries", json={"customer_name": name}, headers=headers)
        assert resp.status_code == 201

    resp = await client.get(f"/v1/queues/{queue_id}/entries", headers=headers)
    assert [e["customer_name"] for e in resp.json()] == ["Ann", "Bob"]

    resp = await client.post(f"/v1/queues/{queue_id}/call-next", headers=headers)
    assert resp.status_code == 200
    called = resp.json()
    assert called["customer_name"] == "Ann"
    assert called["status"] == "called"

    resp = await client.delete(
        f"/v1/queues/{queue_id}/entries/{called['id']}", params={"status": "waiting"}, headers=headers
    )
    assert resp.status_code == 422

    resp = await client.delete(
        f"/v1/queues/{queue_id}/entries/{called['id']}", params={"status": "no_show"}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "no_show"

    resp = await client.get(f"/v1/queues/{queue_id}/stats", headers=headers)
    assert resp.json()["waiting_count"] == 1

    resp = await client.delete(f"/v1/queues/{queue_id}", headers=headers)
    assert resp.status_code == 204
    resp = await client.get(f"/v1/queues/{queue_id}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_call_next_on_empty_queue(client: AsyncClient, two_tenants, merchant_headers):
    headers = merchant_headers(two_tenants["burger"], "tenant-1")

    resp = await client.post(f"/v1/queues/{two_tenants['burger_queue'].id}/call-next", headers=headers)

    assert resp.status_code == 404
    assert resp.json()["detail"] == "No customers waiting"


@pytest.mark.asyncio
async def test_merchant_limited_to_own_queues_within_tenant(
    client: AsyncClient, two_tenants, make_merchant, make_queue, merchant_headers
):
    neighbour = await make_merchant("owner@fries.test", "tenant-1")
    fries_queue = await make_queue(neighbour.id, "Fries line")
    headers = merchant_headers(two_tenants["burger"], "tenant-1")

    listed = await client.get("/v1/queues", headers=headers)
    assert [q["name"] for q in listed.json()] == ["Burger line"]

    resp = await client.post(
        f"/v1/queues/{fries_queue.id}/entries", json={"customer_name": "Eve"}, headers=headers
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_queue_limit_conflict(client: AsyncClient, two_tenants, merchant_headers):
    headers = merchant_headers(two_tenants["pizza"], "tenant-2")

    resp = await client.post("/v1/queues", json={"name": "Second"}, headers=headers)

    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_webchat_customer_flow(client: AsyncClient, two_tenants):
    headers = {"X-Tenant-ID": "tenant-1"}
    queue_id = two_tenants["burger_queue"].id

    resp = await client.post(
        "/v1/webchat/sessions",
        json={"session_id": "chat-abc-123", "merchant_id": two_tenants["burger"].id},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["in_queue"] is False

    resp = await client.post(
        "/v1/webchat/sessions/chat-abc-123/join",
        json={"queue_id": queue_id, "customer_name": "Ann"},
        headers=headers,
    )
    assert resp.status_code == 201
    assert resp.json()["platform"] == "webchat"

    resp = await client.post(
        "/v1/webchat/sessions/chat-abc-123/join",
        json={"queue_id": queue_id, "customer_name": "Ann"},
        headers=headers,
    )
    assert resp.status_code == 409

    resp = await client.get("/v1/webchat/sessions/chat-abc-123/status", headers=headers)
    status = resp.json()
    assert status["in_queue"] is True
    assert status["queue_number"] == "W001"
    assert status["position"] == 1

    resp = await client.post("/v1/webchat/sessions/chat-abc-123/cancel", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_webchat_session_invisible_to_other_tenant(client: AsyncClient, two_tenants):
    await client.post(
        "/v1/webchat/sessions",
        json={"session_id": "chat-abc-123", "merchant_id": two_tenants["burger"].id},
        headers={"X-Tenant-ID": "tenant-1"},
    )

    resp = await client.get(
        "/v1/webchat/sessions/chat-abc-123/status", headers={"X-Tenant-ID": "tenant-2"}
    )
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Chat session not found or access denied"}

    resp = await client.post(
        "/v1/webchat/sessions/chat-abc-123/join",
        json={"queue_id": two_tenants["pizza_queue"].id, "customer_name": "Eve"},
        headers={"X-Tenant-ID": "tenant-2"},
    )
    assert resp.status_code == 404
