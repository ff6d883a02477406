"""Integration tests for portal_service endpoints."""

import pytest
from jose import jwt
from libs.auth.dependencies import get_current_user
from libs.common.config import get_settings
from tests.factories import (
    CRMCampaignEnrollmentFactory,
    CRMClientFactory,
    CRMMembershipFactory,
    ProfileFactory,
    SavedViewFactory,
)

# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(portal_client):
    response = await portal_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "portal"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_my_portal(portal_client, gateway, session, auth_headers):
    gateway.seed("profiles", ProfileFactory.create(session.user_id, full_name="Avery"))
    client = CRMClientFactory.create(user_id=session.user_id)
    gateway.seed("crm_clients", client)
    gateway.seed("crm_memberships", CRMMembershipFactory.create(client["id"]))

    response = await portal_client.get("/portal/me", headers=auth_headers)

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["user_id"] == session.user_id
    assert data["role"] == "client"
    assert data["is_staff"] is False
    assert data["view"]["profile"]["full_name"] == "Avery"
    assert data["view"]["membership"]["tier"] == "premium"
    assert data["view"]["loading"] is False
    assert data["view"]["assigned_coaches"] == []
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_my_portal_with_real_token(portal_client, session):
    from services.portal_service.app.main import app

    app.dependency_overrides.pop(get_current_user)
    token = jwt.encode(
        {"sub": session.user_id, "email": session.email, "aud": "authenticated"},
        "test-jwt-secret",
        algorithm="HS256",
    )

    response = await portal_client.get(
        "/portal/me", headers={"Authorization": f"Bearer {token}"}
    )

    assert response.status_code == 200, response.text
    assert response.json()["user_id"] == session.user_id


@pytest.mark.asyncio
@pytest.mark.integration
async def test_invalid_token_rejected(portal_client):
    from services.portal_service.app.main import app

    app.dependency_overrides.pop(get_current_user)

    response = await portal_client.get(
        "/portal/me", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401


# ---------------------------------------------------------------------------
# CRM
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_crm_requires_staff(portal_client, auth_headers):
    response = await portal_client.get("/crm/clients", headers=auth_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_staff_manage_clients(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "admin"
    gateway.seed("crm_clients", CRMClientFactory.create(full_name="Existing"))

    listed = await portal_client.get("/crm/clients", headers=auth_headers)
    assert listed.status_code == 200
    assert [c["full_name"] for c in listed.json()] == ["Existing"]

    created = await portal_client.post(
        "/crm/clients",
        json={"email": "new@vitalityx.health", "full_name": "New Lead"},
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    client_id = created.json()["id"]

    patched = await portal_client.patch(
        f"/crm/clients/{client_id}",
        json={"marketing_status": "customer"},
        headers=auth_headers,
    )
    assert patched.status_code == 204
    stored = {c["id"]: c for c in gateway.rows("crm_clients")}
    assert stored[client_id]["marketing_status"] == "customer"

    deleted = await portal_client.delete(f"/crm/clients/{client_id}", headers=auth_headers)
    assert deleted.status_code == 204
    assert client_id not in {c["id"] for c in gateway.rows("crm_clients")}

    actions = [row["action"] for row in gateway.rows("crm_activity_log")]
    assert actions == ["view_clients", "create_client", "update_client", "delete_client"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_empty_patch_rejected(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "coach"

    response = await portal_client.patch(
        "/crm/clients/some-id", json={}, headers=auth_headers
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_client_list_failure_returns_502(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "admin"
    gateway.fail("read", "crm_clients")

    response = await portal_client.get("/crm/clients", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to load clients"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_client_failure_uses_error_handler(
    portal_client, gateway, session, auth_headers
):
    gateway.roles[session.user_id] = "admin"
    gateway.fail("insert", "crm_clients", message="duplicate key value")

    response = await portal_client.post(
        "/crm/clients",
        json={"email": "dup@vitalityx.health", "full_name": "Dup"},
        headers=auth_headers,
    )

    assert response.status_code == 502
    assert response.json()["code"] == "GatewayError"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_staff_manage_memberships_and_purchases(
    portal_client, gateway, session, auth_headers
):
    gateway.roles[session.user_id] = "health_architect"
    client = CRMClientFactory.create()
    gateway.seed("crm_clients", client)

    created = await portal_client.post(
        "/crm/memberships",
        json={"client_id": client["id"], "tier": "elite", "start_date": "2025-01-01"},
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    membership_id = created.json()["id"]

    paused = await portal_client.patch(
        f"/crm/memberships/{membership_id}",
        json={"status": "paused"},
        headers=auth_headers,
    )
    assert paused.status_code == 204

    memberships = await portal_client.get(
        f"/crm/clients/{client['id']}/memberships", headers=auth_headers
    )
    assert [m["status"] for m in memberships.json()] == ["paused"]

    purchase = await portal_client.post(
        "/crm/purchases",
        json={
            "client_id": client["id"],
            "purchase_type": "service",
            "product_name": "Sleep coaching",
            "amount": "300.00",
        },
        headers=auth_headers,
    )
    assert purchase.status_code == 201, purchase.text

    purchases = await portal_client.get(
        f"/crm/clients/{client['id']}/purchases", headers=auth_headers
    )
    assert [p["product_name"] for p in purchases.json()] == ["Sleep coaching"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_staff_enroll_clients_in_campaign(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "admin"
    gateway.seed(
        "crm_campaign_enrollments",
        CRMCampaignEnrollmentFactory.create("camp-2", "client-other"),
    )

    enrolled = await portal_client.post(
        "/crm/campaigns/camp-1/enrollments",
        json={"client_id": "client-1"},
        headers=auth_headers,
    )
    assert enrolled.status_code == 201, enrolled.text
    assert enrolled.json()["campaign_id"] == "camp-1"

    listed = await portal_client.get("/crm/campaigns/camp-1/enrollments", headers=auth_headers)
    assert listed.status_code == 200
    assert [e["client_id"] for e in listed.json()] == ["client-1"]

    (update_log, view_log) = gateway.rows("crm_activity_log")
    assert update_log["action"] == "update_campaign"
    assert update_log["details"] == {"enrolled_client_id": "client-1"}
    assert view_log["action"] == "view_campaigns"
    assert view_log["resource_id"] == "camp-1"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_enrollment_failure_returns_502(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "coach"
    gateway.fail("read", "crm_campaign_enrollments")

    response = await portal_client.get("/crm/campaigns/camp-1/enrollments", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to load enrollments"


# ---------------------------------------------------------------------------
# Saved views
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_staff_manage_saved_views(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "admin"
    existing = SavedViewFactory.create(session.user_id, name="Last 30 days", is_default=True)
    gateway.seed("crm_saved_views", existing)

    created = await portal_client.post(
        "/crm/views",
        json={
            "name": "Q1",
            "config": {
                "dateRange": {"from": "2025-01-01T00:00:00Z", "to": "2025-03-31T00:00:00Z"},
                "comparisonEnabled": False,
            },
        },
        headers=auth_headers,
    )
    assert created.status_code == 201, created.text
    view_id = created.json()["id"]
    assert set(created.json()["config"]["dateRange"]) == {"from", "to"}

    made_default = await portal_client.patch(
        f"/crm/views/{view_id}", json={"is_default": True}, headers=auth_headers
    )
    assert made_default.status_code == 204

    listed = await portal_client.get("/crm/views", headers=auth_headers)
    assert listed.status_code == 200
    defaults = {v["name"]: v["is_default"] for v in listed.json()}
    assert defaults == {"Q1": True, "Last 30 days": False}

    empty = await portal_client.patch(f"/crm/views/{view_id}", json={}, headers=auth_headers)
    assert empty.status_code == 400

    deleted = await portal_client.delete(f"/crm/views/{view_id}", headers=auth_headers)
    assert deleted.status_code == 204
    assert [row["id"] for row in gateway.rows("crm_saved_views")] == [existing["id"]]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_saved_view_failure_returns_502(portal_client, gateway, session, auth_headers):
    gateway.roles[session.user_id] = "admin"
    gateway.fail("delete", "crm_saved_views")

    response = await portal_client.delete("/crm/views/view-1", headers=auth_headers)

    assert response.status_code == 502
    assert response.json()["detail"] == "Failed to delete view"


# ---------------------------------------------------------------------------
# Lead capture webhook
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lead_webhook_creates_then_deduplicates(portal_client, gateway):
    payload = {"data": {"email": "Lead@Example.com", "name": "Lee Lead"}}

    created = await portal_client.post("/crm/leads/webhook", json=payload)
    assert created.status_code == 201, created.text
    body = created.json()
    assert body["success"] is True
    assert body["duplicate"] is False

    repeated = await portal_client.post("/crm/leads/webhook", json=payload)
    assert repeated.status_code == 200
    assert repeated.json()["duplicate"] is True
    assert repeated.json()["client_id"] == body["client_id"]

    (client,) = gateway.rows("crm_clients")
    assert client["email"] == "lead@example.com"
    assert client["marketing_status"] == "lead"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lead_webhook_requires_email(portal_client, gateway):
    response = await portal_client.post("/crm/leads/webhook", json={"name": "Anonymous"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Email is required"
    assert gateway.rows("crm_clients") == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lead_webhook_checks_shared_secret(portal_client, gateway, monkeypatch):
    monkeypatch.setattr(get_settings(), "WEBHOOK_SECRET", "s3cret")
    payload = {"email": "gated@example.com"}

    rejected = await portal_client.post(
        "/crm/leads/webhook", json=payload, headers={"X-Webhook-Secret": "wrong"}
    )
    assert rejected.status_code == 401
    assert gateway.rows("crm_clients") == []

    accepted = await portal_client.post(
        "/crm/leads/webhook", json=payload, headers={"X-Webhook-Secret": "s3cret"}
    )
    assert accepted.status_code == 201, accepted.text


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lead_webhook_store_failure_returns_500(portal_client, gateway):
    gateway.fail("insert", "crm_clients")

    response = await portal_client.post("/crm/leads/webhook", json={"email": "x@example.com"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to create lead"
