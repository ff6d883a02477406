"""Unit tests for the aggregated profile loader.

Tests drive a ``PortalContainer`` over the in-memory gateway and hold reads
open with ``gateway.block()`` to interleave fetch cycles.
"""

import asyncio

import pytest
from libs.auth.models import AuthEvent
from services.portal_service.container import PortalContainer
from tests.factories import (
    CRMClientFactory,
    CRMDocumentFactory,
    CRMMembershipFactory,
    CRMPurchaseFactory,
    IntakeFormFactory,
    OrderFactory,
    ProfileFactory,
    SessionFactory,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _seed_linked_user(gateway, user_id, full_name="Jordan Rivers"):
    """Seed a user with a linked CRM client and one of everything."""
    client = CRMClientFactory.create(user_id=user_id)
    gateway.seed("profiles", ProfileFactory.create(user_id, full_name=full_name))
    gateway.seed("crm_clients", client)
    gateway.seed("crm_memberships", CRMMembershipFactory.create(client["id"]))
    gateway.seed(
        "crm_memberships",
        CRMMembershipFactory.create(client["id"], status="cancelled", tier="elite"),
    )
    gateway.seed(
        "crm_purchases",
        *[CRMPurchaseFactory.create(client["id"]) for _ in range(12)],
    )
    gateway.seed("crm_documents", CRMDocumentFactory.create(client["id"]))
    gateway.seed(
        "crm_documents",
        CRMDocumentFactory.create(client["id"], shared_with_client=False),
    )
    gateway.seed("coach_intake_forms", IntakeFormFactory.create(user_id))
    gateway.seed(
        "coach_intake_forms",
        IntakeFormFactory.create(user_id, specialty="sleep", status="pending"),
    )
    paid = OrderFactory.create(user_id)
    gateway.seed("orders", paid)
    gateway.seed("orders", OrderFactory.create(user_id, status="Pending"))
    gateway.seed(
        "order_items",
        {"id": "line-1", "order_id": paid["id"], "quantity": 1, "unit_price": 49.0},
    )
    return client


async def _started(gateway, **kwargs) -> PortalContainer:
    portal = PortalContainer(gateway, **kwargs)
    await portal.start()
    return portal


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_view_aggregates_everything_for_linked_user(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    portal = await _started(gateway)

    await portal.user_context.wait_idle()
    view = portal.user_context.view

    assert view.loading is False
    assert view.profile.full_name == "Jordan Rivers"
    assert view.membership.status.value == "active"
    assert len(view.purchases) == 10
    assert len(view.documents) == 1
    assert [o.status for o in view.orders] == ["Paid"]
    assert view.orders[0].order_items[0].quantity == 1
    assert len(view.submissions) == 2
    assert [c.specialty for c in view.assigned_coaches] == ["nutrition"]
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_unlinked_user_skips_client_queries(gateway, session):
    gateway.seed("profiles", ProfileFactory.create(session.user_id))
    portal = await _started(gateway)

    await portal.user_context.wait_idle()
    view = portal.user_context.view

    assert view.profile is not None
    assert view.membership is None
    assert view.purchases == []
    assert view.documents == []
    assert "crm_memberships" not in gateway.reads
    assert "crm_purchases" not in gateway.reads
    assert "crm_documents" not in gateway.reads
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_no_session_means_empty_view():
    from tests.fakes import InMemoryGateway

    gateway = InMemoryGateway()
    portal = await _started(gateway)

    await portal.user_context.wait_idle()
    view = portal.user_context.view

    assert view.loading is False
    assert view.profile is None
    assert gateway.reads == []
    await portal.aclose()


# ---------------------------------------------------------------------------
# Fetch cycles
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_superseded_cycle_never_commits(gateway, session):
    other = SessionFactory.create()
    _seed_linked_user(gateway, session.user_id, full_name="First User")
    _seed_linked_user(gateway, other.user_id, full_name="Second User")
    gateway.block("profiles", session.user_id)

    portal = await _started(gateway)
    await asyncio.sleep(0.01)
    assert portal.user_context.loading is True

    gateway.emit_auth(AuthEvent.SIGNED_IN, other)
    await portal.user_context.wait_idle()
    gateway.release_all()
    await asyncio.sleep(0.01)

    view = portal.user_context.view
    assert view.profile.full_name == "Second User"
    assert view.loading is False
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_sign_out_clears_view(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    portal = await _started(gateway)
    await portal.user_context.wait_idle()
    assert portal.user_context.view.profile is not None

    await portal.auth.sign_out()
    await portal.user_context.wait_idle()
    view = portal.user_context.view

    assert view.profile is None
    assert view.membership is None
    assert view.orders == []
    assert view.loading is False
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_sign_out_during_fetch_discards_results(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    gateway.block("profiles")
    portal = await _started(gateway)
    await asyncio.sleep(0.01)

    gateway.emit_auth(AuthEvent.SIGNED_OUT, None)
    gateway.release_all()
    await portal.user_context.wait_idle()

    assert portal.user_context.view.profile is None
    assert portal.user_context.loading is False
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_token_refresh_does_not_refetch(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    portal = await _started(gateway)
    await portal.user_context.wait_idle()
    reads_before = len(gateway.reads)

    gateway.emit_auth(
        AuthEvent.TOKEN_REFRESHED,
        session.model_copy(update={"access_token": "rotated"}),
    )
    await asyncio.sleep(0.01)
    await portal.user_context.wait_idle()

    assert len(gateway.reads) == reads_before
    assert portal.user_context.view.profile is not None
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_slow_fetch_times_out_and_clears_loading(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    gateway.block("orders")
    portal = await _started(gateway, fetch_timeout=0.05)

    await portal.user_context.wait_idle()
    view = portal.user_context.view

    assert view.loading is False
    assert view.profile is None
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_batch_aborts_sibling_reads(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    gateway.block("coach_intake_forms")
    gateway.fail("read", "orders")
    portal = await _started(gateway)

    await portal.user_context.wait_idle()
    await asyncio.sleep(0.01)

    assert gateway.cancelled_reads == ["coach_intake_forms"]
    assert portal.user_context.view.loading is False
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_query_failure_clears_loading_without_committing(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    gateway.fail("read", "orders")
    portal = await _started(gateway)

    await portal.user_context.wait_idle()
    view = portal.user_context.view

    assert view.loading is False
    assert view.profile is None
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_data_picks_up_new_rows(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    portal = await _started(gateway)
    await portal.user_context.wait_idle()
    assert len(portal.user_context.view.orders) == 1

    gateway.seed("orders", OrderFactory.create(session.user_id, status="Shipped"))
    await portal.user_context.refresh_data()

    assert len(portal.user_context.view.orders) == 2
    await portal.aclose()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_close_during_fetch_commits_nothing(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    gateway.block("profiles")
    portal = await _started(gateway)
    await asyncio.sleep(0.01)

    await portal.aclose()
    gateway.release_all()
    await asyncio.sleep(0.01)

    assert portal.user_context.view.profile is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_listeners_see_loading_then_loaded(gateway, session):
    _seed_linked_user(gateway, session.user_id)
    portal = PortalContainer(gateway)
    states = []
    portal.user_context.subscribe(lambda view: states.append(view.loading))

    await portal.start()
    await portal.user_context.wait_idle()

    assert states[0] is True
    assert states[-1] is False
    await portal.aclose()
