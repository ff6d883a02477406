import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Settings are cached and the rate limiter is built at import time, so the
# test environment has to be in place before any service module is imported.
os.environ["ENVIRONMENT"] = "local"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_portal"
os.environ["PUBLIC_SITE_URL"] = "https://shop.test/"

from libs.common.config import get_settings  # noqa: E402

get_settings.cache_clear()

from libs.auth.dependencies import get_current_user  # noqa: E402
from libs.auth.models import AuthUser  # noqa: E402
from libs.gateway.dependencies import get_gateway, get_service_gateway  # noqa: E402
from tests.factories import SessionFactory  # noqa: E402
from tests.fakes import InMemoryGateway  # noqa: E402


@pytest.fixture
def session():
    """A signed-in Supabase session for the default test user."""
    return SessionFactory.create(email="client@vitalityx.health")


@pytest.fixture
def gateway(session) -> InMemoryGateway:
    """In-memory gateway already holding ``session``."""
    return InMemoryGateway(session=session)


@pytest.fixture
def current_user(session) -> AuthUser:
    return AuthUser(
        user_id=session.user_id, email=session.email, access_token=session.access_token
    )


def _override_common(app, gateway: InMemoryGateway, current_user: AuthUser) -> None:
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_service_gateway] = lambda: gateway
    app.dependency_overrides[get_current_user] = lambda: current_user


@pytest_asyncio.fixture
async def portal_client(gateway, current_user) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient for the portal app with gateway and auth overridden.
    """
    from services.portal_service.app.main import app

    _override_common(app, gateway, current_user)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def store_client(
    gateway, current_user, tmp_path
) -> AsyncGenerator[AsyncClient, None]:
    from services.store_service.app.main import app
    from services.store_service.dependencies import get_cart_storage
    from services.store_service.storage import CartStorage

    _override_common(app, gateway, current_user)
    app.dependency_overrides[get_cart_storage] = lambda: CartStorage(
        key=f"cart-{current_user.user_id}", directory=tmp_path
    )
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def payments_client(gateway, current_user) -> AsyncGenerator[AsyncClient, None]:
    from services.payments_service.app.main import app

    _override_common(app, gateway, current_user)
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(session) -> dict:
    """
    Bearer header for the default session. Auth itself is resolved through
    dependency overrides, so the token only has to be present.
    """
    return {"Authorization": f"Bearer {session.access_token}"}
