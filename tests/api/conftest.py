"""API-specific test fixtures."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import AsyncClient, ASGITransport

from src.api.app import app
from src.api.deps import (
    get_app_config,
    get_db,
    get_kie_client,
    get_materializer,
    get_storage,
)
from src.api.rate_limit import limiter
from src.core.config import AppConfig


@pytest.fixture
def auth_headers(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def app_config(kie_config, stripe_config, billing_config, storage_config):
    return AppConfig(
        kie=kie_config,
        stripe=stripe_config,
        billing=billing_config,
        storage=storage_config,
    )


@pytest.fixture
def fakes(mock_session, app_config):
    """Provider stand-ins wired into the app through dependency overrides."""
    kie_client = MagicMock()
    kie_client.config = app_config.kie
    storage = MagicMock()
    storage.upload_bytes = AsyncMock(side_effect=lambda data, key, content_type: f"https://cdn.example.com/{key}")
    materializer = MagicMock()
    return SimpleNamespace(
        session=mock_session,
        config=app_config,
        kie_client=kie_client,
        storage=storage,
        materializer=materializer,
    )


@pytest.fixture
async def async_client(fakes):
    """Async test client for FastAPI with DB and providers overridden."""

    async def _override_db():
        return fakes.session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_app_config] = lambda: fakes.config
    app.dependency_overrides[get_kie_client] = lambda: fakes.kie_client
    app.dependency_overrides[get_storage] = lambda: fakes.storage
    app.dependency_overrides[get_materializer] = lambda: fakes.materializer
    limiter.enabled = False

    # Patch database initialization to avoid real DB connections
    with (
        patch("src.api.app.init_db", new_callable=AsyncMock),
        patch("src.api.app.close_db", new_callable=AsyncMock),
    ):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://localhost") as client:
            yield client

    limiter.enabled = True
    app.dependency_overrides.clear()
