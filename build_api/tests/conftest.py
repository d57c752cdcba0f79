"""Shared fixtures for build API tests.

The scenario builder is replaced with a ``MagicMock`` so the router tests
exercise request decoding and status mapping without touching a database.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from build_api.config import APISettings
from build_api.dependencies import get_builder, get_settings
from build_api.main import create_app
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from scenario_engine.config import DriverName

# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def api_settings() -> APISettings:
    return APISettings(_env_file=None)


@pytest.fixture
def mock_builder() -> MagicMock:
    """A builder whose remote builds succeed with a fixed database name."""
    builder = MagicMock()
    builder.settings.project_name = "acme"
    builder.settings.driver = DriverName.SQLITE
    handle = builder.build_for_remote.return_value
    handle.name = "test_app_abcdef_0123456789ab"
    handle.fingerprint.build_checksum = "b" * 64
    return builder


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture
def app(mock_builder: MagicMock, api_settings: APISettings) -> FastAPI:
    application = create_app()
    application.dependency_overrides[get_builder] = lambda: mock_builder
    application.dependency_overrides[get_settings] = lambda: api_settings
    return application


@pytest_asyncio.fixture()
async def client(app: FastAPI) -> AsyncClient:
    """Yield an async httpx client bound to the test app.

    Uses ASGITransport so requests go directly to the ASGI app without
    opening a real TCP socket.  The lifespan does not run, so no builder is
    created from the environment.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
