"""
Shared fixtures for the API test suite.

The app runs on the in-memory store; requests go through httpx's
ASGITransport, the WebSocket through starlette's TestClient.
"""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport

from native_secrets.api.app import create_app
from native_secrets.config import Config


@pytest.fixture
def api_config():
    return Config(store="memory", max_retries=3)


@pytest.fixture
def app(api_config, store, notifier):
    return create_app(api_config, store=store, notifier=notifier)


@pytest.fixture
def api_engine(app):
    """The engine the app's routes call."""
    return app.state.engine


@pytest_asyncio.fixture
async def test_client(app):
    """Async HTTP client wrapping the FastAPI app via ASGITransport."""
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
