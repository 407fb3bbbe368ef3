"""Fixtures for admin API tests: a started in-memory container and an AsyncClient."""

import pytest
from httpx import ASGITransport, AsyncClient

from billing_pipeline.api.main import create_app
from billing_pipeline.config.settings import AppSettings
from billing_pipeline.core.container import Container


@pytest.fixture
async def container(database):
    settings = AppSettings(
        database_url="sqlite+aiosqlite://",
        channel_backend="memory",
        environment="test",
        receive_wait_seconds=0,
    )
    c = await Container(settings, database=database).start()
    yield c
    await c.close()


@pytest.fixture
async def async_client(container):
    """Container injected directly, so the lifespan does not build its own."""
    transport = ASGITransport(app=create_app(container))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def operator_headers():
    return {"X-Operator-ID": "ops-alice"}
