"""
Fixtures for API contract tests: the app wired to the per-test database
"""

import httpx
import pytest

from src.app import create_app
from src.infra.database import get_async_session
from tests.contract.api.seed_data import seed


@pytest.fixture
def app(session):
    app = create_app()

    async def override_session():
        yield session

    app.dependency_overrides[get_async_session] = override_session
    return app


@pytest.fixture
async def api_client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def seeded(store):
    await seed(store)
