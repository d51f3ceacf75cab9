"""
Fixtures for the client stack: query API double, shared clock and throttle
"""

import httpx
import pytest

from src.core.service.client.query_client import QueryClient
from src.core.service.client.throttle import QueryThrottle
from tests.helpers import BASE_TIMESTAMP, DAY, FakeClock, FakeQueryApi


@pytest.fixture
def api():
    return FakeQueryApi()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    # "today" is the day after BASE_TIMESTAMP
    return FakeClock(BASE_TIMESTAMP + DAY)


@pytest.fixture
def throttle(clock):
    return QueryThrottle(base_cooldown=60, max_cooldown=300, clock=clock)


@pytest.fixture
async def query_client(api, throttle):
    http = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://query.test")
    client = QueryClient(throttle, http_client=http)
    yield client
    await http.aclose()
