"""
Integration tests for the query API client over a mocked transport
"""

import json

import httpx
import pytest

from src.api.utils.metrics import IndexerMetrics
from src.core.exceptions.indexer import QueryError, RateLimitedError, TransientNetworkError
from src.core.service.client.query_client import QueryClient
from src.core.service.client.throttle import QueryThrottle
from tests.helpers import FakeClock, address


class Endpoint:
    """Scripted responses for the mock transport"""

    def __init__(self):
        self.requests = []
        self.responses = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def endpoint():
    return Endpoint()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def metrics():
    return IndexerMetrics()


@pytest.fixture
async def client(endpoint, clock, metrics):
    http = httpx.AsyncClient(transport=httpx.MockTransport(endpoint), base_url="http://query.test")
    query_client = QueryClient(
        QueryThrottle(base_cooldown=60, max_cooldown=300, clock=clock),
        http_client=http,
        metrics=metrics,
    )
    yield query_client
    await http.aclose()


class TestQueryClientRequests:

    async def test_query_entities_sends_filters(self, client, endpoint, metrics):
        endpoint.queue(httpx.Response(200, json={"entity": "transaction", "count": 1, "items": [{"id": "0x1"}]}))

        items = await client.get_user_transactions(address(1).upper().replace("0X", "0x"), first=5)

        assert items == [{"id": "0x1"}]
        body = json.loads(endpoint.requests[0].content)
        assert endpoint.requests[0].url.path == "/api/v1/query"
        assert body["entity"] == "transaction"
        assert body["where"] == {"user": address(1)}
        assert (body["order_by"], body["order_direction"], body["first"]) == ("timestamp", "desc", 5)
        assert metrics.get_metrics_summary()["overall"]["queries_ok"] == 1

    async def test_ranking_request_params(self, client, endpoint):
        endpoint.queue(httpx.Response(200, json={"level_id": 2, "entries": []}))

        await client.get_ranking(2, status="completed", first=10)

        request = endpoint.requests[0]
        assert request.url.path == "/api/v1/rankings/2"
        assert request.url.params["status"] == "completed"
        assert request.url.params["first"] == "10"

    async def test_missing_block_returns_none(self, client, endpoint):
        endpoint.queue(httpx.Response(404, json={"detail": "Block not found"}))

        assert await client.get_block_details(address(7)) is None

    async def test_missing_items_is_query_error(self, client, endpoint):
        endpoint.queue(httpx.Response(200, json={"entity": "block"}))

        with pytest.raises(QueryError):
            await client.get_blocks_at_level(1)


class TestQueryClientErrors:

    async def test_rate_limit_starts_shared_cooldown(self, client, endpoint, metrics):
        endpoint.queue(httpx.Response(429, json={"error": "slow down"}))

        with pytest.raises(RateLimitedError) as exc_info:
            await client.get_ranking(1)
        assert exc_info.value.retry_after == 60

        # Next call is refused before reaching the endpoint
        with pytest.raises(RateLimitedError):
            await client.get_ranking(1)
        assert len(endpoint.requests) == 1
        assert metrics.get_metrics_summary()["overall"]["queries_rate_limited"] == 1

    async def test_retry_after_header_extends_cooldown_hint(self, client, endpoint):
        endpoint.queue(httpx.Response(429, headers={"Retry-After": "90"}, json={}))

        with pytest.raises(RateLimitedError) as exc_info:
            await client.get_ranking(1)
        assert exc_info.value.retry_after == 90

    async def test_success_after_cooldown_resets_throttle(self, client, endpoint, clock):
        endpoint.queue(
            httpx.Response(429, json={}),
            httpx.Response(200, json={"entries": []}),
        )
        with pytest.raises(RateLimitedError):
            await client.get_ranking(1)
        clock.advance(60)

        await client.get_ranking(1)

        assert client.throttle.consecutive_rate_limits == 0

    async def test_timeout_is_transient(self, client, endpoint, metrics):
        endpoint.queue(httpx.ReadTimeout("timed out"))

        with pytest.raises(TransientNetworkError):
            await client.get_ranking(1)
        assert client.throttle.in_cooldown() is False
        assert metrics.get_metrics_summary()["overall"]["queries_failed"] == 1

    async def test_connection_error_is_transient(self, client, endpoint):
        endpoint.queue(httpx.ConnectError("refused"))

        with pytest.raises(TransientNetworkError):
            await client.get_ranking(1)

    async def test_error_payload_is_query_error(self, client, endpoint):
        endpoint.queue(httpx.Response(200, json={"errors": [{"message": "Unknown field 'nickname'"}]}))

        with pytest.raises(QueryError) as exc_info:
            await client.query_entities("user", where={"nickname": "x"})
        assert "nickname" in exc_info.value.message
        assert exc_info.value.status_code == 502

    async def test_http_error_keeps_status(self, client, endpoint):
        endpoint.queue(httpx.Response(422, json={"error": {"message": "bad filter"}}))

        with pytest.raises(QueryError) as exc_info:
            await client.query_entities("user")
        assert exc_info.value.status_code == 422
        assert exc_info.value.details["status_code"] == 422

    async def test_non_json_body(self, client, endpoint):
        endpoint.queue(httpx.Response(502, text="<html>bad gateway</html>"))

        with pytest.raises(QueryError):
            await client.get_ranking(1)

    async def test_null_payload(self, client, endpoint):
        endpoint.queue(httpx.Response(200, json=None))

        with pytest.raises(QueryError):
            await client.get_ranking(1)
