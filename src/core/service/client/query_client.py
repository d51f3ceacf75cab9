"""
Client for the indexer query API

Every request goes through the shared QueryThrottle: checked before sending,
updated after every outcome. HTTP 429 surfaces as RateLimitedError, transport
failures as TransientNetworkError and error payloads as QueryError.
"""

from typing import Any, Dict, List, Optional

import httpx

from src.core.exceptions.indexer import QueryError, RateLimitedError, TransientNetworkError
from src.core.http_client import HTTPClientConfig
from src.core.service.client.throttle import QueryThrottle
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


def _retry_after(response: httpx.Response) -> float:
    try:
        return float(response.headers.get("Retry-After", 0))
    except ValueError:
        return 0.0


class QueryClient:
    """HTTP client for entity queries, rankings and nested views"""

    def __init__(
        self,
        throttle: QueryThrottle,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        metrics=None
    ):
        self.throttle = throttle
        self.base_url = (base_url or settings.QUERY_API_URL).rstrip("/")
        self.metrics = metrics
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            **HTTPClientConfig.create_client_config("query")
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "QueryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_query(outcome)

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Send one request through the throttle

        Raises:
            RateLimitedError: cooldown active or the endpoint answered 429
            TransientNetworkError: timeout or connection failure
            QueryError: error payload, non-JSON body or missing data
        """
        self.throttle.check()

        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as e:
            self._record("failed")
            raise TransientNetworkError(f"Query timed out: {path}", details={"path": path}) from e
        except httpx.TransportError as e:
            self._record("failed")
            raise TransientNetworkError(f"Query transport error: {e}", details={"path": path}) from e

        if response.status_code == 429:
            cooldown = self.throttle.record_rate_limit()
            self._record("rate_limited")
            raise RateLimitedError(
                message="Query endpoint rate limited",
                retry_after=max(cooldown, _retry_after(response)),
                details={"path": path}
            )

        try:
            payload = response.json()
        except ValueError as e:
            self._record("failed")
            raise QueryError(
                f"Query returned non-JSON response ({response.status_code})",
                details={"path": path, "status_code": response.status_code}
            ) from e

        if response.status_code >= 400 or (isinstance(payload, dict) and (payload.get("error") or payload.get("errors"))):
            self._record("failed")
            error = (payload.get("error") or payload.get("errors")) if isinstance(payload, dict) else None
            if isinstance(error, list) and error:
                error = error[0]
            message = error.get("message") if isinstance(error, dict) else str(error or payload)
            raise QueryError(
                f"Query error: {message}",
                status_code=response.status_code if response.status_code >= 400 else 502,
                details={"path": path, "status_code": response.status_code}
            )

        if payload is None:
            self._record("failed")
            raise QueryError("Query returned no data", details={"path": path})

        self.throttle.record_success()
        self._record("ok")
        return payload

    # Pre-built queries

    async def query_entities(
        self,
        entity: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        order_direction: str = "asc",
        first: Optional[int] = None,
        skip: int = 0
    ) -> List[Dict[str, Any]]:
        body = {
            "entity": entity,
            "where": where or {},
            "order_by": order_by,
            "order_direction": order_direction,
            "skip": skip,
        }
        if first is not None:
            body["first"] = first
        payload = await self.request("POST", "/api/v1/query", json=body)
        if "items" not in payload:
            raise QueryError("Query returned no data", details={"entity": entity})
        return payload["items"]

    async def get_ranking(
        self,
        level_id: int,
        status: Optional[str] = "active",
        first: int = 100,
        skip: int = 0
    ) -> Dict[str, Any]:
        params = {"first": first, "skip": skip}
        if status:
            params["status"] = status
        return await self.request("GET", f"/api/v1/rankings/{level_id}", params=params)

    async def get_user_blocks(self, user_id: str) -> Optional[Dict[str, Any]]:
        """User with owned blocks and memberships, None when unknown"""
        try:
            return await self.request("GET", f"/api/v1/users/{user_id.lower()}")
        except QueryError as e:
            if e.details.get("status_code") == 404:
                return None
            raise

    async def get_user_by_referral_code(self, code: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.request("GET", f"/api/v1/users/by-referral-code/{code.lower()}")
        except QueryError as e:
            if e.details.get("status_code") == 404:
                return None
            raise

    async def get_block_details(self, block_id: str) -> Optional[Dict[str, Any]]:
        """Block with owner and members ordered by position, None when unknown"""
        try:
            return await self.request("GET", f"/api/v1/blocks/{block_id.lower()}")
        except QueryError as e:
            if e.details.get("status_code") == 404:
                return None
            raise

    async def get_user_transactions(self, user_id: str, first: int = 20, skip: int = 0) -> List[Dict[str, Any]]:
        return await self.query_entities(
            "transaction",
            where={"user": user_id.lower()},
            order_by="timestamp",
            order_direction="desc",
            first=first,
            skip=skip,
        )

    async def get_snapshots(self, level_id: int, day: int) -> List[Dict[str, Any]]:
        return await self.query_entities(
            "ranking_snapshot",
            where={"level_id": level_id, "day": day},
            order_by="invited_count",
            order_direction="desc",
            first=settings.QUERY_MAX_PAGE_SIZE,
        )

    async def get_daily_positions(self, level_id: int, day: int) -> List[Dict[str, Any]]:
        return await self.query_entities(
            "daily_ranking_position",
            where={"level_id": level_id, "day": day},
            order_by="position",
            first=settings.QUERY_MAX_PAGE_SIZE,
        )

    async def get_blocks_at_level(self, level_id: int, first: int = 1000) -> List[Dict[str, Any]]:
        """Blocks of a level in creation order"""
        return await self.query_entities(
            "block",
            where={"level_id": level_id},
            order_by="created_at",
            order_direction="asc",
            first=first,
        )
