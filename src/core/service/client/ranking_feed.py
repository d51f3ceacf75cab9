"""
Cached ranking reads for the presentation layer.

Responses are cached briefly; the chain event poller invalidates them once
new registry activity has had time to be indexed.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from src.core.service.client.block_numbering import BlockNumbering
from src.core.service.client.position_cache import LocalPositionCache
from src.core.service.client.query_client import QueryClient
from src.core.service.client.trend_tracker import RankingTrendTracker
from src.core.service.client.ttl_cache import TTLCache
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class RankingView(BaseModel):
    level_id: int
    entries: List[Dict[str, Any]]
    stale: bool = False


class RankingFeed:
    """Ranking responses with trends, numbering and cache invalidation"""

    def __init__(
        self,
        client: QueryClient,
        numbering: BlockNumbering,
        trends: RankingTrendTracker,
        position_cache: LocalPositionCache,
        cache: Optional[TTLCache] = None
    ):
        self.client = client
        self.numbering = numbering
        self.trends = trends
        self.position_cache = position_cache
        self.cache = cache or TTLCache(settings.RANKING_CACHE_TTL_SECONDS)

    async def get_ranking(self, level_id: int, status: Optional[str] = "active", first: int = 100) -> RankingView:
        """
        Ranking for a level, decorated client-side with number and trend.

        Raises the query error only when nothing was cached before.
        """
        key = (level_id, status, first)
        result = await self.cache.get_or_fetch(
            key, lambda: self.client.get_ranking(level_id, status=status, first=first)
        )
        entries = [dict(entry) for entry in result.value.get("entries", [])]

        await self.trends.load_historical_positions(level_id)
        block_ids = [entry["block"]["id"] for entry in entries]
        numbers = await self.numbering.get_block_numbers((block_id, level_id) for block_id in block_ids)

        for entry in entries:
            block_id = entry["block"]["id"]
            trend = await self.trends.get_position_trend(level_id, block_id, entry["position"])
            entry["trend"] = trend.trend.value
            entry["trend_diff"] = trend.diff
            entry["block_number"] = numbers.get(block_id.lower(), entry.get("block_number"))

        await self.position_cache.save_current_positions(level_id, block_ids)
        return RankingView(level_id=level_id, entries=entries, stale=result.stale)

    def invalidate(self) -> None:
        """Drop cached rankings and numbering (called after new chain activity)"""
        self.cache.invalidate()
        self.numbering.clear()
        logger.info("Ranking caches invalidated")
