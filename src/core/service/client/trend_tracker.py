"""
Client-side ranking trends

Loads yesterday's snapshot positions from the query API once per level and
compares live positions against them. Falls back to the local position
cache when the API has no history (or is cooling down).
"""

import time
from typing import Callable, Dict, Optional, Tuple

from src.core.exceptions.handler import ServiceError
from src.core.service.client.block_numbering import BlockNumbering
from src.core.service.client.position_cache import LocalPositionCache
from src.core.service.client.query_client import QueryClient
from src.core.service.indexer.models import RankingSnapshot
from src.core.service.ranking.snapshots import day_of
from src.core.service.ranking.trends import (
    TrendData,
    TrendPolicy,
    compute_trend,
    has_tied_counts,
    positions_from_snapshots,
)
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class RankingTrendTracker:
    """Snapshot-based trends with local cache fallback"""

    def __init__(
        self,
        client: QueryClient,
        position_cache: LocalPositionCache,
        policy: Optional[TrendPolicy] = None,
        clock: Callable[[], float] = time.time,
        numbering: Optional[BlockNumbering] = None
    ):
        self.client = client
        self.position_cache = position_cache
        self.policy = TrendPolicy.parse(policy or settings.TREND_UNCHANGED_POLICY)
        self._clock = clock
        self.numbering = numbering or BlockNumbering(client)
        self._previous: Dict[int, Tuple[int, Dict[str, int]]] = {}

    def yesterday(self) -> int:
        return day_of(int(self._clock())) - 1

    def has_historical_data(self, level_id: int) -> bool:
        loaded = self._previous.get(level_id)
        return loaded is not None and loaded[0] == self.yesterday() and bool(loaded[1])

    async def load_historical_positions(self, level_id: int) -> bool:
        """
        Fetch yesterday's positions for a level (once until refetch)

        Returns:
            True when historical positions are available
        """
        day = self.yesterday()
        loaded = self._previous.get(level_id)
        if loaded is not None and loaded[0] == day:
            return self.has_historical_data(level_id)

        if self.client.throttle.in_cooldown():
            logger.info("Query endpoint cooling down, trends fetch skipped", extra={"level_id": level_id})
            return False

        try:
            items = await self.client.get_snapshots(level_id, day)
        except ServiceError as e:
            logger.warning(
                "Failed to load historical positions",
                extra={"level_id": level_id, "error_code": e.code, "error": e.message}
            )
            return False

        snapshots = [RankingSnapshot.model_validate(item) for item in items]
        creation_order = None
        if has_tied_counts(snapshots):
            # Equal counts rank by creation order, as in the live ranking
            creation_order = await self.numbering.get_block_numbers((s.block, level_id) for s in snapshots)
        self._previous[level_id] = (day, positions_from_snapshots(snapshots, creation_order))
        logger.info(
            "Loaded historical positions",
            extra={"level_id": level_id, "day": day, "positions": len(self._previous[level_id][1])}
        )
        return self.has_historical_data(level_id)

    async def get_position_trend(self, level_id: int, block_id: str, current_position: int) -> TrendData:
        if self.has_historical_data(level_id):
            previous = self._previous[level_id][1].get(block_id.lower())
            return compute_trend(current_position, previous, policy=self.policy)
        return await self.position_cache.get_position_trend(level_id, block_id, current_position)

    def refetch(self, level_id: Optional[int] = None) -> None:
        if level_id is None:
            self._previous.clear()
        else:
            self._previous.pop(level_id, None)
