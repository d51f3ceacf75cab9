"""
Server-side ranking: live order per level decorated with numbering and trend
"""

import time
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from src.core.service.indexer.models import (
    Block,
    BlockStatus,
    DailyRankingPosition,
    EntityKind,
    RankingSnapshot,
)
from src.core.service.ranking.levels import get_level
from src.core.service.ranking.numbering import compute_block_numbers_locally
from src.core.service.ranking.snapshots import PAGE_SIZE, creation_order_key, day_of
from src.core.service.ranking.trends import (
    Trend,
    TrendPolicy,
    compute_trend,
    positions_from_snapshots,
)
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class RankedBlock(BaseModel):
    block: Block
    position: int
    block_number: Optional[int] = None
    member_count: int = 0
    trend: Trend
    trend_diff: int = 0


class LevelRanking(BaseModel):
    level_id: int
    level_name: str
    day: int
    compared_day: int
    policy: TrendPolicy
    has_historical_data: bool
    total: int
    entries: List[RankedBlock]


class RankingService:
    """Live ranking per level with trends against yesterday's snapshots"""

    def __init__(
        self,
        store,
        policy: Optional[TrendPolicy] = None,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.policy = TrendPolicy.parse(policy or settings.TREND_UNCHANGED_POLICY)
        self._clock = clock

    def today(self) -> int:
        return day_of(int(self._clock()))

    async def _all(self, kind: EntityKind, where: Dict, order_by: str, order_direction: str = "asc") -> List:
        items: List = []
        skip = 0
        while True:
            page = await self.store.query(
                kind, where=where, order_by=order_by, order_direction=order_direction,
                first=PAGE_SIZE, skip=skip
            )
            items.extend(page)
            if len(page) < PAGE_SIZE:
                return items
            skip += PAGE_SIZE

    async def blocks_at_level(self, level_id: int) -> List[Block]:
        return await self._all(EntityKind.BLOCK, {"level_id": level_id}, "created_at")

    async def get_snapshots(self, level_id: int, day: int) -> List[RankingSnapshot]:
        """Snapshots of a level for one day, highest invited count first"""
        return await self._all(
            EntityKind.RANKING_SNAPSHOT, {"level_id": level_id, "day": day}, "invited_count", "desc"
        )

    async def get_daily_positions(self, level_id: int, day: int) -> List[DailyRankingPosition]:
        return await self._all(
            EntityKind.DAILY_RANKING_POSITION, {"level_id": level_id, "day": day}, "position"
        )

    async def previous_positions(
        self,
        level_id: int,
        day: Optional[int] = None,
        block_numbers: Optional[Dict[str, int]] = None
    ) -> Dict[str, int]:
        """{block: position} from the snapshots of ``day`` (yesterday by default), ties by creation order"""
        day = self.today() - 1 if day is None else day
        if block_numbers is None:
            block_numbers = await self.get_block_numbers(level_id)
        return positions_from_snapshots(await self.get_snapshots(level_id, day), block_numbers)

    async def get_block_numbers(self, level_id: int) -> Dict[str, int]:
        return compute_block_numbers_locally(await self.blocks_at_level(level_id))

    async def get_level_ranking(
        self,
        level_id: int,
        status: Optional[BlockStatus] = None,
        first: Optional[int] = None,
        skip: int = 0
    ) -> LevelRanking:
        """
        Rank a level's blocks by invited count

        Args:
            level_id: Level 1..7
            status: Only blocks in this status (all when None)
            first: Page size (default and cap from settings)
            skip: Offset into the ranking

        Returns:
            LevelRanking with 1-based positions over the whole filtered set
        """
        level = get_level(level_id)
        first = settings.QUERY_DEFAULT_PAGE_SIZE if first is None else min(first, settings.QUERY_MAX_PAGE_SIZE)

        blocks = await self.blocks_at_level(level_id)
        numbers = compute_block_numbers_locally(blocks)

        candidates = [b for b in blocks if status is None or b.status == status]
        ranked = sorted(sorted(candidates, key=creation_order_key), key=lambda b: -b.invited_count)

        today = self.today()
        previous = await self.previous_positions(level_id, today - 1, numbers)

        entries = []
        for index, block in enumerate(ranked[skip:skip + first], start=skip):
            position = index + 1
            trend = compute_trend(position, previous.get(block.id), policy=self.policy)
            entries.append(RankedBlock(
                block=block,
                position=position,
                block_number=numbers.get(block.id),
                member_count=await self.store.count(EntityKind.BLOCK_MEMBER, {"block": block.id}),
                trend=trend.trend,
                trend_diff=trend.diff,
            ))

        logger.debug(
            "Level ranking built",
            extra={"level_id": level_id, "total": len(ranked), "returned": len(entries)}
        )
        return LevelRanking(
            level_id=level_id,
            level_name=level.name,
            day=today,
            compared_day=today - 1,
            policy=self.policy,
            has_historical_data=bool(previous),
            total=len(ranked),
            entries=entries,
        )
