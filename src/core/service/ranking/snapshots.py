"""
Day-bucketed ranking snapshots and daily ranking positions
"""

from typing import List

from src.core.service.indexer.models import (
    SECONDS_PER_DAY,
    Block,
    DailyRankingPosition,
    EntityKind,
    RankingSnapshot,
)
from src.core.logger.logger import get_logger

logger = get_logger(__name__)

PAGE_SIZE = 1000


def day_of(timestamp: int) -> int:
    """UTC day bucket of a unix timestamp"""
    return int(timestamp) // SECONDS_PER_DAY


def creation_order_key(block: Block):
    """Total order of blocks by creation (chain position breaks timestamp ties)"""
    return block.created_at, block.created_block_number, block.created_log_index, block.id


class SnapshotWriter:
    """Writes ranking snapshots and keeps daily positions in step with them"""

    def __init__(self, store):
        self.store = store

    async def write_snapshot(self, block: Block, timestamp: int) -> RankingSnapshot:
        """Upsert the (block, day) snapshot with the block's current counts (last write wins)"""
        day = day_of(timestamp)
        member_count = await self.store.count(EntityKind.BLOCK_MEMBER, {"block": block.id})
        snapshot = RankingSnapshot(
            id=RankingSnapshot.make_id(block.id, day),
            block=block.id,
            level_id=block.level_id,
            invited_count=block.invited_count,
            member_count=member_count,
            day=day,
            timestamp=timestamp,
        )
        await self.store.save(snapshot)
        await self.update_daily_positions(block.level_id, day, timestamp)
        return snapshot

    async def _blocks_at_level(self, level_id: int) -> List[Block]:
        blocks: List[Block] = []
        skip = 0
        while True:
            page = await self.store.query(
                EntityKind.BLOCK,
                where={"level_id": level_id},
                order_by="created_at",
                order_direction="asc",
                first=PAGE_SIZE,
                skip=skip,
            )
            blocks.extend(page)
            if len(page) < PAGE_SIZE:
                return blocks
            skip += PAGE_SIZE

    async def update_daily_positions(self, level_id: int, day: int, timestamp: int) -> List[DailyRankingPosition]:
        """Re-rank every block of the level for the day (invited count desc, creation order on ties)"""
        blocks = sorted(await self._blocks_at_level(level_id), key=creation_order_key)
        ranked = sorted(blocks, key=lambda block: -block.invited_count)

        positions = []
        for index, block in enumerate(ranked):
            position = DailyRankingPosition(
                id=DailyRankingPosition.make_id(level_id, day, block.id),
                block=block.id,
                level_id=level_id,
                day=day,
                position=index + 1,
                invited_count=block.invited_count,
                timestamp=timestamp,
            )
            existing = await self.store.load(EntityKind.DAILY_RANKING_POSITION, position.id)
            if existing is None or (existing.position, existing.invited_count) != (position.position, position.invited_count):
                await self.store.save(position)
            positions.append(position)

        logger.debug(
            "Daily ranking positions updated",
            extra={"level_id": level_id, "day": day, "blocks": len(positions)}
        )
        return positions

