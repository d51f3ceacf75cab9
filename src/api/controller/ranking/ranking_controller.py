"""Ranking controller: live rankings, snapshots, daily positions, levels."""

from typing import Optional

from src.api.controller.ranking.dto.output_dto import (
    BlockNumbersResponseDto,
    DailyPositionsResponseDto,
    LevelsResponseDto,
    SnapshotsResponseDto,
)
from src.api.utils.validators import require_level
from src.core.exceptions.base import ValidationError
from src.core.service.indexer.models import BlockStatus
from src.core.service.ranking.levels import LEVELS
from src.core.service.ranking.ranking_service import LevelRanking, RankingService
from src.infra.config.settings import get_settings

settings = get_settings()

STATUS_FILTERS = {
    "active": BlockStatus.ACTIVE,
    "completed": BlockStatus.COMPLETED,
    "all": None,
}


def parse_status(value: Optional[str]) -> Optional[BlockStatus]:
    if value is None or value == "":
        return None
    try:
        return STATUS_FILTERS[value.lower()]
    except KeyError:
        raise ValidationError(
            f"Unknown status filter: {value}",
            detail={"status": value, "allowed": sorted(STATUS_FILTERS)}
        )


class RankingController:
    """Controller for ranking reads."""

    def __init__(self, ranking_service: RankingService):
        self.ranking_service = ranking_service

    async def get_level_ranking(
        self,
        level_id: int,
        status: Optional[str] = "active",
        first: Optional[int] = None,
        skip: int = 0
    ) -> LevelRanking:
        require_level(level_id)
        return await self.ranking_service.get_level_ranking(
            level_id, status=parse_status(status), first=first, skip=skip
        )

    async def get_snapshots(self, level_id: int, day: Optional[int] = None) -> SnapshotsResponseDto:
        """Snapshots of a level for ``day`` (yesterday by default)"""
        require_level(level_id)
        day = self.ranking_service.today() - 1 if day is None else day
        items = await self.ranking_service.get_snapshots(level_id, day)
        return SnapshotsResponseDto(level_id=level_id, day=day, count=len(items), items=items)

    async def get_daily_positions(self, level_id: int, day: Optional[int] = None) -> DailyPositionsResponseDto:
        """Daily positions of a level for ``day`` (today by default)"""
        require_level(level_id)
        day = self.ranking_service.today() if day is None else day
        items = await self.ranking_service.get_daily_positions(level_id, day)
        return DailyPositionsResponseDto(level_id=level_id, day=day, count=len(items), items=items)

    async def get_block_numbers(self, level_id: int) -> BlockNumbersResponseDto:
        require_level(level_id)
        numbers = await self.ranking_service.get_block_numbers(level_id)
        return BlockNumbersResponseDto(level_id=level_id, numbers=numbers)

    @staticmethod
    def list_levels() -> LevelsResponseDto:
        return LevelsResponseDto(
            levels=[LEVELS[level_id] for level_id in sorted(LEVELS)],
            stablecoin_decimals=settings.STABLECOIN_DECIMALS
        )
