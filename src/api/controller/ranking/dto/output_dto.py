"""
Output DTOs for rankings, snapshots and level metadata.
"""

from typing import Dict, List

from pydantic import BaseModel, Field

from src.core.service.indexer.models import DailyRankingPosition, RankingSnapshot
from src.core.service.ranking.levels import LevelInfo


class SnapshotsResponseDto(BaseModel):
    level_id: int
    day: int
    count: int
    items: List[RankingSnapshot] = Field(default_factory=list)


class DailyPositionsResponseDto(BaseModel):
    level_id: int
    day: int
    count: int
    items: List[DailyRankingPosition] = Field(default_factory=list)


class BlockNumbersResponseDto(BaseModel):
    level_id: int
    numbers: Dict[str, int] = Field(default_factory=dict, description="block address -> 1-based number")


class LevelsResponseDto(BaseModel):
    levels: List[LevelInfo]
    stablecoin_decimals: int
