"""Ranking and level routers."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.api.controller.ranking.dto.output_dto import (
    BlockNumbersResponseDto,
    DailyPositionsResponseDto,
    LevelsResponseDto,
    SnapshotsResponseDto,
)
from src.api.controller.ranking.ranking_controller import RankingController
from src.core.dependencies import get_ranking_controller
from src.core.service.ranking.ranking_service import LevelRanking

router = APIRouter(
    tags=["Rankings"],
    responses={
        422: {"description": "Invalid level or status"},
        429: {"description": "Too Many Requests"}
    }
)


@router.get("/levels", response_model=LevelsResponseDto, summary="Level table")
async def list_levels() -> LevelsResponseDto:
    return RankingController.list_levels()


@router.get("/rankings/{level_id}", response_model=LevelRanking, summary="Live ranking for a level")
async def get_level_ranking(
    level_id: int,
    status: Optional[str] = Query("active", description="active, completed or all"),
    first: Optional[int] = Query(None, ge=0),
    skip: int = Query(0, ge=0),
    controller: RankingController = Depends(get_ranking_controller)
) -> LevelRanking:
    """
    Blocks of a level ordered by invited count (ties by creation order),
    decorated with member count, level block number and trend vs. yesterday.
    """
    return await controller.get_level_ranking(level_id, status=status, first=first, skip=skip)


@router.get("/rankings/{level_id}/snapshots", response_model=SnapshotsResponseDto, summary="Ranking snapshots")
async def get_snapshots(
    level_id: int,
    day: Optional[int] = Query(None, ge=0, description="UTC day number (default: yesterday)"),
    controller: RankingController = Depends(get_ranking_controller)
) -> SnapshotsResponseDto:
    return await controller.get_snapshots(level_id, day)


@router.get("/rankings/{level_id}/positions", response_model=DailyPositionsResponseDto, summary="Daily positions")
async def get_daily_positions(
    level_id: int,
    day: Optional[int] = Query(None, ge=0, description="UTC day number (default: today)"),
    controller: RankingController = Depends(get_ranking_controller)
) -> DailyPositionsResponseDto:
    return await controller.get_daily_positions(level_id, day)


@router.get("/rankings/{level_id}/block-numbers", response_model=BlockNumbersResponseDto, summary="Block numbers")
async def get_block_numbers(
    level_id: int,
    controller: RankingController = Depends(get_ranking_controller)
) -> BlockNumbersResponseDto:
    return await controller.get_block_numbers(level_id)
