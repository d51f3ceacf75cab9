"""
FastAPI dependency injection functions.
Clean, maintainable dependency resolution using FastAPI's native DI system.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.controller.query.query_controller import QueryController
from src.api.controller.ranking.ranking_controller import RankingController
from src.core.service.ranking.ranking_service import RankingService
from src.infra.database import get_async_session
from src.infra.repository.entity_store import EntityStore


async def get_entity_store(session: AsyncSession = Depends(get_async_session)) -> EntityStore:
    """Get entity store bound to the request session."""
    return EntityStore(session)


async def get_ranking_service(store: EntityStore = Depends(get_entity_store)) -> RankingService:
    """Get ranking service using the configured trend policy."""
    return RankingService(store)


async def get_query_controller(
    store: EntityStore = Depends(get_entity_store),
    ranking_service: RankingService = Depends(get_ranking_service)
) -> QueryController:
    return QueryController(store, ranking_service)


async def get_ranking_controller(
    ranking_service: RankingService = Depends(get_ranking_service)
) -> RankingController:
    return RankingController(ranking_service)
