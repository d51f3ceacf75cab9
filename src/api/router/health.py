from datetime import datetime
from typing import Dict

from fastapi import APIRouter, Request, status

from src.api.controller.query.dto.output_dto import HealthCheckResponseDto
from src.api.utils.metrics import get_metrics
from src.core.service.indexer.indexer_service import IndexingStatus, build_indexing_status, cursor_id_for
from src.infra.config.redis import get_redis
from src.infra.config.settings import settings
from src.infra.database import get_database_manager
from src.infra.repository.indexer_state_repository import IndexerStateRepository
from src.core.logger.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


async def check_database_health() -> Dict[str, str]:
    """Check database connectivity."""
    try:
        await get_database_manager().ping()
        return {"status": "healthy", "message": "Connected"}
    except Exception as e:
        return {"status": "unhealthy", "message": f"Connection failed: {str(e)}"}


async def check_redis_health() -> Dict[str, str]:
    """Check Redis connection health."""
    try:
        redis_client = await get_redis()
        await redis_client.ping()
        return {"status": "healthy", "message": "Connected"}
    except Exception as e:
        return {"status": "unhealthy", "message": f"Connection failed: {str(e)}"}


async def get_indexing_status() -> IndexingStatus:
    """Indexing lag from the persisted cursor (stalled when unreadable)."""
    try:
        db_manager = get_database_manager()
        await db_manager.connect()
        async with db_manager.get_session_factory()() as session:
            cursor = await IndexerStateRepository(session).get_cursor(cursor_id_for(settings.CHAIN_ID))
    except Exception as e:
        logger.warning("Failed to read indexer cursor", extra={"error": str(e)})
        cursor = None
    return build_indexing_status(cursor, settings.INDEXER_STALL_THRESHOLD_SECONDS)


@router.get("/health", status_code=status.HTTP_200_OK, response_model=HealthCheckResponseDto)
async def health_check(request: Request) -> HealthCheckResponseDto:
    """
    Health of the query API: database, Redis, indexing lag and event metrics.
    """
    database_health = await check_database_health()
    redis_health = await check_redis_health()
    indexing = await get_indexing_status()
    metrics_health = get_metrics().get_health_metrics()

    indexer_running = getattr(request.app.state, "indexer", None) is not None
    if not settings.INDEXER_ENABLED and not indexer_running:
        indexer_status = "disabled"
    elif indexing.stalled:
        indexer_status = "degraded"
    else:
        indexer_status = "healthy"

    services = {
        "database": database_health["status"],
        "redis": redis_health["status"],
        "indexer": indexer_status,
        "metrics": metrics_health["status"],
        "api": "healthy"
    }

    # Redis only backs client-side caches; it cannot make the API unhealthy
    if services["database"] == "unhealthy":
        overall_status = "unhealthy"
    elif any(value in ("unhealthy", "degraded") for value in services.values()):
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    return HealthCheckResponseDto(
        status=overall_status,
        services=services,
        indexing=indexing,
        metrics=metrics_health
    )


@router.get("/metrics", status_code=status.HTTP_200_OK)
async def get_metrics_endpoint():
    """
    Event processing and query counters.
    """
    try:
        metrics_data = get_metrics().get_metrics_summary()
        logger.info(
            "Metrics requested",
            extra={
                "applied": metrics_data["overall"]["applied"],
                "failed": metrics_data["overall"]["failed"],
                "last_processed_block": metrics_data["last_processed_block"]
            }
        )
        return metrics_data
    except Exception as e:
        logger.error(f"Failed to retrieve metrics: {str(e)}")
        return {
            "error": "Failed to retrieve metrics",
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }
