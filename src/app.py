from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError

from src.infra.config.settings import settings
from src.infra.config.redis import close_redis
from src.infra.database import get_database_manager
from src.core.logger.logger import logger
from src.api.router import health, query, blocks, rankings
from src.api.middleware.security.rate_limiter import RateLimitMiddleware
from src.api.middleware.logging.request_logging import RequestLoggingMiddleware
from src.api.utils.metrics import get_metrics
from src.core.exceptions.handler import ServiceError, GlobalErrorHandler
from src.core.service.indexer.indexer_service import IndexerService


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="""
Cundina indexer and query API.

## Services
- **Indexer**: follows the block registry and every block contract it creates
- **Query**: filtered, paginated access to users, blocks, members, transactions and ranking snapshots
- **Rankings**: live level rankings with block numbers and daily trends
        """,
        version=settings.APP_VERSION,
        docs_url="/",
        redoc_url="/redoc"
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining",
                        "X-RateLimit-Reset"],
        max_age=600,  # 10 minutes
    )

    # Rate limiting middleware
    app.add_middleware(RateLimitMiddleware)

    # Request logging middleware (added last so it wraps everything)
    app.add_middleware(RequestLoggingMiddleware)

    # Centralized error handlers
    app.add_exception_handler(ServiceError, GlobalErrorHandler.service_error_handler)
    app.add_exception_handler(RequestValidationError, GlobalErrorHandler.validation_error_handler)
    app.add_exception_handler(Exception, GlobalErrorHandler.general_exception_handler)

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(query.router, prefix="/api/v1")
    app.include_router(blocks.router, prefix="/api/v1")
    app.include_router(rankings.router, prefix="/api/v1")

    app.state.indexer = None

    @app.on_event("startup")
    async def startup_event():
        logger.info({
            "message": "Starting indexer API",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "chain_id": settings.CHAIN_ID,
            "indexer_enabled": settings.INDEXER_ENABLED
        })

        db_manager = get_database_manager()
        try:
            await db_manager.connect()
        except Exception as e:
            logger.error(f"Failed to connect to database on startup: {str(e)}")
            return

        if settings.INDEXER_ENABLED:
            try:
                indexer = IndexerService(db_manager.get_session_factory(), metrics=get_metrics())
                await indexer.initialize()
                indexer.start()
                app.state.indexer = indexer
            except Exception as e:
                logger.error(f"Failed to start indexer on startup: {str(e)}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info({
            "message": "Shutting down indexer API",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION
        })

        if app.state.indexer is not None:
            await app.state.indexer.stop()
            app.state.indexer = None

        await close_redis()
        await get_database_manager().close()

    return app
