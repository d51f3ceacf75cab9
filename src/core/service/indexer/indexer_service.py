"""
Indexer loop

Follows the chain from the persisted cursor: fetches logs for every watched
source in block-range batches, hands them to the event processor and
advances the cursor once the batch is committed.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import async_sessionmaker

from src.core.service.indexer.chain_reader import ChainReader, is_range_error
from src.core.service.indexer.events import RawLog
from src.core.service.indexer.normalizer import EventNormalizer
from src.core.service.indexer.processor import EventProcessor, ProcessingReport
from src.core.service.indexer.registrar import DynamicSourceRegistrar, EventSource
from src.infra.config.settings import get_settings
from src.infra.repository.indexer_state_repository import IndexerCursor, IndexerStateRepository
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


def cursor_id_for(chain_id: int) -> str:
    return f"chain-{chain_id}"


class IndexingStatus(BaseModel):
    """Indexing lag as reported by the health endpoint"""
    last_indexed_block: Optional[int] = None
    chain_head: Optional[int] = None
    lag_blocks: Optional[int] = None
    updated_at: Optional[datetime] = None
    seconds_since_update: Optional[float] = None
    stalled: bool = False


def build_indexing_status(
    cursor: Optional[IndexerCursor],
    stall_threshold_seconds: float,
    now: Optional[datetime] = None
) -> IndexingStatus:
    """Lag and stall flag from the persisted cursor (no cursor = stalled)"""
    if cursor is None:
        return IndexingStatus(stalled=True)
    now = now or datetime.now(timezone.utc)
    elapsed = (now - cursor.updated_at).total_seconds()
    lag = max(cursor.chain_head - cursor.last_indexed_block, 0)
    return IndexingStatus(
        last_indexed_block=cursor.last_indexed_block,
        chain_head=cursor.chain_head,
        lag_blocks=lag,
        updated_at=cursor.updated_at,
        seconds_since_update=round(elapsed, 3),
        stalled=elapsed > stall_threshold_seconds
    )


class IndexerService:
    """Background indexer bound to one chain and one registry contract"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        chain_reader: Optional[ChainReader] = None,
        registrar: Optional[DynamicSourceRegistrar] = None,
        metrics=None,
        batch_size: Optional[int] = None,
        poll_interval: Optional[float] = None
    ):
        self.session_factory = session_factory
        self.chain_reader = chain_reader or ChainReader()
        self.registrar = registrar or DynamicSourceRegistrar(settings.REGISTRY_ADDRESS, settings.INDEXER_START_BLOCK)
        self.normalizer = EventNormalizer()
        self.metrics = metrics
        self.batch_size = batch_size or settings.INDEXER_BATCH_SIZE
        self.min_batch_size = min(settings.INDEXER_MIN_BATCH_SIZE, self.batch_size)
        self.poll_interval = poll_interval if poll_interval is not None else settings.INDEXER_POLL_INTERVAL_SECONDS
        self.cursor_id = cursor_id_for(settings.CHAIN_ID)

        self._last_indexed_block: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    async def initialize(self) -> None:
        """Restore watched sources and the cursor from the database"""
        async with self.session_factory() as session:
            state = IndexerStateRepository(session)
            records = await state.list_dynamic_sources()
            restored = self.registrar.restore(
                EventSource(address=r.address, template=r.template, created_at_block=r.created_at_block)
                for r in records.values()
            )
            cursor = await state.get_cursor(self.cursor_id)

        self._last_indexed_block = (
            cursor.last_indexed_block if cursor is not None else settings.INDEXER_START_BLOCK - 1
        )
        logger.info(
            "Indexer initialized",
            extra={
                "cursor": self.cursor_id,
                "last_indexed_block": self._last_indexed_block,
                "restored_sources": restored,
            }
        )

    async def _fetch_batch(self, from_block: int, to_block: int) -> Tuple[List[RawLog], int]:
        """Fetch logs, halving the range while the provider rejects it"""
        size = to_block - from_block + 1
        while True:
            end = from_block + size - 1
            try:
                logs = await self.chain_reader.get_logs(self.registrar.addresses, from_block, end)
                return logs, end
            except Exception as e:
                if not is_range_error(e) or size <= self.min_batch_size:
                    raise
                size = max(size // 2, self.min_batch_size)
                logger.warning(
                    "Log range rejected, halving batch",
                    extra={"from_block": from_block, "batch_size": size, "error": str(e)}
                )

    async def run_once(self) -> Optional[ProcessingReport]:
        """Index one batch; None when already at the chain head"""
        if self._last_indexed_block is None:
            await self.initialize()

        head = await self.chain_reader.get_block_number()
        from_block = self._last_indexed_block + 1

        if from_block > head:
            async with self.session_factory() as session:
                await IndexerStateRepository(session).save_cursor(self.cursor_id, self._last_indexed_block, head)
                await session.commit()
            return None

        to_block = min(head, from_block + self.batch_size - 1)
        logs, to_block = await self._fetch_batch(from_block, to_block)

        async def fetch_new_source_logs(sources: List[EventSource]) -> List[RawLog]:
            merged: List[RawLog] = []
            for source in sources:
                merged.extend(await self.chain_reader.get_logs(
                    [source.address], max(source.created_at_block, from_block), to_block
                ))
            return merged

        async with self.session_factory() as session:
            processor = EventProcessor(session, self.registrar, normalizer=self.normalizer, metrics=self.metrics)
            report = await processor.process_logs(logs, fetch_new_source_logs=fetch_new_source_logs)
            await processor.state.save_cursor(self.cursor_id, to_block, head)
            await session.commit()

        self._last_indexed_block = to_block
        logger.info(
            "Indexed block range",
            extra={
                "from_block": from_block,
                "to_block": to_block,
                "chain_head": head,
                "logs": report.processed,
                "applied": report.applied,
                "unrecognized": report.unrecognized,
                "failed": report.failed,
                "new_sources": len(report.new_sources),
            }
        )
        return report

    async def run_forever(self) -> None:
        """Index until stopped; RPC failures are retried on the next tick"""
        while not self._stopping.is_set():
            caught_up = True
            try:
                caught_up = await self.run_once() is None
            except Exception as e:
                logger.error("Indexer iteration failed", extra={"error": str(e)}, exc_info=True)

            if caught_up:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
                except asyncio.TimeoutError:
                    pass

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self.run_forever())
            logger.info("Indexer started", extra={"registry": self.registrar.registry_address})

    async def stop(self) -> None:
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
            logger.info("Indexer stopped")
