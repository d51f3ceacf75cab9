"""
Event processor

Routes raw logs through normalizer and materializer strictly in
(block_number, log_index) order. Every event is committed on its own; a
failing event is rolled back and skipped so the stream never stalls.
"""

import heapq
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions.indexer import MissingReferencedEntityError, UnrecognizedEventError
from src.core.service.indexer.events import RawLog
from src.core.service.indexer.handlers import EventMaterializer
from src.core.service.indexer.normalizer import EventNormalizer
from src.core.service.indexer.registrar import DynamicSourceRegistrar, EventSource
from src.infra.repository.entity_store import EntityStore
from src.infra.repository.indexer_state_repository import IndexerStateRepository
from src.core.logger.logger import get_logger

logger = get_logger(__name__)

NewSourceFetcher = Callable[[List[EventSource]], Awaitable[List[RawLog]]]


class ProcessingReport(BaseModel):
    """Outcome counts for one batch of logs"""
    processed: int = 0
    applied: int = 0
    skipped: int = 0
    unrecognized: int = 0
    unrouted: int = 0
    missing_reference: int = 0
    failed: int = 0
    new_sources: List[str] = Field(default_factory=list)
    last_block: Optional[int] = None


class EventProcessor:
    """Applies ordered logs to the entity store within one session"""

    def __init__(
        self,
        session: AsyncSession,
        registrar: DynamicSourceRegistrar,
        normalizer: Optional[EventNormalizer] = None,
        metrics=None,
        strict_references: Optional[bool] = None
    ):
        self.session = session
        self.registrar = registrar
        self.normalizer = normalizer or EventNormalizer()
        self.metrics = metrics
        self.store = EntityStore(session)
        self.state = IndexerStateRepository(session)
        self.materializer = EventMaterializer(self.store, registrar, strict_references=strict_references)

    def _record(self, event_name: str, outcome: str, log: RawLog):
        if self.metrics is not None:
            self.metrics.record_event(event_name, outcome, log.block_number)

    async def process_logs(
        self,
        logs: Iterable[RawLog],
        fetch_new_source_logs: Optional[NewSourceFetcher] = None
    ) -> ProcessingReport:
        """
        Process a batch of logs in chain order

        Args:
            logs: Logs in any order
            fetch_new_source_logs: Called with sources registered while
                processing; its logs are merged into the remaining batch

        Returns:
            ProcessingReport
        """
        report = ProcessingReport()
        heap: List[Tuple[int, int, int, RawLog]] = []
        seen: Set[Tuple[str, int]] = set()
        sequence = 0

        def push(log: RawLog):
            nonlocal sequence
            key = (log.transaction_hash.lower(), log.log_index)
            if key in seen:
                return
            seen.add(key)
            heapq.heappush(heap, (log.block_number, log.log_index, sequence, log))
            sequence += 1

        for log in logs:
            push(log)

        while heap:
            _, _, _, log = heapq.heappop(heap)
            new_sources = await self.process_log(log, report)

            if new_sources and fetch_new_source_logs is not None:
                for extra in await fetch_new_source_logs(new_sources):
                    if extra.order_key > log.order_key:
                        push(extra)

        return report

    async def process_log(self, log: RawLog, report: Optional[ProcessingReport] = None) -> List[EventSource]:
        """
        Process one log as an atomic unit

        Returns:
            Sources newly registered (and persisted) by this log
        """
        report = report if report is not None else ProcessingReport()
        report.processed += 1
        report.last_block = max(log.block_number, report.last_block or 0)

        group = self.registrar.group_for(log.address)
        if group is None:
            report.unrouted += 1
            logger.debug("Log from unwatched address ignored", extra={"address": log.address})
            return []

        try:
            event = self.normalizer.normalize(log)
            if event.GROUP != group:
                raise UnrecognizedEventError(
                    f"{event.event_name()} is not emitted by {group} sources",
                    address=log.address,
                    topic=log.topics[0]
                )
        except UnrecognizedEventError as e:
            report.unrecognized += 1
            self._record("unknown", "unrecognized", log)
            logger.warning(
                "Unrecognized event skipped",
                extra={
                    "address": log.address,
                    "topic": e.topic,
                    "tx_hash": log.transaction_hash,
                    "log_index": log.log_index,
                    "reason": str(e),
                }
            )
            return []

        event_name = event.event_name()
        new_sources: List[EventSource] = []
        try:
            changed = await self.materializer.apply(event)
            new_sources = self.registrar.drain_pending()
            for source in new_sources:
                await self.state.add_dynamic_source(source.address, source.template, source.created_at_block)
            await self.store.commit()
        except MissingReferencedEntityError as e:
            await self._undo(new_sources)
            report.missing_reference += 1
            self._record(event_name, "missing_reference", log)
            logger.warning(
                "Event references a missing entity",
                extra={
                    "event": event_name,
                    "kind": e.kind,
                    "entity_id": e.entity_id,
                    "tx_hash": log.transaction_hash,
                    "log_index": log.log_index,
                }
            )
            return []
        except Exception as e:
            await self._undo(new_sources)
            report.failed += 1
            self._record(event_name, "failed", log)
            logger.error(
                "Failed to materialize event",
                extra={
                    "event": event_name,
                    "tx_hash": log.transaction_hash,
                    "log_index": log.log_index,
                    "block_number": log.block_number,
                    "error": str(e),
                },
                exc_info=True
            )
            return []

        if changed:
            report.applied += 1
            self._record(event_name, "applied", log)
        else:
            report.skipped += 1
            self._record(event_name, "skipped", log)
        report.new_sources.extend(source.address for source in new_sources)
        return new_sources

    async def _undo(self, drained: List[EventSource]) -> None:
        await self.store.rollback()
        self.registrar.forget(list(drained) + self.registrar.drain_pending())
