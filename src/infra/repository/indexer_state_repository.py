"""
Indexer state repository using SQLAlchemy ORM (cursor + dynamic sources)
"""

from datetime import datetime, timezone
from typing import Dict, Optional
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.infra.models import IndexerCursorModel, DynamicSourceModel
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class IndexerCursor(BaseModel):
    """Indexing progress for one network"""
    id: str
    last_indexed_block: int
    chain_head: int
    updated_at: datetime


class DynamicSourceRecord(BaseModel):
    address: str
    template: str
    created_at_block: int


class IndexerStateRepository:
    """Repository for indexer progress and runtime-registered sources"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_cursor(self, cursor_id: str) -> Optional[IndexerCursor]:
        model = await self.session.get(IndexerCursorModel, cursor_id)
        if model is None:
            return None
        updated_at = model.updated_at
        if updated_at.tzinfo is None:
            # SQLite drops tzinfo
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return IndexerCursor(
            id=model.id,
            last_indexed_block=model.last_indexed_block,
            chain_head=model.chain_head,
            updated_at=updated_at
        )

    async def save_cursor(self, cursor_id: str, last_indexed_block: int, chain_head: int) -> None:
        """Persist progress; caller commits"""
        model = await self.session.get(IndexerCursorModel, cursor_id)
        now = datetime.now(timezone.utc)
        if model is None:
            self.session.add(IndexerCursorModel(
                id=cursor_id,
                last_indexed_block=last_indexed_block,
                chain_head=chain_head,
                updated_at=now
            ))
        else:
            model.last_indexed_block = last_indexed_block
            model.chain_head = chain_head
            model.updated_at = now
        await self.session.flush()

    async def add_dynamic_source(self, address: str, template: str, created_at_block: int) -> bool:
        """
        Persist a runtime-registered source

        Returns:
            True if the address was new, False if it was already stored
        """
        address = address.lower()
        existing = await self.session.get(DynamicSourceModel, address)
        if existing is not None:
            return False
        self.session.add(DynamicSourceModel(
            address=address,
            template=template,
            created_at_block=created_at_block
        ))
        await self.session.flush()
        logger.debug(
            "Dynamic source persisted",
            extra={"address": address, "template": template, "created_at_block": created_at_block}
        )
        return True

    async def list_dynamic_sources(self) -> Dict[str, DynamicSourceRecord]:
        result = await self.session.execute(select(DynamicSourceModel))
        return {
            model.address: DynamicSourceRecord(
                address=model.address,
                template=model.template,
                created_at_block=model.created_at_block
            )
            for model in result.scalars().all()
        }
