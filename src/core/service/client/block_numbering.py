"""
Consecutive block numbers per level, cached client-side.

Numbers follow creation order, so once a block has a number it keeps it.
A level's order is cached with a TTL; while fresh, an unknown block yields
None without refetching (it may simply not be indexed yet). When a refresh
fails the previous order is used.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from src.core.service.client.query_client import QueryClient
from src.core.service.client.ttl_cache import TTLCache
from src.core.service.indexer.models import Block
from src.core.service.ranking.numbering import compute_block_numbers_locally, numbers_from_order
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class BlockNumbering:
    """Level -> {block: number} with TTL and serve-stale-on-error"""

    def __init__(self, client: QueryClient, cache: Optional[TTLCache] = None):
        self.client = client
        self.cache = cache or TTLCache(settings.BLOCK_NUMBERING_CACHE_TTL_SECONDS)

    async def _fetch_level(self, level_id: int) -> Dict[str, int]:
        items = await self.client.get_blocks_at_level(level_id, first=settings.QUERY_MAX_PAGE_SIZE)
        return compute_block_numbers_locally(Block.model_validate(item) for item in items)

    async def _numbers_for_level(self, level_id: int) -> Optional[Dict[str, int]]:
        try:
            result = await self.cache.get_or_fetch(level_id, lambda: self._fetch_level(level_id))
        except Exception as e:
            logger.warning(
                "Block numbering unavailable",
                extra={"level_id": level_id, "error": str(e)}
            )
            return None
        return result.value

    async def get_block_number(self, block_address: str, level_id: int) -> Optional[int]:
        """1-based number of the block within its level, None if unknown"""
        numbers = await self._numbers_for_level(level_id)
        if numbers is None:
            return None
        return numbers.get(block_address.lower())

    async def get_block_numbers(self, blocks: Iterable[Tuple[str, int]]) -> Dict[str, int]:
        """Batch lookup for (address, level_id) pairs; one fetch per level at most"""
        by_level: Dict[int, List[str]] = {}
        for address, level_id in blocks:
            by_level.setdefault(level_id, []).append(address.lower())

        result: Dict[str, int] = {}
        for level_id, addresses in by_level.items():
            numbers = await self._numbers_for_level(level_id)
            if not numbers:
                continue
            for address in addresses:
                if address in numbers:
                    result[address] = numbers[address]
        return result

    def update_cache(self, level_id: int, block_addresses_in_creation_order: List[str]) -> None:
        """Seed the cache from a list the caller already holds"""
        self.cache.set(level_id, numbers_from_order(block_addresses_in_creation_order))

    def clear(self, level_id: Optional[int] = None) -> None:
        self.cache.invalidate(level_id)
