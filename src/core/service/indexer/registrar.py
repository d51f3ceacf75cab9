"""
Dynamic source registrar

Address -> handler group dispatch table. The registry contract is known from
configuration; block contracts are added at runtime when the registry
announces them. Single writer: only the event processor mutates it.
"""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from src.core.service.indexer.events import BLOCK_GROUP, REGISTRY_GROUP
from src.core.logger.logger import get_logger

logger = get_logger(__name__)

REGISTRY_TEMPLATE = "BlockRegistryFactory"
BLOCK_TEMPLATE = "CundinaBlock"

TEMPLATE_GROUPS = {
    REGISTRY_TEMPLATE: REGISTRY_GROUP,
    BLOCK_TEMPLATE: BLOCK_GROUP,
}


class EventSource(BaseModel):
    address: str
    template: str
    created_at_block: int = 0

    @property
    def group(self) -> str:
        return TEMPLATE_GROUPS[self.template]


class DynamicSourceRegistrar:
    """Tracks which contract addresses are watched and by which handler group"""

    def __init__(self, registry_address: str, registry_start_block: int = 0):
        self.registry_address = registry_address.lower()
        self._sources: Dict[str, EventSource] = {
            self.registry_address: EventSource(
                address=self.registry_address,
                template=REGISTRY_TEMPLATE,
                created_at_block=registry_start_block
            )
        }
        self._pending: List[EventSource] = []

    def register_source(self, address: str, template: str = BLOCK_TEMPLATE, created_at_block: int = 0) -> bool:
        """
        Start routing logs from ``address`` to the template's handler group

        Returns:
            True if newly registered, False if it was already known
        """
        if template not in TEMPLATE_GROUPS:
            raise ValueError(f"Unknown source template: {template}")

        address = address.lower()
        if address in self._sources:
            return False

        source = EventSource(address=address, template=template, created_at_block=created_at_block)
        self._sources[address] = source
        self._pending.append(source)
        logger.info(
            "Dynamic source registered",
            extra={"address": address, "template": template, "created_at_block": created_at_block}
        )
        return True

    def restore(self, sources: Iterable[EventSource]) -> int:
        """Load previously persisted sources (not reported as pending)"""
        restored = 0
        for source in sources:
            address = source.address.lower()
            if address not in self._sources:
                self._sources[address] = EventSource(
                    address=address, template=source.template, created_at_block=source.created_at_block
                )
                restored += 1
        return restored

    def drain_pending(self) -> List[EventSource]:
        """Sources registered since the last call"""
        pending, self._pending = self._pending, []
        return pending

    def forget(self, sources: Iterable[EventSource]) -> None:
        """Undo registrations whose triggering event was rolled back"""
        for source in sources:
            if source.address != self.registry_address:
                self._sources.pop(source.address, None)

    def group_for(self, address: str) -> Optional[str]:
        source = self._sources.get(address.lower())
        return source.group if source else None

    def is_watched(self, address: str) -> bool:
        return address.lower() in self._sources

    @property
    def addresses(self) -> List[str]:
        return list(self._sources.keys())

    @property
    def sources(self) -> List[EventSource]:
        return list(self._sources.values())
