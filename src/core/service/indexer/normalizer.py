"""
Event normalizer

Classifies raw logs by topic0 and decodes them into typed events. Pure: no
store access, no registration side effects.
"""

from typing import Dict, List, Optional, Type

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_bytes
from web3 import Web3

from src.core.exceptions.indexer import UnrecognizedEventError
from src.core.service.indexer.events import (
    EVENT_TYPES,
    ContractEvent,
    EventMeta,
    RawLog,
    hex_prefixed,
)


def topic_for(event_cls: Type[ContractEvent]) -> str:
    return hex_prefixed(Web3.keccak(text=event_cls.SIGNATURE))


def _canonical(abi_type: str, value):
    if abi_type == "address":
        return value.lower()
    if abi_type.startswith("bytes"):
        return hex_prefixed(value)
    return value


class EventNormalizer:
    """Maps raw logs onto the closed set of known events"""

    def __init__(self, event_types=EVENT_TYPES):
        self._by_topic: Dict[str, Type[ContractEvent]] = {
            topic_for(event_cls): event_cls for event_cls in event_types
        }

    @property
    def topics(self) -> List[str]:
        return list(self._by_topic.keys())

    def event_type_for(self, topic0: str) -> Optional[Type[ContractEvent]]:
        return self._by_topic.get(topic0.lower())

    def normalize(self, log: RawLog) -> ContractEvent:
        """
        Decode one log

        Raises:
            UnrecognizedEventError: unknown topic0 or a payload that does not
                match the event's ABI
        """
        if not log.topics:
            raise UnrecognizedEventError("Log has no topics", address=log.address)

        topic0 = log.topics[0].lower()
        event_cls = self._by_topic.get(topic0)
        if event_cls is None:
            raise UnrecognizedEventError(
                f"Unknown event signature {topic0}", address=log.address, topic=topic0
            )

        if len(log.topics) != 1 + len(event_cls.INDEXED):
            raise UnrecognizedEventError(
                f"{event_cls.event_name()} expects {len(event_cls.INDEXED)} indexed topics, "
                f"got {len(log.topics) - 1}",
                address=log.address,
                topic=topic0
            )

        fields = {}
        try:
            for (name, abi_type), topic in zip(event_cls.INDEXED, log.topics[1:]):
                (value,) = decode([abi_type], to_bytes(hexstr=topic))
                fields[name] = _canonical(abi_type, value)

            if event_cls.DATA:
                data_types = [abi_type for _, abi_type in event_cls.DATA]
                values = decode(data_types, to_bytes(hexstr=log.data or "0x"))
                for (name, abi_type), value in zip(event_cls.DATA, values):
                    fields[name] = _canonical(abi_type, value)
        except (DecodingError, ValueError, TypeError) as e:
            raise UnrecognizedEventError(
                f"Malformed {event_cls.event_name()} payload: {e}",
                address=log.address,
                topic=topic0
            ) from e

        meta = EventMeta(
            address=log.address.lower(),
            block_number=log.block_number,
            log_index=log.log_index,
            timestamp=log.block_timestamp,
            transaction_hash=log.transaction_hash.lower(),
        )
        return event_cls(meta=meta, **fields)
