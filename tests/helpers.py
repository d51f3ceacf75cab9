"""
Test helpers: deterministic addresses, raw log builder and stand-ins for Redis and the query API.
"""

import json
from typing import Any, Dict, Optional

import httpx
from eth_abi import encode

from src.core.service.indexer.events import RawLog, hex_prefixed
from src.core.service.indexer.models import Block, RankingSnapshot
from src.core.service.indexer.normalizer import topic_for

REGISTRY = "0x" + "ab" * 20
BASE_TIMESTAMP = 1_700_000_000  # 2023-11-14 22:13:20 UTC, day 19675
DAY = 86400


def address(n: int) -> str:
    """Deterministic lowercase address for tests"""
    return "0x" + f"{n:040x}"


class LogFactory:
    """Builds ABI-encoded raw logs for any typed event"""

    def __init__(self, registry: str = REGISTRY):
        self.registry = registry

    def build(
        self,
        event_cls,
        emitter: Optional[str] = None,
        block_number: int = 1,
        log_index: int = 0,
        timestamp: Optional[int] = None,
        tx_hash: Optional[str] = None,
        **fields: Any
    ) -> RawLog:
        topics = [topic_for(event_cls)]
        for name, abi_type in event_cls.INDEXED:
            topics.append(hex_prefixed(encode([abi_type], [fields[name]])))

        data = "0x"
        if event_cls.DATA:
            data = hex_prefixed(encode(
                [abi_type for _, abi_type in event_cls.DATA],
                [fields[name] for name, _ in event_cls.DATA]
            ))

        return RawLog(
            address=emitter or self.registry,
            topics=topics,
            data=data,
            block_number=block_number,
            block_timestamp=timestamp if timestamp is not None else BASE_TIMESTAMP + block_number * 12,
            transaction_hash=tx_hash or "0x" + f"{block_number:032x}{log_index:032x}",
            log_index=log_index,
        )


class FakeRedis:
    """Dict-backed stand-in for redis.asyncio.Redis"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.set_calls = 0

    async def get(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise ConnectionError("redis unavailable")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.set_calls += 1
        if self.fail_writes:
            raise ConnectionError("redis unavailable")
        self.data[key] = value
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass

    def loads(self, key: str) -> Any:
        return json.loads(self.data[key])


class FakeClock:
    """Manually advanced clock for TTL and cooldown tests"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeQueryApi:
    """httpx.MockTransport handler serving rankings, blocks and snapshots"""

    def __init__(self):
        self.blocks: Dict[int, list] = {}
        self.snapshots: Dict[tuple, list] = {}
        self.rankings: Dict[int, list] = {}
        self.calls: Dict[str, int] = {}
        self.rate_limited = False

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if self.rate_limited:
            return httpx.Response(429, json={"error": "rate limited"})

        path = request.url.path
        if path.startswith("/api/v1/rankings/"):
            level_id = int(path.rsplit("/", 1)[1])
            self._count("ranking")
            return httpx.Response(200, json={"level_id": level_id, "entries": self.rankings.get(level_id, [])})

        if path == "/api/v1/query":
            body = json.loads(request.content)
            entity, where = body["entity"], body["where"]
            self._count(entity)
            if entity == "block":
                items = self.blocks.get(where["level_id"], [])
            elif entity == "ranking_snapshot":
                items = self.snapshots.get((where["level_id"], where["day"]), [])
            else:
                items = []
            return httpx.Response(200, json={"entity": entity, "count": len(items), "items": items})

        return httpx.Response(404, json={"detail": "Not Found"})


def block_payload(block_id: str, created_at: int, invited: int = 0, level_id: int = 1) -> Dict[str, Any]:
    return Block(
        id=block_id, owner=block_id, level_id=level_id, invited_count=invited, created_at=created_at
    ).model_dump(mode="json")


def snapshot_payload(block_id: str, invited: int, day: int, level_id: int = 1) -> Dict[str, Any]:
    return RankingSnapshot(
        id=RankingSnapshot.make_id(block_id, day), block=block_id, level_id=level_id,
        invited_count=invited, member_count=0, day=day, timestamp=day * DAY
    ).model_dump(mode="json")


def ranking_entry(block: Dict[str, Any], position: int) -> Dict[str, Any]:
    return {"block": block, "position": position, "block_number": None, "member_count": 0,
            "trend": "new", "trend_diff": 0}
