"""
Local position cache

Fallback trend source when no server-side snapshots are available. Stores
``{block_key: {position, lastTrend}}`` per level in Redis and compares with
the shared trend comparator, so both trend paths agree.
"""

import json
from typing import Dict, List, Optional, Set

import redis.asyncio as redis
from pydantic import BaseModel

from src.core.service.ranking.trends import Trend, TrendData, TrendPolicy, compute_trend
from src.infra.config.settings import get_settings
from src.core.logger.logger import logger

settings = get_settings()


class StoredPosition(BaseModel):
    position: int
    last_trend: Trend = Trend.SAME


def _parse_trend(value) -> Trend:
    try:
        return Trend(value)
    except ValueError:
        return Trend.SAME


class LocalPositionCache:
    """Per-level position memory with session-scoped save skipping"""

    def __init__(self, redis_client: redis.Redis, policy: Optional[TrendPolicy] = None):
        self.redis = redis_client
        self.key_prefix = "ranking_positions_v3:"
        self.policy = TrendPolicy.parse(policy or settings.TREND_UNCHANGED_POLICY)

        self._baseline: Dict[str, Dict[str, StoredPosition]] = {}
        self._last_saved: Dict[str, Dict[str, StoredPosition]] = {}
        self._saved_this_session: Set[str] = set()

    def _get_key(self, level_id) -> str:
        return f"{self.key_prefix}{level_id}"

    def _deserialize(self, data: Optional[str]) -> Dict[str, StoredPosition]:
        if not data:
            return {}
        try:
            parsed = json.loads(data)
        except (TypeError, ValueError):
            return {}
        if not isinstance(parsed, dict):
            return {}

        positions = {}
        for block_key, entry in parsed.items():
            if not isinstance(entry, dict):
                continue
            position = entry.get("position")
            if isinstance(position, bool) or not isinstance(position, int) or position <= 0:
                continue
            positions[block_key] = StoredPosition(position=position, last_trend=_parse_trend(entry.get("lastTrend")))
        return positions

    @staticmethod
    def _serialize(positions: Dict[str, StoredPosition]) -> str:
        return json.dumps({
            block_key: {"position": stored.position, "lastTrend": stored.last_trend.value}
            for block_key, stored in positions.items()
        })

    @staticmethod
    def _positions(positions: Dict[str, StoredPosition]) -> Dict[str, int]:
        return {block_key: stored.position for block_key, stored in positions.items()}

    async def load_previous_positions(self, level_id) -> Dict[str, StoredPosition]:
        """Positions persisted by an earlier session (loaded once per level)"""
        level = str(level_id)
        if level in self._baseline:
            return self._baseline[level]

        try:
            data = await self.redis.get(self._get_key(level))
        except Exception as e:
            logger.warning("Position cache read failed", extra={"level_id": level, "error": str(e)})
            data = None

        positions = self._deserialize(data)
        self._baseline[level] = positions
        self._last_saved[level] = dict(positions)
        return positions

    async def save_current_positions(self, level_id, block_keys: List[str]) -> bool:
        """
        Record the current order of a level (index + 1 = position)

        Returns:
            True if a write was attempted
        """
        if not block_keys:
            return False
        level = str(level_id)
        await self.load_previous_positions(level)
        previous = self._last_saved.get(level, {})

        current: Dict[str, StoredPosition] = {}
        for index, block_key in enumerate(block_keys):
            key = block_key.lower()
            before = previous.get(key)
            trend = compute_trend(
                index + 1,
                before.position if before else None,
                last_trend=before.last_trend if before else None,
                policy=self.policy
            )
            current[key] = StoredPosition(position=index + 1, last_trend=trend.trend)

        if level in self._saved_this_session and self._positions(current) == self._positions(previous):
            return False

        self._last_saved[level] = current
        self._saved_this_session.add(level)
        try:
            await self.redis.set(self._get_key(level), self._serialize(current))
        except Exception as e:
            logger.warning("Position cache write failed", extra={"level_id": level, "error": str(e)})
        return True

    async def get_position_trend(self, level_id, block_key: str, current_position: int) -> TrendData:
        """Trend of a block against the positions loaded at session start"""
        baseline = await self.load_previous_positions(level_id)
        before = baseline.get(block_key.lower()) or baseline.get(block_key)
        return compute_trend(
            current_position,
            before.position if before else None,
            last_trend=before.last_trend if before else None,
            policy=self.policy
        )

    def reset_session(self, level_id=None) -> None:
        """Forget session state (all levels when None)"""
        if level_id is None:
            self._baseline.clear()
            self._last_saved.clear()
            self._saved_this_session.clear()
            return
        level = str(level_id)
        self._baseline.pop(level, None)
        self._last_saved.pop(level, None)
        self._saved_this_session.discard(level)
