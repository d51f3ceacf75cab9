"""
Position trend comparison

One comparator shared by the server snapshot path and the local position
cache. Both callers pass the same ``TrendPolicy`` so an unchanged position is
reported identically on either path.
"""

import math
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Union

from pydantic import BaseModel

from src.core.service.indexer.models import RankingSnapshot


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    SAME = "same"
    NEW = "new"


class TrendPolicy(str, Enum):
    """What an unchanged position reports"""
    RESET_TO_SAME = "reset_to_same"
    CARRY_FORWARD = "carry_forward"

    @classmethod
    def parse(cls, value: Union[str, "TrendPolicy", None]) -> "TrendPolicy":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.RESET_TO_SAME
        return cls(str(value).strip().lower())


class TrendData(BaseModel):
    trend: Trend
    diff: int = 0


def compute_trend(
    current_position: int,
    previous_position: Optional[int],
    last_trend: Optional[Trend] = None,
    policy: TrendPolicy = TrendPolicy.RESET_TO_SAME
) -> TrendData:
    """
    Compare a 1-based position against the previous one (lower is better)

    Args:
        current_position: Position now
        previous_position: Position in the previous bucket, None if unseen
        last_trend: Previously reported trend (only used by CARRY_FORWARD)
        policy: Behaviour for an unchanged position

    Returns:
        TrendData with the absolute position delta
    """
    if previous_position is None:
        return TrendData(trend=Trend.NEW, diff=0)

    diff = abs(current_position - previous_position)
    if current_position < previous_position:
        return TrendData(trend=Trend.UP, diff=diff)
    if current_position > previous_position:
        return TrendData(trend=Trend.DOWN, diff=diff)

    if policy == TrendPolicy.CARRY_FORWARD and last_trend is not None:
        return TrendData(trend=Trend(last_trend), diff=0)
    return TrendData(trend=Trend.SAME, diff=0)


def positions_from_snapshots(
    snapshots: Iterable[RankingSnapshot],
    creation_order: Optional[Mapping[str, int]] = None
) -> Dict[str, int]:
    """
    Rank snapshots by invited count into {block: position}

    Equal counts are ordered like the live ranking: by the block's creation
    number in ``creation_order`` (blocks without one go last, in input order).
    Without ``creation_order`` ties keep their input order.
    """
    creation_order = creation_order or {}

    def rank_key(snapshot: RankingSnapshot):
        return -snapshot.invited_count, creation_order.get(snapshot.block.lower(), math.inf)

    positions: Dict[str, int] = {}
    for index, snapshot in enumerate(sorted(snapshots, key=rank_key)):
        positions.setdefault(snapshot.block.lower(), index + 1)
    return positions


def has_tied_counts(snapshots: Iterable[RankingSnapshot]) -> bool:
    counts = [snapshot.invited_count for snapshot in snapshots]
    return len(counts) != len(set(counts))
