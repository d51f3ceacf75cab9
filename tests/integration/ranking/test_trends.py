"""Tests for the shared trend comparator and day bucketing."""

import pytest

from src.core.service.indexer.models import Block, RankingSnapshot
from src.core.service.ranking.snapshots import creation_order_key, day_of
from src.core.service.ranking.trends import (
    Trend,
    TrendPolicy,
    compute_trend,
    has_tied_counts,
    positions_from_snapshots,
)
from tests.helpers import BASE_TIMESTAMP, DAY, address


def snapshot(block: str, invited: int, day: int = 1) -> RankingSnapshot:
    return RankingSnapshot(
        id=RankingSnapshot.make_id(block, day), block=block, level_id=1,
        invited_count=invited, member_count=0, day=day, timestamp=day * DAY
    )


class TestComputeTrend:

    @pytest.mark.parametrize("current,previous,expected,diff", [
        (1, 3, Trend.UP, 2),
        (4, 2, Trend.DOWN, 2),
        (2, 2, Trend.SAME, 0),
        (5, None, Trend.NEW, 0),
    ])
    def test_default_policy(self, current, previous, expected, diff):
        result = compute_trend(current, previous)
        assert result.trend == expected
        assert result.diff == diff

    def test_reset_to_same_ignores_last_trend(self):
        result = compute_trend(2, 2, last_trend=Trend.UP, policy=TrendPolicy.RESET_TO_SAME)
        assert result.trend == Trend.SAME

    def test_carry_forward_keeps_last_trend(self):
        result = compute_trend(2, 2, last_trend=Trend.UP, policy=TrendPolicy.CARRY_FORWARD)
        assert result.trend == Trend.UP
        assert result.diff == 0

    def test_carry_forward_without_history_is_same(self):
        assert compute_trend(2, 2, policy=TrendPolicy.CARRY_FORWARD).trend == Trend.SAME

    def test_new_wins_over_carry_forward(self):
        result = compute_trend(1, None, last_trend=Trend.DOWN, policy=TrendPolicy.CARRY_FORWARD)
        assert result.trend == Trend.NEW

    @pytest.mark.parametrize("raw,expected", [
        (None, TrendPolicy.RESET_TO_SAME),
        ("", TrendPolicy.RESET_TO_SAME),
        ("carry_forward", TrendPolicy.CARRY_FORWARD),
        (" Reset_To_Same ", TrendPolicy.RESET_TO_SAME),
        (TrendPolicy.CARRY_FORWARD, TrendPolicy.CARRY_FORWARD),
    ])
    def test_policy_parse(self, raw, expected):
        assert TrendPolicy.parse(raw) == expected

    def test_policy_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            TrendPolicy.parse("sideways")


class TestSnapshotPositions:

    def test_positions_rank_by_invited_count(self):
        positions = positions_from_snapshots([
            snapshot(address(1), 2),
            snapshot(address(2), 7),
            snapshot(address(3), 4),
        ])
        assert positions == {address(2): 1, address(3): 2, address(1): 3}

    def test_ties_keep_input_order(self):
        positions = positions_from_snapshots([snapshot(address(5), 3), snapshot(address(4), 3)])
        assert positions == {address(5): 1, address(4): 2}

    def test_ties_follow_creation_order(self):
        positions = positions_from_snapshots(
            [snapshot(address(5), 3), snapshot(address(4), 3), snapshot(address(6), 9)],
            creation_order={address(4): 1, address(5): 2},
        )
        assert positions == {address(6): 1, address(4): 2, address(5): 3}

    def test_ties_without_creation_number_go_last(self):
        positions = positions_from_snapshots(
            [snapshot(address(7), 3), snapshot(address(5), 3), snapshot(address(4), 3)],
            creation_order={address(4): 1},
        )
        assert positions == {address(4): 1, address(7): 2, address(5): 3}

    def test_tied_counts(self):
        assert has_tied_counts([snapshot(address(1), 3), snapshot(address(2), 3)]) is True
        assert has_tied_counts([snapshot(address(1), 3), snapshot(address(2), 4)]) is False

    def test_empty(self):
        assert positions_from_snapshots([]) == {}


class TestDayBuckets:

    def test_day_of_is_utc_bucket(self):
        assert day_of(0) == 0
        assert day_of(DAY - 1) == 0
        assert day_of(DAY) == 1
        assert day_of(BASE_TIMESTAMP) == 19675

    def test_creation_order_breaks_timestamp_ties_on_chain_position(self):
        early = Block(id=address(9), owner=address(1), level_id=1, created_at=100,
                      created_block_number=5, created_log_index=2)
        late = Block(id=address(1), owner=address(1), level_id=1, created_at=100,
                     created_block_number=5, created_log_index=7)
        assert sorted([late, early], key=creation_order_key) == [early, late]
