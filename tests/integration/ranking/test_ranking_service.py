"""
Integration tests for server-side level rankings
"""

import pytest

from src.core.service.indexer.models import Block, BlockMember, BlockStatus, RankingSnapshot
from src.core.service.ranking.ranking_service import RankingService
from src.core.service.ranking.snapshots import day_of
from src.core.service.ranking.trends import Trend, TrendPolicy
from tests.helpers import BASE_TIMESTAMP, DAY, address

YESTERDAY = day_of(BASE_TIMESTAMP)
TODAY = YESTERDAY + 1

BLOCK_A = address(0x1001)
BLOCK_B = address(0x1002)
BLOCK_C = address(0x1003)


def make_block(block_id, invited, created_at, status=BlockStatus.ACTIVE, level_id=1):
    return Block(
        id=block_id, owner=address(1), level_id=level_id, invited_count=invited,
        created_at=created_at, status=status,
        completed_at=created_at + 1 if status == BlockStatus.COMPLETED else None
    )


def make_snapshot(block_id, invited, day=YESTERDAY, level_id=1):
    return RankingSnapshot(
        id=RankingSnapshot.make_id(block_id, day), block=block_id, level_id=level_id,
        invited_count=invited, member_count=0, day=day, timestamp=day * DAY
    )


@pytest.fixture
def service(store):
    return RankingService(store, policy=TrendPolicy.RESET_TO_SAME, clock=lambda: BASE_TIMESTAMP + DAY)


@pytest.fixture
async def level_one(store):
    # Yesterday A led B; today B has overtaken A and C is new
    await store.save(make_block(BLOCK_A, 3, BASE_TIMESTAMP))
    await store.save(make_block(BLOCK_B, 5, BASE_TIMESTAMP + 10))
    await store.save(make_block(BLOCK_C, 0, BASE_TIMESTAMP + DAY, status=BlockStatus.COMPLETED))
    await store.save(make_snapshot(BLOCK_A, 3))
    await store.save(make_snapshot(BLOCK_B, 1))
    for position, member in enumerate((address(21), address(22)), start=1):
        await store.save(BlockMember(
            id=BlockMember.make_id(BLOCK_A, member), block=BLOCK_A, member=member,
            position=position, joined_at=BASE_TIMESTAMP
        ))
    await store.commit()


class TestRankingService:

    async def test_overtake_reports_up_and_down(self, service, level_one):
        ranking = await service.get_level_ranking(1)

        by_block = {entry.block.id: entry for entry in ranking.entries}
        assert [entry.block.id for entry in ranking.entries] == [BLOCK_B, BLOCK_A, BLOCK_C]
        assert (by_block[BLOCK_B].trend, by_block[BLOCK_B].trend_diff) == (Trend.UP, 1)
        assert (by_block[BLOCK_A].trend, by_block[BLOCK_A].trend_diff) == (Trend.DOWN, 1)
        assert by_block[BLOCK_C].trend == Trend.NEW
        assert ranking.has_historical_data is True
        assert (ranking.day, ranking.compared_day) == (TODAY, YESTERDAY)
        assert ranking.level_name == "Curioso"

    async def test_block_numbers_follow_creation_order(self, service, level_one):
        ranking = await service.get_level_ranking(1)

        assert {entry.block.id: entry.block_number for entry in ranking.entries} == {
            BLOCK_A: 1, BLOCK_B: 2, BLOCK_C: 3
        }
        assert await service.get_block_numbers(1) == {BLOCK_A: 1, BLOCK_B: 2, BLOCK_C: 3}

    async def test_member_counts(self, service, level_one):
        ranking = await service.get_level_ranking(1)
        assert {entry.block.id: entry.member_count for entry in ranking.entries}[BLOCK_A] == 2

    async def test_status_filter_keeps_numbering(self, service, level_one):
        active = await service.get_level_ranking(1, status=BlockStatus.ACTIVE)
        completed = await service.get_level_ranking(1, status=BlockStatus.COMPLETED)

        assert active.total == 2
        assert [entry.block.id for entry in active.entries] == [BLOCK_B, BLOCK_A]
        assert [(entry.position, entry.block_number) for entry in completed.entries] == [(1, 3)]

    async def test_pagination_keeps_absolute_positions(self, service, level_one):
        ranking = await service.get_level_ranking(1, first=1, skip=1)

        assert ranking.total == 3
        assert [(entry.block.id, entry.position) for entry in ranking.entries] == [(BLOCK_A, 2)]

    async def test_equal_counts_rank_by_creation(self, service, store):
        await store.save(make_block(BLOCK_B, 2, BASE_TIMESTAMP + 5))
        await store.save(make_block(BLOCK_A, 2, BASE_TIMESTAMP))

        ranking = await service.get_level_ranking(1)

        assert [entry.block.id for entry in ranking.entries] == [BLOCK_A, BLOCK_B]

    async def test_tied_blocks_that_kept_their_places_are_same(self, service, store):
        # The newer block sorts first by id, so the snapshot query returns it first
        older, newer = address(0x2001), address(0x2002)
        await store.save(make_block(older, 4, BASE_TIMESTAMP))
        await store.save(make_block(newer, 4, BASE_TIMESTAMP + 5))
        await store.save(make_snapshot(older, 4))
        await store.save(make_snapshot(newer, 4))
        await store.commit()

        ranking = await service.get_level_ranking(1)

        assert [s.block for s in await service.get_snapshots(1, YESTERDAY)] == [newer, older]
        assert await service.previous_positions(1) == {older: 1, newer: 2}
        assert [(e.block.id, e.position, e.trend, e.trend_diff) for e in ranking.entries] == [
            (older, 1, Trend.SAME, 0),
            (newer, 2, Trend.SAME, 0),
        ]

    async def test_without_history_everything_is_new(self, service, store):
        await store.save(make_block(BLOCK_A, 1, BASE_TIMESTAMP))

        ranking = await service.get_level_ranking(1)

        assert ranking.has_historical_data is False
        assert ranking.entries[0].trend == Trend.NEW

    async def test_unknown_level_raises(self, service):
        with pytest.raises(ValueError):
            await service.get_level_ranking(8)

    async def test_snapshot_reads(self, service, level_one):
        snapshots = await service.get_snapshots(1, YESTERDAY)
        assert [s.block for s in snapshots] == [BLOCK_A, BLOCK_B]
        assert await service.previous_positions(1) == {BLOCK_A: 1, BLOCK_B: 2}
        assert await service.get_snapshots(1, TODAY) == []
