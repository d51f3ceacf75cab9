"""Indexed data shared by the API contract tests."""

from src.core.service.indexer.models import (
    Block,
    BlockMember,
    BlockStatus,
    DailyRankingPosition,
    RankingSnapshot,
    Transaction,
    TransactionType,
    User,
)
from src.core.service.ranking.snapshots import day_of
from tests.helpers import BASE_TIMESTAMP, address

ALICE = address(0xA)
BOB = address(0xB)
CAROL = address(0xC)
BLOCK_X = address(0x1001)
BLOCK_Y = address(0x1002)
BLOCK_Z = address(0x1003)
ALICE_CODE = "0x" + "c0" * 32
SEED_DAY = day_of(BASE_TIMESTAMP)


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


async def seed(store):
    """Three users, three level-1 blocks (Z completed), members of X, Bob's transactions, day snapshots"""
    await store.save(User(id=ALICE, level=2, referral_code=ALICE_CODE, registered_at=BASE_TIMESTAMP))
    await store.save(User(id=BOB, level=1, referrer=ALICE, registered_at=BASE_TIMESTAMP + 10))
    await store.save(User(id=CAROL, level=1, referrer=ALICE, registered_at=BASE_TIMESTAMP + 20))

    await store.save(Block(id=BLOCK_X, owner=ALICE, level_id=1, invited_count=2, created_at=BASE_TIMESTAMP + 30))
    await store.save(Block(id=BLOCK_Y, owner=BOB, level_id=1, invited_count=5, created_at=BASE_TIMESTAMP + 40))
    await store.save(Block(id=BLOCK_Z, owner=CAROL, level_id=1, invited_count=9, created_at=BASE_TIMESTAMP + 50,
                           status=BlockStatus.COMPLETED, completed_at=BASE_TIMESTAMP + 60))

    for position, member in ((2, CAROL), (1, BOB)):
        await store.save(BlockMember(id=BlockMember.make_id(BLOCK_X, member), block=BLOCK_X, member=member,
                                     position=position, joined_at=BASE_TIMESTAMP + 100 + position))

    await store.save(Transaction(id=tx_hash(1), user=BOB, type=TransactionType.REGISTRATION,
                                 timestamp=BASE_TIMESTAMP + 10))
    await store.save(Transaction(id=tx_hash(2), user=BOB, type=TransactionType.JOIN, amount=20_000_000,
                                 block=BLOCK_X, timestamp=BASE_TIMESTAMP + 101))
    await store.save(Transaction(id=tx_hash(3), user=BOB, type=TransactionType.ADVANCE, block=BLOCK_X,
                                 timestamp=BASE_TIMESTAMP + 200))

    for block_id, invited in ((BLOCK_X, 2), (BLOCK_Y, 5)):
        await store.save(RankingSnapshot(id=RankingSnapshot.make_id(block_id, SEED_DAY), block=block_id, level_id=1,
                                         invited_count=invited, member_count=0, day=SEED_DAY,
                                         timestamp=BASE_TIMESTAMP))
    for position, (block_id, invited) in enumerate(((BLOCK_Y, 5), (BLOCK_X, 2)), start=1):
        await store.save(DailyRankingPosition(id=DailyRankingPosition.make_id(1, SEED_DAY, block_id), block=block_id,
                                              level_id=1, day=SEED_DAY, position=position, invited_count=invited,
                                              timestamp=BASE_TIMESTAMP))
    await store.commit()
