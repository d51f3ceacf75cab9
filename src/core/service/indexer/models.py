"""Indexed entities derived from registry and block contract events."""

from enum import Enum, IntEnum
from typing import ClassVar, Optional

from pydantic import BaseModel, Field


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
EMPTY_BYTES = "0x"
SECONDS_PER_DAY = 86400


class EntityKind(str, Enum):
    """Entity sets exposed by the store and the query API"""
    USER = "user"
    BLOCK = "block"
    BLOCK_MEMBER = "block_member"
    TRANSACTION = "transaction"
    RANKING_SNAPSHOT = "ranking_snapshot"
    DAILY_RANKING_POSITION = "daily_ranking_position"


class BlockStatus(IntEnum):
    """Block lifecycle; Completed is terminal"""
    ACTIVE = 0
    COMPLETED = 1


class TransactionType(str, Enum):
    """Logical transaction types recorded per triggering event"""
    REGISTRATION = "registration"
    JOIN = "join"
    ADVANCE = "advance"
    CASHOUT = "cashout"
    WITHDRAW = "withdraw"


class User(BaseModel):
    """Wallet known to the registry (id = lowercase address)"""
    id: str
    level: int = Field(1, ge=1)
    referral_code: str = EMPTY_BYTES
    registered_at: int = 0
    referrer: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.USER


class Block(BaseModel):
    """One savings-circle contract instance (id = contract address)"""
    id: str
    owner: str
    level_id: int = Field(..., ge=1)
    status: BlockStatus = BlockStatus.ACTIVE
    invited_count: int = 0
    created_at: int
    completed_at: Optional[int] = None
    created_block_number: int = 0
    created_log_index: int = 0

    kind: ClassVar[EntityKind] = EntityKind.BLOCK

    @property
    def is_completed(self) -> bool:
        return self.status == BlockStatus.COMPLETED

    def complete(self, timestamp: int) -> bool:
        """Move Active -> Completed. Returns False when already completed."""
        if self.is_completed:
            return False
        self.status = BlockStatus.COMPLETED
        self.completed_at = timestamp
        return True


class BlockMember(BaseModel):
    """Membership of a wallet in a block (immutable once created)"""
    id: str
    block: str
    member: str
    position: int
    joined_at: int

    kind: ClassVar[EntityKind] = EntityKind.BLOCK_MEMBER

    @staticmethod
    def make_id(block_id: str, member_id: str) -> str:
        return f"{block_id}-{member_id}"


class Transaction(BaseModel):
    """Logical transaction derived from one event (id = tx hash)"""
    id: str
    user: str
    type: TransactionType
    amount: int = 0
    block: Optional[str] = None
    timestamp: int

    kind: ClassVar[EntityKind] = EntityKind.TRANSACTION


class RankingSnapshot(BaseModel):
    """Latest known ranking inputs for a block within one UTC day"""
    id: str
    block: str
    level_id: int
    invited_count: int
    member_count: int
    day: int
    timestamp: int

    kind: ClassVar[EntityKind] = EntityKind.RANKING_SNAPSHOT

    @staticmethod
    def make_id(block_id: str, day: int) -> str:
        return f"{block_id}-{day}"


class DailyRankingPosition(BaseModel):
    """1-based rank of a block within its level for one UTC day"""
    id: str
    block: str
    level_id: int
    day: int
    position: int
    invited_count: int
    timestamp: int

    kind: ClassVar[EntityKind] = EntityKind.DAILY_RANKING_POSITION

    @staticmethod
    def make_id(level_id: int, day: int, block_id: str) -> str:
        return f"{level_id}-{day}-{block_id}"


ENTITY_CLASSES = {
    EntityKind.USER: User,
    EntityKind.BLOCK: Block,
    EntityKind.BLOCK_MEMBER: BlockMember,
    EntityKind.TRANSACTION: Transaction,
    EntityKind.RANKING_SNAPSHOT: RankingSnapshot,
    EntityKind.DAILY_RANKING_POSITION: DailyRankingPosition,
}
