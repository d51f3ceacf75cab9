"""
SQLAlchemy ORM models for indexed entities and indexer state
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, BigInteger, DateTime, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UserModel(Base):
    """SQLAlchemy ORM model for users table"""

    __tablename__ = "users"

    id = Column(String(42), primary_key=True)
    level = Column(Integer, nullable=False, default=1)
    referral_code = Column(String(66), nullable=False, default="0x")
    registered_at = Column(BigInteger, nullable=False, default=0)
    referrer = Column(String(42), nullable=True)

    __table_args__ = (
        Index('idx_users_referral_code', 'referral_code'),
        Index('idx_users_referrer', 'referrer'),
    )

    def __repr__(self):
        return f"<User(id='{self.id}', level={self.level})>"


class BlockModel(Base):
    """SQLAlchemy ORM model for blocks table"""

    __tablename__ = "blocks"

    id = Column(String(42), primary_key=True)
    owner = Column(String(42), nullable=False)
    level_id = Column(Integer, nullable=False)
    status = Column(Integer, nullable=False, default=0)
    invited_count = Column(Integer, nullable=False, default=0)
    created_at = Column(BigInteger, nullable=False)
    completed_at = Column(BigInteger, nullable=True)
    created_block_number = Column(BigInteger, nullable=False, default=0)
    created_log_index = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index('idx_blocks_owner', 'owner'),
        Index('idx_blocks_level_status', 'level_id', 'status'),
        Index('idx_blocks_level_created', 'level_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Block(id='{self.id}', level={self.level_id}, status={self.status})>"


class BlockMemberModel(Base):
    """SQLAlchemy ORM model for block_members table"""

    __tablename__ = "block_members"

    id = Column(String(85), primary_key=True)
    block = Column(String(42), nullable=False)
    member = Column(String(42), nullable=False)
    position = Column(Integer, nullable=False)
    joined_at = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_block_members_block_position', 'block', 'position'),
        Index('idx_block_members_member', 'member'),
    )

    def __repr__(self):
        return f"<BlockMember(block='{self.block}', member='{self.member}', position={self.position})>"


class TransactionModel(Base):
    """SQLAlchemy ORM model for transactions table"""

    __tablename__ = "transactions"

    id = Column(String(80), primary_key=True)
    user = Column(String(42), nullable=False)
    type = Column(String(20), nullable=False)
    amount = Column(String(100), nullable=False, default="0")  # uint256 as decimal string
    block = Column(String(42), nullable=True)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_transactions_user_timestamp', 'user', 'timestamp'),
        Index('idx_transactions_block', 'block'),
    )

    def __repr__(self):
        return f"<Transaction(id='{self.id}', type='{self.type}', user='{self.user}')>"


class RankingSnapshotModel(Base):
    """SQLAlchemy ORM model for ranking_snapshots table"""

    __tablename__ = "ranking_snapshots"

    id = Column(String(64), primary_key=True)
    block = Column(String(42), nullable=False)
    level_id = Column(Integer, nullable=False)
    invited_count = Column(Integer, nullable=False)
    member_count = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_ranking_snapshots_level_day', 'level_id', 'day'),
        Index('idx_ranking_snapshots_block', 'block'),
    )

    def __repr__(self):
        return f"<RankingSnapshot(block='{self.block}', day={self.day}, invited={self.invited_count})>"


class DailyRankingPositionModel(Base):
    """SQLAlchemy ORM model for daily_ranking_positions table"""

    __tablename__ = "daily_ranking_positions"

    id = Column(String(72), primary_key=True)
    block = Column(String(42), nullable=False)
    level_id = Column(Integer, nullable=False)
    day = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)
    invited_count = Column(Integer, nullable=False)
    timestamp = Column(BigInteger, nullable=False)

    __table_args__ = (
        Index('idx_daily_positions_level_day', 'level_id', 'day', 'position'),
    )

    def __repr__(self):
        return f"<DailyRankingPosition(block='{self.block}', day={self.day}, position={self.position})>"


class DynamicSourceModel(Base):
    """Contract addresses registered at runtime as event sources"""

    __tablename__ = "dynamic_sources"

    address = Column(String(42), primary_key=True)
    template = Column(String(50), nullable=False)
    created_at_block = Column(BigInteger, nullable=False, default=0)
    registered_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<DynamicSource(address='{self.address}', template='{self.template}')>"


class IndexerCursorModel(Base):
    """Progress of the indexer against the chain (one row per network)"""

    __tablename__ = "indexer_cursor"

    id = Column(String(50), primary_key=True)
    last_indexed_block = Column(BigInteger, nullable=False, default=0)
    chain_head = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<IndexerCursor(id='{self.id}', last_indexed_block={self.last_indexed_block})>"
