"""
Output DTOs for entity queries and nested block/user views.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.core.service.indexer.indexer_service import IndexingStatus
from src.core.service.indexer.models import Block, BlockMember, EntityKind, Transaction, User
from src.core.service.ranking.levels import LevelInfo


class QueryResponseDto(BaseModel):
    """DTO for a generic entity query response."""

    entity: EntityKind = Field(..., description="Queried entity set")
    count: int = Field(..., description="Number of items in this page")
    items: List[Dict[str, Any]] = Field(default_factory=list, description="Matching entities")


class BlockDetailsDto(BaseModel):
    """Block with owner, level and members ordered by position."""

    block: Block
    owner: Optional[User] = None
    level: LevelInfo
    block_number: Optional[int] = Field(None, description="1-based number within the level by creation order")
    member_count: int = 0
    members: List[BlockMember] = Field(default_factory=list)


class UserDetailsDto(BaseModel):
    """User with owned blocks and memberships."""

    user: User
    blocks: List[Block] = Field(default_factory=list, description="Blocks owned by the user")
    memberships: List[BlockMember] = Field(default_factory=list, description="Blocks the user joined")
    referrals_count: int = 0


class ReferralsResponseDto(BaseModel):
    user: str
    count: int
    items: List[User] = Field(default_factory=list)


class TransactionsResponseDto(BaseModel):
    """Transaction history, newest first."""

    user: str
    first: int
    skip: int
    count: int
    items: List[Transaction] = Field(default_factory=list)


class HealthCheckResponseDto(BaseModel):
    """DTO for health check response."""

    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    services: Dict[str, str] = Field(..., description="Service health status")
    indexing: IndexingStatus = Field(..., description="Indexer cursor lag")
    metrics: Dict[str, str] = Field(default_factory=dict, description="Event processing health")
