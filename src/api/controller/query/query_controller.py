"""Query controller: generic entity queries and nested block/user views."""

from src.api.controller.query.dto.input_dto import QueryRequestDto
from src.api.controller.query.dto.output_dto import (
    BlockDetailsDto,
    QueryResponseDto,
    ReferralsResponseDto,
    TransactionsResponseDto,
    UserDetailsDto,
)
from src.api.utils.validators import require_evm_address, require_referral_code
from src.core.exceptions.base import NotFoundError
from src.core.service.indexer.models import EntityKind
from src.core.service.ranking.levels import get_level
from src.core.service.ranking.ranking_service import RankingService
from src.core.service.ranking.snapshots import PAGE_SIZE
from src.infra.repository.entity_store import EntityStore
from src.core.logger.logger import get_logger

logger = get_logger(__name__)


class QueryController:
    """Controller for read-only entity access."""

    def __init__(self, store: EntityStore, ranking_service: RankingService):
        self.store = store
        self.ranking_service = ranking_service

    async def query(self, request: QueryRequestDto) -> QueryResponseDto:
        """
        Run a filtered, ordered and paginated query over one entity set.

        Raises:
            ServiceError: unknown field or operator (422)
        """
        items = await self.store.query(
            request.entity,
            where=request.where,
            order_by=request.order_by,
            order_direction=request.order_direction,
            first=request.first,
            skip=request.skip,
        )
        logger.debug(
            "Entity query",
            extra={"entity": request.entity.value, "filters": list(request.where), "returned": len(items)}
        )
        return QueryResponseDto(
            entity=request.entity,
            count=len(items),
            items=[item.model_dump(mode="json") for item in items]
        )

    async def get_block_details(self, address: str) -> BlockDetailsDto:
        block_id = require_evm_address(address)
        block = await self.store.load(EntityKind.BLOCK, block_id)
        if block is None:
            raise NotFoundError(f"Block {block_id} not found")

        members = await self.store.query(
            EntityKind.BLOCK_MEMBER, where={"block": block_id}, order_by="position", first=PAGE_SIZE
        )
        numbers = await self.ranking_service.get_block_numbers(block.level_id)

        return BlockDetailsDto(
            block=block,
            owner=await self.store.load(EntityKind.USER, block.owner),
            level=get_level(block.level_id),
            block_number=numbers.get(block.id),
            member_count=len(members),
            members=members
        )

    async def get_user_details(self, address: str) -> UserDetailsDto:
        user_id = require_evm_address(address)
        user = await self.store.load(EntityKind.USER, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return await self._user_details(user)

    async def get_user_by_referral_code(self, code: str) -> UserDetailsDto:
        code = require_referral_code(code)
        users = await self.store.query(EntityKind.USER, where={"referral_code": code}, first=1)
        if not users:
            raise NotFoundError("No user holds this referral code")
        return await self._user_details(users[0])

    async def _user_details(self, user) -> UserDetailsDto:
        blocks = await self.store.query(
            EntityKind.BLOCK, where={"owner": user.id}, order_by="created_at", first=PAGE_SIZE
        )
        memberships = await self.store.query(
            EntityKind.BLOCK_MEMBER, where={"member": user.id}, order_by="joined_at", first=PAGE_SIZE
        )
        return UserDetailsDto(
            user=user,
            blocks=blocks,
            memberships=memberships,
            referrals_count=await self.store.count(EntityKind.USER, {"referrer": user.id})
        )

    async def get_user_referrals(self, address: str, first: int = 100, skip: int = 0) -> ReferralsResponseDto:
        user_id = require_evm_address(address)
        items = await self.store.query(
            EntityKind.USER, where={"referrer": user_id}, order_by="registered_at", first=first, skip=skip
        )
        return ReferralsResponseDto(user=user_id, count=len(items), items=items)

    async def get_user_transactions(self, address: str, first: int = 20, skip: int = 0) -> TransactionsResponseDto:
        """Transaction history of a user, newest first"""
        user_id = require_evm_address(address)
        items = await self.store.query(
            EntityKind.TRANSACTION,
            where={"user": user_id},
            order_by="timestamp",
            order_direction="desc",
            first=first,
            skip=skip
        )
        return TransactionsResponseDto(user=user_id, first=first, skip=skip, count=len(items), items=items)
