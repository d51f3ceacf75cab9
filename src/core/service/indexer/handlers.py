"""
Event materializer

One handler per event type. Handlers read and write entities through the
entity store (create-or-load by content-derived id) and rely on events
arriving in chain order.
"""

from typing import Awaitable, Callable, Dict, Optional, Type

from src.core.exceptions.indexer import MissingReferencedEntityError
from src.core.service.indexer.events import (
    BlockCompleted,
    BlockSettled,
    ContractEvent,
    InviteCountUpdated,
    MemberJoined,
    MyBlockCreated,
    ReferralChainCreated,
    ReferralCodeGenerated,
    UserRegistered,
)
from src.core.service.indexer.models import (
    ZERO_ADDRESS,
    Block,
    BlockMember,
    BlockStatus,
    EntityKind,
    Transaction,
    TransactionType,
    User,
)
from src.core.service.indexer.registrar import BLOCK_TEMPLATE, DynamicSourceRegistrar
from src.core.service.ranking.snapshots import SnapshotWriter
from src.infra.config.settings import get_settings
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class EventMaterializer:
    """Folds typed events into the entity store"""

    def __init__(
        self,
        store,
        registrar: DynamicSourceRegistrar,
        strict_references: Optional[bool] = None
    ):
        self.store = store
        self.registrar = registrar
        self.snapshots = SnapshotWriter(store)
        self.strict_references = (
            settings.INDEXER_STRICT_REFERENCES if strict_references is None else strict_references
        )
        self._handlers: Dict[Type[ContractEvent], Callable[[ContractEvent], Awaitable[bool]]] = {
            UserRegistered: self.handle_user_registered,
            MyBlockCreated: self.handle_my_block_created,
            ReferralCodeGenerated: self.handle_referral_code_generated,
            ReferralChainCreated: self.handle_referral_chain_created,
            InviteCountUpdated: self.handle_invite_count_updated,
            BlockSettled: self.handle_block_settled,
            MemberJoined: self.handle_member_joined,
            BlockCompleted: self.handle_block_completed,
        }

    async def apply(self, event: ContractEvent) -> bool:
        """
        Materialize one event

        Returns:
            True if the event changed state, False for tolerated no-ops
        """
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"No handler for {type(event).__name__}")
        return await handler(event)

    # Helpers

    def _missing(self, kind: EntityKind, entity_id: str, event: ContractEvent) -> bool:
        if self.strict_references:
            raise MissingReferencedEntityError(kind.value, entity_id, event.event_name())
        logger.debug(
            "Referenced entity missing, event ignored",
            extra={
                "kind": kind.value,
                "entity_id": entity_id,
                "event": event.event_name(),
                "tx_hash": event.meta.transaction_hash,
            }
        )
        return False

    async def _load_or_create_user(self, address: str, timestamp: int, level: int = 1) -> User:
        user = await self.store.load(EntityKind.USER, address)
        if user is None:
            user = User(id=address, level=level, registered_at=timestamp)
            await self.store.save(user)
        return user

    @staticmethod
    def _assign_referrer(user: User, referrer_id: str, event: ContractEvent) -> bool:
        """Set-once referrer; a different later value is ignored"""
        if user.referrer is None:
            user.referrer = referrer_id
            return True
        if user.referrer != referrer_id:
            logger.warning(
                "Referrer already set, conflicting value ignored",
                extra={
                    "user": user.id,
                    "referrer": user.referrer,
                    "ignored_referrer": referrer_id,
                    "event": event.event_name(),
                }
            )
        return False

    async def _record_transaction(
        self,
        event: ContractEvent,
        user_id: str,
        tx_type: TransactionType,
        amount: int = 0,
        block_id: Optional[str] = None
    ) -> Transaction:
        tx = Transaction(
            id=event.meta.transaction_hash,
            user=user_id,
            type=tx_type,
            amount=amount,
            block=block_id,
            timestamp=event.timestamp,
        )
        existing = await self.store.load(EntityKind.TRANSACTION, tx.id)
        if existing is not None and (existing.user, existing.type, existing.block) != (tx.user, tx.type, tx.block):
            # Several logical transactions in one chain transaction
            tx.id = f"{event.meta.transaction_hash}-{event.meta.log_index}"
        await self.store.save(tx)
        return tx

    # Registry handlers

    async def handle_user_registered(self, event: UserRegistered) -> bool:
        user = await self.store.load(EntityKind.USER, event.user)
        if user is None:
            user = User(id=event.user, level=event.level, registered_at=event.timestamp)
        user.level = event.level

        if event.referrer != ZERO_ADDRESS:
            referrer = await self.store.load(EntityKind.USER, event.referrer)
            if referrer is not None:
                self._assign_referrer(user, referrer.id, event)

        await self.store.save(user)
        # The registration fee is not part of the event payload
        await self._record_transaction(event, user.id, TransactionType.REGISTRATION, amount=0)
        return True

    async def handle_my_block_created(self, event: MyBlockCreated) -> bool:
        existing = await self.store.load(EntityKind.BLOCK, event.block_address)
        self.registrar.register_source(event.block_address, BLOCK_TEMPLATE, event.meta.block_number)
        if existing is not None:
            logger.debug(
                "Block already indexed, creation replay ignored",
                extra={"block": event.block_address, "tx_hash": event.meta.transaction_hash}
            )
            return False

        owner = await self._load_or_create_user(event.center, event.timestamp, level=event.level)
        block = Block(
            id=event.block_address,
            owner=owner.id,
            level_id=event.level,
            status=BlockStatus.ACTIVE,
            invited_count=0,
            created_at=event.timestamp,
            created_block_number=event.meta.block_number,
            created_log_index=event.meta.log_index,
        )
        await self.store.save(block)
        await self.snapshots.write_snapshot(block, event.timestamp)

        logger.info(
            "Block created",
            extra={"block": block.id, "owner": owner.id, "level_id": block.level_id}
        )
        return True

    async def handle_referral_code_generated(self, event: ReferralCodeGenerated) -> bool:
        user = await self.store.load(EntityKind.USER, event.wallet)
        if user is None:
            return self._missing(EntityKind.USER, event.wallet, event)
        user.referral_code = event.code
        await self.store.save(user)
        return True

    async def handle_referral_chain_created(self, event: ReferralChainCreated) -> bool:
        user = await self.store.load(EntityKind.USER, event.user)
        if user is None:
            return self._missing(EntityKind.USER, event.user, event)
        referrer = await self.store.load(EntityKind.USER, event.referrer)
        if referrer is None:
            return self._missing(EntityKind.USER, event.referrer, event)

        if not self._assign_referrer(user, referrer.id, event):
            return False
        await self.store.save(user)
        return True

    async def handle_invite_count_updated(self, event: InviteCountUpdated) -> bool:
        block = await self.store.load(EntityKind.BLOCK, event.block_address)
        if block is None:
            return self._missing(EntityKind.BLOCK, event.block_address, event)
        block.invited_count = event.new_count
        await self.store.save(block)
        await self.snapshots.write_snapshot(block, event.timestamp)
        return True

    async def handle_block_settled(self, event: BlockSettled) -> bool:
        user = await self.store.load(EntityKind.USER, event.center)
        if user is None:
            return self._missing(EntityKind.USER, event.center, event)

        user.level = event.level + 1 if event.advanced else 1
        await self.store.save(user)
        await self._record_transaction(
            event,
            user.id,
            TransactionType.ADVANCE if event.advanced else TransactionType.CASHOUT,
            amount=0,
            block_id=event.block_address,
        )

        if event.advanced:
            block = await self.store.load(EntityKind.BLOCK, event.block_address)
            if block is None:
                logger.debug("Settled block not indexed", extra={"block": event.block_address})
            elif block.complete(event.timestamp):
                await self.store.save(block)
        return True

    # Per-block handlers

    async def handle_member_joined(self, event: MemberJoined) -> bool:
        block_id = event.emitter
        user = await self._load_or_create_user(event.member, event.timestamp, level=1)

        membership_id = BlockMember.make_id(block_id, user.id)
        if await self.store.load(EntityKind.BLOCK_MEMBER, membership_id) is None:
            await self.store.save(BlockMember(
                id=membership_id,
                block=block_id,
                member=user.id,
                position=event.position,
                joined_at=event.timestamp,
            ))

        await self._record_transaction(event, user.id, TransactionType.JOIN, amount=event.amount, block_id=block_id)
        return True

    async def handle_block_completed(self, event: BlockCompleted) -> bool:
        block = await self.store.load(EntityKind.BLOCK, event.emitter)
        if block is None:
            return self._missing(EntityKind.BLOCK, event.emitter, event)
        if not block.complete(event.timestamp):
            logger.debug("Block already completed", extra={"block": block.id})
            return False
        await self.store.save(block)
        logger.info("Block completed", extra={"block": block.id, "completed_at": event.timestamp})
        return True
