"""
Entity store using SQLAlchemy ORM

Create-or-load storage for every indexed entity kind. Saves are flushed
immediately so later loads in the same session see them; committing is left
to the caller so one event is persisted as one unit.
"""

from typing import Any, Dict, List, Optional, Tuple, Type
from sqlalchemy import select, func, cast, Numeric
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions.handler import ServiceError, ServiceErrorCode
from src.core.service.indexer.models import EntityKind, ENTITY_CLASSES
from src.infra.config.settings import get_settings
from src.infra.models import (
    Base,
    UserModel,
    BlockModel,
    BlockMemberModel,
    TransactionModel,
    RankingSnapshotModel,
    DailyRankingPositionModel,
)
from src.core.logger.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

MODEL_BY_KIND: Dict[EntityKind, Type[Base]] = {
    EntityKind.USER: UserModel,
    EntityKind.BLOCK: BlockModel,
    EntityKind.BLOCK_MEMBER: BlockMemberModel,
    EntityKind.TRANSACTION: TransactionModel,
    EntityKind.RANKING_SNAPSHOT: RankingSnapshotModel,
    EntityKind.DAILY_RANKING_POSITION: DailyRankingPositionModel,
}

# Longest suffix first so "_not_in" is not read as "_in"
FILTER_OPERATORS = ("_not_in", "_in", "_not", "_gte", "_gt", "_lte", "_lt")

# uint256 values are stored as decimal strings
NUMERIC_STRING_COLUMNS = {(EntityKind.TRANSACTION, "amount")}


def _invalid(code: str, message: str, **details) -> ServiceError:
    return ServiceError(code=code, message=message, status_code=422, details=details)


class EntityStore:
    """Repository for indexed entities (load / save / query)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _resolve_kind(kind) -> EntityKind:
        try:
            return EntityKind(kind)
        except ValueError:
            raise _invalid(ServiceErrorCode.INVALID_INPUT, f"Unknown entity kind: {kind}", kind=str(kind))

    @staticmethod
    def _entity_to_model(entity) -> Base:
        """Convert Pydantic entity to SQLAlchemy model"""
        data = entity.model_dump(mode="json")
        if entity.kind == EntityKind.TRANSACTION:
            data["amount"] = str(entity.amount)
        return MODEL_BY_KIND[entity.kind](**data)

    @staticmethod
    def _model_to_entity(kind: EntityKind, model: Base):
        """Convert SQLAlchemy model to Pydantic entity"""
        data = {column.key: getattr(model, column.key) for column in model.__table__.columns}
        return ENTITY_CLASSES[kind].model_validate(data)

    async def load(self, kind, entity_id: str):
        """Load one entity by id, None when it does not exist"""
        kind = self._resolve_kind(kind)
        model = await self.session.get(MODEL_BY_KIND[kind], entity_id)
        if model is None:
            return None
        return self._model_to_entity(kind, model)

    async def save(self, entity) -> None:
        """Upsert by id and flush so the write is visible to later loads"""
        await self.session.merge(self._entity_to_model(entity))
        await self.session.flush()

    def _column(self, kind: EntityKind, field: str):
        model_cls = MODEL_BY_KIND[kind]
        column = model_cls.__table__.columns.get(field)
        if column is None:
            raise _invalid(
                ServiceErrorCode.UNKNOWN_FIELD,
                f"Unknown field '{field}' for {kind.value}",
                field=field,
                kind=kind.value
            )
        return getattr(model_cls, field)

    def _split_filter_key(self, kind: EntityKind, key: str) -> Tuple[str, str]:
        columns = MODEL_BY_KIND[kind].__table__.columns
        if key in columns:
            return key, ""
        for suffix in FILTER_OPERATORS:
            if key.endswith(suffix) and key[:-len(suffix)] in columns:
                return key[:-len(suffix)], suffix
        raise _invalid(
            ServiceErrorCode.UNKNOWN_FIELD,
            f"Unknown filter '{key}' for {kind.value}",
            field=key,
            kind=kind.value
        )

    @staticmethod
    def _normalize_value(kind: EntityKind, field: str, value: Any) -> Any:
        if isinstance(value, (list, tuple, set)):
            return [EntityStore._normalize_value(kind, field, item) for item in value]
        if (kind, field) in NUMERIC_STRING_COLUMNS:
            return str(int(value))
        if isinstance(value, str):
            return value.lower()
        return value

    def _build_conditions(self, kind: EntityKind, where: Optional[Dict[str, Any]]) -> List[Any]:
        conditions = []
        for key, value in (where or {}).items():
            field, operator = self._split_filter_key(kind, key)
            column = self._column(kind, field)
            value = self._normalize_value(kind, field, value)

            if operator in ("_in", "_not_in"):
                if not isinstance(value, list):
                    raise _invalid(ServiceErrorCode.INVALID_FORMAT, f"Filter '{key}' expects a list", field=key)
                conditions.append(column.in_(value) if operator == "_in" else column.not_in(value))
                continue

            if operator in ("_gt", "_gte", "_lt", "_lte") and (kind, field) in NUMERIC_STRING_COLUMNS:
                column = cast(column, Numeric(78, 0))
                value = int(value)

            if operator == "":
                conditions.append(column.is_(None) if value is None else column == value)
            elif operator == "_not":
                conditions.append(column.is_not(None) if value is None else column != value)
            elif operator == "_gt":
                conditions.append(column > value)
            elif operator == "_gte":
                conditions.append(column >= value)
            elif operator == "_lt":
                conditions.append(column < value)
            elif operator == "_lte":
                conditions.append(column <= value)
        return conditions

    def _page_size(self, first: Optional[int]) -> int:
        if first is None:
            return settings.QUERY_DEFAULT_PAGE_SIZE
        if first < 0:
            raise _invalid(ServiceErrorCode.INVALID_INPUT, "'first' must not be negative", first=first)
        return min(first, settings.QUERY_MAX_PAGE_SIZE)

    async def query(
        self,
        kind,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        order_direction: str = "asc",
        first: Optional[int] = None,
        skip: int = 0
    ) -> List[Any]:
        """
        Query an entity set

        Args:
            kind: Entity kind
            where: Filters; keys are field names with optional
                _in / _not / _not_in / _gt / _gte / _lt / _lte suffix
            order_by: Scalar field to sort on (ties broken by id)
            order_direction: 'asc' or 'desc'
            first: Page size (default and cap from settings)
            skip: Offset

        Returns:
            List of entities
        """
        kind = self._resolve_kind(kind)
        model_cls = MODEL_BY_KIND[kind]
        direction = (order_direction or "asc").lower()
        if direction not in ("asc", "desc"):
            raise _invalid(ServiceErrorCode.INVALID_INPUT, "orderDirection must be 'asc' or 'desc'",
                           order_direction=order_direction)
        if skip < 0:
            raise _invalid(ServiceErrorCode.INVALID_INPUT, "'skip' must not be negative", skip=skip)

        pk = model_cls.__table__.primary_key.columns.values()[0]
        stmt = select(model_cls).where(*self._build_conditions(kind, where))

        ordering = []
        if order_by:
            column = self._column(kind, order_by)
            if (kind, order_by) in NUMERIC_STRING_COLUMNS:
                column = cast(column, Numeric(78, 0))
            ordering.append(column.desc() if direction == "desc" else column.asc())
        ordering.append(pk.desc() if direction == "desc" and order_by else pk.asc())

        stmt = stmt.order_by(*ordering).offset(skip).limit(self._page_size(first))
        result = await self.session.execute(stmt)
        return [self._model_to_entity(kind, model) for model in result.scalars().all()]

    async def count(self, kind, where: Optional[Dict[str, Any]] = None) -> int:
        """Count entities matching the filters"""
        kind = self._resolve_kind(kind)
        model_cls = MODEL_BY_KIND[kind]
        stmt = select(func.count()).select_from(model_cls).where(*self._build_conditions(kind, where))
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
