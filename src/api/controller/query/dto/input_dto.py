"""
Input DTOs for the entity query endpoint.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.service.indexer.models import EntityKind


class QueryRequestDto(BaseModel):
    """DTO for a generic entity query."""

    model_config = ConfigDict(populate_by_name=True)

    entity: EntityKind = Field(..., description="Entity set to query")
    where: Dict[str, Any] = Field(
        default_factory=dict,
        description="Filters: field, field_in, field_not, field_not_in, field_gt, field_gte, field_lt, field_lte"
    )
    order_by: Optional[str] = Field(None, alias="orderBy", description="Scalar field to sort on")
    order_direction: str = Field("asc", alias="orderDirection", description="asc or desc")
    first: Optional[int] = Field(None, ge=0, description="Page size (default 100, capped at 1000)")
    skip: int = Field(0, ge=0, description="Offset")

    @field_validator('order_direction')
    @classmethod
    def validate_order_direction(cls, v):
        v = (v or "asc").lower()
        if v not in ("asc", "desc"):
            raise ValueError("orderDirection must be 'asc' or 'desc'")
        return v

    @field_validator('where')
    @classmethod
    def validate_where(cls, v):
        for key in v:
            if not key or not key.strip():
                raise ValueError("Filter keys cannot be empty")
        return v
