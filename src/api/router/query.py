"""Generic entity query router."""

from fastapi import APIRouter, Depends

from src.api.controller.query.dto.input_dto import QueryRequestDto
from src.api.controller.query.dto.output_dto import QueryResponseDto
from src.api.controller.query.query_controller import QueryController
from src.core.dependencies import get_query_controller

router = APIRouter(
    tags=["Query"],
    responses={
        422: {"description": "Unknown field, operator or entity"},
        429: {"description": "Too Many Requests"}
    }
)


@router.post(
    "/query",
    response_model=QueryResponseDto,
    summary="Query an entity set",
    description="Filter, order and paginate users, blocks, members, transactions, snapshots or daily positions"
)
async def query_entities(
    request: QueryRequestDto,
    controller: QueryController = Depends(get_query_controller)
) -> QueryResponseDto:
    """
    Filter suffixes: ``_in``, ``_not``, ``_not_in``, ``_gt``, ``_gte``, ``_lt``, ``_lte``.
    ``first`` defaults to 100 and is capped at 1000; ties are broken by id.
    """
    return await controller.query(request)
