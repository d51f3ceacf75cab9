"""Block and user detail routers."""

from fastapi import APIRouter, Depends, Query

from src.api.controller.query.dto.output_dto import (
    BlockDetailsDto,
    ReferralsResponseDto,
    TransactionsResponseDto,
    UserDetailsDto,
)
from src.api.controller.query.query_controller import QueryController
from src.core.dependencies import get_query_controller

router = APIRouter(
    tags=["Blocks & Users"],
    responses={
        404: {"description": "Not Found"},
        422: {"description": "Invalid address"}
    }
)


@router.get("/blocks/{address}", response_model=BlockDetailsDto, summary="Block details")
async def get_block(
    address: str,
    controller: QueryController = Depends(get_query_controller)
) -> BlockDetailsDto:
    """Block with owner, level, number and members ordered by position."""
    return await controller.get_block_details(address)


@router.get("/users/by-referral-code/{code}", response_model=UserDetailsDto, summary="User by referral code")
async def get_user_by_referral_code(
    code: str,
    controller: QueryController = Depends(get_query_controller)
) -> UserDetailsDto:
    return await controller.get_user_by_referral_code(code)


@router.get("/users/{address}", response_model=UserDetailsDto, summary="User details")
async def get_user(
    address: str,
    controller: QueryController = Depends(get_query_controller)
) -> UserDetailsDto:
    """User with owned blocks and memberships."""
    return await controller.get_user_details(address)


@router.get("/users/{address}/transactions", response_model=TransactionsResponseDto, summary="User transactions")
async def get_user_transactions(
    address: str,
    first: int = Query(20, ge=0, le=1000),
    skip: int = Query(0, ge=0),
    controller: QueryController = Depends(get_query_controller)
) -> TransactionsResponseDto:
    return await controller.get_user_transactions(address, first=first, skip=skip)


@router.get("/users/{address}/referrals", response_model=ReferralsResponseDto, summary="Users referred by a wallet")
async def get_user_referrals(
    address: str,
    first: int = Query(100, ge=0, le=1000),
    skip: int = Query(0, ge=0),
    controller: QueryController = Depends(get_query_controller)
) -> ReferralsResponseDto:
    return await controller.get_user_referrals(address, first=first, skip=skip)
