from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bidledger.auth_deps import Caller, get_current_caller
from bidledger.db import get_session
from bidledger.schemas.auction import AdBidPublic, AdPlacementPublic, CreateBidRequest, CreateBidResponse
from bidledger.services.auction_calendar import parse_week_key
from bidledger.services.bids import list_partner_bids, list_week_placements, place_bid

router = APIRouter(tags=["auction"])


@router.post("/ad-bids", response_model=CreateBidResponse, status_code=201)
async def create_bid(
    payload: CreateBidRequest,
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    bid = await place_bid(
        session,
        caller_id=caller.partner_id,
        partner_id=payload.partner_id,
        category=payload.category,
        region=payload.region,
        region_detail=payload.region_detail,
        amount=payload.amount,
    )
    await session.commit()
    return CreateBidResponse(bid_id=bid.id, week_key=bid.week_key)


@router.get("/ad-bids", response_model=list[AdBidPublic])
async def my_bids(
    week_key: str | None = Query(default=None, alias="weekKey"),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    if week_key:
        parse_week_key(week_key)
    return await list_partner_bids(session, caller.partner_id, week_key)


@router.get("/ad-placements", response_model=list[AdPlacementPublic])
async def week_placements(
    week_key: str = Query(..., alias="weekKey"),
    category: str | None = Query(default=None),
    region_key: str | None = Query(default=None, alias="regionKey"),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    parse_week_key(week_key)
    return await list_week_placements(session, week_key, category, region_key)
