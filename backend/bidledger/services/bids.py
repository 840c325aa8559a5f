from __future__ import annotations
import uuid
from datetime import datetime, timezone as dt_tz

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bidledger.config import settings
from bidledger.errors import BiddingClosed, InvalidArgument, PermissionDenied, Unauthenticated
from bidledger.models.auction import AdBid, AdPlacement
from bidledger.services.auction_calendar import is_bidding_closed, next_auction_week
from bidledger.services.balance import reserve

log = structlog.get_logger()


def region_key_for(region: str, region_detail: str | None) -> str:
    return f"{region} {region_detail}" if region_detail else region


def require_self(caller_id: str | None, partner_id: str | None) -> str:
    """The caller may only act on their own partner record."""
    if not caller_id:
        raise Unauthenticated()
    if not partner_id or partner_id != caller_id:
        raise PermissionDenied()
    return partner_id


async def place_bid(
    session: AsyncSession,
    *,
    caller_id: str | None,
    partner_id: str | None,
    category: str | None,
    region: str | None,
    region_detail: str | None = None,
    amount: int,
    now: datetime | None = None,
) -> AdBid:
    """
    Record a bid for next week's auction and escrow its amount.
    Checks run in order (auth, category/region, minimum, window); the first failure wins.
    """
    partner_id = require_self(caller_id, partner_id)

    category = (category or "").strip()
    region = (region or "").strip()
    region_detail = (region_detail or "").strip() or None
    if not category or not region:
        raise InvalidArgument("category and region are required")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < settings.min_bid_points:
        raise InvalidArgument(f"minimum bid is {settings.min_bid_points:,} points")

    now = now or datetime.now(dt_tz.utc)
    if is_bidding_closed(now, settings.auction_timezone, settings.bid_cutoff_hour):
        raise BiddingClosed()

    week = next_auction_week(now, settings.auction_timezone, settings.bid_cutoff_hour)
    bid_id = uuid.uuid4()

    # Raises InsufficientFunds before the bid row exists; the caller's transaction is then discarded.
    await reserve(session, partner_id=partner_id, amount=amount, bid_id=bid_id, now=now)

    bid = AdBid(
        id=bid_id,
        partner_id=partner_id,
        category=category,
        region=region,
        region_detail=region_detail,
        region_key=region_key_for(region, region_detail),
        amount=amount,
        week_key=week.week_key,
        week_start=week.start,
        week_end=week.end,
        status="pending",
        created_at=now,
        updated_at=now,
    )
    session.add(bid)
    await session.flush()
    log.info("bid_placed", partner_id=partner_id, bid_id=str(bid_id), week_key=week.week_key,
             category=category, region_key=bid.region_key, amount=amount)
    return bid


async def list_partner_bids(session: AsyncSession, partner_id: str, week_key: str | None = None) -> list[AdBid]:
    q = select(AdBid).where(AdBid.partner_id == partner_id)
    if week_key:
        q = q.where(AdBid.week_key == week_key)
    return list((await session.execute(q.order_by(AdBid.created_at.desc()))).scalars().all())


async def list_week_placements(
    session: AsyncSession,
    week_key: str,
    category: str | None = None,
    region_key: str | None = None,
) -> list[AdPlacement]:
    q = select(AdPlacement).where(AdPlacement.week_key == week_key)
    if category:
        q = q.where(AdPlacement.category == category)
    if region_key:
        q = q.where(AdPlacement.region_key == region_key)
    return list((await session.execute(
        q.order_by(AdPlacement.category, AdPlacement.region_key, AdPlacement.rank)
    )).scalars().all())
