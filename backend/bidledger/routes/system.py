from __future__ import annotations
from fastapi import APIRouter, Request
from datetime import datetime, timezone
from bidledger.config import settings
from bidledger.services.auction_calendar import is_bidding_closed, next_auction_week

router = APIRouter()

@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "env": settings.environment,
        "time": datetime.now(timezone.utc).isoformat(),
        "request_id": request.headers.get("x-request-id") or request.state.request_id,
    }

@router.get("/version")
async def version():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "git_sha": settings.git_sha,
        "build": "docker",
    }

@router.get("/auction/calendar")
async def auction_calendar():
    """Which week a bid placed now competes for, and whether bidding is open."""
    now = datetime.now(timezone.utc)
    week = next_auction_week(now, settings.auction_timezone, settings.bid_cutoff_hour)
    return {
        "timezone": settings.auction_timezone,
        "bidding_open": not is_bidding_closed(now, settings.auction_timezone, settings.bid_cutoff_hour),
        "week_key": week.week_key,
        "week_start": week.start.isoformat(),
        "week_end": week.end.isoformat(),
        "cutoff": week.cutoff.isoformat(),
        "min_bid_points": settings.min_bid_points,
        "slots": settings.auction_slots,
    }
