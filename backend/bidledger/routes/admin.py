from __future__ import annotations
from dataclasses import asdict
from uuid import UUID
from fastapi import APIRouter, Depends, Path, Query
from redis import Redis
from rq import Queue
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from bidledger.auth_deps import Caller, require_admin
from bidledger.config import settings
from bidledger.db import get_session, get_session_factory
from bidledger.schemas.auction import SettleRequest, SettlementReportPublic
from bidledger.schemas.notification import NotificationPublic
from bidledger.services.auction_calendar import parse_week_key
from bidledger.services.notifications import mark_dispatched, pending_events
from bidledger.services.partners import DEFAULT_GRADE, approve_partner
from bidledger.services.settlement import settle_due_week, settle_week

router = APIRouter(prefix="/admin", tags=["admin"])
log = structlog.get_logger()

_queue: Queue | None = None


def settlement_queue() -> Queue:
    # RQ queue (lazy single instance)
    global _queue
    if _queue is None:
        _queue = Queue(settings.settlement_queue, connection=Redis.from_url(settings.redis_url))
    return _queue


@router.post("/partners/{partner_id}/approve")
async def approve(
    partner_id: str = Path(...),
    grade: str = DEFAULT_GRADE,
    session: AsyncSession = Depends(get_session),
    admin: Caller = Depends(require_admin),
):
    acct = await approve_partner(session, partner_id, grade=grade)
    await session.commit()
    log.info("partner_approved", partner_id=partner_id, by=admin.partner_id)
    return {"partner_id": acct.partner_id, "grade": acct.grade, "approved_at": acct.approved_at}


@router.post("/auction/settle")
async def settle(
    payload: SettleRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
    admin: Caller = Depends(require_admin),
):
    """Run (or enqueue) settlement. Re-running a settled week is a no-op."""
    if payload.week_key:
        parse_week_key(payload.week_key)

    if payload.run_async:
        job = settlement_queue().enqueue(
            "bidledger.jobs.settle_auction.settle_weekly_auction", payload.week_key, job_timeout=900
        )
        log.info("settlement_enqueued", job_id=job.id, week_key=payload.week_key, by=admin.partner_id)
        return {"job_id": job.id, "week_key": payload.week_key}

    if payload.week_key:
        report = await settle_week(payload.week_key, session_factory=session_factory)
    else:
        report = await settle_due_week(session_factory=session_factory)
    return SettlementReportPublic(**asdict(report))


@router.get("/notifications/pending", response_model=list[NotificationPublic])
async def notifications_pending(
    limit: int = Query(default=100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    admin: Caller = Depends(require_admin),
):
    """Outbox feed for the external notifier, oldest first."""
    return await pending_events(session, limit=limit)


@router.post("/notifications/{event_id}/dispatched", response_model=NotificationPublic)
async def notification_dispatched(
    event_id: UUID,
    session: AsyncSession = Depends(get_session),
    admin: Caller = Depends(require_admin),
):
    ev = await mark_dispatched(session, event_id)
    await session.commit()
    return ev
