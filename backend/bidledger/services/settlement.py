from __future__ import annotations
import hashlib
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone as dt_tz
from typing import Iterable, Iterator
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bidledger.config import settings
from bidledger.db import SessionLocal, advisory_xact_lock
from bidledger.models.auction import AdBid, AdPlacement
from bidledger.services.auction_calendar import AuctionWeek, as_utc, auction_week, current_auction_week, parse_week_key
from bidledger.services.balance import refund
from bidledger.services.notifications import emit_event

log = structlog.get_logger()

# writes per outcome, counted the way the batch ceiling is counted
_WRITES = {"won": 2, "lost": 3, "late": 1}


@dataclass(frozen=True)
class BidSnapshot:
    id: UUID
    partner_id: str
    category: str
    region: str
    region_key: str
    amount: int
    created_at: datetime
    status: str

    @classmethod
    def of(cls, bid: AdBid) -> "BidSnapshot":
        return cls(
            id=bid.id,
            partner_id=bid.partner_id,
            category=bid.category,
            region=bid.region,
            region_key=bid.region_key or bid.region,
            amount=int(bid.amount),
            created_at=as_utc(bid.created_at),
            status=bid.status,
        )


@dataclass(frozen=True)
class Outcome:
    bid: BidSnapshot
    status: str                 # won | lost | late
    rank: int | None = None
    placement_id: str | None = None

    @property
    def writes(self) -> int:
        return _WRITES[self.status]


@dataclass
class SettlementReport:
    week_key: str
    total_bids: int = 0
    pending: int = 0
    won: int = 0
    lost: int = 0
    late: int = 0
    skipped: int = 0
    refunded_points: int = 0
    chunks: int = 0
    placements: list[str] = field(default_factory=list)


def placement_id(week_key: str, category: str, region_key: str, rank: int) -> str:
    """
    Readable slot id. When sanitizing changes the text or the region is empty, a short
    digest of the exact (week_key, category, region_key, rank) tuple is appended so that
    two groups never share an id.
    """
    raw = f"{week_key}_{category}_{region_key or 'unknown'}_{rank}"
    safe = re.sub(r"[^\w-]", "_", re.sub(r"\s+", "_", raw))
    if safe == raw and region_key:
        return safe
    digest = hashlib.sha1("\x1f".join([week_key, category, region_key or "", str(rank)]).encode("utf-8")).hexdigest()
    return f"{safe}_{digest[:10]}"


def rank_group(bids: Iterable[BidSnapshot]) -> list[BidSnapshot]:
    """Amount desc, then earlier submission, then bid id: a total order for any input set."""
    return sorted(bids, key=lambda b: (-b.amount, b.created_at, str(b.id)))


def plan_settlement(bids: Iterable[BidSnapshot], week: AuctionWeek, slots: int) -> list[Outcome]:
    """
    Decide the outcome of every bid of the week, already-settled ones included,
    so that a resumed run reproduces the same ranks.
    """
    groups: dict[tuple[str, str], list[BidSnapshot]] = {}
    late: list[BidSnapshot] = []
    for b in bids:
        if b.created_at > week.cutoff:
            late.append(b)
            continue
        groups.setdefault((b.category, b.region_key), []).append(b)

    outcomes: list[Outcome] = []
    for (category, region_key) in sorted(groups):
        for idx, b in enumerate(rank_group(groups[(category, region_key)])):
            if idx < slots:
                rank = idx + 1
                outcomes.append(Outcome(b, "won", rank, placement_id(week.week_key, category, region_key, rank)))
            else:
                outcomes.append(Outcome(b, "lost"))
    for b in sorted(late, key=lambda x: (x.created_at, str(x.id))):
        outcomes.append(Outcome(b, "late"))
    return outcomes


def chunk_outcomes(outcomes: Iterable[Outcome], batch_size: int) -> Iterator[list[Outcome]]:
    """Split into chunks whose write count stays within batch_size (a single outcome always fits)."""
    chunk: list[Outcome] = []
    writes = 0
    for o in outcomes:
        if chunk and writes + o.writes > batch_size:
            yield chunk
            chunk, writes = [], 0
        chunk.append(o)
        writes += o.writes
    if chunk:
        yield chunk


async def _upsert_placement(session: AsyncSession, week: AuctionWeek, o: Outcome, now: datetime) -> None:
    # the slot tuple is the identity; the id only mirrors it
    p = await session.scalar(
        select(AdPlacement).where(
            AdPlacement.week_key == week.week_key,
            AdPlacement.category == o.bid.category,
            AdPlacement.region_key == o.bid.region_key,
            AdPlacement.rank == o.rank,
        )
    )
    if p is None:
        p = AdPlacement(id=o.placement_id)
        session.add(p)
    p.partner_id = o.bid.partner_id
    p.category = o.bid.category
    p.region = o.bid.region
    p.region_key = o.bid.region_key
    p.amount = o.bid.amount
    p.rank = o.rank
    p.week_key = week.week_key
    p.week_start = week.start
    p.week_end = week.end
    p.bid_id = o.bid.id
    p.bid_created_at = o.bid.created_at
    p.placed_at = now


async def _apply_chunk(
    session_factory: async_sessionmaker,
    week: AuctionWeek,
    chunk: list[Outcome],
    report: SettlementReport,
    now: datetime,
) -> None:
    """One transaction. Every write is a no-op when it was already applied by an earlier run."""
    won = lost = late = skipped = refunded = 0
    placed: list[str] = []
    async with session_factory.begin() as session:
        await advisory_xact_lock(session, f"settlement:{week.week_key}")
        rows = {
            b.id: b for b in (await session.execute(
                select(AdBid)
                .where(AdBid.id.in_([o.bid.id for o in chunk]))
                .with_for_update()
                .execution_options(populate_existing=True)
            )).scalars().all()
        }
        for o in chunk:
            bid = rows.get(o.bid.id)
            if bid is None or bid.status != "pending":
                skipped += 1
                continue

            if o.status == "won":
                await _upsert_placement(session, week, o, now)
                bid.status = "won"
                bid.result_rank = o.rank
                won += 1
                placed.append(o.placement_id)
            elif o.status == "lost":
                await refund(session, partner_id=bid.partner_id, amount=int(bid.amount), bid_id=bid.id, now=now)
                bid.status = "lost"
                bid.result_rank = None
                bid.refund_amount = int(bid.amount)
                bid.refunded_at = now
                lost += 1
                refunded += int(bid.amount)
            else:
                bid.status = "late"
                late += 1
            bid.updated_at = now

            await emit_event(
                session,
                partner_id=bid.partner_id,
                kind=f"ad_bid_{o.status}",
                payload={
                    "bid_id": str(bid.id),
                    "week_key": week.week_key,
                    "category": bid.category,
                    "region_key": bid.region_key,
                    "amount": int(bid.amount),
                    "rank": o.rank,
                },
                dedupe_key=f"{bid.id}:{o.status}",
                now=now,
            )

    # only counted once the chunk committed
    report.won += won
    report.lost += lost
    report.late += late
    report.skipped += skipped
    report.refunded_points += refunded
    report.placements.extend(placed)
    report.chunks += 1


async def settle_week(
    week_key: str | date,
    *,
    session_factory: async_sessionmaker | None = None,
    now: datetime | None = None,
    slots: int | None = None,
    batch_size: int | None = None,
) -> SettlementReport:
    """
    Close one auction week: top `slots` bids per (category, region_key) win, the rest are refunded,
    bids created after the cutoff are marked late and forfeited.
    Safe to re-run: a crashed run is resumed by calling this again.
    """
    monday = week_key if isinstance(week_key, date) else parse_week_key(week_key)
    week = auction_week(monday, settings.auction_timezone, settings.bid_cutoff_hour)
    session_factory = session_factory or SessionLocal
    now = now or datetime.now(dt_tz.utc)
    slots = slots or settings.auction_slots
    batch_size = batch_size or settings.settlement_batch_size
    report = SettlementReport(week_key=week.week_key)

    async with session_factory() as session:
        bids = [BidSnapshot.of(b) for b in (await session.execute(
            select(AdBid).where(AdBid.week_key == week.week_key)
        )).scalars().all()]

    report.total_bids = len(bids)
    report.pending = sum(1 for b in bids if b.status == "pending")
    if report.pending == 0:
        log.info("settlement_noop", week_key=week.week_key, total_bids=report.total_bids)
        return report

    todo = [o for o in plan_settlement(bids, week, slots) if o.bid.status == "pending"]
    log.info("settlement_start", week_key=week.week_key, pending=len(todo), cutoff=week.cutoff.isoformat())

    for chunk in chunk_outcomes(todo, batch_size):
        try:
            await _apply_chunk(session_factory, week, chunk, report, now)
        except Exception:
            log.exception("settlement_chunk_failed", week_key=week.week_key,
                          chunk_index=report.chunks, chunk_size=len(chunk))
            raise

    log.info("settlement_done", week_key=week.week_key, won=report.won, lost=report.lost, late=report.late,
             skipped=report.skipped, refunded_points=report.refunded_points, chunks=report.chunks)
    return report


async def settle_due_week(now: datetime | None = None, **kwargs) -> SettlementReport:
    """Settle the week that started at the most recent Monday 00:00 in the auction timezone."""
    now = now or datetime.now(dt_tz.utc)
    week = current_auction_week(now, settings.auction_timezone, settings.bid_cutoff_hour)
    return await settle_week(week.week_key, now=now, **kwargs)
