from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone as dt_tz
from uuid import UUID

import structlog
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from bidledger.db import advisory_xact_lock
from bidledger.errors import InvalidArgument, InsufficientFunds, NotFound
from bidledger.models.balance import PartnerBalance, LedgerEntry, POOLS, CASH_POOLS

log = structlog.get_logger()


@dataclass(frozen=True)
class DebitResult:
    entry_id: UUID
    spent_general: int
    spent_service: int
    balance_after: int  # cash_points + cash_points_service after the debit


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(dt_tz.utc)


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidArgument("amount must be an integer")
    if amount <= 0:
        raise InvalidArgument("amount must be > 0")
    return amount


async def _lock_balance(session: AsyncSession, partner_id: str) -> PartnerBalance:
    """Serialize all mutations of one partner: named xact lock + row lock."""
    await advisory_xact_lock(session, f"balance:{partner_id}")
    bal = await session.scalar(
        select(PartnerBalance)
        .where(PartnerBalance.partner_id == partner_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if bal is None:
        raise NotFound(f"no balance record for partner {partner_id}")
    return bal


async def _existing_entry(session: AsyncSession, idempotency_key: str | None) -> LedgerEntry | None:
    if not idempotency_key:
        return None
    return await session.scalar(select(LedgerEntry).where(LedgerEntry.idempotency_key == idempotency_key))


async def _apply(
    session: AsyncSession,
    bal: PartnerBalance,
    *,
    ledger_type: str,
    deltas: dict[str, int],
    balance_after_pools: tuple[str, ...],
    now: datetime,
    spent_general: int | None = None,
    spent_service: int | None = None,
    order_id: UUID | None = None,
    bid_id: UUID | None = None,
    request_id: str | None = None,
    idempotency_key: str | None = None,
    reason: str | None = None,
) -> LedgerEntry:
    """Apply signed per-pool deltas to a locked balance and append the matching ledger entry."""
    after = {pool: int(getattr(bal, pool)) + int(deltas.get(pool, 0)) for pool in POOLS}
    if any(v < 0 for v in after.values()):
        raise InsufficientFunds()

    for pool, value in after.items():
        setattr(bal, pool, value)
    bal.updated_at = now

    entry = LedgerEntry(
        partner_id=bal.partner_id,
        type=ledger_type,
        delta_points=sum(int(v) for v in deltas.values()),
        balance_after=sum(after[p] for p in balance_after_pools),
        spent_general=spent_general,
        spent_service=spent_service,
        order_id=order_id,
        bid_id=bid_id,
        request_id=request_id,
        idempotency_key=idempotency_key,
        reason=reason,
        created_at=now,
        **{POOLS[pool]: int(v) for pool, v in deltas.items()},
    )
    session.add(entry)
    await session.flush()
    return entry


def _split_priority(bal: PartnerBalance, amount: int) -> tuple[int, int]:
    """General-first: (from cash_points, from cash_points_service). Raises if the two pools can't cover it."""
    if bal.cash_total < amount:
        raise InsufficientFunds(f"need {amount}, have {bal.cash_total}")
    general = min(int(bal.cash_points), amount)
    return general, amount - general


# ---------- reads ----------

async def get_balance(session: AsyncSession, partner_id: str) -> PartnerBalance:
    bal = await session.get(PartnerBalance, partner_id)
    if bal is None:
        raise NotFound(f"no balance record for partner {partner_id}")
    return bal


async def list_ledger_entries(session: AsyncSession, partner_id: str, limit: int = 100) -> list[LedgerEntry]:
    return list((await session.execute(
        select(LedgerEntry)
        .where(LedgerEntry.partner_id == partner_id)
        .order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
        .limit(limit)
    )).scalars().all())


async def reconcile(session: AsyncSession, partner_id: str) -> dict[str, dict[str, int]]:
    """
    Replay ledger deltas per pool and compare against the stored balance.
    Returns {pool: {"ledger": x, "balance": y}} for every pool that disagrees (empty when consistent).
    """
    bal = await get_balance(session, partner_id)
    cols = [func.coalesce(func.sum(getattr(LedgerEntry, col)), 0) for col in POOLS.values()]
    sums = (await session.execute(select(*cols).where(LedgerEntry.partner_id == partner_id))).one()
    mismatches = {}
    for pool, total in zip(POOLS, sums):
        if int(total) != int(getattr(bal, pool)):
            mismatches[pool] = {"ledger": int(total), "balance": int(getattr(bal, pool))}
    return mismatches


# ---------- mutations ----------

async def credit(
    session: AsyncSession,
    *,
    partner_id: str,
    pool: str,
    amount: int,
    ledger_type: str,
    order_id: UUID | None = None,
    bid_id: UUID | None = None,
    request_id: str | None = None,
    idempotency_key: str | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> int:
    """Increase one pool. Returns that pool's balance after the credit."""
    _check_amount(amount)
    if pool not in POOLS:
        raise InvalidArgument(f"unknown pool {pool!r}")

    bal = await _lock_balance(session, partner_id)
    exists = await _existing_entry(session, idempotency_key)
    if exists:
        return int(exists.balance_after)

    entry = await _apply(
        session, bal,
        ledger_type=ledger_type,
        deltas={pool: amount},
        balance_after_pools=(pool,),
        now=_now(now),
        order_id=order_id, bid_id=bid_id, request_id=request_id,
        idempotency_key=idempotency_key, reason=reason,
    )
    log.info("balance_credit", partner_id=partner_id, pool=pool, amount=amount, type=ledger_type)
    return int(entry.balance_after)


async def debit_with_priority(
    session: AsyncSession,
    *,
    partner_id: str,
    amount: int,
    ledger_type: str,
    order_id: UUID | None = None,
    bid_id: UUID | None = None,
    request_id: str | None = None,
    idempotency_key: str | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> DebitResult:
    """
    Spend `amount` from cash_points, then cash_points_service for the remainder.
    Raises InsufficientFunds (nothing written) when the two pools together are short.
    """
    _check_amount(amount)
    bal = await _lock_balance(session, partner_id)

    exists = await _existing_entry(session, idempotency_key)
    if exists:
        return DebitResult(exists.id, int(exists.spent_general or 0), int(exists.spent_service or 0), int(exists.balance_after))

    general, service = _split_priority(bal, amount)
    entry = await _apply(
        session, bal,
        ledger_type=ledger_type,
        deltas={"cash_points": -general, "cash_points_service": -service},
        balance_after_pools=CASH_POOLS,
        spent_general=general,
        spent_service=service,
        now=_now(now),
        order_id=order_id, bid_id=bid_id, request_id=request_id,
        idempotency_key=idempotency_key, reason=reason,
    )
    log.info("balance_debit", partner_id=partner_id, amount=amount, spent_general=general, spent_service=service, type=ledger_type)
    return DebitResult(entry.id, general, service, int(entry.balance_after))


async def reserve(
    session: AsyncSession,
    *,
    partner_id: str,
    amount: int,
    bid_id: UUID,
    ledger_type: str = "bid_reserve",
    now: datetime | None = None,
) -> UUID:
    """Escrow a bid amount: debited immediately (general-first); a lost bid is refunded later."""
    result = await debit_with_priority(
        session,
        partner_id=partner_id,
        amount=amount,
        ledger_type=ledger_type,
        bid_id=bid_id,
        idempotency_key=f"{bid_id}:reserve",
        reason="ad_bid_reserve",
        now=now,
    )
    return result.entry_id


async def refund(
    session: AsyncSession,
    *,
    partner_id: str,
    amount: int,
    bid_id: UUID,
    now: datetime | None = None,
) -> UUID:
    """
    Return a bid's amount to cash_points. Exactly once per bid:
    a repeated call returns the first entry's id and changes nothing.
    """
    _check_amount(amount)
    bal = await _lock_balance(session, partner_id)
    key = f"{bid_id}:refund"
    exists = await _existing_entry(session, key)
    if exists:
        log.info("refund_already_applied", partner_id=partner_id, bid_id=str(bid_id))
        return exists.id

    entry = await _apply(
        session, bal,
        ledger_type="refund",
        deltas={"cash_points": amount},
        balance_after_pools=("cash_points",),
        now=_now(now),
        bid_id=bid_id,
        idempotency_key=key,
        reason="ad_bid_refund",
    )
    log.info("refund_applied", partner_id=partner_id, bid_id=str(bid_id), amount=amount)
    return entry.id


async def exchange_points_for_tickets(
    session: AsyncSession,
    *,
    partner_id: str,
    points: int,
    tickets: int,
    order_id: UUID | None = None,
    now: datetime | None = None,
) -> DebitResult:
    """Spend cash points (general-first) and credit general bid tickets as one ledger entry."""
    _check_amount(points)
    _check_amount(tickets)
    bal = await _lock_balance(session, partner_id)
    general, service = _split_priority(bal, points)
    entry = await _apply(
        session, bal,
        ledger_type="debit_ticket_points",
        deltas={"cash_points": -general, "cash_points_service": -service, "bid_tickets_general": tickets},
        balance_after_pools=CASH_POOLS,
        spent_general=general,
        spent_service=service,
        now=_now(now),
        order_id=order_id,
        reason="points_payment",
    )
    log.info("tickets_purchased_with_points", partner_id=partner_id, points=points, tickets=tickets)
    return DebitResult(entry.id, general, service, int(entry.balance_after))
