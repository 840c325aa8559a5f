from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_tz
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bidledger.config import settings
from bidledger.errors import InsufficientFunds, InvalidArgument, NotFound, SubscriptionNotActive
from bidledger.models.partner import PartnerAccount, PointOrder
from bidledger.services.balance import credit, debit_with_priority, exchange_points_for_tickets, get_balance
from bidledger.services.bids import require_self
from bidledger.services.notifications import emit_event

log = structlog.get_logger()

# charge type -> (pool credited, ledger type)
CHARGE_TYPES = {
    "cash_points": ("cash_points", "credit_charge_cash"),
    "cash_points_service": ("cash_points_service", "credit_charge_cash_service"),
    "bid_tickets": ("bid_tickets_general", "credit_charge"),
}
PROVIDERS = {"kakaopay", "card", "bank", "toss", "stripe"}
PLANS = {"month", "month_auto"}


@dataclass(frozen=True)
class ChargeResult:
    order_id: UUID
    credited_points: int
    balance_after: int
    duplicate: bool = False


async def _order_by_external_id(session: AsyncSession, external_id: str) -> PointOrder | None:
    return await session.scalar(select(PointOrder).where(PointOrder.external_id == external_id))


async def _duplicate_charge(session: AsyncSession, partner_id: str, order: PointOrder) -> ChargeResult:
    bal = await get_balance(session, partner_id)
    pool, _ = CHARGE_TYPES[order.type]
    return ChargeResult(order.id, int(order.credited_points), int(getattr(bal, pool)), duplicate=True)


def _non_negative_int(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        raise InvalidArgument("amounts must be numbers")


async def charge(
    session: AsyncSession,
    *,
    caller_id: str | None,
    partner_id: str | None,
    charge_type: str,
    amount_supply_krw: int,
    amount_pay_krw: int,
    display_amount_krw: int | None = None,
    credited_points: int | None = None,
    provider: str = "kakaopay",
    external_id: str | None = None,
    now: datetime | None = None,
) -> ChargeResult:
    """
    Record a paid top-up and credit the matching pool.
    Payment capture is confirmed upstream. Idempotent by external_id when one is given.
    """
    partner_id = require_self(caller_id, partner_id)
    if charge_type not in CHARGE_TYPES:
        raise InvalidArgument("unknown charge type")
    if provider not in PROVIDERS:
        raise InvalidArgument("unknown payment provider")

    display = _non_negative_int(display_amount_krw)
    supply = _non_negative_int(amount_supply_krw)
    pay = _non_negative_int(amount_pay_krw)
    # cash top-ups credit the displayed amount 1:1; ticket packs state their own count
    points = display if charge_type in ("cash_points", "cash_points_service") else _non_negative_int(credited_points)
    if supply <= 0 or pay <= 0 or points <= 0:
        raise InvalidArgument("invalid payment amounts")

    if external_id:
        dup = await _order_by_external_id(session, external_id)
        if dup:
            return await _duplicate_charge(session, partner_id, dup)

    now = now or datetime.now(dt_tz.utc)
    await get_balance(session, partner_id)
    pool, ledger_type = CHARGE_TYPES[charge_type]
    order = PointOrder(
        partner_id=partner_id,
        type=charge_type,
        provider=provider,
        display_amount_krw=display if charge_type != "bid_tickets" else None,
        amount_supply_krw=supply,
        amount_pay_krw=pay,
        credited_points=points,
        status="paid",
        external_id=external_id,
        created_at=now,
    )
    try:
        async with session.begin_nested():
            session.add(order)
            await session.flush()
    except IntegrityError:
        # another delivery of the same payment committed first
        dup = await _order_by_external_id(session, external_id) if external_id else None
        if dup is None:
            raise
        log.info("charge_duplicate_delivery", partner_id=partner_id, external_id=external_id)
        return await _duplicate_charge(session, partner_id, dup)

    balance_after = await credit(
        session,
        partner_id=partner_id,
        pool=pool,
        amount=points,
        ledger_type=ledger_type,
        order_id=order.id,
        idempotency_key=f"order:{order.id}",
        reason="billing",
        now=now,
    )
    log.info("charge_recorded", partner_id=partner_id, order_id=str(order.id), type=charge_type,
             provider=provider, credited_points=points)
    return ChargeResult(order.id, points, balance_after)


async def purchase_bid_tickets_with_points(
    session: AsyncSession,
    *,
    caller_id: str | None,
    partner_id: str | None,
    amount_pay_krw: int,
    credited_points: int,
    now: datetime | None = None,
) -> ChargeResult:
    """Buy general bid tickets with cash points (general pool first)."""
    partner_id = require_self(caller_id, partner_id)
    pay = _non_negative_int(amount_pay_krw)
    tickets = _non_negative_int(credited_points)
    if pay <= 0 or tickets <= 0:
        raise InvalidArgument("invalid payment amounts")

    now = now or datetime.now(dt_tz.utc)
    await get_balance(session, partner_id)
    order = PointOrder(
        partner_id=partner_id,
        type="bid_tickets_points",
        provider="cash_points",
        amount_supply_krw=pay,
        amount_pay_krw=pay,
        credited_points=tickets,
        status="paid",
        created_at=now,
    )
    session.add(order)
    await session.flush()
    result = await exchange_points_for_tickets(session, partner_id=partner_id, points=pay, tickets=tickets,
                                               order_id=order.id, now=now)
    await _maybe_low_balance(session, partner_id, result.balance_after, now)
    return ChargeResult(order.id, tickets, result.balance_after)


async def deduct_points_for_quote(
    session: AsyncSession,
    *,
    caller_id: str | None,
    partner_id: str | None,
    request_id: str | None,
    quote_price: int | None = None,
    now: datetime | None = None,
):
    """
    Charge the fixed quote fee (general pool first). One fee per (partner, request).
    Insufficient points surface as NEED_POINTS so the app can send the partner to top-up.
    """
    partner_id = require_self(caller_id, partner_id)
    request_id = (request_id or "").strip()
    if not request_id:
        raise InvalidArgument("request id is required")

    now = now or datetime.now(dt_tz.utc)
    try:
        result = await debit_with_priority(
            session,
            partner_id=partner_id,
            amount=settings.quote_fee_points,
            ledger_type="debit_quote",
            request_id=request_id,
            idempotency_key=f"quote:{partner_id}:{request_id}",
            reason=f"quote_price={_non_negative_int(quote_price)}",
            now=now,
        )
    except InsufficientFunds:
        raise InsufficientFunds("Not enough points to send a quote. Please top up.", code="NEED_POINTS")
    await _maybe_low_balance(session, partner_id, result.balance_after, now)
    return result


async def _maybe_low_balance(session: AsyncSession, partner_id: str, cash_total: int, now: datetime) -> None:
    if cash_total >= settings.low_balance_threshold:
        return
    await emit_event(
        session,
        partner_id=partner_id,
        kind="low_balance",
        payload={"cash_total": int(cash_total), "threshold": settings.low_balance_threshold},
        dedupe_key=f"low_balance:{partner_id}:{now.date().isoformat()}",
        now=now,
    )


async def _account(session: AsyncSession, partner_id: str) -> PartnerAccount:
    acct = await session.get(PartnerAccount, partner_id, with_for_update=True)
    if acct is None:
        raise NotFound(f"no account for partner {partner_id}")
    return acct


async def start_subscription(
    session: AsyncSession,
    *,
    caller_id: str | None,
    partner_id: str | None,
    plan: str = "month",
    auto_renew: bool = False,
    provider: str = "kakaopay",
    now: datetime | None = None,
) -> PartnerAccount:
    """Activate a subscription period. Payment is confirmed upstream; this only records state."""
    partner_id = require_self(caller_id, partner_id)
    if plan not in PLANS:
        raise InvalidArgument("unknown subscription plan")
    if provider not in PROVIDERS:
        raise InvalidArgument("unknown payment provider")

    now = now or datetime.now(dt_tz.utc)
    acct = await _account(session, partner_id)
    acct.subscription_status = "active"
    acct.subscription_plan = plan
    acct.subscription_auto_renew = bool(auto_renew)
    acct.subscription_provider = provider
    acct.subscription_period_start = now
    acct.subscription_end_date = now + timedelta(days=settings.subscription_period_days)
    acct.updated_at = now
    await session.flush()
    log.info("subscription_started", partner_id=partner_id, plan=plan, end=acct.subscription_end_date.isoformat())
    return acct


async def cancel_subscription(
    session: AsyncSession,
    *,
    caller_id: str | None,
    partner_id: str | None,
    now: datetime | None = None,
) -> PartnerAccount:
    """Mark the subscription cancelled. No refund or proration."""
    partner_id = require_self(caller_id, partner_id)
    acct = await _account(session, partner_id)
    if acct.subscription_status != "active":
        raise SubscriptionNotActive()
    acct.subscription_status = "cancelled"
    acct.updated_at = now or datetime.now(dt_tz.utc)
    await session.flush()
    log.info("subscription_cancelled", partner_id=partner_id)
    return acct
