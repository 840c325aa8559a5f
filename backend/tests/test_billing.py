from datetime import timedelta
import pytest
from sqlalchemy import select

from bidledger.errors import InsufficientFunds, InvalidArgument, PermissionDenied, SubscriptionNotActive
from bidledger.models.notification import NotificationEvent
from bidledger.models.partner import PartnerAccount, PointOrder
from bidledger.services import billing
from bidledger.services.billing import (
    cancel_subscription, charge, deduct_points_for_quote, purchase_bid_tickets_with_points, start_subscription,
)
from conftest import WED_NOON_KST, count_ledger, fetch_balance, open_partner


@pytest.mark.asyncio
@pytest.mark.parametrize("charge_type, pool, ledger_type", [
    ("cash_points", "cash_points", "credit_charge_cash"),
    ("cash_points_service", "cash_points_service", "credit_charge_cash_service"),
])
async def test_cash_charge_credits_display_amount(session_factory, charge_type, pool, ledger_type):
    pid = await open_partner(session_factory)
    async with session_factory() as s:
        result = await charge(s, caller_id=pid, partner_id=pid, charge_type=charge_type,
                              display_amount_krw=50000, amount_supply_krw=45455, amount_pay_krw=50000)
        await s.commit()
    assert result.credited_points == 50000 and result.balance_after == 50000
    assert getattr(await fetch_balance(session_factory, pid), pool) == 50000
    assert await count_ledger(session_factory, pid, ledger_type) == 1


@pytest.mark.asyncio
async def test_ticket_pack_credits_stated_count(session_factory):
    pid = await open_partner(session_factory)
    async with session_factory() as s:
        result = await charge(s, caller_id=pid, partner_id=pid, charge_type="bid_tickets",
                              amount_supply_krw=9091, amount_pay_krw=10000, credited_points=10)
        await s.commit()
    assert result.credited_points == 10
    assert (await fetch_balance(session_factory, pid)).bid_tickets_general == 10


@pytest.mark.asyncio
async def test_charge_is_idempotent_by_external_id(session_factory):
    pid = await open_partner(session_factory)
    kwargs = dict(caller_id=pid, partner_id=pid, charge_type="cash_points", display_amount_krw=10000,
                  amount_supply_krw=9091, amount_pay_krw=10000, provider="stripe", external_id="pi_123")
    async with session_factory() as s:
        first = await charge(s, **kwargs)
        await s.commit()
    async with session_factory() as s:
        second = await charge(s, **kwargs)
        await s.commit()

    assert second.duplicate and second.order_id == first.order_id
    assert (await fetch_balance(session_factory, pid)).cash_points == 10000
    async with session_factory() as s:
        orders = (await s.execute(select(PointOrder).where(PointOrder.partner_id == pid))).scalars().all()
    assert len(orders) == 1


@pytest.mark.asyncio
async def test_charge_losing_the_insert_race_returns_the_first_order(session_factory, monkeypatch):
    pid = await open_partner(session_factory)
    kwargs = dict(caller_id=pid, partner_id=pid, charge_type="cash_points", display_amount_krw=10000,
                  amount_supply_krw=9091, amount_pay_krw=10000, provider="stripe", external_id="pi_race")
    async with session_factory() as s:
        first = await charge(s, **kwargs)
        await s.commit()

    # the second delivery looked before the first one committed
    real_lookup = billing._order_by_external_id
    lookups = []

    async def stale_then_real(session, external_id):
        lookups.append(external_id)
        if len(lookups) == 1:
            return None
        return await real_lookup(session, external_id)

    monkeypatch.setattr(billing, "_order_by_external_id", stale_then_real)
    async with session_factory() as s:
        second = await charge(s, **kwargs)
        await s.commit()

    assert second.duplicate and second.order_id == first.order_id
    assert second.balance_after == 10000
    assert (await fetch_balance(session_factory, pid)).cash_points == 10000
    assert await count_ledger(session_factory, pid, "credit_charge_cash") == 1
    async with session_factory() as s:
        orders = (await s.execute(select(PointOrder).where(PointOrder.external_id == "pi_race"))).scalars().all()
    assert len(orders) == 1


@pytest.mark.asyncio
async def test_charge_rejects_bad_input(session_factory):
    pid = await open_partner(session_factory)
    async with session_factory() as s:
        with pytest.raises(PermissionDenied):
            await charge(s, caller_id="other", partner_id=pid, charge_type="cash_points",
                         display_amount_krw=1, amount_supply_krw=1, amount_pay_krw=1)
        with pytest.raises(InvalidArgument):
            await charge(s, caller_id=pid, partner_id=pid, charge_type="gold",
                         display_amount_krw=1, amount_supply_krw=1, amount_pay_krw=1)
        with pytest.raises(InvalidArgument):
            await charge(s, caller_id=pid, partner_id=pid, charge_type="cash_points",
                         display_amount_krw=0, amount_supply_krw=1, amount_pay_krw=1)


@pytest.mark.asyncio
async def test_tickets_with_points_spends_general_first(session_factory):
    pid = await open_partner(session_factory, cash=3000, service=2000)
    async with session_factory() as s:
        result = await purchase_bid_tickets_with_points(s, caller_id=pid, partner_id=pid,
                                                        amount_pay_krw=4000, credited_points=4)
        await s.commit()
    bal = await fetch_balance(session_factory, pid)
    assert (bal.cash_points, bal.cash_points_service, bal.bid_tickets_general) == (0, 1000, 4)
    assert result.balance_after == 1000


@pytest.mark.asyncio
async def test_quote_fee_need_points(session_factory):
    pid = await open_partner(session_factory, cash=200, service=200)
    async with session_factory() as s:
        with pytest.raises(InsufficientFunds) as exc:
            await deduct_points_for_quote(s, caller_id=pid, partner_id=pid, request_id="req-1")
    assert exc.value.code == "NEED_POINTS"
    assert await count_ledger(session_factory, pid, "debit_quote") == 0


@pytest.mark.asyncio
async def test_quote_fee_charged_once_per_request(session_factory):
    pid = await open_partner(session_factory, cash=600, service=1000)
    for _ in range(2):
        async with session_factory() as s:
            result = await deduct_points_for_quote(s, caller_id=pid, partner_id=pid, request_id="req-1",
                                                   quote_price=150000, now=WED_NOON_KST)
            await s.commit()
    assert (result.spent_general, result.spent_service) == (500, 0)
    bal = await fetch_balance(session_factory, pid)
    assert (bal.cash_points, bal.cash_points_service) == (100, 1000)
    assert await count_ledger(session_factory, pid, "debit_quote") == 1


@pytest.mark.asyncio
async def test_low_balance_event_once_per_day(session_factory):
    pid = await open_partner(session_factory, cash=1100)
    for req in ("req-1", "req-2"):
        async with session_factory() as s:
            await deduct_points_for_quote(s, caller_id=pid, partner_id=pid, request_id=req, now=WED_NOON_KST)
            await s.commit()
    async with session_factory() as s:
        events = (await s.execute(
            select(NotificationEvent).where(NotificationEvent.kind == "low_balance")
        )).scalars().all()
    assert len(events) == 1
    assert events[0].payload["cash_total"] == 100


@pytest.mark.asyncio
async def test_subscription_start_and_cancel(session_factory):
    pid = await open_partner(session_factory)
    async with session_factory() as s:
        with pytest.raises(SubscriptionNotActive):
            await cancel_subscription(s, caller_id=pid, partner_id=pid)

    async with session_factory() as s:
        acct = await start_subscription(s, caller_id=pid, partner_id=pid, plan="month_auto", auto_renew=True,
                                        now=WED_NOON_KST)
        await s.commit()
    assert acct.subscription_status == "active"
    assert acct.subscription_end_date == WED_NOON_KST + timedelta(days=30)

    async with session_factory() as s:
        await cancel_subscription(s, caller_id=pid, partner_id=pid)
        await s.commit()
    async with session_factory() as s:
        assert (await s.get(PartnerAccount, pid)).subscription_status == "cancelled"
