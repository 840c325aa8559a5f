from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bidledger.auth_deps import Caller, get_current_caller
from bidledger.config import settings
from bidledger.db import get_session
from bidledger.schemas.billing import (
    CancelSubscriptionRequest, ChargeRequest, ChargeResponse, QuoteDeductRequest, QuoteDeductResponse,
    SubscriptionPublic, SubscriptionRequest, TicketPurchaseRequest,
)
from bidledger.services.billing import (
    cancel_subscription, charge, deduct_points_for_quote, purchase_bid_tickets_with_points, start_subscription,
)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/charges", response_model=ChargeResponse, status_code=201)
async def create_charge(payload: ChargeRequest, session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    result = await charge(
        session,
        caller_id=caller.partner_id,
        partner_id=payload.partner_id,
        charge_type=payload.type,
        display_amount_krw=payload.display_amount_krw,
        amount_supply_krw=payload.amount_supply_krw,
        amount_pay_krw=payload.amount_pay_krw,
        credited_points=payload.credited_points,
        provider=payload.provider,
    )
    await session.commit()
    return ChargeResponse(order_id=result.order_id, credited_points=result.credited_points, balance_after=result.balance_after)


@router.post("/bid-tickets/with-points", response_model=ChargeResponse, status_code=201)
async def buy_tickets_with_points(payload: TicketPurchaseRequest, session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    result = await purchase_bid_tickets_with_points(
        session,
        caller_id=caller.partner_id,
        partner_id=payload.partner_id,
        amount_pay_krw=payload.amount_pay_krw,
        credited_points=payload.credited_points,
    )
    await session.commit()
    return ChargeResponse(order_id=result.order_id, credited_points=result.credited_points, balance_after=result.balance_after)


@router.post("/quotes/deduct", response_model=QuoteDeductResponse)
async def deduct_for_quote(payload: QuoteDeductRequest, session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    result = await deduct_points_for_quote(
        session,
        caller_id=caller.partner_id,
        partner_id=payload.partner_id,
        request_id=payload.request_id,
        quote_price=payload.quote_price,
    )
    await session.commit()
    return QuoteDeductResponse(
        points_deducted=settings.quote_fee_points,
        general_deducted=result.spent_general,
        service_deducted=result.spent_service,
        balance_after=result.balance_after,
    )


@router.post("/subscription", response_model=SubscriptionPublic)
async def subscribe(payload: SubscriptionRequest, session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    acct = await start_subscription(
        session,
        caller_id=caller.partner_id,
        partner_id=payload.partner_id,
        plan=payload.plan,
        auto_renew=payload.auto_renew,
        provider=payload.provider,
    )
    await session.commit()
    return SubscriptionPublic(status=acct.subscription_status, plan=acct.subscription_plan, end_date=acct.subscription_end_date)


@router.post("/subscription/cancel", response_model=SubscriptionPublic)
async def unsubscribe(payload: CancelSubscriptionRequest, session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    acct = await cancel_subscription(session, caller_id=caller.partner_id, partner_id=payload.partner_id)
    await session.commit()
    return SubscriptionPublic(status=acct.subscription_status, plan=acct.subscription_plan, end_date=acct.subscription_end_date)
