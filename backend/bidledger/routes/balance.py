from __future__ import annotations
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bidledger.auth_deps import Caller, get_current_caller
from bidledger.db import get_session
from bidledger.models.balance import PartnerBalance
from bidledger.schemas.balance import BalancePublic, BidTickets, LedgerEntryPublic, LedgerSnapshot, ReconcileResult
from bidledger.services.balance import get_balance, list_ledger_entries, reconcile

router = APIRouter(prefix="/partners/me", tags=["balance"])


def to_public(bal: PartnerBalance) -> BalancePublic:
    return BalancePublic(
        partner_id=bal.partner_id,
        cash_points=int(bal.cash_points),
        cash_points_service=int(bal.cash_points_service),
        bid_tickets=BidTickets(general=int(bal.bid_tickets_general), service=int(bal.bid_tickets_service)),
        updated_at=bal.updated_at,
    )


@router.get("/balance", response_model=BalancePublic)
async def my_balance(session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    return to_public(await get_balance(session, caller.partner_id))


@router.get("/ledger", response_model=LedgerSnapshot)
async def my_ledger(
    limit: int = Query(default=50, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
    caller: Caller = Depends(get_current_caller),
):
    bal = await get_balance(session, caller.partner_id)
    rows = await list_ledger_entries(session, caller.partner_id, limit=limit)
    return {
        "balance": to_public(bal),
        "entries": [
            LedgerEntryPublic(
                id=r.id, type=r.type, delta_points=int(r.delta_points),
                delta_cash_points=int(r.delta_cash_points),
                delta_cash_points_service=int(r.delta_cash_points_service),
                delta_bid_tickets_general=int(r.delta_bid_tickets_general),
                delta_bid_tickets_service=int(r.delta_bid_tickets_service),
                balance_after=int(r.balance_after), spent_general=r.spent_general, spent_service=r.spent_service,
                order_id=r.order_id, bid_id=r.bid_id, request_id=r.request_id, reason=r.reason,
                created_at=r.created_at,
            ) for r in rows
        ],
    }


@router.get("/reconcile", response_model=ReconcileResult)
async def my_reconcile(session: AsyncSession = Depends(get_session), caller: Caller = Depends(get_current_caller)):
    mismatches = await reconcile(session, caller.partner_id)
    return {"partner_id": caller.partner_id, "consistent": not mismatches, "mismatches": mismatches}
