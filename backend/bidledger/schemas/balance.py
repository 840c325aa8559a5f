from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class BidTickets(BaseModel):
    general: int
    service: int

class BalancePublic(BaseModel):
    partner_id: str
    cash_points: int
    cash_points_service: int
    bid_tickets: BidTickets
    updated_at: datetime

class LedgerEntryPublic(BaseModel):
    id: UUID
    type: str
    delta_points: int
    delta_cash_points: int
    delta_cash_points_service: int
    delta_bid_tickets_general: int
    delta_bid_tickets_service: int
    balance_after: int
    spent_general: int | None = None
    spent_service: int | None = None
    order_id: UUID | None = None
    bid_id: UUID | None = None
    request_id: str | None = None
    reason: str | None = None
    created_at: datetime

class LedgerSnapshot(BaseModel):
    balance: BalancePublic
    entries: list[LedgerEntryPublic]

class PoolMismatch(BaseModel):
    ledger: int
    balance: int

class ReconcileResult(BaseModel):
    partner_id: str
    consistent: bool
    mismatches: dict[str, PoolMismatch]
