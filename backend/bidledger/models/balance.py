from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, CheckConstraint, Index, Uuid, func
from bidledger.db import Base

# pool name -> PartnerBalance attribute / LedgerEntry delta column
POOLS = {
    "cash_points": "delta_cash_points",
    "cash_points_service": "delta_cash_points_service",
    "bid_tickets_general": "delta_bid_tickets_general",
    "bid_tickets_service": "delta_bid_tickets_service",
}

CASH_POOLS = ("cash_points", "cash_points_service")


class PartnerBalance(Base):
    """
    Spendable balances of one partner. Mutated only through services.balance.
    cash_points is always spent before cash_points_service.
    """
    __tablename__ = "partner_balances"

    partner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    cash_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cash_points_service: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bid_tickets_general: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bid_tickets_service: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("cash_points >= 0", name="ck_balance_cash_points_nonneg"),
        CheckConstraint("cash_points_service >= 0", name="ck_balance_cash_points_service_nonneg"),
        CheckConstraint("bid_tickets_general >= 0", name="ck_balance_bid_tickets_general_nonneg"),
        CheckConstraint("bid_tickets_service >= 0", name="ck_balance_bid_tickets_service_nonneg"),
    )

    @property
    def cash_total(self) -> int:
        return int(self.cash_points) + int(self.cash_points_service)


class LedgerEntry(Base):
    """
    Append-only audit row, exactly one per balance mutation.
    Sign convention: deltas are signed per pool; delta_points is their sum.
      - credit_charge*        => + (top-up)
      - debit_quote           => - (quote fee, general-first)
      - bid_reserve           => - (escrow at bid time, general-first)
      - debit_ticket_points   => - cash, + bid_tickets_general
      - refund                => + cash_points (lost bid)
    Replaying the per-pool deltas of a partner reproduces PartnerBalance.
    """
    __tablename__ = "ledger_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)

    delta_points: Mapped[int] = mapped_column(Integer, nullable=False)
    delta_cash_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delta_cash_points_service: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delta_bid_tickets_general: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delta_bid_tickets_service: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)  # affected pool(s) after the op
    spent_general: Mapped[int | None] = mapped_column(Integer, nullable=True)
    spent_service: Mapped[int | None] = mapped_column(Integer, nullable=True)

    order_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    bid_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(160), nullable=True, unique=True)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_ledger_entries_partner_created", "partner_id", "created_at"),
    )
