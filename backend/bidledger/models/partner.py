from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, DateTime, Uuid, func
from bidledger.db import Base

class PartnerAccount(Base):
    __tablename__ = "partner_accounts"

    partner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    grade: Mapped[str | None] = mapped_column(String(40), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    subscription_status: Mapped[str] = mapped_column(String(16), nullable=False, default="none")  # none|active|cancelled
    subscription_plan: Mapped[str | None] = mapped_column(String(16), nullable=True)  # month|month_auto
    subscription_auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    subscription_provider: Mapped[str | None] = mapped_column(String(16), nullable=True)
    subscription_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    subscription_end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class PointOrder(Base):
    """
    Paid top-up or ticket purchase. Idempotency: external_id is unique
    (payment provider reference, e.g. Stripe payment_intent id).
    """
    __tablename__ = "point_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(24), nullable=False)  # cash_points | cash_points_service | bid_tickets | bid_tickets_points
    provider: Mapped[str] = mapped_column(String(16), nullable=False)

    display_amount_krw: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount_supply_krw: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_pay_krw: Mapped[int] = mapped_column(Integer, nullable=False)
    credited_points: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="paid")

    external_id: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
