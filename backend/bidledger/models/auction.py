from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, Index, CheckConstraint, UniqueConstraint, Uuid, func
from bidledger.db import Base

class AdBid(Base):
    """
    A partner's bid for next week's placement in (category, region_key).
    Funds are reserved when the row is created; status moves once:
    pending -> won | lost | late.
    """
    __tablename__ = "ad_bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    partner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    region: Mapped[str] = mapped_column(String(120), nullable=False)
    region_detail: Mapped[str | None] = mapped_column(String(120), nullable=True)
    region_key: Mapped[str] = mapped_column(String(250), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    week_key: Mapped[str] = mapped_column(String(10), nullable=False)  # YYYY-MM-DD (Monday)
    week_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    week_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|won|lost|late
    result_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refund_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ad_bids_amount_pos"),
        CheckConstraint("status IN ('pending','won','lost','late')", name="ck_ad_bids_status"),
        Index("ix_ad_bids_week_group_status", "week_key", "category", "region_key", "status"),
    )


class AdPlacement(Base):
    """Won slot. The id is derived from (week_key, category, region_key, rank) so settlement upserts."""
    __tablename__ = "ad_placements"

    id: Mapped[str] = mapped_column(String(320), primary_key=True)
    partner_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)
    category: Mapped[str] = mapped_column(String(80), nullable=False)
    region: Mapped[str] = mapped_column(String(120), nullable=False)
    region_key: Mapped[str] = mapped_column(String(250), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    week_key: Mapped[str] = mapped_column(String(10), index=True, nullable=False)
    week_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    week_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bid_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    bid_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    placed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("week_key", "category", "region_key", "rank", name="uq_ad_placements_slot"),
    )
