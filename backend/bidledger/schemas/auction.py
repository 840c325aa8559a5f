from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class CreateBidRequest(BaseModel):
    partner_id: str = Field(alias="partnerId")
    category: str
    region: str
    region_detail: str | None = Field(default=None, alias="regionDetail")
    amount: int

    model_config = {"populate_by_name": True}


class CreateBidResponse(BaseModel):
    bid_id: UUID = Field(serialization_alias="bidId")
    week_key: str = Field(serialization_alias="weekKey")


class AdBidPublic(BaseModel):
    id: UUID
    category: str
    region: str
    region_detail: str | None = None
    region_key: str
    amount: int
    week_key: str
    week_start: datetime
    week_end: datetime
    status: str
    result_rank: int | None = None
    refund_amount: int | None = None
    refunded_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AdPlacementPublic(BaseModel):
    id: str
    partner_id: str
    category: str
    region: str
    region_key: str
    amount: int
    rank: int
    week_key: str
    week_start: datetime
    week_end: datetime
    bid_id: UUID

    model_config = {"from_attributes": True}


class SettleRequest(BaseModel):
    week_key: str | None = Field(default=None, alias="weekKey")
    run_async: bool = Field(default=False, alias="async")

    model_config = {"populate_by_name": True}


class SettlementReportPublic(BaseModel):
    week_key: str
    total_bids: int
    pending: int
    won: int
    lost: int
    late: int
    skipped: int
    refunded_points: int
    chunks: int
    placements: list[str]
