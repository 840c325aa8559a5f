from __future__ import annotations
from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime


class ChargeRequest(BaseModel):
    partner_id: str = Field(alias="partnerId")
    type: str
    display_amount_krw: int | None = Field(default=None, alias="displayAmountKRW")
    amount_supply_krw: int = Field(alias="amountSupplyKRW")
    amount_pay_krw: int = Field(alias="amountPayKRW")
    credited_points: int | None = Field(default=None, alias="creditedPoints")
    provider: str = "kakaopay"

    model_config = {"populate_by_name": True}


class TicketPurchaseRequest(BaseModel):
    partner_id: str = Field(alias="partnerId")
    amount_pay_krw: int = Field(alias="amountPayKRW")
    credited_points: int = Field(alias="creditedPoints")

    model_config = {"populate_by_name": True}


class ChargeResponse(BaseModel):
    order_id: UUID = Field(serialization_alias="orderId")
    credited_points: int = Field(serialization_alias="creditedPoints")
    balance_after: int = Field(serialization_alias="balanceAfter")


class QuoteDeductRequest(BaseModel):
    partner_id: str = Field(alias="partnerId")
    request_id: str = Field(alias="requestId")
    quote_price: int | None = Field(default=None, alias="quotePrice")

    model_config = {"populate_by_name": True}


class QuoteDeductResponse(BaseModel):
    success: bool = True
    points_deducted: int = Field(serialization_alias="pointsDeducted")
    general_deducted: int = Field(serialization_alias="generalDeducted")
    service_deducted: int = Field(serialization_alias="serviceDeducted")
    balance_after: int = Field(serialization_alias="balanceAfter")


class SubscriptionRequest(BaseModel):
    partner_id: str = Field(alias="partnerId")
    plan: str = "month"
    auto_renew: bool = Field(default=False, alias="autoRenew")
    provider: str = "kakaopay"

    model_config = {"populate_by_name": True}


class CancelSubscriptionRequest(BaseModel):
    partner_id: str = Field(alias="partnerId")

    model_config = {"populate_by_name": True}


class SubscriptionPublic(BaseModel):
    status: str
    plan: str | None = None
    end_date: datetime | None = Field(default=None, serialization_alias="endDate")
