from __future__ import annotations
import stripe
import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from bidledger.config import settings
from bidledger.db import get_session
from bidledger.services.billing import CHARGE_TYPES, charge

router = APIRouter(tags=["stripe"])
log = structlog.get_logger()


async def _credit_from_payment(db: AsyncSession, *, payment_id: str, metadata: dict, amount: int) -> bool:
    """Top-up confirmed by Stripe. Idempotent by payment intent id."""
    partner_id = metadata.get("partner_id")
    charge_type = metadata.get("charge_type") or "cash_points"
    if not partner_id or charge_type not in CHARGE_TYPES or amount <= 0:
        log.warning("stripe_payment_ignored", payment_id=payment_id, partner_id=partner_id, charge_type=charge_type)
        return False
    result = await charge(
        db,
        caller_id=partner_id,
        partner_id=partner_id,
        charge_type=charge_type,
        display_amount_krw=int(metadata.get("display_amount_krw") or amount),
        amount_supply_krw=int(metadata.get("amount_supply_krw") or amount),
        amount_pay_krw=amount,
        credited_points=int(metadata.get("credited_points") or 0),
        provider="stripe",
        external_id=payment_id,
    )
    if not result.duplicate:
        await db.commit()
    return not result.duplicate


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_session),
):
    if not settings.stripe_webhook_secret or not settings.stripe_secret_key:
        raise HTTPException(status_code=500, detail="Stripe not configured")

    payload = await request.body()
    try:
        event = stripe.Webhook.construct_event(
            payload=payload.decode("utf-8"),
            sig_header=stripe_signature or "",
            secret=settings.stripe_webhook_secret,
        )
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Invalid webhook: {e}")

    stripe.api_key = settings.stripe_secret_key

    # Handle both paths; we use payment_intent id as idempotency key.
    if event["type"] == "checkout.session.completed":
        sess = event["data"]["object"]
        if sess.get("payment_status") == "paid" and sess.get("payment_intent"):
            created = await _credit_from_payment(
                db,
                payment_id=sess["payment_intent"],
                metadata=dict(sess.get("metadata") or {}),
                amount=int(sess.get("amount_total") or 0),
            )
            return {"ok": True, "credited": created}
        return {"ok": True}

    if event["type"] == "payment_intent.succeeded":
        pi = event["data"]["object"]
        if pi.get("status") == "succeeded":
            created = await _credit_from_payment(
                db,
                payment_id=pi["id"],
                metadata=dict(pi.get("metadata") or {}),
                amount=int(pi.get("amount_received") or pi.get("amount") or 0),
            )
            return {"ok": True, "credited": created}
        return {"ok": True}

    # Ignore other events
    return {"ignored": event["type"]}
