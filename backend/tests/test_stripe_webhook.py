import pytest

from bidledger.config import settings
from bidledger.routes.stripe_webhooks import _credit_from_payment
from conftest import count_ledger, fetch_balance, open_partner


@pytest.mark.asyncio
async def test_payment_credits_once(session_factory):
    pid = await open_partner(session_factory)
    meta = {"partner_id": pid, "charge_type": "cash_points"}
    async with session_factory() as s:
        assert await _credit_from_payment(s, payment_id="pi_1", metadata=meta, amount=30000) is True
    async with session_factory() as s:
        assert await _credit_from_payment(s, payment_id="pi_1", metadata=meta, amount=30000) is False

    assert (await fetch_balance(session_factory, pid)).cash_points == 30000
    assert await count_ledger(session_factory, pid, "credit_charge_cash") == 1


@pytest.mark.asyncio
async def test_payment_without_partner_is_ignored(session_factory):
    async with session_factory() as s:
        assert await _credit_from_payment(s, payment_id="pi_2", metadata={}, amount=1000) is False
    assert await count_ledger(session_factory) == 0


@pytest.mark.asyncio
async def test_webhook_unconfigured_500(client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", "")
    r = await client.post("/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=x"})
    assert r.status_code == 500


@pytest.mark.asyncio
async def test_webhook_bad_signature_400(client, monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_test")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test")
    r = await client.post("/stripe/webhook", content=b'{"type": "x"}', headers={"Stripe-Signature": "t=1,v1=bad"})
    assert r.status_code == 400
