import uuid
import pytest

from bidledger.services import bids as bids_service
from conftest import WEEK_KEY, WED_NOON_KST, auth_headers, fetch_balance, insert_bid, open_partner


@pytest.fixture
def bidding_open(monkeypatch):
    monkeypatch.setattr(bids_service, "is_bidding_closed", lambda *a, **k: False)


def bid_body(pid, amount=15000, **extra):
    return {"partnerId": pid, "category": "cleaning", "region": "Seoul", "amount": amount, **extra}


@pytest.mark.asyncio
async def test_create_bid_201(client, session_factory, bidding_open):
    pid = await open_partner(session_factory, cash=20000)
    r = await client.post("/ad-bids", json=bid_body(pid), headers=auth_headers(pid))
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["bidId"] and data["weekKey"]
    assert (await fetch_balance(session_factory, pid)).cash_points == 5000

    r = await client.get("/ad-bids", headers=auth_headers(pid))
    assert r.status_code == 200
    assert [b["id"] for b in r.json()] == [data["bidId"]]


@pytest.mark.asyncio
async def test_create_bid_insufficient_402(client, session_factory, bidding_open):
    pid = await open_partner(session_factory, cash=5000)
    r = await client.post("/ad-bids", json=bid_body(pid, amount=10000), headers=auth_headers(pid))
    assert r.status_code == 402
    assert r.json()["error"]["code"] == "insufficient-balance"
    assert (await fetch_balance(session_factory, pid)).cash_points == 5000


@pytest.mark.asyncio
async def test_create_bid_for_someone_else_403(client, session_factory, bidding_open):
    pid = await open_partner(session_factory, cash=20000)
    r = await client.post("/ad-bids", json=bid_body(pid), headers=auth_headers("intruder"))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "permission-denied"


@pytest.mark.asyncio
async def test_create_bid_below_minimum_400(client, session_factory, bidding_open):
    pid = await open_partner(session_factory, cash=20000)
    r = await client.post("/ad-bids", json=bid_body(pid, amount=500), headers=auth_headers(pid))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid-argument"


@pytest.mark.asyncio
async def test_bidding_closed_409(client, session_factory, monkeypatch):
    monkeypatch.setattr(bids_service, "is_bidding_closed", lambda *a, **k: True)
    pid = await open_partner(session_factory, cash=20000)
    r = await client.post("/ad-bids", json=bid_body(pid), headers=auth_headers(pid))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "bidding-closed"


@pytest.mark.asyncio
async def test_requires_token(client):
    r = await client.post("/ad-bids", json=bid_body("p1"))
    assert r.status_code == 401
    r = await client.get("/partners/me/balance", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_balance_ledger_and_reconcile(client, session_factory):
    pid = await open_partner(session_factory, cash=1200, service=300)
    r = await client.get("/partners/me/balance", headers=auth_headers(pid))
    assert r.status_code == 200
    body = r.json()
    assert body["cash_points"] == 1200 and body["cash_points_service"] == 300
    assert body["bid_tickets"] == {"general": 0, "service": 0}

    r = await client.get("/partners/me/ledger", headers=auth_headers(pid))
    assert len(r.json()["entries"]) == 2

    r = await client.get("/partners/me/reconcile", headers=auth_headers(pid))
    assert r.json()["consistent"] is True


@pytest.mark.asyncio
async def test_unknown_partner_balance_404(client):
    r = await client.get("/partners/me/balance", headers=auth_headers("ghost"))
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_quote_deduct_need_points(client, session_factory):
    pid = await open_partner(session_factory, cash=100)
    r = await client.post("/billing/quotes/deduct", json={"partnerId": pid, "requestId": "r-1"},
                          headers=auth_headers(pid))
    assert r.status_code == 402
    assert r.json()["error"]["code"] == "NEED_POINTS"


@pytest.mark.asyncio
async def test_admin_approve_and_settle(client, session_factory):
    admin = auth_headers("ops", role="admin")

    r = await client.post("/admin/partners/new-partner/approve", headers=auth_headers("new-partner"))
    assert r.status_code == 403
    r = await client.post("/admin/partners/new-partner/approve", headers=admin)
    assert r.status_code == 200
    assert r.json()["grade"] == "정회원"

    pid = await open_partner(session_factory, cash=30000)
    await insert_bid(session_factory, pid, 12000, WED_NOON_KST)

    r = await client.post("/admin/auction/settle", json={"weekKey": WEEK_KEY}, headers=admin)
    assert r.status_code == 200, r.text
    report = r.json()
    assert report["won"] == 1 and report["placements"] == ["2025-01-13_cleaning_Seoul_1"]

    r = await client.get("/ad-placements", params={"weekKey": WEEK_KEY}, headers=auth_headers(pid))
    assert [p["partner_id"] for p in r.json()] == [pid]

    r = await client.post("/admin/auction/settle", json={"weekKey": "2025-01-14"}, headers=admin)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_notifier_drains_outbox(client, session_factory):
    admin = auth_headers("ops", role="admin")
    pid = await open_partner(session_factory, cash=30000)
    await insert_bid(session_factory, pid, 12000, WED_NOON_KST)
    await client.post("/admin/auction/settle", json={"weekKey": WEEK_KEY}, headers=admin)

    r = await client.get("/admin/notifications/pending", headers=auth_headers(pid))
    assert r.status_code == 403

    r = await client.get("/admin/notifications/pending", headers=admin)
    assert r.status_code == 200
    events = r.json()
    assert [(e["partner_id"], e["kind"]) for e in events] == [(pid, "ad_bid_won")]
    assert events[0]["payload"]["rank"] == 1

    r = await client.post(f"/admin/notifications/{events[0]['id']}/dispatched", headers=admin)
    assert r.status_code == 200 and r.json()["dispatched_at"]

    r = await client.get("/admin/notifications/pending", headers=admin)
    assert r.json() == []

    r = await client.post(f"/admin/notifications/{uuid.uuid4()}/dispatched", headers=admin)
    assert r.status_code == 404
