from __future__ import annotations
import os

# Point the app-level engine at SQLite before anything imports bidledger.db
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone
import uuid

import httpx
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from bidledger.db import Base, get_session, get_session_factory, serialize_sqlite_writers
import bidledger.models.balance  # noqa: F401  register tables
import bidledger.models.auction  # noqa: F401
import bidledger.models.partner  # noqa: F401
import bidledger.models.notification  # noqa: F401
from bidledger.models.auction import AdBid
from bidledger.models.balance import LedgerEntry, PartnerBalance
from bidledger.security import make_access_token
from bidledger.services.auction_calendar import auction_week
from bidledger.services.balance import credit, reserve
from bidledger.services.partners import approve_partner

# Week used across settlement tests: bids placed 2025-01-06..12 (KST) compete for Monday 2025-01-13.
WEEK_KEY = "2025-01-13"
WED_NOON_KST = datetime(2025, 1, 8, 3, 0, tzinfo=timezone.utc)
SETTLE_AT = datetime(2025, 1, 12, 15, 0, tzinfo=timezone.utc)  # Monday 00:00 KST


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = serialize_sqlite_writers(
        create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bidledger-test.db'}", future=True)
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    from bidledger.main import app

    async def _session_override():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(partner_id: str, role: str = "partner") -> dict[str, str]:
    return {"Authorization": f"Bearer {make_access_token(partner_id, role=role)}"}


async def open_partner(session_factory, partner_id: str | None = None, cash: int = 0, service: int = 0) -> str:
    """Approve a partner and fund it through the ledger so balances reconcile."""
    partner_id = partner_id or f"partner-{uuid.uuid4().hex[:10]}"
    async with session_factory() as s:
        await approve_partner(s, partner_id)
        if cash:
            await credit(s, partner_id=partner_id, pool="cash_points", amount=cash, ledger_type="adjust")
        if service:
            await credit(s, partner_id=partner_id, pool="cash_points_service", amount=service, ledger_type="adjust")
        await s.commit()
    return partner_id


async def insert_bid(
    session_factory,
    partner_id: str,
    amount: int,
    created_at: datetime,
    category: str = "cleaning",
    region: str = "Seoul",
    region_detail: str | None = None,
    week_key: str = WEEK_KEY,
) -> uuid.UUID:
    """Reserve funds and write a pending bid with a chosen timestamp (settlement fixtures)."""
    week = auction_week(datetime.fromisoformat(week_key).date(), "Asia/Seoul")
    bid_id = uuid.uuid4()
    async with session_factory() as s:
        await reserve(s, partner_id=partner_id, amount=amount, bid_id=bid_id, now=created_at)
        s.add(AdBid(
            id=bid_id,
            partner_id=partner_id,
            category=category,
            region=region,
            region_detail=region_detail,
            region_key=f"{region} {region_detail}" if region_detail else region,
            amount=amount,
            week_key=week.week_key,
            week_start=week.start,
            week_end=week.end,
            status="pending",
            created_at=created_at,
            updated_at=created_at,
        ))
        await s.commit()
    return bid_id


async def fetch_balance(session_factory, partner_id: str) -> PartnerBalance:
    async with session_factory() as s:
        return await s.get(PartnerBalance, partner_id)


async def fetch_bid(session_factory, bid_id) -> AdBid:
    async with session_factory() as s:
        return await s.get(AdBid, bid_id)


async def count_ledger(session_factory, partner_id: str | None = None, type_: str | None = None) -> int:
    async with session_factory() as s:
        q = select(func.count()).select_from(LedgerEntry)
        if partner_id:
            q = q.where(LedgerEntry.partner_id == partner_id)
        if type_:
            q = q.where(LedgerEntry.type == type_)
        return int(await s.scalar(q) or 0)
