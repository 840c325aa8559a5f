from __future__ import annotations
from typing import AsyncGenerator
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from bidledger.config import settings

class Base(DeclarativeBase):
    pass


def serialize_sqlite_writers(eng: AsyncEngine) -> AsyncEngine:
    """
    SQLite has no row locks, so every transaction takes the database write lock up front
    (BEGIN IMMEDIATE). A second writer waits for the first to commit and then reads fresh rows.
    No-op for other dialects.
    """
    if eng.dialect.name != "sqlite":
        return eng

    @event.listens_for(eng.sync_engine, "connect")
    def _no_driver_begin(dbapi_connection, connection_record):
        # stop the driver from issuing its own deferred BEGIN
        dbapi_connection.isolation_level = None

    @event.listens_for(eng.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


engine = serialize_sqlite_writers(create_async_engine(settings.database_url, future=True, echo=False))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

def get_session_factory() -> async_sessionmaker:
    """Batch work (settlement) opens one transaction per chunk, so it needs the factory, not a session."""
    return SessionLocal


async def advisory_xact_lock(session: AsyncSession, key: str) -> None:
    """
    Transaction-scoped named lock. Only PostgreSQL has one; there, callers also take row locks.
    SQLite engines serialize writers per transaction instead (see serialize_sqlite_writers).
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(text("SELECT pg_advisory_xact_lock(hashtext(:k))"), {"k": key})
