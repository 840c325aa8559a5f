from __future__ import annotations
from datetime import datetime, timezone as dt_tz
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from bidledger.errors import NotFound
from bidledger.models.notification import NotificationEvent


async def emit_event(
    session: AsyncSession,
    *,
    partner_id: str,
    kind: str,
    payload: dict,
    dedupe_key: str | None = None,
    now: datetime | None = None,
) -> bool:
    """
    Write an outbox row for the external notifier. Idempotent by dedupe_key.
    Returns True if a new row was added.
    """
    if dedupe_key:
        exists = await session.scalar(select(NotificationEvent.id).where(NotificationEvent.dedupe_key == dedupe_key))
        if exists:
            return False
    session.add(NotificationEvent(
        partner_id=partner_id,
        kind=kind,
        payload=payload,
        dedupe_key=dedupe_key,
        created_at=now or datetime.now(dt_tz.utc),
    ))
    return True


async def pending_events(session: AsyncSession, limit: int = 100) -> list[NotificationEvent]:
    return list((await session.execute(
        select(NotificationEvent)
        .where(NotificationEvent.dispatched_at.is_(None))
        .order_by(NotificationEvent.created_at.asc())
        .limit(limit)
    )).scalars().all())


async def mark_dispatched(session: AsyncSession, event_id: UUID, now: datetime | None = None) -> NotificationEvent:
    """The notifier acknowledges a delivered event. Acknowledging twice keeps the first timestamp."""
    ev = await session.get(NotificationEvent, event_id, with_for_update=True)
    if ev is None:
        raise NotFound("Notification not found")
    if ev.dispatched_at is None:
        ev.dispatched_at = now or datetime.now(dt_tz.utc)
        await session.flush()
    return ev
