from __future__ import annotations
from datetime import datetime, timezone as dt_tz
import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from bidledger.errors import InvalidArgument
from bidledger.models.balance import PartnerBalance
from bidledger.models.partner import PartnerAccount

log = structlog.get_logger()

DEFAULT_GRADE = "정회원"


async def approve_partner(
    session: AsyncSession,
    partner_id: str,
    grade: str = DEFAULT_GRADE,
    now: datetime | None = None,
) -> PartnerAccount:
    """Open the account and a zeroed balance for a verified partner. Safe to call again."""
    partner_id = (partner_id or "").strip()
    if not partner_id:
        raise InvalidArgument("partner id is required")
    now = now or datetime.now(dt_tz.utc)

    acct = await session.get(PartnerAccount, partner_id)
    if acct is None:
        acct = PartnerAccount(partner_id=partner_id, subscription_status="none", subscription_auto_renew=False, updated_at=now)
        session.add(acct)
    acct.grade = grade
    if acct.approved_at is None:
        acct.approved_at = now

    if await session.get(PartnerBalance, partner_id) is None:
        session.add(PartnerBalance(
            partner_id=partner_id,
            cash_points=0,
            cash_points_service=0,
            bid_tickets_general=0,
            bid_tickets_service=0,
            updated_at=now,
        ))
        log.info("partner_balance_opened", partner_id=partner_id)

    await session.flush()
    return acct
