from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone as dt_tz
from zoneinfo import ZoneInfo

from bidledger.errors import InvalidArgument


@dataclass(frozen=True)
class AuctionWeek:
    week_key: str          # ISO date of the Monday, local to the auction timezone
    start: datetime        # Monday 00:00 local, as UTC
    end: datetime          # Sunday 23:59:59.999999 local, as UTC
    cutoff: datetime       # Sunday 22:00 local *before* start, as UTC

    @property
    def monday(self) -> date:
        return date.fromisoformat(self.week_key)


def as_utc(dt: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_tz.utc)
    return dt.astimezone(dt_tz.utc)


def monday_of(d: date) -> date:
    return d - timedelta(days=d.weekday())


def parse_week_key(value: str) -> date:
    try:
        d = date.fromisoformat(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"weekKey must be YYYY-MM-DD, got {value!r}")
    if d.weekday() != 0:
        raise InvalidArgument("weekKey must be a Monday")
    return d


def auction_week(monday: date, tz_name: str, cutoff_hour: int = 22) -> AuctionWeek:
    """
    Build the auction week starting on `monday` (local date in `tz_name`).

    Examples:
        >>> w = auction_week(date(2025, 1, 13), "Asia/Seoul")
        >>> w.week_key, w.start.isoformat(), w.cutoff.isoformat()
        ('2025-01-13', '2025-01-12T15:00:00+00:00', '2025-01-12T13:00:00+00:00')
    """
    if monday.weekday() != 0:
        raise InvalidArgument("auction weeks start on Monday")
    tz = ZoneInfo(tz_name)
    start_local = datetime.combine(monday, time(0, 0), tzinfo=tz)
    end_local = datetime.combine(monday + timedelta(days=6), time(23, 59, 59, 999999), tzinfo=tz)
    cutoff_local = datetime.combine(monday - timedelta(days=1), time(cutoff_hour, 0), tzinfo=tz)
    return AuctionWeek(
        week_key=monday.isoformat(),
        start=start_local.astimezone(dt_tz.utc),
        end=end_local.astimezone(dt_tz.utc),
        cutoff=cutoff_local.astimezone(dt_tz.utc),
    )


def local_date(now: datetime, tz_name: str) -> date:
    return as_utc(now).astimezone(ZoneInfo(tz_name)).date()


def current_auction_week(now: datetime, tz_name: str, cutoff_hour: int = 22) -> AuctionWeek:
    """The week that has just started; this is what settlement closes on Monday 00:00."""
    return auction_week(monday_of(local_date(now, tz_name)), tz_name, cutoff_hour)


def next_auction_week(now: datetime, tz_name: str, cutoff_hour: int = 22) -> AuctionWeek:
    """The week bids placed `now` compete for (Monday after the current local week)."""
    return auction_week(monday_of(local_date(now, tz_name)) + timedelta(days=7), tz_name, cutoff_hour)


def is_bidding_closed(now: datetime, tz_name: str, cutoff_hour: int = 22) -> bool:
    """Bidding closes Sunday at `cutoff_hour` local and reopens at Monday 00:00."""
    local = as_utc(now).astimezone(ZoneInfo(tz_name))
    return local.weekday() == 6 and local.hour >= cutoff_hour
