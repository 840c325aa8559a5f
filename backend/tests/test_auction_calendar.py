from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
import pytest

from bidledger.errors import InvalidArgument
from bidledger.services.auction_calendar import (
    auction_week, current_auction_week, is_bidding_closed, next_auction_week, parse_week_key,
)

TZ = "Asia/Seoul"


def utc_from_kst(y, m, d, hh=0, mm=0):
    return datetime(y, m, d, hh, mm, tzinfo=ZoneInfo(TZ)).astimezone(timezone.utc)


def test_auction_week_boundaries():
    w = auction_week(date(2025, 1, 13), TZ)
    assert w.week_key == "2025-01-13"
    assert w.start == datetime(2025, 1, 12, 15, 0, tzinfo=timezone.utc)
    assert w.cutoff == datetime(2025, 1, 12, 13, 0, tzinfo=timezone.utc)
    assert w.end == datetime(2025, 1, 19, 14, 59, 59, 999999, tzinfo=timezone.utc)
    assert w.monday == date(2025, 1, 13)


def test_bid_on_wednesday_targets_next_monday():
    week = next_auction_week(utc_from_kst(2025, 1, 8, 12), TZ)
    assert week.week_key == "2025-01-13"


def test_cutoff_is_sunday_22_local():
    assert not is_bidding_closed(utc_from_kst(2025, 1, 12, 21, 59), TZ)
    assert is_bidding_closed(utc_from_kst(2025, 1, 12, 22, 0), TZ)
    assert is_bidding_closed(utc_from_kst(2025, 1, 12, 23, 59), TZ)


def test_monday_midnight_reopens_for_the_following_week():
    now = utc_from_kst(2025, 1, 13, 0, 0)
    assert not is_bidding_closed(now, TZ)
    assert next_auction_week(now, TZ).week_key == "2025-01-20"
    assert current_auction_week(now, TZ).week_key == "2025-01-13"


def test_sunday_before_cutoff_still_targets_next_monday():
    assert next_auction_week(utc_from_kst(2025, 1, 12, 21, 0), TZ).week_key == "2025-01-13"


def test_naive_datetimes_are_read_as_utc():
    # 2025-01-12 13:00 UTC == Sunday 22:00 KST
    assert is_bidding_closed(datetime(2025, 1, 12, 13, 0), TZ)


@pytest.mark.parametrize("value", ["2025-01-14", "13/01/2025", "", None])
def test_parse_week_key_rejects_non_mondays_and_garbage(value):
    with pytest.raises(InvalidArgument):
        parse_week_key(value)


def test_parse_week_key_accepts_monday():
    assert parse_week_key("2025-01-13") == date(2025, 1, 13)
