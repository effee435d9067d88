from datetime import datetime

import pytest
from dateutil import tz

from commissiondesk.core.formatting import format_money, format_period_label
from commissiondesk.core.periods import (
    MonthPeriod,
    PeriodBounds,
    parse_month,
    resolve_month_bounds_utc,
)
from commissiondesk.errors import ConfigurationError


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=tz.UTC)


def test_singapore_month_starts_at_previous_utc_evening():
    bounds = resolve_month_bounds_utc(2025, 3, "Asia/Singapore")
    assert bounds.start == _utc(2025, 2, 28, 16, 0)
    assert bounds.end == _utc(2025, 3, 31, 16, 0)


def test_local_first_of_month_belongs_to_that_month():
    bounds = resolve_month_bounds_utc(2025, 3, "Asia/Singapore")
    # 2025-03-01 00:30 in Singapore
    assert bounds.contains(_utc(2025, 2, 28, 16, 30))
    assert not bounds.contains(_utc(2025, 2, 28, 15, 59))


def test_end_instant_belongs_to_next_period():
    march = resolve_month_bounds_utc(2025, 3, "Asia/Singapore")
    april = resolve_month_bounds_utc(2025, 4, "Asia/Singapore")
    assert not march.contains(march.end)
    assert april.contains(march.end)
    assert april.start == march.end


def test_december_rolls_into_next_year():
    bounds = resolve_month_bounds_utc(2024, 12, "UTC")
    assert bounds.start == _utc(2024, 12, 1)
    assert bounds.end == _utc(2025, 1, 1)


def test_dst_month_has_different_offsets_at_each_end():
    bounds = resolve_month_bounds_utc(2025, 3, "America/New_York")
    assert bounds.start == _utc(2025, 3, 1, 5, 0)
    assert bounds.end == _utc(2025, 4, 1, 4, 0)


def test_missing_timezone_falls_back_to_default():
    assert resolve_month_bounds_utc(2025, 3, None) == resolve_month_bounds_utc(2025, 3, "Asia/Singapore")


def test_unknown_timezone_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="Unknown timezone"):
        resolve_month_bounds_utc(2025, 3, "Mars/Olympus_Mons")


def test_parse_month_accepts_year_month():
    assert parse_month("2025-03") == MonthPeriod(2025, 3)
    assert parse_month(" 2025-11 ").label() == "2025-11"


@pytest.mark.parametrize("value", ["2025-13", "2025", "March 2025", "2025-00"])
def test_parse_month_rejects_bad_input(value):
    with pytest.raises(ConfigurationError):
        parse_month(value)


def test_period_bounds_require_aware_increasing_datetimes():
    with pytest.raises(ConfigurationError):
        PeriodBounds(datetime(2025, 3, 1), datetime(2025, 4, 1))
    with pytest.raises(ConfigurationError):
        PeriodBounds(_utc(2025, 4, 1), _utc(2025, 3, 1))


def test_from_datetimes_reads_naive_values_as_utc():
    bounds = PeriodBounds.from_datetimes(datetime(2025, 3, 1), datetime(2025, 4, 1))
    assert bounds.start == _utc(2025, 3, 1)
    assert bounds.naive_end == datetime(2025, 4, 1)


def test_period_label_uses_local_month():
    bounds = resolve_month_bounds_utc(2025, 3, "Asia/Singapore")
    assert format_period_label(bounds, "Asia/Singapore") == "March 2025"


def test_format_money_groups_thousands():
    assert format_money("1234.5") == "USD 1,234.50"
    assert format_money(None, "SGD") == "SGD 0.00"
