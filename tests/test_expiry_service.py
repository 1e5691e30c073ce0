from datetime import date, datetime, timedelta, timezone

import pytest

from service_modules.expiry_service import (
    NO_EXPIRY_END_DATETIME, add_calendar_days, effective_grace_days,
    format_device_end_datetime, parse_timestamp, remaining_days, resolve_expiry
)

UTC = timezone.utc


def at(*args):
    return datetime(*args, tzinfo=UTC)


@pytest.mark.parametrize("now, expiry, member_grace, default_grace, expected", [
    (at(2024, 1, 10), "2024-01-10", None, 0, False),
    (at(2024, 1, 10, 0, 0, 1), "2024-01-10", None, 0, True),
    (at(2024, 1, 14), "2024-01-10", None, 5, False),
    (at(2024, 1, 15), "2024-01-10", None, 5, False),
    (at(2024, 1, 15, 0, 0, 1), "2024-01-10", None, 5, True),
    (at(2024, 1, 16), "2024-01-10", None, 5, True),
    (at(2024, 1, 11), "2024-01-10", 0, 10, True),
    (at(2024, 1, 12), "2024-01-10", 3, 0, False),
    (at(2024, 1, 9), "2024-01-10", -2, 0, True),
    (at(2024, 1, 8), "2024-01-10", -2, 0, False),
    (at(2024, 1, 1), "2023-12-31T18:00:00", None, 1, False),
    (at(2024, 1, 1, 18, 0, 1), "2023-12-31T18:00:00", None, 1, True),
])
def test_resolution_table(now, expiry, member_grace, default_grace, expected):
    assert resolve_expiry(now, expiry, member_grace, default_grace).is_truly_expired is expected


def test_boundary_is_inclusive_of_the_last_grace_instant():
    expiry = at(2024, 3, 1)
    for grace in (0, 1, 7, 30):
        boundary = expiry + timedelta(days=grace)
        assert resolve_expiry(boundary, expiry, grace, 0).is_truly_expired is False
        assert resolve_expiry(boundary + timedelta(seconds=1), expiry, grace, 0).is_truly_expired is True


def test_zero_override_is_not_unset():
    resolution = resolve_expiry(at(2024, 1, 12), "2024-01-10", 0, 10)
    assert resolution.effective_grace_days == 0
    assert resolution.final_expiry == at(2024, 1, 10)
    assert resolution.is_truly_expired is True


def test_missing_override_uses_tenant_default():
    assert effective_grace_days(None, 4) == 4
    assert effective_grace_days(None, None) == 0
    assert effective_grace_days(-3, 4) == -3


@pytest.mark.parametrize("now", [at(1999, 1, 1), at(2024, 6, 1), at(2099, 12, 31, 23, 59, 59)])
def test_no_expiry_never_expires(now):
    resolution = resolve_expiry(now, None, 5, 10)
    assert resolution.is_truly_expired is False
    assert resolution.final_expiry is None


def test_end_to_end_expiry_values():
    resolution = resolve_expiry(at(2024, 1, 14), "2024-01-10", None, 5)
    assert resolution.final_expiry == at(2024, 1, 15)
    assert resolution.is_truly_expired is False
    assert format_device_end_datetime(resolution.final_expiry) == "20240115235959"


def test_grace_days_keep_wall_clock_across_dst():
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
    try:
        berlin = ZoneInfo("Europe/Berlin")
    except ZoneInfoNotFoundError:
        pytest.skip("tz database not available")
    # DST starts 2024-03-31 in Berlin
    expiry = datetime(2024, 3, 30, 9, 0, tzinfo=berlin)
    shifted = add_calendar_days(expiry, 2)
    assert shifted.hour == 9
    assert shifted.date() == date(2024, 4, 1)


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-01-10") == at(2024, 1, 10)
    assert parse_timestamp("2024-01-10T05:30:00Z") == at(2024, 1, 10, 5, 30)
    assert parse_timestamp(date(2024, 1, 10)) == at(2024, 1, 10)
    assert parse_timestamp(datetime(2024, 1, 10, 8)) == at(2024, 1, 10, 8)
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None


def test_device_end_datetime_formatting():
    assert format_device_end_datetime(None) == NO_EXPIRY_END_DATETIME
    assert format_device_end_datetime(at(2024, 2, 29)) == "20240229235959"
    assert format_device_end_datetime(at(2024, 2, 29, 18, 30, 5)) == "20240229183005"


def test_remaining_days():
    assert remaining_days(at(2024, 1, 10), "2024-01-10", None, 5) == 5
    assert remaining_days(at(2024, 1, 14, 12), "2024-01-10", None, 5) == 1
    assert remaining_days(at(2024, 1, 20), "2024-01-10", None, 5) == -5
    assert remaining_days(at(2024, 1, 20), None, None, 5) is None
