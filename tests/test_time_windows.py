"""Tests for clinic-local day windows, deadlines and feed datetime parsing."""

from datetime import UTC, date, datetime

import pytest

from clinic_confirm.core.exceptions import LocalTimeError, ValidationException
from clinic_confirm.services.time_windows import (
    clinic_window,
    day_after_tomorrow_local,
    day_range_utc,
    deadline_utc,
    snapshot_range_utc,
    tomorrow_local,
)
from clinic_confirm.utils.dates import (
    format_local_date,
    format_local_time,
    parse_feed_datetime,
    to_utc,
)
from conftest import CLINIC_TZ, NOW_EXPORT

CLINIC = {"timezone": CLINIC_TZ, "export_hour": 10, "deadline_hour": 18}


def test_clinic_window_targets_day_after_tomorrow():
    """Test the job window covers the local day after tomorrow."""
    window = clinic_window(CLINIC, NOW_EXPORT)

    assert window.target_day == date(2026, 3, 12)
    assert window.range_start_utc == datetime(2026, 3, 11, 22, 0, tzinfo=UTC)
    assert window.range_end_utc == datetime(2026, 3, 12, 22, 0, tzinfo=UTC)
    assert window.deadline_utc == datetime(2026, 3, 10, 16, 0, tzinfo=UTC)
    assert window.now_local.hour == 10
    assert window.now_local.minute == 5


def test_local_days_follow_clinic_zone_not_utc():
    """Test 'tomorrow' is computed from the clinic's calendar."""
    # 23:30 UTC is already 01:30 on the next day in Bucharest
    late_utc = datetime(2026, 3, 10, 23, 30, tzinfo=UTC)

    assert tomorrow_local(CLINIC_TZ, late_utc) == date(2026, 3, 12)
    assert day_after_tomorrow_local(CLINIC_TZ, late_utc) == date(2026, 3, 13)
    assert tomorrow_local("UTC", late_utc) == date(2026, 3, 11)


def test_day_range_on_spring_forward_day_is_23_hours():
    """Test the DST switch day keeps both bounds at local midnight."""
    lo, hi = day_range_utc(date(2026, 3, 29), CLINIC_TZ)

    assert lo == datetime(2026, 3, 28, 22, 0, tzinfo=UTC)
    assert hi == datetime(2026, 3, 29, 21, 0, tzinfo=UTC)
    assert (hi - lo).total_seconds() == 23 * 3600


def test_day_range_on_fall_back_day_is_25_hours():
    """Test the autumn DST day is one hour longer."""
    lo, hi = day_range_utc(date(2026, 10, 25), CLINIC_TZ)

    assert (hi - lo).total_seconds() == 25 * 3600


def test_deadline_uses_summer_offset_after_dst():
    """Test today's deadline is converted with the offset in force that day."""
    summer_now = datetime(2026, 6, 1, 6, 0, tzinfo=UTC)

    assert deadline_utc(CLINIC, summer_now) == datetime(2026, 6, 1, 15, 0, tzinfo=UTC)


def test_deadline_in_dst_gap_is_refused():
    """Test a deadline hour that does not exist today raises instead of guessing."""
    clinic = {**CLINIC, "deadline_hour": 3}
    switch_day = datetime(2026, 3, 29, 0, 30, tzinfo=UTC)

    with pytest.raises(LocalTimeError):
        deadline_utc(clinic, switch_day)


def test_snapshot_range_covers_two_days_from_tomorrow():
    """Test the reconciliation horizon spans tomorrow and the day after."""
    lo, hi = snapshot_range_utc(CLINIC_TZ, NOW_EXPORT)

    assert lo == datetime(2026, 3, 10, 22, 0, tzinfo=UTC)
    assert hi == datetime(2026, 3, 12, 22, 0, tzinfo=UTC)


def test_naive_reference_instant_rejected():
    """Test a naive 'now' is a programming error."""
    with pytest.raises(ValueError):
        clinic_window(CLINIC, datetime(2026, 3, 10, 8, 0))


def test_unknown_timezone_raises():
    """Test an unknown zone name surfaces as LocalTimeError."""
    with pytest.raises(LocalTimeError):
        tomorrow_local("Mars/Olympus", NOW_EXPORT)


def test_to_utc_rejects_nonexistent_and_ambiguous_times():
    """Test wall times inside DST transitions are refused."""
    with pytest.raises(LocalTimeError):
        to_utc(datetime(2026, 3, 29, 3, 30), CLINIC_TZ)

    with pytest.raises(LocalTimeError):
        to_utc(datetime(2026, 10, 25, 3, 30), CLINIC_TZ)

    assert to_utc(datetime(2026, 10, 25, 5, 30), CLINIC_TZ) == datetime(
        2026, 10, 25, 3, 30, tzinfo=UTC
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2026-03-12 09:30", datetime(2026, 3, 12, 7, 30, tzinfo=UTC)),
        ("2026-03-12T09:30:00", datetime(2026, 3, 12, 7, 30, tzinfo=UTC)),
        ("12.03.2026 09:30", datetime(2026, 3, 12, 7, 30, tzinfo=UTC)),
        ("2026-03-12T09:30:00Z", datetime(2026, 3, 12, 9, 30, tzinfo=UTC)),
        ("2026-03-12T09:30:00+03:00", datetime(2026, 3, 12, 6, 30, tzinfo=UTC)),
    ],
)
def test_parse_feed_datetime(value, expected):
    """Test local wall times use the clinic zone and explicit offsets are kept."""
    assert parse_feed_datetime(value, CLINIC_TZ) == expected


def test_parse_feed_datetime_invalid():
    """Test unparseable values raise a validation error."""
    with pytest.raises(ValidationException):
        parse_feed_datetime("tomorrow morning", CLINIC_TZ)

    with pytest.raises(LocalTimeError):
        parse_feed_datetime("2026-03-29 03:15", CLINIC_TZ)


def test_format_local_date_and_time():
    """Test instants are rendered in the clinic's zone."""
    start = datetime(2026, 3, 12, 7, 30, tzinfo=UTC)

    assert format_local_date(start, CLINIC_TZ) == "12.03.2026"
    assert format_local_time(start, CLINIC_TZ) == "09:30"
