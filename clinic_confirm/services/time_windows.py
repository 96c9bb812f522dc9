"""Day-window and deadline arithmetic for clinic-local scheduling.

Every function is pure given (clinic timezone, reference instant). Results
that get stored or compared against the database are aware UTC datetimes;
calendar days are plain ``date`` values in the clinic's zone.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from clinic_confirm.utils.dates import get_zone, localize


@dataclass(frozen=True)
class ClinicWindow:
    """The day-after-tomorrow window and today's deadline for one clinic."""

    target_day: date
    range_start_utc: datetime
    range_end_utc: datetime
    deadline_utc: datetime
    now_local: datetime


def _now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(UTC)
    if now.tzinfo is None:
        raise ValueError("reference instant must be timezone-aware")
    return now


def local_now(tz_name: str, now: datetime | None = None) -> datetime:
    """The reference instant expressed in the clinic's zone."""
    return _now(now).astimezone(get_zone(tz_name))


def tomorrow_local(tz_name: str, now: datetime | None = None) -> date:
    """Local calendar day after today."""
    return local_now(tz_name, now).date() + timedelta(days=1)


def day_after_tomorrow_local(tz_name: str, now: datetime | None = None) -> date:
    """Local calendar day two days after today."""
    return local_now(tz_name, now).date() + timedelta(days=2)


def local_midnight_utc(local_day: date, tz_name: str) -> datetime:
    """Start of a local calendar day as a UTC instant."""
    zone = get_zone(tz_name)
    return localize(datetime.combine(local_day, time.min), zone).astimezone(UTC)


def day_range_utc(local_day: date, tz_name: str) -> tuple[datetime, datetime]:
    """
    Half-open UTC interval covering one local calendar day.

    Match appointments with ``start >= lo AND start < hi``.
    """
    lo = local_midnight_utc(local_day, tz_name)
    hi = local_midnight_utc(local_day + timedelta(days=1), tz_name)
    return lo, hi


def deadline_utc(clinic: Mapping[str, Any], now: datetime | None = None) -> datetime:
    """Today's local ``deadline_hour:00`` for the clinic, in UTC."""
    tz_name = clinic["timezone"]
    today = local_now(tz_name, now).date()
    deadline_local = datetime.combine(today, time(hour=clinic["deadline_hour"]))
    return localize(deadline_local, get_zone(tz_name)).astimezone(UTC)


def snapshot_range_utc(tz_name: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Two local days starting tomorrow, as a half-open UTC interval."""
    start_day = tomorrow_local(tz_name, now)
    lo = local_midnight_utc(start_day, tz_name)
    hi = local_midnight_utc(start_day + timedelta(days=2), tz_name)
    return lo, hi


def clinic_window(clinic: Mapping[str, Any], now: datetime | None = None) -> ClinicWindow:
    """Bundle the job window for a clinic at ``now``."""
    now = _now(now)
    tz_name = clinic["timezone"]
    target_day = day_after_tomorrow_local(tz_name, now)
    lo, hi = day_range_utc(target_day, tz_name)
    return ClinicWindow(
        target_day=target_day,
        range_start_utc=lo,
        range_end_utc=hi,
        deadline_utc=deadline_utc(clinic, now),
        now_local=local_now(tz_name, now),
    )
