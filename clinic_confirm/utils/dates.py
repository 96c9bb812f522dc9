"""Timezone helpers and parsing of feed-supplied datetimes."""

import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinic_confirm.core.exceptions import LocalTimeError, ValidationException

_EXPLICIT_OFFSET = re.compile(r"([zZ]|[+-]\d{2}:?\d{2})$")

# Tried after ISO-8601 for values without an offset
_LOCAL_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y %H:%M:%S",
)


def get_zone(name: str) -> ZoneInfo:
    """Resolve an IANA zone name, raising LocalTimeError when unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise LocalTimeError(f"Unknown timezone: {name}") from exc


def localize(naive: datetime, zone: ZoneInfo) -> datetime:
    """
    Attach ``zone`` to a wall-clock time, refusing to guess.

    Wall times inside a DST gap (non-existent) or overlap (ambiguous) have
    different offsets for ``fold=0`` and ``fold=1``; both are rejected.

    Raises:
        LocalTimeError: If the wall time does not map to exactly one instant
    """
    early = naive.replace(tzinfo=zone, fold=0)
    late = naive.replace(tzinfo=zone, fold=1)
    if early.utcoffset() != late.utcoffset():
        raise LocalTimeError(
            f"Local time {naive.isoformat()} is ambiguous or does not exist in {zone.key}"
        )
    return early


def to_utc(naive: datetime, tz_name: str) -> datetime:
    """Convert a clinic-local wall time to an aware UTC datetime."""
    return localize(naive, get_zone(tz_name)).astimezone(UTC)


def parse_feed_datetime(value: str, tz_name: str) -> datetime:
    """
    Parse a snapshot ``start_datetime`` into an aware UTC datetime.

    Values carrying ``Z`` or a numeric offset are taken as-is; anything else
    is read as wall time in the clinic's zone.

    Raises:
        ValidationException: If the value cannot be parsed
        LocalTimeError: If the local wall time is ambiguous or non-existent
    """
    trimmed = value.strip()

    if _EXPLICIT_OFFSET.search(trimmed):
        try:
            parsed = datetime.fromisoformat(trimmed)
        except ValueError as exc:
            raise ValidationException(f"Invalid start_datetime format: {value}") from exc
        if parsed.tzinfo is None:
            raise ValidationException(f"Invalid start_datetime format: {value}")
        return parsed.astimezone(UTC)

    parsed_local: datetime | None = None
    try:
        parsed_local = datetime.fromisoformat(trimmed)
    except ValueError:
        for fmt in _LOCAL_FORMATS:
            try:
                parsed_local = datetime.strptime(trimmed, fmt)
                break
            except ValueError:
                continue

    if parsed_local is None:
        raise ValidationException(f"Invalid start_datetime format: {value}")

    if parsed_local.tzinfo is not None:
        return parsed_local.astimezone(UTC)
    return to_utc(parsed_local, tz_name)


def format_local_date(instant: datetime, tz_name: str) -> str:
    """Render an instant as ``dd.MM.yyyy`` in the clinic's zone."""
    return instant.astimezone(get_zone(tz_name)).strftime("%d.%m.%Y")


def format_local_time(instant: datetime, tz_name: str) -> str:
    """Render an instant as ``HH:mm`` in the clinic's zone."""
    return instant.astimezone(get_zone(tz_name)).strftime("%H:%M")
