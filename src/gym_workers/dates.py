"""Date normalization for check-in and workout timestamps.

Every date-dependent aggregate works on calendar days in one reference
timezone. Timestamps arrive as ISO strings from the database, as epoch
numbers from devices, or in looser human layouts from imports; all of them
resolve to a timezone-aware UTC ``datetime`` first and to a local ``date``
second.
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidTimestamp

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_TIMEZONE = "UTC"

# Layouts tried after strict ISO-8601 fails, in order.
_FALLBACK_LAYOUTS: tuple[str, ...] = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%b %d %Y %H:%M:%S",
    "%b %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)


def normalize_timezone_name(value: Any) -> str | None:
    """Normalize a timezone preference and verify it's a valid IANA name."""
    if not isinstance(value, str):
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.upper() == "UTC":
        return "UTC"
    try:
        ZoneInfo(raw)
    except (ZoneInfoNotFoundError, ValueError):
        return None
    return raw


def _attach_zone(ts: datetime, timezone_name: str) -> datetime:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=ZoneInfo(timezone_name))
    return ts.astimezone(timezone.utc)


def _from_epoch(epoch: float) -> datetime:
    # Millisecond epochs are common in device payloads.
    if epoch > 1_000_000_000_000:
        epoch /= 1000.0
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


def _parse_strict(raw: str) -> datetime | None:
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_permissive(raw: str) -> datetime | None:
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        pass
    for layout in _FALLBACK_LAYOUTS:
        try:
            return datetime.strptime(raw, layout)
        except ValueError:
            continue
    return None


def parse_timestamp(value: Any, timezone_name: str = DEFAULT_REFERENCE_TIMEZONE) -> datetime:
    """Parse ``value`` into a timezone-aware UTC datetime.

    Naive values are interpreted in ``timezone_name``. Raises
    ``InvalidTimestamp`` when neither the strict ISO-8601 parser nor the
    permissive fallback accepts the value.
    """
    if isinstance(value, datetime):
        return _attach_zone(value, timezone_name)
    if isinstance(value, date):
        return _attach_zone(datetime(value.year, value.month, value.day), timezone_name)
    if isinstance(value, bool):
        raise InvalidTimestamp(value)
    if isinstance(value, (int, float)):
        try:
            return _from_epoch(float(value))
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidTimestamp(value) from exc
    if not isinstance(value, str):
        raise InvalidTimestamp(value)

    raw = value.strip()
    if not raw:
        raise InvalidTimestamp(value)

    # Eight digits is an ISO basic date (20260215), not a 1970 epoch.
    if len(raw) == 8 and raw.isdigit():
        try:
            return _attach_zone(datetime.strptime(raw, "%Y%m%d"), timezone_name)
        except ValueError:
            pass

    if raw.replace(".", "", 1).isdigit():
        try:
            return _from_epoch(float(raw))
        except (OverflowError, OSError, ValueError) as exc:
            raise InvalidTimestamp(value) from exc

    parsed = _parse_strict(raw) or _parse_permissive(raw)
    if parsed is None:
        raise InvalidTimestamp(value)
    return _attach_zone(parsed, timezone_name)


def local_date_for_timezone(ts: datetime, timezone_name: str) -> date:
    """Project a timestamp into the calendar day of ``timezone_name``."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(ZoneInfo(timezone_name)).date()


def normalize_checkin_day(
    value: Any, timezone_name: str = DEFAULT_REFERENCE_TIMEZONE
) -> date:
    """Return the calendar day of ``value`` in the reference timezone.

    A plain ``date`` is already a calendar day and passes through untouched.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    return local_date_for_timezone(parse_timestamp(value, timezone_name), timezone_name)


def distinct_days_descending(
    values: Iterable[Any], timezone_name: str = DEFAULT_REFERENCE_TIMEZONE
) -> list[date]:
    """Normalize, de-duplicate, and sort days most recent first.

    Values that fail to parse are logged and skipped.
    """
    days: set[date] = set()
    for value in values:
        try:
            days.add(normalize_checkin_day(value, timezone_name))
        except InvalidTimestamp:
            logger.debug("Skipping unparseable check-in timestamp %r", value)
    return sorted(days, reverse=True)
