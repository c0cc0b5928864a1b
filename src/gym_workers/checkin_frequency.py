"""Monthly check-in frequency for charting.

Only months with at least one visit appear; empty months are not filled in.
"""

import calendar
import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from .dates import DEFAULT_REFERENCE_TIMEZONE, normalize_checkin_day
from .errors import InvalidTimestamp
from .models import CheckinRecord, MonthlyCheckinBucket

logger = logging.getLogger(__name__)

DEFAULT_BUCKET_LIMIT = 12


def _check_in_value(record: Any) -> Any:
    if isinstance(record, CheckinRecord):
        return record.check_in_time
    if isinstance(record, Mapping):
        return record.get("check_in_time")
    return record


def bucketize_monthly_checkins(
    records: Iterable[Any],
    *,
    timezone_name: str = DEFAULT_REFERENCE_TIMEZONE,
    limit: int = DEFAULT_BUCKET_LIMIT,
) -> list[MonthlyCheckinBucket]:
    """Count visits per calendar month, oldest first, keeping the last ``limit`` months.

    ``records`` may be ``CheckinRecord`` instances, rows with a
    ``check_in_time`` key, or bare timestamps. Records whose timestamp
    cannot be parsed are logged and skipped.
    """
    counts: Counter[tuple[int, int]] = Counter()
    skipped = 0
    for record in records:
        value = _check_in_value(record)
        try:
            day = normalize_checkin_day(value, timezone_name)
        except InvalidTimestamp:
            skipped += 1
            logger.warning("Skipping check-in with unparseable time %r", value)
            continue
        counts[(day.year, day.month)] += 1

    if skipped:
        logger.info("Monthly check-in buckets computed with %d skipped record(s)", skipped)

    months = sorted(counts)
    if limit > 0:
        months = months[-limit:]
    else:
        months = []

    return [
        MonthlyCheckinBucket(
            month=f"{year:04d}-{month:02d}",
            month_label=f"{calendar.month_abbr[month]} {year}",
            visit_count=counts[(year, month)],
        )
        for year, month in months
    ]
