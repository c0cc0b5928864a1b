"""Check-in streaks over calendar days.

A streak counts consecutive days with at least one check-in, ending today
or yesterday in the reference timezone. Anything older means the streak is
broken and counts as 0, which is indistinguishable from never having checked
in at all.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from .dates import DEFAULT_REFERENCE_TIMEZONE, distinct_days_descending


def today_in_timezone(timezone_name: str = DEFAULT_REFERENCE_TIMEZONE) -> date:
    return datetime.now(ZoneInfo(timezone_name)).date()


def compute_checkin_streak(
    days: Iterable[Any],
    *,
    today: date | None = None,
    timezone_name: str = DEFAULT_REFERENCE_TIMEZONE,
) -> int:
    """Return the current consecutive-day check-in streak.

    ``days`` may hold dates or raw timestamps in any order, duplicates
    included. Unparseable timestamps are skipped.
    """
    ordered = distinct_days_descending(days, timezone_name)
    if not ordered:
        return 0

    reference = today if today is not None else today_in_timezone(timezone_name)
    if (reference - ordered[0]).days not in (0, 1):
        return 0

    streak = 1
    for current, previous in zip(ordered, ordered[1:]):
        if (current - previous).days != 1:
            break
        streak += 1
    return streak


def compute_longest_streak(
    days: Iterable[Any],
    timezone_name: str = DEFAULT_REFERENCE_TIMEZONE,
) -> int:
    """Return the longest run of consecutive check-in days anywhere in history."""
    ordered = distinct_days_descending(days, timezone_name)
    longest = 0
    current_run = 0
    for i, day in enumerate(ordered):
        if i > 0 and (ordered[i - 1] - day).days == 1:
            current_run += 1
        else:
            current_run = 1
        longest = max(longest, current_run)
    return longest
