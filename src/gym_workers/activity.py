"""Member activity summary: streak, monthly visits, personal records.

``summarize_activity`` is pure. ``load_activity_summary`` adds the fetch
step on top of an ``ActivitySource``, whose failures already degrade to
empty lists.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .checkin_frequency import DEFAULT_BUCKET_LIMIT, bucketize_monthly_checkins
from .data_access import ActivitySource
from .dates import DEFAULT_REFERENCE_TIMEZONE, distinct_days_descending
from .models import CheckinRecord, MonthlyCheckinBucket, PersonalRecord
from .personal_records import reduce_personal_records
from .streaks import compute_checkin_streak, compute_longest_streak, today_in_timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActivitySummary:
    streak: int = 0
    longest_streak: int = 0
    total_checkins: int = 0
    last_checkin: date | None = None
    buckets: list[MonthlyCheckinBucket] = field(default_factory=list)
    records: list[PersonalRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "streak": self.streak,
            "longest_streak": self.longest_streak,
            "total_checkins": self.total_checkins,
            "last_checkin": self.last_checkin.isoformat() if self.last_checkin else None,
            "buckets": [bucket.to_dict() for bucket in self.buckets],
            "records": [record.to_dict() for record in self.records],
        }


def _checkin_times(checkins: Sequence[Any]) -> list[Any]:
    times = []
    for checkin in checkins:
        if isinstance(checkin, CheckinRecord):
            times.append(checkin.check_in_time)
        elif isinstance(checkin, Mapping):
            times.append(checkin.get("check_in_time"))
        else:
            times.append(checkin)
    return times


def summarize_activity(
    checkins: Sequence[Any],
    workouts: Sequence[Any],
    *,
    today: date | None = None,
    timezone_name: str = DEFAULT_REFERENCE_TIMEZONE,
    bucket_limit: int = DEFAULT_BUCKET_LIMIT,
) -> ActivitySummary:
    reference = today if today is not None else today_in_timezone(timezone_name)
    times = _checkin_times(checkins)
    days = distinct_days_descending(times, timezone_name)

    return ActivitySummary(
        streak=compute_checkin_streak(days, today=reference, timezone_name=timezone_name),
        longest_streak=compute_longest_streak(days, timezone_name),
        total_checkins=len(checkins),
        last_checkin=days[0] if days else None,
        buckets=bucketize_monthly_checkins(
            checkins, timezone_name=timezone_name, limit=bucket_limit
        ),
        records=reduce_personal_records(workouts),
    )


async def load_activity_summary(
    source: ActivitySource,
    member_id: str,
    *,
    today: date | None = None,
    timezone_name: str = DEFAULT_REFERENCE_TIMEZONE,
) -> ActivitySummary:
    """Fetch a member's history and summarize it."""
    checkins = await source.fetch_checkins(member_id)
    workouts = await source.fetch_workouts(member_id)
    logger.debug(
        "Summarizing activity for member=%s (checkins=%d, workouts=%d)",
        member_id, len(checkins), len(workouts),
    )
    return summarize_activity(
        checkins, workouts, today=today, timezone_name=timezone_name
    )
