"""Member activity analytics for the gym portal."""

from .activity import ActivitySummary, load_activity_summary, summarize_activity
from .checkin_frequency import bucketize_monthly_checkins
from .dates import distinct_days_descending, normalize_checkin_day, parse_timestamp
from .errors import GymWorkersError, InvalidTimestamp, MalformedSet
from .models import (
    CheckinRecord,
    ExerciseSet,
    MonthlyCheckinBucket,
    PersonalRecord,
    WorkoutSession,
)
from .personal_records import reduce_personal_records
from .strength import estimate_one_rep_max
from .streaks import compute_checkin_streak, compute_longest_streak

__all__ = [
    "ActivitySummary",
    "CheckinRecord",
    "ExerciseSet",
    "GymWorkersError",
    "InvalidTimestamp",
    "MalformedSet",
    "MonthlyCheckinBucket",
    "PersonalRecord",
    "WorkoutSession",
    "bucketize_monthly_checkins",
    "compute_checkin_streak",
    "compute_longest_streak",
    "distinct_days_descending",
    "estimate_one_rep_max",
    "load_activity_summary",
    "normalize_checkin_day",
    "parse_timestamp",
    "reduce_personal_records",
    "summarize_activity",
]
