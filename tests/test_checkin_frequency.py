"""Tests for monthly check-in buckets."""

from datetime import date, datetime, timezone

from hypothesis import given
from hypothesis import strategies as st

from gym_workers.checkin_frequency import bucketize_monthly_checkins
from gym_workers.models import CheckinRecord


def _checkin(i: int, ts) -> CheckinRecord:
    return CheckinRecord(id=f"c{i}", member_ref="m1", check_in_time=ts)


class TestBucketizeMonthlyCheckins:
    def test_empty(self):
        assert bucketize_monthly_checkins([]) == []

    def test_counts_per_month(self):
        records = [
            _checkin(1, "2026-01-05T10:00:00Z"),
            _checkin(2, "2026-01-20T10:00:00Z"),
            _checkin(3, "2026-02-01T10:00:00Z"),
        ]
        buckets = bucketize_monthly_checkins(records)
        assert [(b.month, b.month_label, b.visit_count) for b in buckets] == [
            ("2026-01", "Jan 2026", 2),
            ("2026-02", "Feb 2026", 1),
        ]

    def test_thirteen_months_keeps_last_twelve(self):
        records = [
            _checkin(i, datetime(2025 + (i // 12), (i % 12) + 1, 15, tzinfo=timezone.utc))
            for i in range(13)
        ]
        buckets = bucketize_monthly_checkins(records)
        assert len(buckets) == 12
        assert buckets[0].month == "2025-02"
        assert buckets[-1].month == "2026-01"
        assert [b.month for b in buckets] == sorted(b.month for b in buckets)

    def test_chronological_not_alphabetical(self):
        records = [_checkin(1, "2026-04-01"), _checkin(2, "2026-01-01"), _checkin(3, "2025-12-01")]
        labels = [b.month_label for b in bucketize_monthly_checkins(records)]
        assert labels == ["Dec 2025", "Jan 2026", "Apr 2026"]

    def test_unparseable_records_skipped(self):
        records = [_checkin(1, "garbage"), _checkin(2, "2026-02-01T10:00:00Z")]
        buckets = bucketize_monthly_checkins(records)
        assert [(b.month, b.visit_count) for b in buckets] == [("2026-02", 1)]

    def test_accepts_rows_and_raw_timestamps(self):
        rows = [{"check_in_time": "2026-02-01T10:00:00Z"}, "2026-02-03T10:00:00Z"]
        assert bucketize_monthly_checkins(rows)[0].visit_count == 2

    def test_no_synthesized_empty_months(self):
        records = [_checkin(1, "2026-01-01"), _checkin(2, "2026-03-01")]
        assert [b.month for b in bucketize_monthly_checkins(records)] == ["2026-01", "2026-03"]

    def test_month_boundary_follows_timezone(self):
        records = [_checkin(1, "2026-01-31T20:00:00Z")]
        assert bucketize_monthly_checkins(records)[0].month == "2026-01"
        assert bucketize_monthly_checkins(records, timezone_name="Asia/Tokyo")[0].month == "2026-02"

    def test_custom_limit(self):
        records = [_checkin(i, date(2026, i, 1)) for i in range(1, 5)]
        assert [b.month for b in bucketize_monthly_checkins(records, limit=2)] == ["2026-03", "2026-04"]

    @given(st.lists(st.dates(min_value=date(2025, 6, 1), max_value=date(2026, 5, 31)), max_size=80))
    def test_counts_sum_to_parseable_records_within_window(self, days):
        # The range spans exactly 12 months, so nothing is truncated.
        buckets = bucketize_monthly_checkins([_checkin(i, d) for i, d in enumerate(days)])
        assert sum(b.visit_count for b in buckets) == len(days)
        assert len(buckets) <= 12
