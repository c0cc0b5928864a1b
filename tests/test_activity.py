"""Tests for the combined activity summary."""

from datetime import date

import pytest

from gym_workers.activity import ActivitySummary, load_activity_summary, summarize_activity
from gym_workers.models import CheckinRecord, ExerciseSet, WorkoutSession

TODAY = date(2026, 2, 10)


class _FakeSource:
    def __init__(self, checkins=None, workouts=None):
        self._checkins = checkins or []
        self._workouts = workouts or []
        self.calls: list[tuple[str, str]] = []

    async def fetch_checkins(self, member_id):
        self.calls.append(("checkins", member_id))
        return self._checkins

    async def fetch_workouts(self, member_id):
        self.calls.append(("workouts", member_id))
        return self._workouts


def _checkins(*timestamps):
    return [
        CheckinRecord(id=f"c{i}", member_ref="m1", check_in_time=ts)
        for i, ts in enumerate(timestamps)
    ]


class TestSummarizeActivity:
    def test_empty_history_has_explicit_empty_values(self):
        summary = summarize_activity([], [], today=TODAY)
        assert summary == ActivitySummary()
        assert summary.to_dict() == {
            "streak": 0,
            "longest_streak": 0,
            "total_checkins": 0,
            "last_checkin": None,
            "buckets": [],
            "records": [],
        }

    def test_full_summary(self):
        checkins = _checkins(
            "2026-02-10T07:00:00Z",
            "2026-02-09T07:00:00Z",
            "2026-02-09T18:00:00Z",
            "2026-01-15T07:00:00Z",
        )
        workouts = [
            WorkoutSession(
                id="w1",
                member_ref="m1",
                date=date(2026, 2, 9),
                exercises=(ExerciseSet("Squat", 5, 5, 100.0),),
            )
        ]
        summary = summarize_activity(checkins, workouts, today=TODAY)

        assert summary.streak == 2
        assert summary.longest_streak == 2
        assert summary.total_checkins == 4
        assert summary.last_checkin == TODAY
        assert [(b.month, b.visit_count) for b in summary.buckets] == [("2026-01", 1), ("2026-02", 3)]
        assert [r.exercise for r in summary.records] == ["Squat"]

    def test_accepts_rows(self):
        rows = [{"check_in_time": "2026-02-10T07:00:00Z"}, {"check_in_time": None}]
        summary = summarize_activity(rows, [], today=TODAY)
        assert summary.streak == 1
        assert summary.total_checkins == 2
        assert sum(b.visit_count for b in summary.buckets) == 1


class TestLoadActivitySummary:
    @pytest.mark.asyncio
    async def test_fetches_both_sources(self):
        source = _FakeSource(checkins=_checkins("2026-02-10T07:00:00Z"))
        summary = await load_activity_summary(source, "m1", today=TODAY)
        assert summary.streak == 1
        assert summary.records == []
        assert sorted(source.calls) == [("checkins", "m1"), ("workouts", "m1")]
