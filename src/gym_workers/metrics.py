"""In-memory counters for the health endpoint.

Counted per job type (completed / retried / dead) and per projection
(recomputes, failures, time spent, and which activity events drove them).
The worker runs on one event loop, so plain dicts need no locking.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Literal

JobOutcome = Literal["completed", "retried", "dead"]


@dataclass
class _ProjectionStats:
    recomputes: int = 0
    failures: int = 0
    total_duration_ms: float = 0.0
    events: Counter = field(default_factory=Counter)

    def snapshot(self) -> dict:
        runs = self.recomputes + self.failures
        return {
            "recomputes": self.recomputes,
            "failures": self.failures,
            "avg_duration_ms": (
                round(self.total_duration_ms / runs, 1) if runs else 0.0
            ),
            "events": dict(self.events),
        }


_started = time.monotonic()
_jobs: dict[str, Counter] = {}
_projections: dict[str, _ProjectionStats] = {}


def record_job(job_type: str, outcome: JobOutcome) -> None:
    _jobs.setdefault(job_type, Counter())[outcome] += 1


def record_projection(
    projection_type: str, event_type: str, duration_ms: float, success: bool
) -> None:
    stats = _projections.setdefault(projection_type, _ProjectionStats())
    stats.total_duration_ms += duration_ms
    if event_type:
        stats.events[event_type] += 1
    if success:
        stats.recomputes += 1
    else:
        stats.failures += 1


def reset_metrics() -> None:
    _jobs.clear()
    _projections.clear()


def get_metrics() -> dict:
    totals: Counter = Counter()
    for counts in _jobs.values():
        totals.update(counts)
    return {
        "uptime_seconds": round(time.monotonic() - _started, 1),
        "jobs_processed": totals["completed"],
        "jobs_retried": totals["retried"],
        "jobs_dead": totals["dead"],
        "jobs": {job_type: dict(counts) for job_type, counts in _jobs.items()},
        "projections": {name: stats.snapshot() for name, stats in _projections.items()},
    }
