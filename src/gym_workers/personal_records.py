"""Personal records per exercise.

Exercise names merge case-insensitively; the display name is the casing
seen first. A later set replaces the stored record only when its estimated
one-rep max is strictly higher, so on ties the earliest set (in iteration
order) keeps its date. Bodyweight entries (weight <= 0) never count.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from .errors import MalformedSet
from .models import (
    ExerciseSet,
    PersonalRecord,
    WorkoutSession,
    coerce_session_date,
    exercise_entries,
)
from .strength import estimate_one_rep_max

logger = logging.getLogger(__name__)


def _session_parts(session: Any) -> tuple[date | None, Iterable[Any]]:
    if isinstance(session, WorkoutSession):
        return session.date, session.exercises
    if isinstance(session, Mapping):
        entries = exercise_entries(session.get("exercises"))
        return coerce_session_date(session.get("date")), entries
    return None, ()


def _as_exercise_set(entry: Any) -> ExerciseSet | None:
    if isinstance(entry, ExerciseSet):
        return entry
    if not isinstance(entry, Mapping):
        return None
    try:
        return ExerciseSet.from_mapping(entry)
    except MalformedSet as exc:
        logger.debug("Skipping malformed set: %s", exc)
        return None


def _exercise_key(name: str) -> str:
    return name.strip().casefold()


def reduce_personal_records(sessions: Iterable[Any]) -> list[PersonalRecord]:
    """Return the best set per exercise, sorted by exercise name.

    ``sessions`` may be ``WorkoutSession`` instances or rows with ``date``
    and nested ``exercises``. Never raises on bad data; malformed sets are
    skipped.
    """
    best: dict[str, PersonalRecord] = {}
    display_names: dict[str, str] = {}

    for session in sessions:
        session_date, entries = _session_parts(session)
        for entry in entries:
            exercise = _as_exercise_set(entry)
            if exercise is None or exercise.weight <= 0:
                continue

            key = _exercise_key(exercise.name)
            if not key:
                continue
            display_names.setdefault(key, exercise.name)

            estimate = estimate_one_rep_max(exercise.weight, exercise.reps)
            current = best.get(key)
            if current is None or estimate > current.estimated_one_rep_max:
                best[key] = PersonalRecord(
                    exercise=display_names[key],
                    max_weight=exercise.weight,
                    estimated_one_rep_max=estimate,
                    date=session_date,
                )

    return sorted(best.values(), key=lambda record: record.exercise.casefold())
