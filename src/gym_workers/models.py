"""Domain records for member activity.

Stored records (check-ins, workout sessions, exercise sets) are frozen
dataclasses built from database rows or JSON exports via ``from_mapping``.
Derived values (personal records, monthly buckets, the activity summary)
are never persisted by this package; ``to_dict`` renders them for
projections and the CLI.

Inbound workout logs are validated with pydantic before they reach storage.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .dates import normalize_checkin_day
from .errors import InvalidTimestamp, MalformedSet

logger = logging.getLogger(__name__)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _coerce_weight(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise MalformedSet("weight", value)
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedSet("weight", value) from exc
    if not math.isfinite(parsed):
        raise MalformedSet("weight", value)
    return parsed


def _coerce_positive_int(field_name: str, value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise MalformedSet(field_name, value)
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedSet(field_name, value) from exc
    if not math.isfinite(parsed) or parsed != int(parsed) or parsed < 1:
        raise MalformedSet(field_name, value)
    return int(parsed)


def exercise_entries(value: Any) -> tuple[Any, ...] | list[Any]:
    """Nested exercise entries of a session row; anything but a list is empty."""
    if isinstance(value, (list, tuple)):
        return value
    if value is not None:
        logger.debug("Ignoring non-list exercises value %r", value)
    return ()


def coerce_session_date(value: Any) -> date | None:
    if value is None:
        return None
    try:
        return normalize_checkin_day(value)
    except InvalidTimestamp:
        logger.debug("Workout session has unparseable date %r", value)
        return None


@dataclass(frozen=True)
class CheckinRecord:
    """One physical visit. ``check_out_time`` is None while the session is open.

    Times are kept as delivered (``datetime`` from the database, ISO strings
    from exports); the date normalizer resolves them when aggregating.
    """

    id: str
    member_ref: str
    check_in_time: datetime | str
    check_out_time: datetime | str | None = None

    def __post_init__(self) -> None:
        if (
            isinstance(self.check_in_time, datetime)
            and isinstance(self.check_out_time, datetime)
            and self.check_in_time.tzinfo is not None
            and self.check_out_time.tzinfo is not None
            and self.check_out_time < self.check_in_time
        ):
            raise ValueError(
                f"Check-in {self.id}: check_out_time precedes check_in_time"
            )

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> CheckinRecord:
        return cls(
            id=str(row.get("id", "")),
            member_ref=str(row.get("member_table_id") or row.get("member_ref") or ""),
            check_in_time=row.get("check_in_time"),
            check_out_time=row.get("check_out_time"),
        )


@dataclass(frozen=True)
class ExerciseSet:
    """A logged exercise: ``sets`` x ``reps`` at ``weight``.

    ``sets`` is informational; strength estimates use ``reps`` and ``weight``.
    """

    name: str
    sets: int
    reps: int
    weight: float

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> ExerciseSet:
        """Coerce a row into a set, raising ``MalformedSet`` on bad values."""
        name = _optional_text(row.get("name") or row.get("exercise"))
        if name is None:
            raise MalformedSet("name", row.get("name"))
        weight = _coerce_weight(row.get("weight"))
        reps = _coerce_positive_int("reps", row.get("reps"))
        try:
            sets = _coerce_positive_int("sets", row.get("sets", 1))
        except MalformedSet:
            sets = 1
        return cls(name=name, sets=sets, reps=reps, weight=weight)


@dataclass(frozen=True)
class WorkoutSession:
    id: str
    member_ref: str
    date: date | None
    notes: str | None = None
    exercises: tuple[ExerciseSet, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> WorkoutSession:
        """Build a session from a row; malformed exercise entries are dropped."""
        exercises: list[ExerciseSet] = []
        for entry in exercise_entries(row.get("exercises")):
            if isinstance(entry, ExerciseSet):
                exercises.append(entry)
                continue
            if not isinstance(entry, Mapping):
                continue
            try:
                exercises.append(ExerciseSet.from_mapping(entry))
            except MalformedSet as exc:
                logger.debug("Dropping exercise in workout %s: %s", row.get("id"), exc)
        return cls(
            id=str(row.get("id", "")),
            member_ref=str(row.get("member_id") or row.get("member_ref") or ""),
            date=coerce_session_date(row.get("date")),
            notes=_optional_text(row.get("notes")),
            exercises=tuple(exercises),
        )


@dataclass(frozen=True)
class PersonalRecord:
    """Best estimated one-rep max for one exercise name."""

    exercise: str
    max_weight: float
    estimated_one_rep_max: float
    date: date | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "exercise": self.exercise,
            "max_weight": self.max_weight,
            "estimated_one_rep_max": round(self.estimated_one_rep_max, 1),
            "date": self.date.isoformat() if self.date else None,
        }


@dataclass(frozen=True)
class MonthlyCheckinBucket:
    month: str  # "2024-01"
    month_label: str  # "Jan 2024"
    visit_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "month_label": self.month_label,
            "visit_count": self.visit_count,
        }


@dataclass(frozen=True)
class MemberProfile:
    id: str
    member_id: str
    name: str
    email: str
    membership_type: str | None
    membership_status: str
    join_date: date | None = None
    expiry_date: date | None = None
    age: int | None = None
    phone_number: str | None = None
    plan_id: str | None = None
    plan_price: float | None = None
    gym_id: str | None = None
    formatted_gym_id: str | None = None
    gym_name: str | None = None
    profile_url: str | None = None


# ---------------------------------------------------------------------------
# Inbound workout logs
# ---------------------------------------------------------------------------


class ExerciseSetInput(BaseModel):
    name: str
    sets: int = Field(ge=1)
    reps: int = Field(ge=1)
    weight: float = Field(ge=0, allow_inf_nan=False)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("exercise name must not be empty")
        return normalized

    def to_exercise_set(self) -> ExerciseSet:
        return ExerciseSet(name=self.name, sets=self.sets, reps=self.reps, weight=self.weight)


class WorkoutLogInput(BaseModel):
    date: date
    notes: str | None = None
    exercises: list[ExerciseSetInput] = Field(min_length=1)

    @field_validator("notes")
    @classmethod
    def normalize_notes(cls, value: str | None) -> str | None:
        return _optional_text(value)


# ---------------------------------------------------------------------------
# Member settings and gym listings
# ---------------------------------------------------------------------------


class MemberProfileUpdate(BaseModel):
    """Editable profile fields. Unset fields are left untouched.

    An empty phone number or an age of 0 clears the stored value.
    """

    name: str | None = None
    phone_number: str | None = None
    age: int | None = Field(default=None, ge=0, le=150)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError("name must not be empty")
        return normalized

    def column_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        fields_set = self.model_fields_set
        if "name" in fields_set and self.name is not None:
            values["name"] = self.name
        if "phone_number" in fields_set:
            values["phone_number"] = _optional_text(self.phone_number)
        if "age" in fields_set:
            values["age"] = self.age or None
        return values


@dataclass(frozen=True)
class Announcement:
    id: str
    title: str
    content: str
    created_at: datetime | str | None = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> Announcement:
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            content=row.get("content") or "",
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class MembershipPlan:
    id: str
    plan: str
    price: float | None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> MembershipPlan:
        price = row.get("price")
        return cls(
            id=str(row["id"]),
            plan=row.get("plan_name") or row.get("plan") or "",
            price=float(price) if price is not None else None,
        )
