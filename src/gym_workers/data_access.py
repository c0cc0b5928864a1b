"""Member, check-in, and workout storage access over psycopg.

Fetches never raise into the aggregator: database and network failures are
logged and reported as "nothing found" (``[]`` or ``None``), so a member
with an unreachable history looks exactly like a member with no history.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from datetime import date
from typing import Any, Protocol, TypeVar

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from .dates import DEFAULT_REFERENCE_TIMEZONE, normalize_checkin_day
from .errors import InvalidTimestamp
from .membership import derive_membership_status
from .messages import Message, MessageInput, parse_messages
from .models import (
    Announcement,
    CheckinRecord,
    MemberProfile,
    MemberProfileUpdate,
    MembershipPlan,
    WorkoutLogInput,
    WorkoutSession,
)
from .streaks import today_in_timezone

logger = logging.getLogger(__name__)

_FETCH_ERRORS = (psycopg.Error, OSError)

_T = TypeVar("_T")


class ActivitySource(Protocol):
    async def fetch_checkins(self, member_id: str) -> list[CheckinRecord]: ...

    async def fetch_workouts(self, member_id: str) -> list[WorkoutSession]: ...


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    try:
        return normalize_checkin_day(value)
    except InvalidTimestamp:
        return None


def _build_each(
    rows: list[dict[str, Any]], build: Callable[[dict[str, Any]], _T], kind: str
) -> list[_T]:
    """Build one record per row, logging and skipping rows that fail validation."""
    built: list[_T] = []
    for row in rows:
        try:
            built.append(build(row))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Skipping invalid %s row id=%s: %s", kind, row.get("id"), exc)
    return built


class PostgresActivitySource:
    """``ActivitySource`` backed by the portal's Postgres tables.

    Pass ``conn`` to run on an existing connection (each query gets its own
    savepoint so a failure leaves the caller's transaction usable), or
    ``database_url`` to open a short-lived connection per call.
    """

    def __init__(
        self,
        *,
        conn: psycopg.AsyncConnection[Any] | None = None,
        database_url: str | None = None,
    ) -> None:
        if conn is None and not database_url:
            raise ValueError("PostgresActivitySource needs conn or database_url")
        self._conn = conn
        self._database_url = database_url

    @contextlib.asynccontextmanager
    async def _connection(self) -> AsyncIterator[psycopg.AsyncConnection[Any]]:
        if self._conn is not None:
            async with self._conn.transaction():
                yield self._conn
            return
        async with await psycopg.AsyncConnection.connect(self._database_url) as conn:
            yield conn

    async def fetch_checkins(self, member_id: str) -> list[CheckinRecord]:
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT id, member_table_id, check_in_time, check_out_time
                        FROM check_ins
                        WHERE member_table_id = %s
                        ORDER BY check_in_time DESC
                        """,
                        (member_id,),
                    )
                    rows = await cur.fetchall()
        except _FETCH_ERRORS as exc:
            logger.warning("Check-in fetch failed for member=%s: %s", member_id, exc)
            return []
        return _build_each(rows, CheckinRecord.from_mapping, "check-in")

    async def fetch_workouts(self, member_id: str) -> list[WorkoutSession]:
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT w.id, w.member_id, w.date, w.notes,
                               COALESCE(
                                   json_agg(
                                       json_build_object(
                                           'name', e.name,
                                           'sets', e.sets,
                                           'reps', e.reps,
                                           'weight', e.weight
                                       ) ORDER BY e.created_at, e.id
                                   ) FILTER (WHERE e.id IS NOT NULL),
                                   '[]'::json
                               ) AS exercises
                        FROM workouts w
                        LEFT JOIN workout_exercises e ON e.workout_id = w.id
                        WHERE w.member_id = %s
                        GROUP BY w.id
                        ORDER BY w.date ASC, w.created_at ASC
                        """,
                        (member_id,),
                    )
                    rows = await cur.fetchall()
        except _FETCH_ERRORS as exc:
            logger.warning("Workout fetch failed for member=%s: %s", member_id, exc)
            return []
        return _build_each(rows, WorkoutSession.from_mapping, "workout")

    async def resolve_member_uuid(self, member_display_id: str) -> str | None:
        """Map the user-facing member ID (case-insensitive) to the internal UUID."""
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        "SELECT id FROM members WHERE upper(member_id) = %s LIMIT 1",
                        (member_display_id.strip().upper(),),
                    )
                    row = await cur.fetchone()
        except _FETCH_ERRORS as exc:
            logger.warning("Member lookup failed for member_id=%s: %s", member_display_id, exc)
            return None
        return str(row["id"]) if row else None

    async def fetch_member_profile(
        self,
        email: str,
        member_display_id: str,
        *,
        today: date | None = None,
    ) -> MemberProfile | None:
        """Look a member up by email and member ID, both matched case-insensitively."""
        normalized_email = email.strip().lower()
        normalized_member_id = member_display_id.strip().upper()
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT m.id, m.member_id, m.name, m.email, m.age,
                               m.phone_number, m.join_date, m.membership_type,
                               m.membership_status, m.expiry_date, m.plan_id,
                               m.gym_id, m.profile_url,
                               p.price AS plan_price,
                               g.name AS gym_name,
                               g.formatted_gym_id
                        FROM members m
                        LEFT JOIN plans p ON p.id = m.plan_id
                        LEFT JOIN gyms g ON g.id = m.gym_id
                        WHERE lower(m.email) = %s AND upper(m.member_id) = %s
                        LIMIT 1
                        """,
                        (normalized_email, normalized_member_id),
                    )
                    row = await cur.fetchone()
        except _FETCH_ERRORS as exc:
            logger.error(
                "Member profile fetch failed (email=%s, member_id=%s): %s",
                normalized_email, normalized_member_id, exc,
            )
            return None

        if row is None:
            logger.info(
                "No member found for email=%s member_id=%s",
                normalized_email, normalized_member_id,
            )
            return None

        expiry_date = _as_date(row.get("expiry_date"))
        reference = today if today is not None else today_in_timezone(DEFAULT_REFERENCE_TIMEZONE)
        plan_price = row.get("plan_price")
        return MemberProfile(
            id=str(row["id"]),
            member_id=row["member_id"],
            name=row["name"],
            email=row["email"],
            membership_type=row.get("membership_type"),
            membership_status=derive_membership_status(
                row.get("membership_status"), expiry_date, today=reference
            ),
            join_date=_as_date(row.get("join_date")),
            expiry_date=expiry_date,
            age=row.get("age"),
            phone_number=row.get("phone_number"),
            plan_id=str(row["plan_id"]) if row.get("plan_id") else None,
            plan_price=float(plan_price) if plan_price is not None else None,
            gym_id=str(row["gym_id"]) if row.get("gym_id") else None,
            formatted_gym_id=row.get("formatted_gym_id"),
            gym_name=row.get("gym_name"),
            profile_url=row.get("profile_url"),
        )

    async def create_workout(
        self, member_id: str, workout: WorkoutLogInput
    ) -> WorkoutSession | None:
        """Store a session and its exercises atomically. Returns None on failure."""
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        INSERT INTO workouts (member_id, date, notes)
                        VALUES (%s, %s, %s)
                        RETURNING id
                        """,
                        (member_id, workout.date, workout.notes),
                    )
                    row = await cur.fetchone()
                    workout_id = row["id"]
                    await cur.executemany(
                        """
                        INSERT INTO workout_exercises (workout_id, name, sets, reps, weight)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        [
                            (workout_id, e.name, e.sets, e.reps, e.weight)
                            for e in workout.exercises
                        ],
                    )
        except _FETCH_ERRORS as exc:
            logger.error("Failed to save workout for member=%s: %s", member_id, exc)
            return None

        logger.info(
            "Workout %s saved for member=%s (%d exercises)",
            workout_id, member_id, len(workout.exercises),
        )
        return WorkoutSession(
            id=str(workout_id),
            member_ref=member_id,
            date=workout.date,
            notes=workout.notes,
            exercises=tuple(e.to_exercise_set() for e in workout.exercises),
        )

    async def fetch_conversation(self, member_id: str, admin_id: str) -> list[Message]:
        """Messages between a member and their gym admin, oldest first."""
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT id, gym_id, sender_id, receiver_id, sender_type,
                               receiver_type, content, created_at, read_at,
                               formatted_gym_id
                        FROM messages
                        WHERE (sender_id = %s AND receiver_id = %s)
                           OR (sender_id = %s AND receiver_id = %s)
                        ORDER BY created_at ASC
                        """,
                        (member_id, admin_id, admin_id, member_id),
                    )
                    rows = await cur.fetchall()
        except _FETCH_ERRORS as exc:
            logger.warning("Conversation fetch failed for member=%s: %s", member_id, exc)
            return []
        return parse_messages(rows)

    async def create_message(self, message: MessageInput) -> Message | None:
        """Store an inbox message and return it as saved. Returns None on failure."""
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        INSERT INTO messages
                            (gym_id, sender_id, receiver_id, sender_type,
                             receiver_type, content, formatted_gym_id)
                        VALUES (%s, %s, %s, %s, %s, %s, %s)
                        RETURNING id, gym_id, sender_id, receiver_id, sender_type,
                                  receiver_type, content, created_at, read_at,
                                  formatted_gym_id
                        """,
                        (
                            message.gym_id, message.sender_id, message.receiver_id,
                            message.sender_type, message.receiver_type,
                            message.content, message.formatted_gym_id,
                        ),
                    )
                    row = await cur.fetchone()
        except _FETCH_ERRORS as exc:
            logger.error("Failed to save message from sender=%s: %s", message.sender_id, exc)
            return None
        if row is None:
            return None
        saved = parse_messages([row])
        return saved[0] if saved else None

    async def update_member_profile(
        self, member_display_id: str, update: MemberProfileUpdate
    ) -> bool:
        """Apply the fields set on ``update``. False when nothing was written."""
        values = update.column_values()
        if not values:
            logger.info("No profile fields to update for member_id=%s", member_display_id)
            return False
        return await self._update_member(member_display_id, values)

    async def update_member_email(self, member_display_id: str, new_email: str) -> bool:
        email = new_email.strip().lower()
        if not email:
            return False
        return await self._update_member(member_display_id, {"email": email})

    async def _update_member(self, member_display_id: str, values: dict[str, Any]) -> bool:
        normalized_member_id = member_display_id.strip().upper()
        query = sql.SQL("UPDATE members SET {} WHERE upper(member_id) = %s").format(
            sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column)) for column in values
            )
        )
        try:
            async with self._connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, (*values.values(), normalized_member_id))
                    updated = cur.rowcount
        except _FETCH_ERRORS as exc:
            logger.error("Failed to update member_id=%s: %s", normalized_member_id, exc)
            return False
        if not updated:
            logger.info("No member updated for member_id=%s", normalized_member_id)
            return False
        logger.info("Updated %s for member_id=%s", ", ".join(values), normalized_member_id)
        return True

    async def fetch_announcements(self, gym_id: str) -> list[Announcement]:
        """Announcements for a gym, newest first."""
        if not gym_id:
            return []
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT id, title, content, created_at
                        FROM announcements
                        WHERE gym_id = %s
                        ORDER BY created_at DESC
                        """,
                        (gym_id,),
                    )
                    rows = await cur.fetchall()
        except _FETCH_ERRORS as exc:
            logger.warning("Announcement fetch failed for gym=%s: %s", gym_id, exc)
            return []
        return _build_each(rows, Announcement.from_mapping, "announcement")

    async def fetch_membership_plans(self, gym_id: str) -> list[MembershipPlan]:
        """Active plans offered by a gym."""
        if not gym_id:
            return []
        try:
            async with self._connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """
                        SELECT id, plan_name, price
                        FROM plans
                        WHERE gym_id = %s AND is_active
                        """,
                        (gym_id,),
                    )
                    rows = await cur.fetchall()
        except _FETCH_ERRORS as exc:
            logger.warning("Membership plan fetch failed for gym=%s: %s", gym_id, exc)
            return []
        return _build_each(rows, MembershipPlan.from_mapping, "plan")
