"""Member Activity projection handler.

Reacts to check-in and workout events and recomputes the member's activity
overview:
- Current and longest consecutive-day check-in streak
- Monthly visit counts (last 12 months with visits)
- Personal records per exercise (estimated 1RM, Epley)

Full recompute on every event, so replays are idempotent.
"""

import logging
from typing import Any

import psycopg
from psycopg.types.json import Json

from ..activity import load_activity_summary
from ..data_access import PostgresActivitySource
from ..jobs import ActivityJob
from ..registry import projection_handler

logger = logging.getLogger(__name__)

PROJECTION_TYPE = "member_activity"
PROJECTION_KEY = "overview"


@projection_handler(
    PROJECTION_TYPE,
    "checkin.created",
    "checkin.updated",
    "workout.logged",
    "workout.deleted",
)
async def update_member_activity(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    """Full recompute of the member_activity projection."""
    job = ActivityJob.model_validate(payload)
    member_id = job.member_id
    timezone_name = job.timezone

    source = PostgresActivitySource(conn=conn)
    summary = await load_activity_summary(
        source,
        member_id,
        today=job.today,
        timezone_name=timezone_name,
    )

    data = summary.to_dict()
    data["timezone"] = timezone_name

    async with conn.cursor() as cur:
        await cur.execute(
            """
            INSERT INTO projections (member_id, projection_type, key, data, updated_at)
            VALUES (%s, %s, %s, %s, NOW())
            ON CONFLICT (member_id, projection_type, key) DO UPDATE SET
                data = EXCLUDED.data,
                version = projections.version + 1,
                updated_at = NOW()
            """,
            (member_id, PROJECTION_TYPE, PROJECTION_KEY, Json(data)),
        )

    logger.info(
        "Updated member_activity for member=%s (streak=%d, buckets=%d, records=%d)",
        member_id, summary.streak, len(summary.buckets), len(summary.records),
        extra={"gym_member_id": member_id, "gym_projection_type": PROJECTION_TYPE},
    )
