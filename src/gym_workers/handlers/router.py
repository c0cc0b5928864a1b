"""Projection update router.

A ``projection.update`` job carries one activity event for one member and
recomputes every projection subscribed to that event. Each projection runs
in its own savepoint; a failing one is queued as a ``projection.retry`` job
for that projection alone, so the others still commit.

All projection work for a member holds pg_advisory_xact_lock on the member
id, so a check-in and a workout arriving together can't interleave their
recomputes.
"""

import logging
import time
from typing import Any

import psycopg
from psycopg.types.json import Json

from ..jobs import ActivityJob
from ..metrics import record_projection
from ..registry import Projection, get_projection, projections_for_event, register

logger = logging.getLogger(__name__)

RETRY_MAX_ATTEMPTS = 3


async def _acquire_member_lock(
    conn: psycopg.AsyncConnection[Any], member_id: str
) -> None:
    await conn.execute(
        "SELECT pg_advisory_xact_lock(hashtext(%s)::bigint)",
        (str(member_id),),
    )


def _parse_job(job_type: str, payload: dict[str, Any]) -> ActivityJob:
    if not payload.get("member_id"):
        raise ValueError(
            f"Missing member_id in {job_type} payload (event_type={payload.get('event_type', '')})"
        )
    return ActivityJob.model_validate(payload)


async def _run_projection(
    conn: psycopg.AsyncConnection[Any],
    projection: Projection,
    job: ActivityJob,
    payload: dict[str, Any],
) -> None:
    t0 = time.monotonic()
    try:
        await projection.handler(conn, payload)
    except Exception:
        record_projection(
            projection.projection_type, job.event_type,
            (time.monotonic() - t0) * 1000, success=False,
        )
        raise
    record_projection(
        projection.projection_type, job.event_type,
        (time.monotonic() - t0) * 1000, success=True,
    )


async def _enqueue_retry(
    conn: psycopg.AsyncConnection[Any], projection: Projection, job: ActivityJob
) -> None:
    retry = job.model_copy(update={"projection_type": projection.projection_type})
    try:
        await conn.execute(
            """
            INSERT INTO background_jobs (member_id, job_type, payload, max_retries)
            VALUES (%s, 'projection.retry', %s, %s)
            """,
            (job.member_id, Json(retry.to_payload()), RETRY_MAX_ATTEMPTS),
        )
    except psycopg.Error:
        logger.exception(
            "Could not queue retry of %s for member=%s; projection stays stale",
            projection.projection_type, job.member_id,
        )


@register("projection.update")
async def handle_projection_update(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    job = _parse_job("projection.update", payload)
    projections = projections_for_event(job.event_type)
    if not projections:
        logger.debug("No projections for event_type=%s, skipping", job.event_type)
        return

    await _acquire_member_lock(conn, job.member_id)

    for projection in projections:
        try:
            async with conn.transaction():
                await _run_projection(conn, projection, job, payload)
        except Exception:
            logger.exception(
                "Projection %s failed for event_type=%s member=%s, scheduling retry",
                projection.projection_type, job.event_type, job.member_id,
                extra={
                    "gym_member_id": job.member_id,
                    "gym_projection_type": projection.projection_type,
                },
            )
            # The savepoint above rolled back; this insert commits with the job.
            await _enqueue_retry(conn, projection, job)


@register("projection.retry")
async def handle_projection_retry(
    conn: psycopg.AsyncConnection[Any], payload: dict[str, Any]
) -> None:
    """Recompute one projection. Failures go back to the worker's backoff."""
    job = _parse_job("projection.retry", payload)
    projection = get_projection(job.projection_type or "")
    if projection is None:
        raise ValueError(f"Unknown projection for retry: {job.projection_type!r}")

    await _acquire_member_lock(conn, job.member_id)
    logger.info(
        "Retrying %s for event_type=%s member=%s",
        projection.projection_type, job.event_type or "?", job.member_id,
    )
    await _run_projection(conn, projection, job, payload)
