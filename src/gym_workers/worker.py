"""Background job loop for member activity projections.

The portal inserts a ``background_jobs`` row for every check-in or workout
change and sends NOTIFY on ``gym_jobs``. The worker wakes on the
notification (or on the poll interval if one is missed), claims pending
jobs with SKIP LOCKED and runs each in its own transaction. Failed jobs
come back after ``2**attempt`` seconds until ``max_retries``, then stay
``dead`` for inspection.
"""

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row

from .config import Config
from .jobs import prepare_job_payload
from .metrics import record_job
from .registry import get_handler

logger = logging.getLogger(__name__)

JOBS_CHANNEL = "gym_jobs"
MAX_BACKOFF_SECONDS = 3600
RECONNECT_DELAY_SECONDS = 5.0


def retry_backoff_seconds(attempt: int) -> int:
    return min(2**attempt, MAX_BACKOFF_SECONDS)


@dataclass(frozen=True)
class ClaimedJob:
    id: int
    job_type: str
    payload: dict[str, Any]
    attempt: int
    max_retries: int | None = None
    member_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ClaimedJob":
        member_id = row.get("member_id")
        return cls(
            id=row["id"],
            job_type=row["job_type"],
            payload=dict(row.get("payload") or {}),
            attempt=row.get("attempt") or 1,
            max_retries=row.get("max_retries"),
            member_id=str(member_id) if member_id is not None else None,
        )

    def log_context(self) -> dict[str, Any]:
        return {
            "gym_job_id": self.id,
            "gym_job_type": self.job_type,
            "gym_member_id": self.member_id or self.payload.get("member_id"),
        }


class Worker:
    def __init__(self, config: Config) -> None:
        self.config = config
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.request_shutdown)

        logger.info(
            "Worker starting (poll_interval=%.1fs, batch_size=%d, timezone=%s)",
            self.config.poll_interval_seconds,
            self.config.batch_size,
            self.config.reference_timezone,
        )
        async with asyncio.TaskGroup() as tg:
            tg.create_task(self._listen_loop())
            tg.create_task(self._poll_loop())

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown.set()

    async def _sleep_unless_shutdown(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True if shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def _listen_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                async with await psycopg.AsyncConnection.connect(
                    self.config.listen_database_url, autocommit=True
                ) as conn:
                    await conn.execute(sql.SQL("LISTEN {}").format(sql.Identifier(JOBS_CHANNEL)))
                    logger.info("Listening on %s", JOBS_CHANNEL)
                    while not self._shutdown.is_set():
                        async for notify in conn.notifies(
                            timeout=self.config.poll_interval_seconds
                        ):
                            logger.debug("Job notification: %s", notify.payload)
                            await self._process_batch()
                            if self._shutdown.is_set():
                                break
            except psycopg.OperationalError as exc:
                logger.warning(
                    "LISTEN connection lost (%s), reconnecting in %.0fs",
                    exc, RECONNECT_DELAY_SECONDS,
                )
                if await self._sleep_unless_shutdown(RECONNECT_DELAY_SECONDS):
                    break
        logger.info("Listen loop stopped")

    async def _poll_loop(self) -> None:
        while not await self._sleep_unless_shutdown(self.config.poll_interval_seconds):
            await self._process_batch()
        logger.info("Poll loop stopped")

    async def _process_batch(self) -> None:
        try:
            async with await psycopg.AsyncConnection.connect(
                self.config.database_url
            ) as conn:
                jobs = await self._claim_jobs(conn)
                # Commit the claims before running anything.
                await conn.commit()
                for job in jobs:
                    await self._process_job(conn, job)
        except Exception:
            logger.exception("Job batch aborted")

    async def _claim_jobs(self, conn: psycopg.AsyncConnection[Any]) -> list[ClaimedJob]:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                """
                UPDATE background_jobs
                SET status = 'processing', started_at = NOW(), attempt = attempt + 1
                WHERE id IN (
                    SELECT id FROM background_jobs
                    WHERE status = 'pending' AND scheduled_for <= NOW()
                    ORDER BY scheduled_for, priority DESC, id
                    LIMIT %s
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING id, member_id, job_type, payload, attempt, max_retries
                """,
                (self.config.batch_size,),
            )
            rows = await cur.fetchall()
        return [ClaimedJob.from_row(row) for row in rows]

    async def _process_job(
        self, conn: psycopg.AsyncConnection[Any], job: ClaimedJob
    ) -> None:
        context = job.log_context()
        handler = get_handler(job.job_type)
        if handler is None:
            logger.warning("No handler for job_type=%s (job_id=%d)", job.job_type, job.id, extra=context)
            record_job(job.job_type, "dead")
            await self._settle(conn, job, "dead", f"No handler for job_type={job.job_type}")
            return

        payload = prepare_job_payload(
            job.payload,
            member_id=job.member_id,
            reference_timezone=self.config.reference_timezone,
        )
        try:
            async with conn.transaction():
                await handler(conn, payload)
                await conn.execute(
                    """
                    UPDATE background_jobs
                    SET status = 'completed', completed_at = NOW()
                    WHERE id = %s
                    """,
                    (job.id,),
                )
        except Exception as exc:
            logger.exception("Job %d failed (type=%s)", job.id, job.job_type, extra=context)
            max_retries = job.max_retries or self.config.max_retries
            if job.attempt >= max_retries:
                record_job(job.job_type, "dead")
                logger.error(
                    "Job %d is dead after %d attempts: %s", job.id, job.attempt, exc,
                    extra=context,
                )
                await self._settle(conn, job, "dead", str(exc))
            else:
                record_job(job.job_type, "retried")
                await self._settle(
                    conn, job, "pending", str(exc),
                    delay_seconds=retry_backoff_seconds(job.attempt),
                )
            return

        record_job(job.job_type, "completed")
        logger.info("Job %d completed (type=%s)", job.id, job.job_type, extra=context)

    async def _settle(
        self,
        conn: psycopg.AsyncConnection[Any],
        job: ClaimedJob,
        status: str,
        error: str,
        *,
        delay_seconds: int | None = None,
    ) -> None:
        """Record a job's failure: ``pending`` again after a delay, or ``dead``."""
        async with conn.cursor() as cur:
            if status == "pending":
                logger.info(
                    "Job %d retrying in %ds (attempt=%d)", job.id, delay_seconds, job.attempt,
                )
                await cur.execute(
                    """
                    UPDATE background_jobs
                    SET status = 'pending',
                        error_message = %s,
                        scheduled_for = NOW() + make_interval(secs => %s)
                    WHERE id = %s
                    """,
                    (error, float(delay_seconds or 0), job.id),
                )
            else:
                await cur.execute(
                    """
                    UPDATE background_jobs
                    SET status = 'dead', error_message = %s, completed_at = NOW()
                    WHERE id = %s
                    """,
                    (error, job.id),
                )
        await conn.commit()
