"""Realtime check-in notifications over Postgres LISTEN/NOTIFY.

The database publishes each inserted ``check_ins`` row as a JSON payload on
a notification channel. A ``CheckinListener`` follows one member's inserts
and hands fresh ones to registered callbacks, for example to greet the
member right after they badge in.

Delivery rules:
- rows for other members are ignored
- a row id is delivered at most once per listener
- rows whose check-in time is older than ``recent_window`` are ignored
  (back-dated inserts are not news)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

import psycopg
from psycopg import sql

from .dates import parse_timestamp
from .errors import InvalidTimestamp
from .models import CheckinRecord

logger = logging.getLogger(__name__)

CheckinCallback = Callable[[CheckinRecord], None]

DEFAULT_CHANNEL = "check_ins"
DEFAULT_RECENT_WINDOW = timedelta(minutes=5)
_RECONNECT_DELAY_SECONDS = 5.0


class CheckinListener:
    def __init__(
        self,
        database_url: str,
        member_id: str,
        *,
        channel: str = DEFAULT_CHANNEL,
        recent_window: timedelta = DEFAULT_RECENT_WINDOW,
        poll_timeout_seconds: float = 5.0,
    ) -> None:
        self.database_url = database_url
        self.member_id = member_id
        self.channel = channel
        self.recent_window = recent_window
        self.poll_timeout_seconds = poll_timeout_seconds
        self._callbacks: list[CheckinCallback] = []
        self._seen_ids: set[str] = set()
        self._shutdown = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    def on_insert(self, callback: CheckinCallback) -> Callable[[], None]:
        """Register ``callback``; the returned function unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def dispatch(
        self, payload: str | Mapping[str, Any], *, now: datetime | None = None
    ) -> CheckinRecord | None:
        """Deliver one notification payload. Returns the record if delivered."""
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Dropping non-JSON check-in notification: %.200s", payload)
                return None
        if not isinstance(payload, Mapping):
            logger.warning("Dropping check-in notification with unexpected shape")
            return None

        record = CheckinRecord.from_mapping(payload)
        if record.member_ref != self.member_id:
            return None
        if record.id in self._seen_ids:
            logger.debug("Duplicate check-in notification %s ignored", record.id)
            return None

        try:
            checked_in_at = parse_timestamp(record.check_in_time)
        except InvalidTimestamp:
            logger.warning("Check-in %s has unparseable time %r", record.id, record.check_in_time)
            return None

        reference = now if now is not None else datetime.now(timezone.utc)
        if reference - checked_in_at >= self.recent_window:
            logger.debug("Check-in %s is back-dated, not announcing", record.id)
            return None

        self._seen_ids.add(record.id)
        for callback in list(self._callbacks):
            try:
                callback(record)
            except Exception:
                logger.exception("Check-in callback %r failed", callback)
        return record

    async def start(self) -> None:
        if self._task is not None:
            return
        self._shutdown.clear()
        self._task = asyncio.create_task(self._listen_loop())
        logger.info("Check-in listener started for member=%s", self.member_id)

    async def close(self) -> None:
        """Stop listening and drop all callbacks."""
        self._shutdown.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._callbacks.clear()
        logger.info("Check-in listener stopped for member=%s", self.member_id)

    async def __aenter__(self) -> CheckinListener:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _listen_loop(self) -> None:
        while not self._shutdown.is_set():
            try:
                async with await psycopg.AsyncConnection.connect(
                    self.database_url, autocommit=True
                ) as conn:
                    await conn.execute(
                        sql.SQL("LISTEN {}").format(sql.Identifier(self.channel))
                    )
                    logger.info("Listening on %s channel", self.channel)

                    while not self._shutdown.is_set():
                        async for notify in conn.notifies(timeout=self.poll_timeout_seconds):
                            self.dispatch(notify.payload)
                            if self._shutdown.is_set():
                                break
            except psycopg.OperationalError:
                if self._shutdown.is_set():
                    break
                logger.warning(
                    "Check-in LISTEN connection lost, reconnecting in %.0fs",
                    _RECONNECT_DELAY_SECONDS,
                )
                await asyncio.sleep(_RECONNECT_DELAY_SECONDS)
            except psycopg.Error:
                logger.exception(
                    "Check-in listener for member=%s stopped on database error", self.member_id
                )
                break
