"""Unit tests for router dispatch, member locking, and retry scheduling."""

from unittest.mock import AsyncMock, patch

import pytest

from gym_workers.handlers.router import handle_projection_retry, handle_projection_update
from gym_workers.registry import Projection


def _projection(projection_type, side_effect=None):
    handler = AsyncMock(side_effect=side_effect)
    handler.__name__ = f"update_{projection_type}"
    return Projection(projection_type, handler, ("checkin.created", "workout.logged"))


def _retry_inserts(conn):
    return [
        c.args for c in conn.execute.call_args_list
        if "INSERT INTO background_jobs" in c.args[0]
    ]


class TestHandleProjectionUpdate:
    @pytest.mark.asyncio
    async def test_missing_member_id_raises(self, mock_conn):
        with pytest.raises(ValueError, match="Missing member_id"):
            await handle_projection_update(mock_conn, {"event_type": "checkin.created"})

    @pytest.mark.asyncio
    async def test_no_projections_skips_lock(self, mock_conn):
        payload = {"event_type": "unknown.event", "member_id": "m1"}
        await handle_projection_update(mock_conn, payload)
        mock_conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_member_lock_acquired_before_dispatch(self, mock_conn):
        projection = _projection("member_activity")
        payload = {"event_type": "checkin.created", "member_id": "m1"}

        with patch(
            "gym_workers.handlers.router.projections_for_event", return_value=[projection]
        ):
            await handle_projection_update(mock_conn, payload)

        lock_call = mock_conn.execute.call_args_list[0]
        assert "pg_advisory_xact_lock" in lock_call.args[0]
        assert lock_call.args[1] == ("m1",)
        projection.handler.assert_awaited_once_with(mock_conn, payload)

    @pytest.mark.asyncio
    async def test_failed_projection_queues_retry_for_itself(self, mock_conn):
        projection = _projection("member_activity", RuntimeError("DB exploded"))
        payload = {
            "event_type": "workout.logged",
            "member_id": "m1",
            "timezone": "Europe/Berlin",
            "today": "2026-02-10",
        }

        with patch(
            "gym_workers.handlers.router.projections_for_event", return_value=[projection]
        ):
            await handle_projection_update(mock_conn, payload)

        [(sql, (member_id, retry_payload, max_retries))] = _retry_inserts(mock_conn)
        assert "'projection.retry'" in sql
        assert member_id == "m1"
        assert max_retries == 3
        assert retry_payload.obj == {
            "member_id": "m1",
            "event_type": "workout.logged",
            "timezone": "Europe/Berlin",
            "today": "2026-02-10",
            "projection_type": "member_activity",
        }

    @pytest.mark.asyncio
    async def test_partial_failure_continues_other_projections(self, mock_conn):
        broken = _projection("member_activity", RuntimeError("crash"))
        healthy = _projection("visit_log")
        payload = {"event_type": "checkin.created", "member_id": "m1"}

        with patch(
            "gym_workers.handlers.router.projections_for_event", return_value=[broken, healthy]
        ):
            await handle_projection_update(mock_conn, payload)

        healthy.handler.assert_awaited_once()
        [(_, (_, retry_payload, _))] = _retry_inserts(mock_conn)
        assert retry_payload.obj["projection_type"] == "member_activity"


class TestHandleProjectionRetry:
    @pytest.mark.asyncio
    async def test_unknown_projection_raises(self, mock_conn):
        payload = {"member_id": "m1", "projection_type": "nope"}
        with pytest.raises(ValueError, match="Unknown projection for retry: 'nope'"):
            await handle_projection_retry(mock_conn, payload)

    @pytest.mark.asyncio
    async def test_retry_runs_named_projection_under_lock(self, mock_conn):
        projection = _projection("member_activity")
        payload = {"member_id": "m1", "projection_type": "member_activity"}
        with patch("gym_workers.handlers.router.get_projection", return_value=projection):
            await handle_projection_retry(mock_conn, payload)

        assert "pg_advisory_xact_lock" in mock_conn.execute.call_args_list[0].args[0]
        projection.handler.assert_awaited_once_with(mock_conn, payload)

    @pytest.mark.asyncio
    async def test_retry_failure_propagates(self, mock_conn):
        projection = _projection("member_activity", RuntimeError("still broken"))
        payload = {"member_id": "m1", "projection_type": "member_activity"}
        with patch(
            "gym_workers.handlers.router.get_projection", return_value=projection
        ), pytest.raises(RuntimeError, match="still broken"):
            await handle_projection_retry(mock_conn, payload)
