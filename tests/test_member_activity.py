"""Tests for the member_activity projection handler."""

from datetime import datetime, timezone

import pytest

from gym_workers.handlers.member_activity import update_member_activity

from .conftest import make_mock_conn


def _executed_sql(conn):
    return [c.args for c in conn._fake_cursor.execute.call_args_list]


class TestUpdateMemberActivity:
    @pytest.mark.asyncio
    async def test_upserts_projection(self):
        rows = [{
            "id": "c1",
            "member_table_id": "m1",
            "check_in_time": datetime(2026, 2, 10, 7, tzinfo=timezone.utc),
            "check_out_time": None,
        }]
        conn = make_mock_conn(rows=rows)

        await update_member_activity(
            conn, {"event_type": "checkin.created", "member_id": "m1", "today": "2026-02-10"}
        )

        upserts = [args for args in _executed_sql(conn) if "INSERT INTO projections" in args[0]]
        assert len(upserts) == 1
        member_id, projection_type, key, data = upserts[0][1]
        assert (member_id, projection_type, key) == ("m1", "member_activity", "overview")
        assert data.obj["streak"] == 1
        assert data.obj["total_checkins"] == 1
        assert data.obj["timezone"] == "UTC"

    @pytest.mark.asyncio
    async def test_fetch_failure_writes_empty_overview(self):
        conn = make_mock_conn()
        conn._fake_cursor.fetchall.side_effect = OSError("network down")

        await update_member_activity(
            conn, {"event_type": "workout.logged", "member_id": "m1", "timezone": "Mars/Base"}
        )

        upserts = [args for args in _executed_sql(conn) if "INSERT INTO projections" in args[0]]
        data = upserts[0][1][3].obj
        assert data["streak"] == 0
        assert data["buckets"] == []
        assert data["records"] == []
        assert data["timezone"] == "UTC"

    @pytest.mark.asyncio
    async def test_missing_member_id_raises(self):
        with pytest.raises(ValueError):
            await update_member_activity(make_mock_conn(), {"event_type": "checkin.created"})

    @pytest.mark.asyncio
    async def test_payload_timezone_groups_days(self):
        # 23:30 UTC on Feb 9 is already Feb 10 in Tokyo.
        rows = [{
            "id": "c1",
            "member_table_id": "m1",
            "check_in_time": datetime(2026, 2, 9, 23, 30, tzinfo=timezone.utc),
            "check_out_time": None,
        }]
        conn = make_mock_conn(rows=rows)

        await update_member_activity(conn, {
            "event_type": "checkin.created",
            "member_id": "m1",
            "timezone": "Asia/Tokyo",
            "today": "2026-02-11",
        })

        upserts = [args for args in _executed_sql(conn) if "INSERT INTO projections" in args[0]]
        data = upserts[0][1][3].obj
        assert data["timezone"] == "Asia/Tokyo"
        assert data["streak"] == 1
        assert data["last_checkin"] == "2026-02-10"
