"""Tests for job and projection registration."""

import pytest

import gym_workers.handlers  # noqa: F401
from gym_workers import registry
from gym_workers.registry import (
    ACTIVITY_EVENTS,
    get_handler,
    get_projection,
    projection_handler,
    projection_subscriptions,
    projections_for_event,
    register,
    registered_types,
)


@pytest.fixture(autouse=True)
def _clean_registry():
    """Remove test-registered handlers after each test."""
    jobs = dict(registry._jobs)
    projections = dict(registry._projections)
    yield
    registry._jobs.clear()
    registry._jobs.update(jobs)
    registry._projections.clear()
    registry._projections.update(projections)


class TestBuiltInRegistrations:
    def test_member_activity_subscribes_to_every_activity_event(self):
        for event_type in ACTIVITY_EVENTS:
            assert [p.projection_type for p in projections_for_event(event_type)] == [
                "member_activity"
            ]

    def test_member_activity_lookup(self):
        projection = get_projection("member_activity")
        assert projection is not None
        assert projection.name == "update_member_activity"

    def test_router_job_types(self):
        assert registered_types() == ["projection.retry", "projection.update"]
        assert get_handler("projection.update") is not None

    def test_subscriptions(self):
        assert sorted(projection_subscriptions()["member_activity"]) == sorted(ACTIVITY_EVENTS)


class TestRegistration:
    def test_duplicate_job_type_raises(self):
        @register("test.job")
        async def _handler(conn, payload):
            pass

        with pytest.raises(ValueError, match="Duplicate handler for job_type='test.job'"):
            @register("test.job")
            async def _handler2(conn, payload):
                pass

    def test_duplicate_projection_raises(self):
        with pytest.raises(ValueError, match="Duplicate projection 'member_activity'"):
            @projection_handler("member_activity", "checkin.created")
            async def _again(conn, payload):
                pass

    def test_unknown_event_rejected(self):
        with pytest.raises(ValueError, match="Unknown activity events"):
            projection_handler("visits", "checkin.teleported")

    def test_no_events_rejected(self):
        with pytest.raises(ValueError, match="subscribes to no events"):
            projection_handler("visits")

    def test_registration_order_preserved(self):
        @projection_handler("visit_log", "checkin.created")
        async def _visit_log(conn, payload):
            pass

        names = [p.projection_type for p in projections_for_event("checkin.created")]
        assert names == ["member_activity", "visit_log"]
        assert projections_for_event("workout.logged")[-1].projection_type == "member_activity"

    def test_unknown_event_type(self):
        assert projections_for_event("never.registered") == []
        assert get_projection("never.registered") is None
