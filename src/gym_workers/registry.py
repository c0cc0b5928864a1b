"""Job and projection registries.

Jobs are claimed from ``background_jobs`` by ``job_type`` and routed to
exactly one coroutine. ``projection.update`` jobs fan out further: every
projection that subscribed to the job's activity event is recomputed, and a
failed projection is retried on its own by ``projection_type``.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import psycopg

logger = logging.getLogger(__name__)

HandlerFn = Callable[[psycopg.AsyncConnection[Any], dict[str, Any]], Awaitable[None]]

# Events written by the portal when a member's activity changes.
ACTIVITY_EVENTS = frozenset({
    "checkin.created",
    "checkin.updated",
    "workout.logged",
    "workout.deleted",
})


@dataclass(frozen=True)
class Projection:
    projection_type: str
    handler: HandlerFn
    event_types: tuple[str, ...]

    @property
    def name(self) -> str:
        return self.handler.__name__


_jobs: dict[str, HandlerFn] = {}
_projections: dict[str, Projection] = {}


def register(job_type: str) -> Callable[[HandlerFn], HandlerFn]:
    def decorator(fn: HandlerFn) -> HandlerFn:
        if job_type in _jobs:
            raise ValueError(f"Duplicate handler for job_type={job_type!r}")
        _jobs[job_type] = fn
        logger.debug("Job type %s -> %s", job_type, fn.__name__)
        return fn

    return decorator


def projection_handler(
    projection_type: str, *event_types: str
) -> Callable[[HandlerFn], HandlerFn]:
    """Recompute ``projection_type`` whenever one of ``event_types`` arrives."""
    unknown = set(event_types) - ACTIVITY_EVENTS
    if unknown:
        raise ValueError(f"Unknown activity events for {projection_type}: {sorted(unknown)}")
    if not event_types:
        raise ValueError(f"Projection {projection_type} subscribes to no events")

    def decorator(fn: HandlerFn) -> HandlerFn:
        if projection_type in _projections:
            raise ValueError(f"Duplicate projection {projection_type!r}")
        _projections[projection_type] = Projection(projection_type, fn, tuple(event_types))
        logger.debug("Projection %s on %s", projection_type, ", ".join(event_types))
        return fn

    return decorator


def get_handler(job_type: str) -> HandlerFn | None:
    return _jobs.get(job_type)


def get_projection(projection_type: str) -> Projection | None:
    return _projections.get(projection_type)


def projections_for_event(event_type: str) -> list[Projection]:
    """Projections subscribed to ``event_type``, in registration order."""
    return [p for p in _projections.values() if event_type in p.event_types]


def registered_types() -> list[str]:
    return sorted(_jobs)


def projection_subscriptions() -> dict[str, list[str]]:
    return {p.projection_type: list(p.event_types) for p in _projections.values()}
