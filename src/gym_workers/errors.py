"""Error taxonomy for activity aggregation.

Neither error is fatal to an aggregate: entry points that consume whole
collections catch them per record and continue with a smaller result.
"""

from typing import Any


class GymWorkersError(Exception):
    """Base class for errors raised by gym_workers."""


class InvalidTimestamp(GymWorkersError, ValueError):
    """A timestamp could not be parsed by the strict or the permissive parser."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"Unparseable timestamp: {value!r}")


class MalformedSet(GymWorkersError, ValueError):
    """An exercise set has a non-numeric or out-of-range weight/reps value."""

    def __init__(self, field: str, value: Any) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Malformed exercise set: {field}={value!r}")
