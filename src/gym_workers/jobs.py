"""Payload of member activity jobs in ``background_jobs``.

The portal enqueues ``projection.update`` with the member and the activity
event. The worker fills in what the portal may leave out (the member from
the job row, the reference timezone from config) before dispatch.
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .dates import DEFAULT_REFERENCE_TIMEZONE, normalize_timezone_name


class ActivityJob(BaseModel):
    model_config = ConfigDict(extra="allow")

    member_id: str
    event_type: str = ""
    timezone: str = DEFAULT_REFERENCE_TIMEZONE
    today: date | None = None
    # Set on projection.retry jobs only.
    projection_type: str | None = None

    @field_validator("member_id")
    @classmethod
    def validate_member_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("member_id must not be empty")
        return normalized

    @field_validator("timezone", mode="before")
    @classmethod
    def normalize_timezone(cls, value: Any) -> str:
        return normalize_timezone_name(value) or DEFAULT_REFERENCE_TIMEZONE

    @field_validator("today", mode="before")
    @classmethod
    def drop_blank_today(cls, value: Any) -> Any:
        return value or None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


def prepare_job_payload(
    raw: dict[str, Any] | None,
    *,
    member_id: str | None,
    reference_timezone: str,
) -> dict[str, Any]:
    """Payload as handlers see it: member and timezone always present.

    Values already in the payload win over the job row and config.
    """
    payload = dict(raw or {})
    if not payload.get("member_id") and member_id:
        payload["member_id"] = str(member_id)
    if not payload.get("timezone"):
        payload["timezone"] = reference_timezone
    return payload
