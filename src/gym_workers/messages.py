"""Member/admin conversation helpers.

Messages arrive twice in practice: once from the initial conversation fetch
and again from the realtime insert feed. ``merge_messages`` folds both into
one ordered list, and ``group_messages_by_date`` splits it into the
"Today" / "Yesterday" / dated sections the inbox shows.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, field_validator

from .dates import DEFAULT_REFERENCE_TIMEZONE, local_date_for_timezone, parse_timestamp
from .errors import InvalidTimestamp

logger = logging.getLogger(__name__)

Party = Literal["admin", "member"]


@dataclass(frozen=True)
class Message:
    id: str
    sender_id: str
    receiver_id: str
    sender_type: Party
    receiver_type: Party
    content: str
    created_at: datetime
    gym_id: str | None = None
    formatted_gym_id: str | None = None
    read_at: datetime | None = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> Message:
        read_at = row.get("read_at")
        return cls(
            id=str(row["id"]),
            sender_id=str(row["sender_id"]),
            receiver_id=str(row["receiver_id"]),
            sender_type=row.get("sender_type", "member"),
            receiver_type=row.get("receiver_type", "admin"),
            content=row.get("content") or "",
            created_at=parse_timestamp(row["created_at"]),
            gym_id=row.get("gym_id"),
            formatted_gym_id=row.get("formatted_gym_id"),
            read_at=parse_timestamp(read_at) if read_at else None,
        )


class MessageInput(BaseModel):
    """An outbound inbox message, validated before it is stored."""

    gym_id: str
    sender_id: str
    receiver_id: str
    sender_type: Party
    receiver_type: Party
    content: str
    formatted_gym_id: str | None = None

    @field_validator("content")
    @classmethod
    def validate_content(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("message content must not be empty")
        return normalized


def is_for_conversation(message: Message, member_id: str, admin_id: str) -> bool:
    return (message.sender_id, message.receiver_id) in (
        (member_id, admin_id),
        (admin_id, member_id),
    )


def merge_messages(existing: Iterable[Message], incoming: Iterable[Message]) -> list[Message]:
    """Combine two message lists, first copy of each id wins, oldest first."""
    merged: dict[str, Message] = {}
    for message in (*existing, *incoming):
        merged.setdefault(message.id, message)
    return sorted(merged.values(), key=lambda m: (m.created_at, m.id))


def _day_label(day: date, today: date) -> str:
    delta = (today - day).days
    if delta == 0:
        return "Today"
    if delta == 1:
        return "Yesterday"
    return f"{day.strftime('%B')} {day.day}, {day.year}"


def group_messages_by_date(
    messages: Iterable[Message],
    *,
    today: date,
    timezone_name: str = DEFAULT_REFERENCE_TIMEZONE,
) -> list[tuple[str, list[Message]]]:
    """Group messages into day sections, in chronological order."""
    groups: dict[date, list[Message]] = {}
    for message in sorted(messages, key=lambda m: (m.created_at, m.id)):
        day = local_date_for_timezone(message.created_at, timezone_name)
        groups.setdefault(day, []).append(message)
    return [(_day_label(day, today), groups[day]) for day in sorted(groups)]


def parse_messages(rows: Iterable[Mapping[str, Any]]) -> list[Message]:
    """Build messages from rows, skipping rows with unusable timestamps."""
    parsed: list[Message] = []
    for row in rows:
        try:
            parsed.append(Message.from_mapping(row))
        except (InvalidTimestamp, KeyError) as exc:
            logger.warning("Skipping malformed message row %r: %s", row.get("id"), exc)
    return parsed
