"""Data models for the group audit-log table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class MalformedRecordError(ValueError):
    """A remote audit-log record is missing or has an unusable required field."""


class EventType(StrEnum):
    """Audit-log event types tracked by the leaderboard."""

    BAN = "group.user.ban"
    UNBAN = "group.user.unban"
    KICK = "group.instance.kick"
    WARN = "group.instance.warn"


TRACKED_EVENT_TYPES = frozenset(EventType)

# Required API field → attribute name
_REQUIRED_FIELDS = {
    "id": "id",
    "groupId": "group_id",
    "actorId": "actor_id",
    "eventType": "event_type",
}


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class AuditLogEntry:
    """A single moderation event from the group audit log."""

    id: str
    created_at: datetime
    group_id: str
    actor_id: str
    event_type: str
    actor_display_name: str | None = None
    target_id: str | None = None
    description: str = ""
    data: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> AuditLogEntry:
        """Build an entry from a VRChat ``GroupAuditLogEntry`` payload.

        Raises ``MalformedRecordError`` when a required field is absent.
        """
        if not isinstance(payload, dict):
            raise MalformedRecordError(f"audit log entry is not an object: {payload!r:.80}")

        values: dict[str, Any] = {}
        for key, attr in _REQUIRED_FIELDS.items():
            value = payload.get(key)
            if not value:
                raise MalformedRecordError(f"audit log entry missing '{key}'")
            values[attr] = str(value)

        raw_created = payload.get("created_at") or payload.get("createdAt")
        if not raw_created:
            raise MalformedRecordError(f"audit log entry {values['id']} missing 'created_at'")
        try:
            created_at = parse_timestamp(raw_created)
        except ValueError as e:
            raise MalformedRecordError(
                f"audit log entry {values['id']} has invalid 'created_at': {raw_created!r}"
            ) from e

        data = payload.get("data")
        return cls(
            created_at=created_at,
            actor_display_name=payload.get("actorDisplayName"),
            target_id=payload.get("targetId"),
            description=payload.get("description") or "",
            data=data if isinstance(data, dict) else {},
            **values,
        )

    def to_api(self) -> dict[str, Any]:
        """Inverse of ``from_api``."""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "groupId": self.group_id,
            "actorId": self.actor_id,
            "actorDisplayName": self.actor_display_name,
            "targetId": self.target_id,
            "eventType": self.event_type,
            "description": self.description,
            "data": self.data,
        }


@dataclass
class AuditLogPage:
    """One page of the remote audit log.

    ``raw_count`` counts every entry the service returned, including the
    ``malformed`` ones that were dropped from ``results``.
    """

    results: list[AuditLogEntry]
    has_next: bool
    total_count: int
    offset: int = 0
    raw_count: int = 0
    malformed: int = 0

    @property
    def is_empty(self) -> bool:
        return self.raw_count == 0
