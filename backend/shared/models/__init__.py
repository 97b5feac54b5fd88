"""Shared data models for the vrc-ban backend."""

from .audit_log import (
    TRACKED_EVENT_TYPES,
    AuditLogEntry,
    AuditLogPage,
    EventType,
    MalformedRecordError,
)
from .leaderboard import Leaderboard, LeaderboardEntry
from .session import GroupMember, Session, UserProfile

__all__ = [
    "TRACKED_EVENT_TYPES",
    "AuditLogEntry",
    "AuditLogPage",
    "EventType",
    "GroupMember",
    "Leaderboard",
    "LeaderboardEntry",
    "MalformedRecordError",
    "Session",
    "UserProfile",
]
