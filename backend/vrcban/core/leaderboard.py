"""Staff moderation leaderboard computation.

Pure functions over a window of audit-log entries; nothing here does I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from types import MappingProxyType

from shared.models.audit_log import TRACKED_EVENT_TYPES, AuditLogEntry, EventType
from shared.models.leaderboard import Leaderboard, LeaderboardEntry

DEFAULT_WINDOW = timedelta(hours=24)


class AliasMap:
    """Maps alternate accounts (and system actors) onto one canonical actor ID.

    Targets starting with ``usr_`` are VRChat accounts. Any other target
    (e.g. ``"Vote Kick"`` for ``vrc_admin``) is a label naming a system actor.
    """

    def __init__(self, aliases: Mapping[str, str] | None = None) -> None:
        self._aliases = MappingProxyType(dict(aliases or {}))

    def canonical(self, actor_id: str) -> str:
        return self._aliases.get(actor_id, actor_id)

    def is_label(self, actor_id: str) -> bool:
        """True for alias targets that name a system actor rather than an account."""
        return actor_id in self._aliases.values() and not actor_id.startswith("usr_")

    def __len__(self) -> int:
        return len(self._aliases)


def _percent(part: int, whole: int) -> float:
    return part / whole * 100.0 if whole else 0.0


def group_by_actor(
    entries: Iterable[AuditLogEntry], aliases: AliasMap
) -> dict[str, list[AuditLogEntry]]:
    """Group tracked entries by canonical actor, cancelling reversed bans.

    Entries are processed oldest first (stable, so equal timestamps keep input
    order). An unban drops every earlier ban by the same actor on the same
    target and is not counted itself. Actors left with nothing are removed.
    """
    tracked = [e for e in entries if e.event_type in TRACKED_EVENT_TYPES]
    tracked.sort(key=lambda e: e.created_at)

    groups: dict[str, list[AuditLogEntry]] = {}
    for entry in tracked:
        actor_id = aliases.canonical(entry.actor_id)
        if entry.event_type == EventType.UNBAN:
            logs = groups.get(actor_id)
            if logs:
                logs[:] = [
                    e
                    for e in logs
                    if not (e.event_type == EventType.BAN and e.target_id == entry.target_id)
                ]
            continue
        groups.setdefault(actor_id, []).append(entry)

    return {actor_id: logs for actor_id, logs in groups.items() if logs}


def _count(entry: LeaderboardEntry, logs: list[AuditLogEntry], since: datetime) -> None:
    for log in logs:
        recent = log.created_at >= since
        if log.event_type == EventType.BAN:
            entry.bans += 1
            entry.new_bans += recent
        elif log.event_type == EventType.KICK:
            entry.kicks += 1
            entry.new_kicks += recent
        elif log.event_type == EventType.WARN:
            entry.warns += 1
            entry.new_warns += recent


def _display_name(actor_id: str, logs: list[AuditLogEntry], aliases: AliasMap) -> str | None:
    """Latest display name of the canonical account, else of any merged alt."""
    if aliases.is_label(actor_id):
        return actor_id
    fallback = None
    for log in reversed(logs):
        if not log.actor_display_name:
            continue
        if log.actor_id == actor_id:
            return log.actor_display_name
        fallback = fallback or log.actor_display_name
    return fallback


def build_leaderboard(
    entries: Iterable[AuditLogEntry],
    *,
    aliases: AliasMap | None = None,
    now: datetime | None = None,
    count_warnings_in_share: bool = False,
    window: timedelta = DEFAULT_WINDOW,
) -> Leaderboard:
    """Rank moderators by total bans + kicks + warnings.

    ``percent`` is each moderator's share of all actions. By default warnings
    are left out of both sides of that ratio; ``count_warnings_in_share``
    includes them. Ties keep grouping order (stable sort).
    """
    aliases = aliases or AliasMap()
    now = now or datetime.now(timezone.utc)
    since = now - window

    entries = list(entries)
    groups = group_by_actor(entries, aliases)

    rows: list[LeaderboardEntry] = []
    for actor_id, logs in groups.items():
        row = LeaderboardEntry(
            rank=0, actor_id=actor_id, display_name=_display_name(actor_id, logs, aliases)
        )
        _count(row, logs, since)
        rows.append(row)

    totals = LeaderboardEntry(rank=0, actor_id="Total", display_name="Total")
    for row in rows:
        totals.bans += row.bans
        totals.kicks += row.kicks
        totals.warns += row.warns
        totals.new_bans += row.new_bans
        totals.new_kicks += row.new_kicks
        totals.new_warns += row.new_warns

    for row in rows:
        if count_warnings_in_share:
            row.percent = _percent(row.total, totals.total)
        else:
            row.percent = _percent(row.total - row.warns, totals.total - totals.warns)
    totals.percent = 100.0 if rows else 0.0

    rows.sort(key=lambda r: r.total, reverse=True)
    for rank, row in enumerate(rows, start=1):
        row.rank = rank

    return Leaderboard(entries=rows, totals=totals, generated_at=now, entry_count=len(entries))
