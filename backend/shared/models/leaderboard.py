"""Data models for the staff moderation leaderboard (computed, never stored)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class LeaderboardEntry:
    """Per-moderator moderation counts."""

    rank: int
    actor_id: str
    display_name: str | None = None
    bans: int = 0
    kicks: int = 0
    warns: int = 0
    new_bans: int = 0
    new_kicks: int = 0
    new_warns: int = 0
    percent: float = 0.0

    @property
    def total(self) -> int:
        return self.bans + self.kicks + self.warns

    @property
    def new_total(self) -> int:
        return self.new_bans + self.new_kicks + self.new_warns


@dataclass
class Leaderboard:
    """Ranked entries plus a totals row."""

    entries: list[LeaderboardEntry]
    totals: LeaderboardEntry
    generated_at: datetime
    entry_count: int = field(default=0)
