"""Leaderboard API routes"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from shared.models.leaderboard import LeaderboardEntry
from vrcban.api.dependencies import get_leaderboard_service
from vrcban.core.errors import VRChatError
from vrcban.services.leaderboard import LeaderboardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


class LeaderboardRow(BaseModel):
    rank: int
    actor_id: str
    display_name: str | None
    bans: int
    kicks: int
    warns: int
    new_bans: int
    new_kicks: int
    new_warns: int
    total: int
    percent: float

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardRow":
        return cls(
            rank=entry.rank,
            actor_id=entry.actor_id,
            display_name=entry.display_name,
            bans=entry.bans,
            kicks=entry.kicks,
            warns=entry.warns,
            new_bans=entry.new_bans,
            new_kicks=entry.new_kicks,
            new_warns=entry.new_warns,
            total=entry.total,
            percent=round(entry.percent, 1),
        )


class LeaderboardResponse(BaseModel):
    generated_at: datetime
    entries: list[LeaderboardRow]
    totals: LeaderboardRow


@router.get("")
async def get_leaderboard(
    service: LeaderboardService = Depends(get_leaderboard_service),
) -> LeaderboardResponse:
    """Staff moderation leaderboard"""
    try:
        board = await service.get_leaderboard()
    except VRChatError as e:
        logger.error(f"Leaderboard unavailable: {e}")
        raise HTTPException(status_code=503, detail="Leaderboard unavailable") from e

    return LeaderboardResponse(
        generated_at=board.generated_at,
        entries=[LeaderboardRow.from_entry(e) for e in board.entries],
        totals=LeaderboardRow.from_entry(board.totals),
    )
