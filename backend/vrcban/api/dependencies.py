"""Dependency injection utilities for FastAPI"""

from fastapi import HTTPException, Request

from vrcban.services.leaderboard import LeaderboardService


def get_leaderboard_service(request: Request) -> LeaderboardService:
    service: LeaderboardService | None = getattr(request.app.state, "leaderboard", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return service
