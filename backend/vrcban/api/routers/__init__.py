from . import leaderboard_router

__all__ = ["leaderboard_router"]
