"""vrc-ban: VRChat group session handling, audit-log ingestion and staff leaderboard."""

__version__ = "0.3.0"
