"""Data models for the authenticated VRChat session."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Session:
    """Authentication cookies plus the user agent that obtained them."""

    token: str
    user_agent: str
    second_factor_token: str | None = None

    def cookie_header(self) -> str:
        """Render the ``Cookie`` header VRChat expects."""
        cookies = [f"auth={self.token}"]
        if self.second_factor_token:
            cookies.append(f"twoFactorAuth={self.second_factor_token}")
        return "; ".join(cookies)


@dataclass(frozen=True)
class GroupMember:
    """Ban status of a user inside the group."""

    user_id: str
    banned_at: datetime | None = None

    @property
    def is_banned(self) -> bool:
        return self.banned_at is not None


@dataclass(frozen=True)
class UserProfile:
    """Public VRChat user profile record."""

    id: str
    display_name: str
    bio: str = ""
    thumbnail_url: str | None = None
