"""vrc-ban service configuration"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from vrcban import __version__

logger = logging.getLogger(__name__)

# === Path Configuration ===
VRCBAN_DIR = Path(__file__).parent.parent
BACKEND_DIR = VRCBAN_DIR.parent
DATA_DIR = BACKEND_DIR / "data"

VRCHAT_API_BASE = "https://api.vrchat.cloud/api/1"
MAX_PAGE_SIZE = 100

# Staff alt accounts merged into one moderator, plus the vote-kick system actor.
# A value starting with "usr_" is a canonical account; any other value is a
# display label for a system actor and is shown as the moderator name as-is.
DEFAULT_ALIASES: dict[str, str] = {
    # ~WhiteBoy~ -> -WhiteBoy-
    "usr_01a387da-e758-451f-96e5-e3a7282c7197": "usr_71ddbbc1-c70f-4b4a-a0fc-e87f57038393",
    # ZealWolf d978 -> Zeal Wolf
    "usr_a4cec242-f798-4d53-aa69-b85e19e9d978": "usr_275004c5-5532-47e6-a543-2ebf88229bdf",
    # TheVoiceBox | FemBox -> ShayBox
    "usr_5dc9c86d-2de7-4c10-b11d-8dd1335270de": "usr_2e8e2b0c-df4e-499f-bbf0-ddc5f3841488",
    "usr_98139f06-9b7e-4a2c-b7b0-8459b51dddbb": "usr_2e8e2b0c-df4e-499f-bbf0-ddc5f3841488",
    "vrc_admin": "Vote Kick",
}


def default_user_agent() -> str:
    return f"vrc-ban/{__version__}"


class Settings(BaseSettings):
    """vrc-ban settings"""

    model_config = SettingsConfigDict(
        env_file=BACKEND_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(..., description="PostgreSQL database URL")

    # VRChat
    credentials_file: Path = Field(
        default=DATA_DIR / "vrchat.json",
        description="JSON document holding credentials and the persisted session",
    )
    user_agent: str = Field(default_factory=default_user_agent, description="VRChat User-Agent")
    api_base: str = Field(default=VRCHAT_API_BASE, description="VRChat API base URL")

    # Ingestion
    poll_interval: float = Field(default=600, gt=0, description="Seconds between ingestion cycles")
    page_size: int = Field(default=MAX_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    # Leaderboard
    leaderboard_ttl: float = Field(default=1800, ge=0, description="Leaderboard cache TTL")
    count_warnings_in_share: bool = Field(
        default=False, description="Include warnings in the percentage share"
    )
    aliases: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_ALIASES))

    # Environment
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL starts with postgresql://"""
        if not v.startswith(("postgresql://", "postgres://")):
            raise ValueError("DATABASE_URL must start with 'postgresql://'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            logger.warning(f"Invalid log level '{v}', defaulting to INFO")
            return "INFO"
        return v_upper


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()  # type: ignore[call-arg]
