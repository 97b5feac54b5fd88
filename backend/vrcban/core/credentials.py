"""Credential store: the JSON document holding VRChat secrets and the last session.

The file is rewritten atomically (temp file + ``os.replace``) so a crash
mid-write never leaves a truncated document behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class SessionTokens(BaseModel):
    """Persisted authentication cookies."""

    token: str
    second_factor_token: str | None = None


class Credentials(BaseModel):
    """Long-lived service account secrets plus the last obtained session."""

    username: str
    password: str
    totp_secret: str = Field(default="", description="Base32 TOTP seed")
    group_id: str
    authentication: SessionTokens | None = None


class CredentialStore:
    """Load/save ``Credentials`` from a JSON file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> Credentials:
        """Read and validate the credential document.

        Raises ``FileNotFoundError`` or ``pydantic.ValidationError``.
        """
        text = self.path.read_text(encoding="utf-8")
        credentials = Credentials.model_validate_json(text)
        logger.debug(f"Loaded credentials for {credentials.username} from {self.path}")
        return credentials

    def save(self, credentials: Credentials) -> None:
        """Atomically rewrite the credential document."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = credentials.model_dump_json(indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Saved credentials to {self.path}")
