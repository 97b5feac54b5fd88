import json
from pathlib import Path

import pytest

from tests.fakes import GROUP_ID, FakeVRChatAPI, MemoryAuditLogStore

TOTP_SECRET = "JBSWY3DPEHPK3PXP"


@pytest.fixture
def credentials_file(tmp_path: Path) -> Path:
    path = tmp_path / "vrchat.json"
    path.write_text(
        json.dumps(
            {
                "username": "vrcban-bot",
                "password": "hunter2",
                "totp_secret": TOTP_SECRET,
                "group_id": GROUP_ID,
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def api() -> FakeVRChatAPI:
    return FakeVRChatAPI()


@pytest.fixture
def store() -> MemoryAuditLogStore:
    return MemoryAuditLogStore()
