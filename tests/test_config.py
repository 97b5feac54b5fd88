import pytest
from pydantic import ValidationError

from vrcban.core.config import DEFAULT_ALIASES, Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DATABASE_URL", "POLL_INTERVAL", "PAGE_SIZE", "ALIASES", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/vrcban")

    settings = Settings(_env_file=None)

    assert settings.poll_interval == 600
    assert settings.page_size == 100
    assert settings.leaderboard_ttl == 1800
    assert settings.count_warnings_in_share is False
    assert settings.aliases == DEFAULT_ALIASES
    assert settings.user_agent.startswith("vrc-ban/")


def test_aliases_from_json_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/vrcban")
    monkeypatch.setenv("ALIASES", '{"usr_alt": "usr_main"}')

    assert Settings(_env_file=None).aliases == {"usr_alt": "usr_main"}


def test_log_level_normalized(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/vrcban")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    assert Settings(_env_file=None).log_level == "DEBUG"


def test_rejects_non_postgres_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "mysql://localhost/vrcban")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_rejects_oversized_page(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/vrcban")
    monkeypatch.setenv("PAGE_SIZE", "500")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
