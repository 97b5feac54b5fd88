import json

import pytest
from pydantic import ValidationError

from vrcban.core.credentials import Credentials, CredentialStore, SessionTokens
from tests.fakes import GROUP_ID


def test_load_reads_document(credentials_file):
    credentials = CredentialStore(credentials_file).load()

    assert credentials.username == "vrcban-bot"
    assert credentials.group_id == GROUP_ID
    assert credentials.authentication is None


def test_save_round_trips_tokens_and_leaves_no_temp_files(tmp_path):
    path = tmp_path / "nested" / "vrchat.json"
    store = CredentialStore(path)
    credentials = Credentials(
        username="bot",
        password="pw",
        group_id=GROUP_ID,
        authentication=SessionTokens(token="authcookie_x", second_factor_token="2fa_x"),
    )

    store.save(credentials)

    assert store.load() == credentials
    assert [p.name for p in path.parent.iterdir()] == ["vrchat.json"]
    assert json.loads(path.read_text())["authentication"]["token"] == "authcookie_x"


def test_save_overwrites_existing_document(credentials_file):
    store = CredentialStore(credentials_file)
    credentials = store.load()
    credentials.authentication = SessionTokens(token="authcookie_new")

    store.save(credentials)

    assert store.load().authentication.token == "authcookie_new"
    assert store.load().password == "hunter2"


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        CredentialStore(tmp_path / "absent.json").load()


def test_invalid_document_raises(tmp_path):
    path = tmp_path / "vrchat.json"
    path.write_text(json.dumps({"username": "bot"}))

    with pytest.raises(ValidationError):
        CredentialStore(path).load()
