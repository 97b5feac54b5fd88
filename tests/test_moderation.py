import pytest

from shared.models.audit_log import EventType
from shared.models.session import GroupMember, UserProfile
from vrcban.core.errors import AuthorizationError, TransientNetworkError, VRChatAPIError
from vrcban.core.credentials import Credentials
from vrcban.runtime import Runtime
from vrcban.services.moderation import ModerationService
from tests.fakes import GROUP_ID, FakeSessions, make_entry


@pytest.fixture
def sessions():
    return FakeSessions()


@pytest.fixture
def service(api, sessions, store):
    return ModerationService(api, sessions, GROUP_ID, store=store)


async def test_ban(service, api, sessions):
    await service.ban("usr_x")

    assert api.bans == ["usr_x"]
    assert sessions.renewals == []


@pytest.mark.parametrize("error", [AuthorizationError("expired"), TransientNetworkError("reset")])
async def test_reauthenticates_once_and_retries(service, api, sessions, error):
    stale = sessions.session
    api.errors.append(error)

    await service.unban("usr_x")

    assert sessions.renewals == [stale]
    assert api.unbans == ["usr_x"]


async def test_second_failure_reaches_caller(service, api, sessions):
    api.errors.extend([AuthorizationError("expired"), AuthorizationError("still expired")])

    with pytest.raises(AuthorizationError):
        await service.ban("usr_x")

    assert len(sessions.renewals) == 1
    assert api.bans == []


async def test_other_api_errors_are_not_retried(service, api, sessions):
    api.errors.append(VRChatAPIError(404, "not found"))

    with pytest.raises(VRChatAPIError):
        await service.ban("usr_x")

    assert sessions.renewals == []


async def test_lookups(service, api):
    api.members["usr_x"] = GroupMember(user_id="usr_x")
    api.users["usr_x"] = UserProfile(id="usr_x", display_name="Someone")

    assert await service.member_status("usr_x") == GroupMember(user_id="usr_x")
    assert await service.member_status("usr_y") is None
    assert (await service.get_user("usr_x")).display_name == "Someone"
    assert [u.id for u in await service.search_users("some")] == ["usr_x"]


async def test_recent_ban_targets_are_deduplicated(service, api):
    api.entries = [
        make_entry("5", EventType.BAN, target_id="usr_c"),
        make_entry("4", EventType.KICK, target_id="usr_k"),
        make_entry("3", EventType.BAN, target_id="usr_b"),
        make_entry("2", EventType.BAN, target_id="usr_c"),
        make_entry("1", EventType.BAN, target_id="usr_a"),
    ]

    assert await service.recent_ban_targets() == ["usr_c", "usr_b", "usr_a"]
    assert await service.recent_ban_targets(limit=2) == ["usr_c", "usr_b"]


async def test_history_reads_store(service, store):
    await store.insert(make_entry("1", EventType.BAN, target_id="usr_x"))
    await store.insert(make_entry("2", EventType.BAN, target_id="usr_y"))

    history = await service.history("usr_x")

    assert [e.id for e in history] == ["1"]


async def test_history_without_store(api, sessions):
    service = ModerationService(api, sessions, GROUP_ID)

    with pytest.raises(RuntimeError):
        await service.history("usr_x")


def test_runtime_wires_moderation_to_credential_group(api, store):
    credentials = Credentials(username="bot", password="pw", group_id=GROUP_ID)
    sessions = FakeSessions()
    runtime = Runtime(
        settings=None,
        credentials=credentials,
        http=None,
        sessions=sessions,
        client=api,
        db=None,
        store=store,
        ingestor=None,
    )

    service = runtime.moderation_service()

    assert service.group_id == GROUP_ID
    assert service.api is api
    assert service.sessions is sessions
    assert service.store is store
