import pytest

from shared.models.audit_log import EventType
from shared.models.session import UserProfile
from vrcban.core.audit_cache import AuditLogCache
from vrcban.core.errors import TransientNetworkError
from vrcban.core.ingest import AuditLogIngestor
from vrcban.core.leaderboard import AliasMap
from vrcban.services.leaderboard import LeaderboardService, _display_name_cache
from tests.fakes import GROUP_ID, make_entry


@pytest.fixture(autouse=True)
def clear_display_names():
    _display_name_cache.clear()
    _display_name_cache._stale.clear()


async def _seed(store, *entries):
    for entry in entries:
        await store.insert(entry)


async def test_builds_from_store(api, store):
    await _seed(
        store,
        make_entry("1", EventType.BAN, "usr_a", "usr_1", actor_display_name="Alice"),
        make_entry("2", EventType.KICK, "usr_b", "usr_2", actor_display_name="Bob"),
        make_entry("3", EventType.KICK, "usr_b", "usr_3", actor_display_name="Bob"),
    )
    service = LeaderboardService(api, store=store)

    board = await service.get_leaderboard()

    assert [(r.display_name, r.total) for r in board.entries] == [("Bob", 2), ("Alice", 1)]
    assert api.user_lookups == 0


async def test_result_is_cached_until_invalidated(api, store):
    await _seed(store, make_entry("1"))
    service = LeaderboardService(api, store=store, resolve_names=False)

    await service.get_leaderboard()
    await service.get_leaderboard()
    assert store.reads == 1

    await _seed(store, make_entry("2", target_id="usr_other"))
    service.invalidate()
    board = await service.get_leaderboard()

    assert store.reads == 2
    assert board.entries[0].bans == 2


async def test_serves_last_good_leaderboard_when_rebuild_fails(api, store):
    await _seed(store, make_entry("1"))
    service = LeaderboardService(api, store=store, resolve_names=False)
    first = await service.get_leaderboard()

    async def broken(since):
        raise ConnectionError("database went away")

    store.query_since = broken
    service.invalidate()

    assert await service.get_leaderboard() is first


async def test_missing_names_resolved_through_api(api, store):
    await _seed(store, make_entry("1", EventType.BAN, "usr_nameless", "usr_1"))
    api.users["usr_nameless"] = UserProfile(id="usr_nameless", display_name="Resolved")
    service = LeaderboardService(api, store=store)

    board = await service.get_leaderboard()
    service.invalidate()
    await service.get_leaderboard()

    assert board.entries[0].display_name == "Resolved"
    assert api.user_lookups == 1


async def test_name_lookup_failure_leaves_name_empty(api, store):
    await _seed(store, make_entry("1", EventType.BAN, "usr_gone", "usr_1"))
    api.errors.append(TransientNetworkError("timed out"))
    service = LeaderboardService(api, store=store)

    board = await service.get_leaderboard()

    assert board.entries[0].display_name is None


async def test_builds_from_audit_cache(api):
    api.entries = [
        make_entry("2", EventType.KICK, "usr_alt", "usr_2", actor_display_name="Alt"),
        make_entry("1", EventType.BAN, "usr_main", "usr_1", actor_display_name="Main"),
    ]
    cache = AuditLogCache()
    service = LeaderboardService(
        api,
        audit_cache=cache,
        ingestor=AuditLogIngestor(api, GROUP_ID),
        aliases=AliasMap({"usr_alt": "usr_main"}),
    )

    board = await service.get_leaderboard()

    assert len(cache) == 2
    assert [(r.actor_id, r.display_name, r.total) for r in board.entries] == [
        ("usr_main", "Main", 2)
    ]


def test_requires_a_source(api):
    with pytest.raises(ValueError):
        LeaderboardService(api)
