"""
RedisSessionStore against a mocked client and against fakeredis running the Lua script
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest

from estate_kit.schemas.session import SessionRecord, UserProfile
from estate_kit.services.session_store import CREATE_AND_TRIM_SCRIPT, RedisSessionStore

pytestmark = pytest.mark.unit

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakePipeline:
    def __init__(self, results=None):
        self.calls = []
        self.results = results or []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __getattr__(self, name):
        def command(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return command

    async def execute(self):
        return self.results


def make_record(session_id="sess-1", user_id="auth0|alice") -> SessionRecord:
    return SessionRecord(
        session_id=session_id,
        user_id=user_id,
        user=UserProfile(user_id=user_id),
        device_fingerprint="fp",
        ip_address="203.0.113.10",
        created_at=NOW,
        last_accessed_at=NOW,
        expires_at=NOW + timedelta(hours=1),
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.register_script.return_value = AsyncMock(return_value=[b"sess-old"])
    client.get = AsyncMock(return_value=None)
    return client


@pytest.fixture
def store(client):
    return RedisSessionStore(client)


def test_script_is_registered_once(client, store):
    client.register_script.assert_called_once_with(CREATE_AND_TRIM_SCRIPT)


@pytest.mark.asyncio
async def test_create_runs_atomic_script_and_returns_evicted(client, store):
    record = make_record()

    evicted = await store.create(record, ttl=3600, max_sessions=3)

    assert evicted == ["sess-old"]
    script = client.register_script.return_value
    kwargs = script.await_args.kwargs
    assert kwargs["keys"] == ["session:sess-1", "user-sessions:auth0|alice", "user-sessions-seq:auth0|alice"]
    assert kwargs["args"][0] == "sess-1"
    assert SessionRecord.model_validate_json(kwargs["args"][1]) == record
    assert kwargs["args"][2:] == [3600, 3, "session:"]


@pytest.mark.asyncio
async def test_get_decodes_record(client, store):
    record = make_record()
    client.get.return_value = record.model_dump_json().encode()

    assert await store.get("sess-1") == record
    client.get.assert_awaited_once_with("session:sess-1")


@pytest.mark.asyncio
async def test_get_missing(store):
    assert await store.get("missing") is None


@pytest.mark.asyncio
async def test_delete_removes_record_and_index_member(client, store):
    client.get.return_value = make_record().model_dump_json()
    pipeline = FakePipeline()
    client.pipeline.return_value = pipeline

    removed = await store.delete("sess-1")

    assert removed.session_id == "sess-1"
    assert ("delete", ("session:sess-1",), {}) in pipeline.calls
    assert ("zrem", ("user-sessions:auth0|alice", "sess-1"), {}) in pipeline.calls


@pytest.mark.asyncio
async def test_delete_unknown_session_touches_nothing(client, store):
    assert await store.delete("missing") is None
    client.pipeline.assert_not_called()


@pytest.mark.asyncio
async def test_touch_only_overwrites_existing_keys(client, store):
    pipeline = FakePipeline()
    client.pipeline.return_value = pipeline

    await store.touch(make_record(), ttl=3600)

    name, args, kwargs = pipeline.calls[0]
    assert name == "set"
    assert args[0] == "session:sess-1"
    assert kwargs == {"ex": 3600, "xx": True}


@pytest.mark.asyncio
async def test_count_drops_dangling_index_members(client, store):
    client.zrange = AsyncMock(return_value=[b"live", b"gone"])
    client.zrem = AsyncMock()
    client.pipeline.return_value = FakePipeline(results=[1, 0])

    assert await store.count_user_sessions("auth0|alice") == 1
    client.zrem.assert_awaited_once_with("user-sessions:auth0|alice", "gone")


@pytest.fixture
def redis_client():
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture
def lua_store(redis_client):
    return RedisSessionStore(redis_client)


@pytest.mark.asyncio
async def test_script_evicts_oldest_created_when_over_cap(lua_store):
    for n in range(1, 4):
        assert await lua_store.create(make_record(f"s{n}"), ttl=3600, max_sessions=3) == []

    evicted = await lua_store.create(make_record("s4"), ttl=3600, max_sessions=3)

    assert evicted == ["s1"]
    assert await lua_store.get("s1") is None
    assert await lua_store.count_user_sessions("auth0|alice") == 3
    assert [r.session_id for r in await lua_store.list_user_sessions("auth0|alice")] == ["s2", "s3", "s4"]


@pytest.mark.asyncio
async def test_script_caps_each_user_separately(lua_store):
    for n in range(3):
        await lua_store.create(make_record(f"a{n}"), ttl=3600, max_sessions=3)
    evicted = await lua_store.create(make_record("b0", user_id="auth0|bob"), ttl=3600, max_sessions=3)

    assert evicted == []
    assert await lua_store.count_user_sessions("auth0|alice") == 3
    assert await lua_store.count_user_sessions("auth0|bob") == 1


@pytest.mark.asyncio
async def test_script_prunes_dangling_members_before_trimming(lua_store, redis_client):
    await lua_store.create(make_record("s1"), ttl=3600, max_sessions=2)
    await lua_store.create(make_record("s2"), ttl=3600, max_sessions=2)
    await redis_client.delete("session:s1")

    evicted = await lua_store.create(make_record("s3"), ttl=3600, max_sessions=2)

    assert evicted == []
    assert await redis_client.zrange("user-sessions:auth0|alice", 0, -1) == ["s2", "s3"]


@pytest.mark.asyncio
async def test_index_and_sequence_keys_expire(lua_store, redis_client):
    await lua_store.create(make_record("s1"), ttl=600, max_sessions=3)

    assert 0 < await redis_client.ttl("user-sessions:auth0|alice") <= 600
    assert 0 < await redis_client.ttl("user-sessions-seq:auth0|alice") <= 600

    await lua_store.touch(make_record("s1"), ttl=3600)

    assert await redis_client.ttl("user-sessions-seq:auth0|alice") > 600


@pytest.mark.asyncio
async def test_purge_removes_idle_sessions_only(lua_store, redis_client):
    idle = make_record("idle").model_copy(update={"last_accessed_at": NOW - timedelta(hours=2)})
    await lua_store.create(idle, ttl=36000, max_sessions=3)
    await lua_store.create(make_record("fresh"), ttl=36000, max_sessions=3)
    await lua_store.create(make_record("bob-idle", user_id="auth0|bob").model_copy(
        update={"last_accessed_at": NOW - timedelta(hours=3)}
    ), ttl=36000, max_sessions=3)

    removed = await lua_store.purge_expired(NOW - timedelta(hours=1))

    assert sorted(removed) == ["bob-idle", "idle"]
    assert await lua_store.get("idle") is None
    assert await lua_store.get("fresh") is not None
    assert await redis_client.zrange("user-sessions:auth0|alice", 0, -1) == ["fresh"]
