"""Tests for Redis state store implementations.

These tests use fakeredis to simulate Redis without requiring a real server.
"""
# pylint: disable=redefined-outer-name

from __future__ import annotations

import json
import time

import pytest
import pytest_asyncio

from socialgate.exceptions import DuplicateUserError, UserNotFoundError
from socialgate.state.session import Session
from socialgate.state.types import SessionRecord, User, UserStatus


# Check if fakeredis is available
try:
    import fakeredis.aioredis

    HAS_FAKEREDIS = True
except ImportError:
    HAS_FAKEREDIS = False


pytestmark = pytest.mark.skipif(
    not HAS_FAKEREDIS,
    reason="fakeredis not installed (pip install fakeredis)",
)


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fake Redis client for testing."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


# --- RedisSessionStore Tests ---


class TestRedisSessionStore:
    """Tests for RedisSessionStore."""

    @pytest_asyncio.fixture
    async def store(self, fake_redis: fakeredis.aioredis.FakeRedis):
        """Create a RedisSessionStore with fake Redis."""
        from socialgate.state.redis import RedisSessionStore

        yield RedisSessionStore(redis_client=fake_redis, prefix="test:")

    @pytest.mark.asyncio
    async def test_save_and_get(self, store) -> None:
        record = SessionRecord(session_id="s1", token="tok", user_id="u1", data={"k": [1, 2]})
        await store.save(record, ttl=60)

        loaded = await store.get("s1")
        assert loaded is not None
        assert loaded.token == "tok"
        assert loaded.user_id == "u1"
        assert loaded.data == {"k": [1, 2]}
        assert loaded.expires_at == pytest.approx(time.time() + 60, abs=5)

    @pytest.mark.asyncio
    async def test_ttl_is_set_on_key(self, store, fake_redis) -> None:
        await store.save(SessionRecord(session_id="s1"), ttl=60)
        assert 0 < await fake_redis.ttl("test:session:s1") <= 60

    @pytest.mark.asyncio
    async def test_get_nonexistent(self, store) -> None:
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_expired_timestamp_is_authoritative(self, store, fake_redis) -> None:
        await store.save(SessionRecord(session_id="s1"))
        raw = json.loads(await fake_redis.get("test:session:s1"))
        raw["expires_at"] = time.time() - 1
        await fake_redis.set("test:session:s1", json.dumps(raw))

        assert await store.get("s1") is None

    @pytest.mark.asyncio
    async def test_delete_cleans_user_index(self, store) -> None:
        await store.save(SessionRecord(session_id="s1", user_id="u1"))
        assert await store.delete("s1") is True
        assert await store.delete("s1") is False
        assert await store.list_user_sessions("u1") == []

    @pytest.mark.asyncio
    async def test_user_sessions_and_bulk_delete(self, store) -> None:
        await store.save(SessionRecord(session_id="s1", user_id="u1"))
        await store.save(SessionRecord(session_id="s2", user_id="u1"))
        await store.save(SessionRecord(session_id="s3", user_id="u2"))

        assert sorted(await store.list_user_sessions("u1")) == ["s1", "s2"]
        assert await store.delete_user_sessions("u1") == 2
        assert await store.get("s1") is None
        assert await store.get("s3") is not None

    @pytest.mark.asyncio
    async def test_reassigned_session_leaves_old_index(self, store) -> None:
        await store.save(SessionRecord(session_id="s1", user_id="u1"))
        await store.save(SessionRecord(session_id="s1", user_id="u2"))
        assert await store.list_user_sessions("u1") == []
        assert await store.list_user_sessions("u2") == ["s1"]

    @pytest.mark.asyncio
    async def test_epochs(self, store) -> None:
        assert await store.get_user_epoch("u1") == 0
        assert await store.bump_user_epoch("u1") == 1
        assert await store.get_user_epoch("u1") == 1

    @pytest.mark.asyncio
    async def test_session_handle_round_trip(self, store) -> None:
        session = Session.start(store, ttl=120)
        session.login("u1", epoch=0)
        session.put("url.intended", "/reports")
        await session.save()

        resumed = await Session.load(store, session.id, ttl=120)
        assert resumed.user_id == "u1"
        assert resumed.get("url.intended") == "/reports"

        old_id = resumed.id
        await resumed.regenerate()
        assert await store.get(old_id) is None


# --- RedisUserDirectory Tests ---


class TestRedisUserDirectory:
    """Tests for RedisUserDirectory."""

    @pytest_asyncio.fixture
    async def directory(self, fake_redis: fakeredis.aioredis.FakeRedis):
        """Create a RedisUserDirectory with fake Redis."""
        from socialgate.state.redis import RedisUserDirectory

        yield RedisUserDirectory(redis_client=fake_redis, prefix="test:")

    @pytest.mark.asyncio
    async def test_create_and_find(self, directory) -> None:
        user = await directory.create(
            {"email": "a@b.com", "name": "A", "provider_ids": {"google": "g1"}}
        )

        assert (await directory.find_by_id(user.id)).email == "a@b.com"
        assert (await directory.find_by_email("A@B.com")).id == user.id
        assert (await directory.find_by_provider_id("google", "g1")).id == user.id
        assert await directory.find_by_provider_id("github", "g1") is None
        assert await directory.count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_email(self, directory) -> None:
        await directory.create({"email": "a@b.com"})
        with pytest.raises(DuplicateUserError):
            await directory.create({"email": "a@b.com"})
        assert await directory.count() == 1

    @pytest.mark.asyncio
    async def test_update_reindexes_email(self, directory) -> None:
        user = await directory.create({"email": "a@b.com"})
        await directory.update(user, {"email": "new@b.com", "status": "suspended"})

        assert user.email == "new@b.com"
        assert await directory.find_by_email("a@b.com") is None
        found = await directory.find_by_email("new@b.com")
        assert found.id == user.id
        assert found.status == UserStatus.SUSPENDED

    @pytest.mark.asyncio
    async def test_update_email_collision(self, directory) -> None:
        await directory.create({"email": "a@b.com"})
        other = await directory.create({"email": "c@d.com"})
        with pytest.raises(DuplicateUserError):
            await directory.update(other, {"email": "a@b.com"})
        assert (await directory.find_by_id(other.id)).email == "c@d.com"

    @pytest.mark.asyncio
    async def test_unlink_removes_provider_index(self, directory) -> None:
        user = await directory.create(
            {"email": "a@b.com", "provider_ids": {"google": "g1", "github": "h1"}}
        )
        await directory.update(user, {"provider_ids": {"google": "g1"}})

        assert await directory.find_by_provider_id("github", "h1") is None
        assert (await directory.find_by_provider_id("google", "g1")).id == user.id

    @pytest.mark.asyncio
    async def test_update_missing_user(self, directory) -> None:
        with pytest.raises(UserNotFoundError):
            await directory.update(User(id="ghost", email="g@h.com"), {"name": "G"})


# --- Factory Tests ---


class TestBackendSelection:
    """Backends are chosen from settings."""

    def test_redis_backends_from_env(self, monkeypatch) -> None:
        from socialgate.config import clear_settings
        from socialgate.state import clear_state_caches, get_session_store, get_user_directory
        from socialgate.state.redis import RedisSessionStore, RedisUserDirectory

        monkeypatch.setenv("SOCIALGATE__SESSION__BACKEND", "redis")
        monkeypatch.setenv("SOCIALGATE__DIRECTORY__BACKEND", "redis")
        monkeypatch.setenv("SOCIALGATE__SESSION__REDIS_PREFIX", "app")
        clear_settings()
        clear_state_caches()

        store = get_session_store()
        assert isinstance(store, RedisSessionStore)
        assert store._session_key("s1") == "app:session:s1"
        assert isinstance(get_user_directory(), RedisUserDirectory)
