"""Redis store implementations.

Production backend for multi-worker deployments.
Requires the `redis` package: pip install socialgate[redis]

Features:
- Session records with TTL and a per-user session index
- Per-user session epochs for global logout
- User records with email and provider-id indexes
"""

from __future__ import annotations

import json
import time
import uuid

from typing import TYPE_CHECKING, Any

from ..exceptions import DuplicateUserError, UserNotFoundError
from .base import SessionStore, UserDirectory, apply_user_fields, build_user
from .types import SessionRecord, User


if TYPE_CHECKING:
    from redis.asyncio import Redis


# Check for redis package
try:
    from redis.asyncio import Redis as RedisClient

    HAS_REDIS = True
except ImportError:
    HAS_REDIS = False
    RedisClient = None  # type: ignore[assignment,misc]


def _check_redis() -> None:
    """Check if redis package is available."""
    if not HAS_REDIS:
        msg = "Redis backend requires the 'redis' package. Install with: pip install redis"
        raise ImportError(msg)


class _RedisBacked:
    """Shared connection handling for the Redis stores."""

    def __init__(
        self,
        redis_url: str,
        prefix: str,
        pool_size: int,
        redis_client: Redis | None,
    ) -> None:
        _check_redis()
        self._redis_url = redis_url
        self._prefix = prefix.rstrip(":")
        self._pool_size = pool_size
        self._client = redis_client

    async def _redis(self) -> Any:
        """Get the Redis client, connecting on first use."""
        if self._client is None:
            self._client = RedisClient.from_url(
                self._redis_url,
                max_connections=self._pool_size,
                decode_responses=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _serialize_record(record: SessionRecord) -> str:
    return json.dumps(
        {
            "session_id": record.session_id,
            "token": record.token,
            "user_id": record.user_id,
            "data": record.data,
            "created_at": record.created_at,
            "last_activity": record.last_activity,
            "expires_at": record.expires_at,
            "auth_epoch": record.auth_epoch,
        }
    )


def _deserialize_record(data: str) -> SessionRecord:
    obj = json.loads(data)
    return SessionRecord(
        session_id=obj["session_id"],
        token=obj.get("token", ""),
        user_id=obj.get("user_id"),
        data=obj.get("data") or {},
        created_at=obj.get("created_at", time.time()),
        last_activity=obj.get("last_activity", time.time()),
        expires_at=obj.get("expires_at"),
        auth_epoch=int(obj.get("auth_epoch", 0)),
    )


class RedisSessionStore(_RedisBacked, SessionStore):
    """Redis-backed session store.

    Parameters
    ----------
    redis_url : str
        Redis connection URL.
    prefix : str
        Key prefix for namespacing (default "socialgate").
    pool_size : int
        Connection pool size.
    redis_client : Redis, optional
        Pre-configured Redis client (for testing with fakeredis).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "socialgate",
        pool_size: int = 10,
        *,
        redis_client: Redis | None = None,
    ) -> None:
        """Initialize the Redis session store."""
        super().__init__(redis_url, prefix, pool_size, redis_client)

    def _session_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    def _user_sessions_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:sessions"

    def _epoch_key(self, user_id: str) -> str:
        return f"{self._prefix}:user:{user_id}:epoch"

    async def save(self, record: SessionRecord, ttl: int | None = None) -> None:
        """Persist a session record with optional TTL."""
        r = await self._redis()
        key = self._session_key(record.session_id)

        record.last_activity = time.time()
        if ttl is not None:
            record.expires_at = record.last_activity + ttl

        previous_user: str | None = None
        previous = await r.get(key)
        if previous is not None:
            previous_user = _deserialize_record(previous).user_id

        data = _serialize_record(record)
        async with r.pipeline() as pipe:
            if ttl is not None:
                await pipe.setex(key, ttl, data)
            else:
                await pipe.set(key, data)
            if previous_user and previous_user != record.user_id:
                await pipe.srem(self._user_sessions_key(previous_user), record.session_id)
            if record.user_id:
                await pipe.sadd(self._user_sessions_key(record.user_id), record.session_id)
            await pipe.execute()

    async def get(self, session_id: str) -> SessionRecord | None:
        """Load a session record."""
        r = await self._redis()
        data = await r.get(self._session_key(session_id))
        if data is None:
            return None

        record = _deserialize_record(data)
        # Redis expires keys lazily; the stored timestamp is authoritative.
        if record.is_expired:
            return None
        return record

    async def delete(self, session_id: str) -> bool:
        """Delete a session record."""
        r = await self._redis()
        key = self._session_key(session_id)
        data = await r.get(key)
        if data is None:
            return False

        user_id = _deserialize_record(data).user_id
        async with r.pipeline() as pipe:
            await pipe.delete(key)
            if user_id:
                await pipe.srem(self._user_sessions_key(user_id), session_id)
            await pipe.execute()
        return True

    async def list_user_sessions(self, user_id: str) -> list[str]:
        """List the ids of live sessions for a user."""
        r = await self._redis()
        index_key = self._user_sessions_key(user_id)
        live = []
        for session_id in await r.smembers(index_key):
            if await self.get(session_id) is not None:
                live.append(session_id)
            else:
                # Clean up stale reference
                await r.srem(index_key, session_id)
        return live

    async def get_user_epoch(self, user_id: str) -> int:
        """Get the current session epoch of a user."""
        r = await self._redis()
        value = await r.get(self._epoch_key(user_id))
        return int(value) if value is not None else 0

    async def bump_user_epoch(self, user_id: str) -> int:
        """Increment and return the session epoch of a user."""
        r = await self._redis()
        return int(await r.incr(self._epoch_key(user_id)))


class RedisUserDirectory(_RedisBacked, UserDirectory):
    """Redis-backed user directory.

    Users are stored as JSON strings; email and provider ids are indexed
    by dedicated keys pointing at the user id.

    Parameters
    ----------
    redis_url : str
        Redis connection URL.
    prefix : str
        Key prefix for namespacing (default "socialgate").
    pool_size : int
        Connection pool size.
    redis_client : Redis, optional
        Pre-configured Redis client (for testing with fakeredis).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "socialgate",
        pool_size: int = 10,
        *,
        redis_client: Redis | None = None,
    ) -> None:
        """Initialize the Redis user directory."""
        super().__init__(redis_url, prefix, pool_size, redis_client)

    def _user_key(self, user_id: str) -> str:
        return f"{self._prefix}:users:{user_id}"

    def _ids_key(self) -> str:
        return f"{self._prefix}:users:_ids"

    def _email_key(self, email: str) -> str:
        return f"{self._prefix}:users:_email:{email.strip().lower()}"

    def _provider_key(self, provider: str, external_id: str) -> str:
        return f"{self._prefix}:users:_provider:{provider}:{external_id}"

    async def _load(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        r = await self._redis()
        data = await r.get(self._user_key(user_id))
        if data is None:
            return None
        return User.from_dict(json.loads(data))

    async def find_by_id(self, user_id: str) -> User | None:
        """Find a user by directory id."""
        return await self._load(user_id)

    async def find_by_provider_id(self, provider: str, external_id: str) -> User | None:
        """Find the user linked to ``external_id`` at ``provider``."""
        r = await self._redis()
        user = await self._load(await r.get(self._provider_key(provider, external_id)))
        # Guard against an index entry left behind by an unlink
        if user is not None and user.provider_ids.get(provider) != external_id:
            return None
        return user

    async def find_by_email(self, email: str) -> User | None:
        """Find a user by email address."""
        if not email or not email.strip():
            return None
        r = await self._redis()
        return await self._load(await r.get(self._email_key(email)))

    async def create(self, fields: dict[str, Any]) -> User:
        """Create a user."""
        r = await self._redis()
        user = build_user(uuid.uuid4().hex, fields)

        # SETNX on the email index is the uniqueness check
        if not await r.set(self._email_key(user.email), user.id, nx=True):
            msg = "A user with this email already exists"
            raise DuplicateUserError(msg, email=user.email)

        async with r.pipeline() as pipe:
            await pipe.set(self._user_key(user.id), json.dumps(user.to_dict()))
            await pipe.sadd(self._ids_key(), user.id)
            for provider, external_id in user.provider_ids.items():
                await pipe.set(self._provider_key(provider, external_id), user.id)
            await pipe.execute()
        return user

    async def update(self, user: User, fields: dict[str, Any]) -> User:
        """Update a user and persist the change."""
        r = await self._redis()
        stored = await self._load(user.id)
        if stored is None:
            msg = "User not found"
            raise UserNotFoundError(msg, user_id=user.id)

        old_email = stored.email
        old_providers = dict(stored.provider_ids)
        apply_user_fields(stored, fields)

        email_changed = stored.email.strip().lower() != old_email.strip().lower()
        if email_changed and not await r.set(self._email_key(stored.email), stored.id, nx=True):
            msg = "A user with this email already exists"
            raise DuplicateUserError(msg, email=stored.email)

        async with r.pipeline() as pipe:
            await pipe.set(self._user_key(stored.id), json.dumps(stored.to_dict()))
            if email_changed:
                await pipe.delete(self._email_key(old_email))
            for provider, external_id in old_providers.items():
                if stored.provider_ids.get(provider) != external_id:
                    await pipe.delete(self._provider_key(provider, external_id))
            for provider, external_id in stored.provider_ids.items():
                await pipe.set(self._provider_key(provider, external_id), stored.id)
            await pipe.execute()

        apply_user_fields(user, fields)
        return stored

    async def count(self) -> int:
        """Get the number of users."""
        r = await self._redis()
        return int(await r.scard(self._ids_key()))


def create_redis_stores(
    redis_url: str = "redis://localhost:6379/0",
    prefix: str = "socialgate",
    pool_size: int = 10,
) -> tuple[RedisSessionStore, RedisUserDirectory]:
    """Create all Redis stores with shared configuration.

    Returns
    -------
    tuple
        (session_store, user_directory)
    """
    _check_redis()
    return (
        RedisSessionStore(redis_url=redis_url, prefix=prefix, pool_size=pool_size),
        RedisUserDirectory(redis_url=redis_url, prefix=prefix, pool_size=pool_size),
    )
