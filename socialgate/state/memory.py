"""In-memory store implementations.

Default backend for single-process deployments, development and tests.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
import uuid

from typing import Any

from ..exceptions import DuplicateUserError, UserNotFoundError
from .base import SessionStore, UserDirectory, apply_user_fields, build_user, copy_user
from .types import SessionRecord, User


def _copy_record(record: SessionRecord) -> SessionRecord:
    return dataclasses.replace(record, data=dict(record.data))


class MemorySessionStore(SessionStore):
    """In-memory session store for single-process deployments.

    Thread-safe implementation using asyncio locks.
    """

    def __init__(self) -> None:
        """Initialize the memory session store."""
        self._sessions: dict[str, SessionRecord] = {}
        self._user_sessions: dict[str, set[str]] = {}
        self._epochs: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def save(self, record: SessionRecord, ttl: int | None = None) -> None:
        """Persist a session record."""
        async with self._lock:
            stored = _copy_record(record)
            stored.last_activity = time.time()
            if ttl is not None:
                stored.expires_at = stored.last_activity + ttl

            previous = self._sessions.get(record.session_id)
            if previous and previous.user_id and previous.user_id != record.user_id:
                self._user_sessions.get(previous.user_id, set()).discard(record.session_id)

            self._sessions[record.session_id] = stored
            if record.user_id:
                self._user_sessions.setdefault(record.user_id, set()).add(record.session_id)

            record.last_activity = stored.last_activity
            record.expires_at = stored.expires_at

    async def get(self, session_id: str) -> SessionRecord | None:
        """Load a session record."""
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None:
                return None

            if record.is_expired:
                self._discard(session_id)
                return None

            return _copy_record(record)

    async def delete(self, session_id: str) -> bool:
        """Delete a session record."""
        async with self._lock:
            if session_id not in self._sessions:
                return False
            self._discard(session_id)
            return True

    async def list_user_sessions(self, user_id: str) -> list[str]:
        """List the ids of live sessions for a user."""
        async with self._lock:
            live = []
            for session_id in list(self._user_sessions.get(user_id, set())):
                record = self._sessions.get(session_id)
                if record is None or record.is_expired:
                    self._discard(session_id)
                else:
                    live.append(session_id)
            return live

    async def get_user_epoch(self, user_id: str) -> int:
        """Get the current session epoch of a user."""
        async with self._lock:
            return self._epochs.get(user_id, 0)

    async def bump_user_epoch(self, user_id: str) -> int:
        """Increment and return the session epoch of a user."""
        async with self._lock:
            self._epochs[user_id] = self._epochs.get(user_id, 0) + 1
            return self._epochs[user_id]

    def _discard(self, session_id: str) -> None:
        """Remove a record and its index entry (caller must hold lock)."""
        record = self._sessions.pop(session_id, None)
        if record is not None and record.user_id in self._user_sessions:
            self._user_sessions[record.user_id].discard(session_id)


class MemoryUserDirectory(UserDirectory):
    """In-memory user directory.

    Thread-safe implementation using asyncio locks. Records are copied on
    the way in and out, so callers never share state with the store.
    """

    def __init__(self) -> None:
        """Initialize the memory user directory."""
        self._users: dict[str, User] = {}
        self._lock = asyncio.Lock()

    async def find_by_id(self, user_id: str) -> User | None:
        """Find a user by directory id."""
        async with self._lock:
            user = self._users.get(user_id)
            return copy_user(user) if user else None

    async def find_by_provider_id(self, provider: str, external_id: str) -> User | None:
        """Find the user linked to ``external_id`` at ``provider``."""
        async with self._lock:
            for user in self._users.values():
                if user.provider_ids.get(provider) == external_id:
                    return copy_user(user)
            return None

    async def find_by_email(self, email: str) -> User | None:
        """Find a user by email address."""
        async with self._lock:
            user = self._find_email(email)
            return copy_user(user) if user else None

    async def create(self, fields: dict[str, Any]) -> User:
        """Create a user."""
        async with self._lock:
            if self._find_email(fields.get("email", "")):
                msg = "A user with this email already exists"
                raise DuplicateUserError(msg, email=fields.get("email"))
            user = build_user(uuid.uuid4().hex, fields)
            self._users[user.id] = user
            return copy_user(user)

    async def update(self, user: User, fields: dict[str, Any]) -> User:
        """Update a user and persist the change."""
        async with self._lock:
            stored = self._users.get(user.id)
            if stored is None:
                msg = "User not found"
                raise UserNotFoundError(msg, user_id=user.id)

            email = fields.get("email")
            if email:
                owner = self._find_email(email)
                if owner is not None and owner.id != user.id:
                    msg = "A user with this email already exists"
                    raise DuplicateUserError(msg, email=email)

            apply_user_fields(stored, fields)
            apply_user_fields(user, fields)
            return copy_user(stored)

    async def count(self) -> int:
        """Get the number of users."""
        async with self._lock:
            return len(self._users)

    def _find_email(self, email: str) -> User | None:
        """Case-insensitive email lookup (caller must hold lock)."""
        wanted = email.strip().lower()
        if not wanted:
            return None
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user
        return None


def create_memory_stores() -> tuple[MemorySessionStore, MemoryUserDirectory]:
    """Create all in-memory stores.

    Returns
    -------
    tuple
        (session_store, user_directory)
    """
    return MemorySessionStore(), MemoryUserDirectory()
