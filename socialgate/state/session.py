"""Host-layer session handle.

A ``Session`` wraps one ``SessionRecord`` and the store it lives in. Data
mutations stay in memory until ``save()``; identifier rotation deletes the
old record from the store immediately so a stolen id stops working.
"""

from __future__ import annotations

import logging
import secrets

from typing import TYPE_CHECKING, Any

from .types import SessionRecord


if TYPE_CHECKING:
    from .base import SessionStore


logger = logging.getLogger("socialgate.state")

_MISSING = object()


def generate_session_id() -> str:
    """Generate an unguessable session identifier."""
    return secrets.token_urlsafe(32)


def generate_csrf_token() -> str:
    """Generate a 40-character anti-forgery token."""
    return secrets.token_hex(20)


class Session:
    """Mutable handle on one browser session.

    Parameters
    ----------
    store : SessionStore
        Where the record is persisted.
    record : SessionRecord
        The session's current state.
    ttl : int or None
        Lifetime in seconds applied on every save.
    """

    def __init__(self, store: SessionStore, record: SessionRecord, ttl: int | None = None) -> None:
        self._store = store
        self._record = record
        self._ttl = ttl

    @classmethod
    def start(cls, store: SessionStore, ttl: int | None = None) -> Session:
        """Create a brand-new, unsaved session."""
        record = SessionRecord(session_id=generate_session_id(), token=generate_csrf_token())
        return cls(store, record, ttl)

    @classmethod
    async def load(
        cls,
        store: SessionStore,
        session_id: str | None,
        ttl: int | None = None,
    ) -> Session:
        """Resume the session ``session_id``, or start a new one.

        Unknown and expired identifiers are never adopted; a fresh id is
        issued instead.
        """
        if session_id:
            record = await store.get(session_id)
            if record is not None:
                return cls(store, record, ttl)
        return cls.start(store, ttl)

    @property
    def id(self) -> str:
        """Session identifier."""
        return self._record.session_id

    @property
    def token(self) -> str:
        """Anti-forgery token."""
        return self._record.token

    @property
    def user_id(self) -> str | None:
        """Authenticated user, if any."""
        return self._record.user_id

    @property
    def auth_epoch(self) -> int:
        """The user's session epoch recorded at login."""
        return self._record.auth_epoch

    @property
    def last_activity(self) -> float:
        """Unix timestamp of the last save."""
        return self._record.last_activity

    @property
    def lifetime(self) -> int | None:
        """Lifetime in seconds applied on save."""
        return self._ttl

    @property
    def record(self) -> SessionRecord:
        """The underlying record."""
        return self._record

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value from the session data."""
        return self._record.data.get(key, default)

    def has(self, key: str) -> bool:
        """Check whether ``key`` is present in the session data."""
        return key in self._record.data

    def put(self, key: str, value: Any) -> None:
        """Store a value in the session data."""
        self._record.data[key] = value

    def pull(self, key: str, default: Any = None) -> Any:
        """Get and remove a value from the session data."""
        return self._record.data.pop(key, default)

    def forget(self, *keys: str) -> None:
        """Remove keys from the session data."""
        for key in keys:
            self._record.data.pop(key, None)

    def flush(self) -> None:
        """Remove all session data."""
        self._record.data.clear()

    def flash(self, key: str, message: str) -> None:
        """Append a one-shot message under ``key`` (read back with ``pull``)."""
        self._record.data.setdefault(key, []).append(message)

    def regenerate_token(self) -> str:
        """Issue a new anti-forgery token."""
        self._record.token = generate_csrf_token()
        return self._record.token

    def login(self, user_id: str, epoch: int = 0) -> None:
        """Mark the session as authenticated as ``user_id``."""
        self._record.user_id = user_id
        self._record.auth_epoch = epoch

    def logout(self) -> None:
        """Drop the authenticated user from the session."""
        self._record.user_id = None
        self._record.auth_epoch = 0

    async def regenerate(self) -> str:
        """Move the session to a new identifier, keeping its data.

        Returns
        -------
        str
            The new session identifier.
        """
        old_id = self._record.session_id
        self._record.session_id = generate_session_id()
        await self._store.delete(old_id)
        logger.debug("Session id rotated")
        return self._record.session_id

    async def invalidate(self) -> str:
        """Flush all data, log out, and move to a new identifier and token.

        Returns
        -------
        str
            The new session identifier.
        """
        self.flush()
        self.logout()
        self.regenerate_token()
        return await self.regenerate()

    async def save(self) -> None:
        """Persist the session record."""
        await self._store.save(self._record, ttl=self._ttl)

    def __repr__(self) -> str:
        return f"Session(user_id={self.user_id!r})"
