"""Abstract base classes for pluggable storage.

These interfaces define the contract for the session and user backends,
enabling multi-worker deployments via Redis or other external stores.
"""

# pylint: disable=unnecessary-ellipsis
# Ellipsis (...) is the standard Python idiom for abstract method bodies

from __future__ import annotations

import dataclasses
import time

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from .types import User, UserRole, UserStatus


if TYPE_CHECKING:
    from .types import SessionRecord


class SessionStore(ABC):
    """Abstract session storage interface.

    Persists session records and keeps a per-user index of live sessions
    plus a per-user session epoch used to revoke every session at once.
    """

    @abstractmethod
    async def save(self, record: SessionRecord, ttl: int | None = None) -> None:
        """Persist a session record.

        Parameters
        ----------
        record : SessionRecord
            The record to persist (replaces any record with the same id).
        ttl : int or None
            Lifetime in seconds; None keeps the record until deleted.
        """
        ...

    @abstractmethod
    async def get(self, session_id: str) -> SessionRecord | None:
        """Load a session record.

        Parameters
        ----------
        session_id : str
            The session identifier.

        Returns
        -------
        SessionRecord or None
            The record if found and not expired.
        """
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Delete a session record.

        Parameters
        ----------
        session_id : str
            The session identifier.

        Returns
        -------
        bool
            True if a record was deleted.
        """
        ...

    @abstractmethod
    async def list_user_sessions(self, user_id: str) -> list[str]:
        """List the ids of live sessions authenticated as ``user_id``.

        Parameters
        ----------
        user_id : str
            The user identifier.

        Returns
        -------
        list[str]
            Session identifiers.
        """
        ...

    async def delete_user_sessions(self, user_id: str) -> int:
        """Delete every session authenticated as ``user_id``.

        Parameters
        ----------
        user_id : str
            The user identifier.

        Returns
        -------
        int
            Number of sessions deleted.
        """
        deleted = 0
        for session_id in await self.list_user_sessions(user_id):
            if await self.delete(session_id):
                deleted += 1
        return deleted

    @abstractmethod
    async def get_user_epoch(self, user_id: str) -> int:
        """Get the current session epoch of a user (0 when never bumped)."""
        ...

    @abstractmethod
    async def bump_user_epoch(self, user_id: str) -> int:
        """Increment and return the session epoch of a user."""
        ...


class UserDirectory(ABC):
    """Abstract user directory interface.

    Lookup, creation and update of user records by id, email, or a
    (provider, external id) pair.
    """

    @abstractmethod
    async def find_by_id(self, user_id: str) -> User | None:
        """Find a user by directory id."""
        ...

    @abstractmethod
    async def find_by_provider_id(self, provider: str, external_id: str) -> User | None:
        """Find the user linked to ``external_id`` at ``provider``.

        Parameters
        ----------
        provider : str
            Provider name (e.g. "google").
        external_id : str
            The provider's identifier for the account.

        Returns
        -------
        User or None
            The linked user, if any.
        """
        ...

    @abstractmethod
    async def find_by_email(self, email: str) -> User | None:
        """Find a user by email address (case-insensitive)."""
        ...

    @abstractmethod
    async def create(self, fields: dict[str, Any]) -> User:
        """Create a user.

        Parameters
        ----------
        fields : dict[str, Any]
            User attributes; ``email`` is required.

        Returns
        -------
        User
            The created user.

        Raises
        ------
        DuplicateUserError
            If a user with the same email exists.
        """
        ...

    @abstractmethod
    async def update(self, user: User, fields: dict[str, Any]) -> User:
        """Update a user and persist the change.

        The passed ``user`` object is updated in place as well.

        Parameters
        ----------
        user : User
            The user to update.
        fields : dict[str, Any]
            Attributes to change.

        Returns
        -------
        User
            The updated user.

        Raises
        ------
        UserNotFoundError
            If the user no longer exists.
        DuplicateUserError
            If the email is changed to one owned by another user.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Get the number of users."""
        ...


_USER_FIELDS = frozenset(f.name for f in dataclasses.fields(User)) - {"id"}


def build_user(user_id: str, fields: dict[str, Any]) -> User:
    """Construct a ``User`` from creation fields.

    Parameters
    ----------
    user_id : str
        The identifier assigned by the directory.
    fields : dict[str, Any]
        Attributes; unknown keys are rejected.

    Returns
    -------
    User
        The new record.
    """
    unknown = set(fields) - _USER_FIELDS
    if unknown:
        msg = f"Unknown user fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    if not fields.get("email"):
        msg = "User email is required"
        raise ValueError(msg)
    data = dict(fields)
    data["provider_ids"] = dict(data.get("provider_ids") or {})
    data["role"] = UserRole(data.get("role", UserRole.EMPLOYEE))
    data["status"] = UserStatus(data.get("status", UserStatus.ACTIVE))
    now = time.time()
    data.setdefault("created_at", now)
    data.setdefault("updated_at", now)
    return User(id=user_id, **data)


def apply_user_fields(user: User, fields: dict[str, Any]) -> User:
    """Apply update fields to ``user`` in place and bump ``updated_at``."""
    unknown = set(fields) - _USER_FIELDS
    if unknown:
        msg = f"Unknown user fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    for key, value in fields.items():
        if key == "provider_ids":
            value = dict(value or {})
        elif key == "role":
            value = UserRole(value)
        elif key == "status":
            value = UserStatus(value)
        setattr(user, key, value)
    user.updated_at = time.time()
    return user


def copy_user(user: User) -> User:
    """Detached copy of a user record (stores never share live objects)."""
    return dataclasses.replace(user, provider_ids=dict(user.provider_ids))
