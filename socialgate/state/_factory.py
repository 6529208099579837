"""Internal factory functions for state stores.

Backends are selected from settings: ``session.backend`` for the session
store and ``directory.backend`` for the user directory.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from .memory import MemorySessionStore, MemoryUserDirectory
from .types import StateBackend


if TYPE_CHECKING:
    from .base import SessionStore, UserDirectory


def _get_settings():  # noqa: ANN202
    """Get settings lazily to avoid circular imports."""
    from ..config import get_settings

    return get_settings()


def get_session_backend() -> StateBackend:
    """Get the configured session backend."""
    return StateBackend(_get_settings().session.backend)


def get_directory_backend() -> StateBackend:
    """Get the configured user directory backend."""
    return StateBackend(_get_settings().directory.backend)


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    """Get the configured session store instance.

    Returns
    -------
    SessionStore
        The session store instance.
    """
    if get_session_backend() == StateBackend.REDIS:
        from .redis import RedisSessionStore

        settings = _get_settings().session
        return RedisSessionStore(
            redis_url=settings.redis_url,
            prefix=settings.redis_prefix,
            pool_size=settings.redis_pool_size,
        )

    return MemorySessionStore()


@lru_cache(maxsize=1)
def get_user_directory() -> UserDirectory:
    """Get the configured user directory instance.

    Returns
    -------
    UserDirectory
        The user directory instance.
    """
    if get_directory_backend() == StateBackend.REDIS:
        from .redis import RedisUserDirectory

        settings = _get_settings().directory
        return RedisUserDirectory(
            redis_url=settings.redis_url,
            prefix=settings.redis_prefix,
            pool_size=settings.redis_pool_size,
        )

    return MemoryUserDirectory()


def clear_state_caches() -> None:
    """Clear all cached state store instances.

    Call this to force re-creation of stores (e.g., after config change).
    """
    get_session_store.cache_clear()
    get_user_directory.cache_clear()
