"""socialgate state management package.

Provides pluggable storage for sessions and users. The default is
in-memory storage for single-process deployments; the Redis backend is
available for multi-worker production deployments.

Usage
-----
For single-process (default):
    from socialgate.state import get_session_store, get_user_directory

For Redis backend:
    # Configure via environment variables:
    # SOCIALGATE_SESSION__BACKEND=redis
    # SOCIALGATE_DIRECTORY__BACKEND=redis
    # SOCIALGATE_SESSION__REDIS_URL=redis://localhost:6379/0
"""

from __future__ import annotations

from ._factory import (
    clear_state_caches,
    get_directory_backend,
    get_session_backend,
    get_session_store,
    get_user_directory,
)
from .base import SessionStore, UserDirectory
from .memory import MemorySessionStore, MemoryUserDirectory, create_memory_stores
from .session import Session
from .types import (
    AuthRequest,
    FlowResult,
    SessionRecord,
    SocialIdentity,
    StateBackend,
    User,
    UserRole,
    UserStatus,
)


__all__ = [
    "AuthRequest",
    "FlowResult",
    "MemorySessionStore",
    "MemoryUserDirectory",
    "Session",
    "SessionRecord",
    "SessionStore",
    "SocialIdentity",
    "StateBackend",
    "User",
    "UserDirectory",
    "UserRole",
    "UserStatus",
    "clear_state_caches",
    "create_memory_stores",
    "get_directory_backend",
    "get_session_backend",
    "get_session_store",
    "get_user_directory",
]
