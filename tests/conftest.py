"""Pytest configuration and fixtures."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import os

import pytest

from socialgate.auth.oauth import get_default_oauth_client
from socialgate.config import clear_settings
from socialgate.state import clear_state_caches
from socialgate.state.memory import MemorySessionStore, MemoryUserDirectory
from socialgate.state.session import Session
from socialgate.state.types import AuthRequest
from tests.helpers import FakeOAuthClient


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep every test away from real config files and SOCIALGATE_* vars."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in list(os.environ):
        if key.startswith("SOCIALGATE"):
            monkeypatch.delenv(key, raising=False)
    clear_settings()
    clear_state_caches()
    get_default_oauth_client.cache_clear()
    yield
    clear_settings()
    clear_state_caches()
    get_default_oauth_client.cache_clear()


@pytest.fixture()
def directory() -> MemoryUserDirectory:
    """Create an empty in-memory user directory."""
    return MemoryUserDirectory()


@pytest.fixture()
def session_store() -> MemorySessionStore:
    """Create an empty in-memory session store."""
    return MemorySessionStore()


@pytest.fixture()
def fake_oauth() -> FakeOAuthClient:
    """Create a recording OAuth client."""
    return FakeOAuthClient()


@pytest.fixture()
def auth_request(session_store: MemorySessionStore) -> AuthRequest:
    """A request carrying a fresh, unsaved session."""
    return AuthRequest(
        session=Session.start(session_store, ttl=7200),
        ip_address="10.0.0.1",
        user_agent="pytest-agent",
    )
