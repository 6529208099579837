"""Tests for application wiring."""

from __future__ import annotations

from fastapi import FastAPI

from socialgate.app import AuthServices, build_services, create_app
from socialgate.auth.flow import AuthFlowController
from socialgate.config import get_settings
from socialgate.state import get_session_store, get_user_directory
from socialgate.state.memory import MemorySessionStore, MemoryUserDirectory


class TestBuildServices:
    """Tests for build_services()."""

    def test_defaults_use_configured_stores(self):
        """Without arguments the cached settings and stores are used."""
        services = build_services()

        assert services.settings is get_settings()
        assert isinstance(services.session_manager.directory, MemoryUserDirectory)
        assert services.session_manager.directory is get_user_directory()
        assert services.session_manager.session_store is get_session_store()
        assert isinstance(services.controller, AuthFlowController)
        assert services.controller.directory is services.session_manager.directory

    def test_injected_components(self, directory, session_store, fake_oauth):
        """Explicit stores and OAuth client reach every component."""
        services = build_services(
            directory=directory, session_store=session_store, oauth=fake_oauth
        )
        assert services.session_manager.directory is directory
        assert services.session_manager.session_store is session_store
        assert services.registry.make("google").oauth is fake_oauth
        assert services.registry.make("github").directory is directory

    def test_settings_sections_shared(self):
        """The manager and controller see the loaded sections."""
        services = build_services()
        assert services.session_manager.settings is services.settings.session
        assert services.controller.settings is services.settings.flow


def test_create_app_mounts_routes(directory, session_store, fake_oauth):
    """create_app exposes the services and the /auth routes."""
    services = build_services(directory=directory, session_store=session_store, oauth=fake_oauth)
    app = create_app(services)

    assert isinstance(app, FastAPI)
    assert isinstance(app.state.auth, AuthServices)
    paths = {getattr(route, "path", None) for route in app.routes}
    assert {
        "/auth/providers",
        "/auth/providers/status",
        "/auth/{provider}/redirect",
        "/auth/{provider}/callback",
        "/auth/logout",
        "/auth/session",
        "/auth/{provider}/unlink",
    } <= paths


def test_default_session_store_is_memory():
    """The memory backend is the default."""
    assert isinstance(get_session_store(), MemorySessionStore)
