"""Application wiring.

Builds the registry, session manager, controller and FastAPI app from
settings, using the configured stores.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import FastAPI

from .auth.flow import AuthFlowController
from .auth.registry import ProviderRegistry, create_registry_from_settings
from .auth.routes import create_auth_router
from .auth.session import SessionManager
from .config import get_settings
from .log import configure_from_settings
from .state import get_session_store, get_user_directory


if TYPE_CHECKING:
    from .auth.oauth import OAuthClient
    from .config import SocialGateSettings
    from .state.base import SessionStore, UserDirectory


@dataclass
class AuthServices:
    """The wired authentication components of one process."""

    settings: SocialGateSettings
    registry: ProviderRegistry
    session_manager: SessionManager
    controller: AuthFlowController


def build_services(
    settings: SocialGateSettings | None = None,
    *,
    directory: UserDirectory | None = None,
    session_store: SessionStore | None = None,
    oauth: OAuthClient | None = None,
) -> AuthServices:
    """Wire the authentication components.

    Parameters
    ----------
    settings : SocialGateSettings, optional
        Settings to use (defaults to the cached global settings).
    directory : UserDirectory, optional
        User directory (defaults to the configured backend).
    session_store : SessionStore, optional
        Session store (defaults to the configured backend).
    oauth : OAuthClient, optional
        Handshake collaborator (defaults to the shared httpx client).

    Returns
    -------
    AuthServices
        The wired components.
    """
    settings = settings or get_settings()
    directory = directory or get_user_directory()
    session_store = session_store or get_session_store()

    registry = create_registry_from_settings(settings, directory=directory, oauth=oauth)
    session_manager = SessionManager(directory, session_store, settings.session)
    controller = AuthFlowController(registry, session_manager, settings.flow)
    return AuthServices(settings, registry, session_manager, controller)


def create_app(services: AuthServices | None = None) -> FastAPI:
    """Create a FastAPI app serving the ``/auth`` routes."""
    services = services or build_services()
    configure_from_settings(services.settings.log)

    app = FastAPI(title="socialgate")
    app.state.auth = services
    app.include_router(
        create_auth_router(
            services.registry,
            services.session_manager,
            services.controller,
            services.settings,
        )
    )
    return app
