"""Social authentication for socialgate.

Provides the provider abstraction with Google and GitHub implementations,
the provider registry, session lifecycle management, flow orchestration
and the FastAPI routes.
"""

from __future__ import annotations

from .flow import AuthFlowController
from .oauth import DEFAULT_ENDPOINTS, HttpxOAuthClient, OAuthClient, ProviderEndpoints
from .providers import (
    GitHubProvider,
    GoogleProvider,
    IdentityHooks,
    OAuth2SocialProvider,
    SocialAuthProvider,
    reconcile_identity,
)
from .registry import DEFAULT_PROVIDERS, ProviderRegistry, create_registry_from_settings
from .session import SessionManager, generate_remember_token


__all__ = [
    "DEFAULT_ENDPOINTS",
    "DEFAULT_PROVIDERS",
    "AuthFlowController",
    "GitHubProvider",
    "GoogleProvider",
    "HttpxOAuthClient",
    "IdentityHooks",
    "OAuth2SocialProvider",
    "OAuthClient",
    "ProviderEndpoints",
    "ProviderRegistry",
    "SessionManager",
    "SocialAuthProvider",
    "create_registry_from_settings",
    "generate_remember_token",
    "reconcile_identity",
]
