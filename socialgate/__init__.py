"""socialgate - pluggable social sign-in for business applications.

Google and GitHub providers, a caching provider registry, session
lifecycle management and FastAPI routes over pluggable user and session
stores.
"""

from __future__ import annotations

from .app import AuthServices, build_services, create_app
from .auth import (
    AuthFlowController,
    GitHubProvider,
    GoogleProvider,
    ProviderRegistry,
    SessionManager,
    SocialAuthProvider,
)
from .config import SocialGateSettings, get_settings
from .exceptions import (
    AccountInactiveError,
    AuthenticationError,
    InvalidProviderTypeError,
    MissingIdentityEmailError,
    ProviderCallbackError,
    ProviderDisabledError,
    SocialGateException,
    UnknownProviderError,
)
from .state import AuthRequest, FlowResult, Session, SocialIdentity, User


__version__ = "0.1.0"

__all__ = [
    "AccountInactiveError",
    "AuthFlowController",
    "AuthRequest",
    "AuthServices",
    "AuthenticationError",
    "FlowResult",
    "GitHubProvider",
    "GoogleProvider",
    "InvalidProviderTypeError",
    "MissingIdentityEmailError",
    "ProviderCallbackError",
    "ProviderDisabledError",
    "ProviderRegistry",
    "Session",
    "SessionManager",
    "SocialAuthProvider",
    "SocialGateException",
    "SocialGateSettings",
    "SocialIdentity",
    "UnknownProviderError",
    "User",
    "__version__",
    "build_services",
    "create_app",
    "get_settings",
]
