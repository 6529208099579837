"""Social authentication provider abstractions.

Defines the SocialAuthProvider ABC, the shared identity reconciliation
template, and concrete implementations for Google and GitHub.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import time

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import TypeAdapter, ValidationError

from ..exceptions import MissingIdentityEmailError, ProviderDisabledError
from ..log import log_event
from ..state.types import UserRole, UserStatus


if TYPE_CHECKING:
    from ..config import ConfigSource
    from ..state.base import UserDirectory
    from ..state.types import AuthRequest, SocialIdentity, User
    from .oauth import OAuthClient


logger = logging.getLogger("socialgate.auth")

# Lax coercion so "false" or "0" from string-valued sources reads as off
_BOOL_ADAPTER = TypeAdapter(bool)


class IdentityHooks(Protocol):
    """Capabilities a provider contributes to ``reconcile_identity``."""

    async def find_user_by_social_id(self, external_id: str) -> User | None: ...

    async def find_user_by_email(self, email: str) -> User | None: ...

    async def link_social_account(self, user: User, identity: SocialIdentity) -> User: ...

    async def create_user_from_social_data(self, identity: SocialIdentity) -> User: ...

    async def update_user_from_social_data(self, user: User, identity: SocialIdentity) -> User: ...


async def reconcile_identity(hooks: IdentityHooks, identity: SocialIdentity) -> User:
    """Map a provider identity to a local user.

    Steps run strictly in order:

    1. A user already linked to ``identity.external_id`` is refreshed from
       the identity and returned.
    2. Otherwise a user with the same email is linked to the provider and
       returned.
    3. Otherwise a new user is created from the identity.

    Parameters
    ----------
    hooks : IdentityHooks
        The provider-specific lookup, link, create and update steps.
    identity : SocialIdentity
        The identity returned by the provider.

    Returns
    -------
    User
        The matched, linked or created user.
    """
    user = await hooks.find_user_by_social_id(identity.external_id)
    if user is not None:
        return await hooks.update_user_from_social_data(user, identity)

    if identity.email:
        user = await hooks.find_user_by_email(identity.email)
        if user is not None:
            return await hooks.link_social_account(user, identity)

    return await hooks.create_user_from_social_data(identity)


class SocialAuthProvider(ABC):
    """Abstract base class for social sign-in providers.

    Parameters
    ----------
    config_source : ConfigSource, optional
        Maps a provider name to its configuration (defaults to the loaded
        settings).
    overrides : Mapping[str, Any], optional
        Per-instance values that win over the configuration source.
    directory : UserDirectory, optional
        Where users are looked up and persisted (defaults to the
        configured directory).
    oauth : OAuthClient, optional
        The handshake collaborator (defaults to the shared httpx client).
    """

    def __init__(
        self,
        *,
        config_source: ConfigSource | None = None,
        overrides: Mapping[str, Any] | None = None,
        directory: UserDirectory | None = None,
        oauth: OAuthClient | None = None,
    ) -> None:
        if config_source is None:
            from ..config import settings_config_source

            config_source = settings_config_source
        if directory is None:
            from ..state import get_user_directory

            directory = get_user_directory()
        if oauth is None:
            from .oauth import get_default_oauth_client

            oauth = get_default_oauth_client()

        self._config_source = config_source
        self._overrides = dict(overrides or {})
        self.directory = directory
        self.oauth = oauth

    @property
    @abstractmethod
    def name(self) -> str:
        """Machine name of the provider (e.g. "google")."""

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human label of the provider (e.g. "Google")."""

    def required_config_keys(self) -> tuple[str, ...]:
        """Configuration keys that must be present and non-empty."""
        return ("client_id", "client_secret")

    def optional_config_keys(self) -> tuple[str, ...]:
        """Configuration keys that may be set."""
        return ("redirect", "enabled")

    def get_config(self) -> dict[str, Any]:
        """Configuration for this provider, overrides applied last."""
        config = dict(self._config_source(self.name) or {})
        config.update(self._overrides)
        return config

    def validate_config(self) -> bool:
        """Check that every required key is present and non-empty.

        Logs a warning naming the first missing key.
        """
        config = self.get_config()
        for key in self.required_config_keys():
            if not config.get(key):
                logger.warning("%s provider missing required config: %s", self.display_name, key)
                return False
        return True

    def is_enabled(self) -> bool:
        """Check whether the provider is fully configured and switched on."""
        if not self.validate_config():
            return False
        try:
            return _BOOL_ADAPTER.validate_python(self.get_config().get("enabled", False))
        except ValidationError:
            logger.warning("%s provider has an invalid enabled flag", self.display_name)
            return False

    def _ensure_enabled(self) -> None:
        if not self.is_enabled():
            msg = f"{self.display_name} provider is disabled or not configured"
            raise ProviderDisabledError(msg, provider=self.name, display_name=self.display_name)

    async def get_redirect_url(self, request: AuthRequest) -> str:
        """Start sign-in: the provider authorization URL for this request.

        Raises
        ------
        ProviderDisabledError
            If the provider is not enabled.
        """
        self._ensure_enabled()
        log_event(
            logger,
            logging.INFO,
            f"Redirecting to {self.display_name} for authentication",
            provider=self.name,
            ip_address=request.ip_address,
            user_agent=request.user_agent,
        )
        return self.oauth.build_authorization_url(self.name, self.get_config(), request)

    async def handle_callback(self, request: AuthRequest) -> SocialIdentity:
        """Complete the handshake and return the provider identity.

        Raises
        ------
        ProviderDisabledError
            If the provider is not enabled.
        ProviderCallbackError
            If the handshake fails (propagated from the OAuth client).
        """
        self._ensure_enabled()
        log_event(
            logger,
            logging.INFO,
            f"Handling {self.display_name} OAuth callback",
            provider=self.name,
            ip_address=request.ip_address,
        )
        return await self.oauth.exchange_callback(self.name, self.get_config(), request)

    async def find_or_create_user(self, identity: SocialIdentity) -> User:
        """Find, link or create the local user for ``identity``."""
        return await reconcile_identity(self, identity)

    async def find_user_by_email(self, email: str) -> User | None:
        return await self.directory.find_by_email(email)

    @abstractmethod
    async def find_user_by_social_id(self, external_id: str) -> User | None:
        """Find the user linked to ``external_id`` at this provider."""

    @abstractmethod
    async def link_social_account(self, user: User, identity: SocialIdentity) -> User:
        """Link an existing user to ``identity``."""

    @abstractmethod
    async def create_user_from_social_data(self, identity: SocialIdentity) -> User:
        """Create a user from ``identity``."""

    @abstractmethod
    async def update_user_from_social_data(self, user: User, identity: SocialIdentity) -> User:
        """Refresh a linked user from ``identity``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class OAuth2SocialProvider(SocialAuthProvider):
    """Provider whose accounts are linked through ``User.provider_ids``.

    Implements the reconciliation hooks on top of the user directory;
    subclasses only supply names, config keys and the display-name rule.
    """

    def user_name_for(self, identity: SocialIdentity) -> str | None:
        """The local display name derived from ``identity``."""
        return identity.display_name

    async def find_user_by_social_id(self, external_id: str) -> User | None:
        return await self.directory.find_by_provider_id(self.name, external_id)

    async def link_social_account(self, user: User, identity: SocialIdentity) -> User:
        provider_ids = dict(user.provider_ids)
        provider_ids[self.name] = identity.external_id
        user = await self.directory.update(
            user,
            {"provider_ids": provider_ids, "avatar": identity.avatar_url or user.avatar},
        )
        logger.info("Linked %s account to existing user %s", self.display_name, user.id)
        return user

    async def create_user_from_social_data(self, identity: SocialIdentity) -> User:
        if not identity.email:
            msg = f"{self.display_name} identity has no email"
            raise MissingIdentityEmailError(msg, provider=self.name, display_name=self.display_name)

        now = time.time()
        user = await self.directory.create(
            {
                "name": self.user_name_for(identity) or identity.email.split("@", 1)[0],
                "email": identity.email,
                "provider_ids": {self.name: identity.external_id},
                "avatar": identity.avatar_url,
                "password_hash": None,
                "role": UserRole.EMPLOYEE,
                "status": UserStatus.ACTIVE,
                "is_verified": True,
                "email_verified_at": now,
            }
        )
        logger.info("Created user %s from %s sign-in", user.id, self.display_name)
        return user

    async def update_user_from_social_data(self, user: User, identity: SocialIdentity) -> User:
        changes: dict[str, Any] = {}

        name = self.user_name_for(identity)
        if name and name != user.name:
            changes["name"] = name
        if identity.avatar_url and identity.avatar_url != user.avatar:
            changes["avatar"] = identity.avatar_url
        if identity.email and identity.email != user.email:
            changes["email"] = identity.email

        if not changes:
            return user

        changed = list(changes)
        if "email" in changes:
            # The provider vouches for the new address
            changes["email_verified_at"] = time.time()

        user = await self.directory.update(user, changes)
        log_event(
            logger,
            logging.INFO,
            f"Updated user data from {self.display_name}",
            user_id=user.id,
            changes=changed,
        )
        return user


class GoogleProvider(OAuth2SocialProvider):
    """Google sign-in."""

    @property
    def name(self) -> str:
        return "google"

    @property
    def display_name(self) -> str:
        return "Google"

    def required_config_keys(self) -> tuple[str, ...]:
        return ("client_id", "client_secret", "redirect")

    def optional_config_keys(self) -> tuple[str, ...]:
        return ("enabled",)


class GitHubProvider(OAuth2SocialProvider):
    """GitHub sign-in.

    GitHub profiles often have no full name; the login handle is used
    instead.
    """

    @property
    def name(self) -> str:
        return "github"

    @property
    def display_name(self) -> str:
        return "GitHub"

    def required_config_keys(self) -> tuple[str, ...]:
        return ("client_id", "client_secret", "redirect")

    def optional_config_keys(self) -> tuple[str, ...]:
        return ("enabled",)

    def user_name_for(self, identity: SocialIdentity) -> str | None:
        return identity.display_name or identity.nickname
