"""Provider registry.

Maps provider names to provider types and memoises one instance per name.
The registry is an explicit object built once at startup and injected
where requests are handled.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import inspect
import logging
import threading

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..exceptions import InvalidProviderTypeError, UnknownProviderError
from .providers import GitHubProvider, GoogleProvider, SocialAuthProvider


if TYPE_CHECKING:
    from ..config import ConfigSource, SocialGateSettings
    from ..state.base import UserDirectory
    from .oauth import OAuthClient


logger = logging.getLogger("socialgate.auth")

DEFAULT_PROVIDERS: dict[str, type[SocialAuthProvider]] = {
    "google": GoogleProvider,
    "github": GitHubProvider,
}


class ProviderRegistry:
    """Name-to-provider table with a per-name instance cache.

    Parameters
    ----------
    directory : UserDirectory, optional
        Passed to every constructed provider.
    oauth : OAuthClient, optional
        Passed to every constructed provider.
    config_source : ConfigSource, optional
        Passed to every constructed provider.
    overrides : Mapping[str, Mapping[str, Any]], optional
        Per-provider config overrides, keyed by provider name.
    providers : Mapping[str, type[SocialAuthProvider]], optional
        Initial table (defaults to google and github).
    """

    def __init__(
        self,
        *,
        directory: UserDirectory | None = None,
        oauth: OAuthClient | None = None,
        config_source: ConfigSource | None = None,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
        providers: Mapping[str, type[SocialAuthProvider]] | None = None,
    ) -> None:
        self._directory = directory
        self._oauth = oauth
        self._config_source = config_source
        self._overrides = {name: dict(values) for name, values in (overrides or {}).items()}
        self._types: dict[str, type[SocialAuthProvider]] = dict(
            DEFAULT_PROVIDERS if providers is None else providers
        )
        self._instances: dict[str, SocialAuthProvider] = {}
        self._lock = threading.Lock()

    def make(self, name: str) -> SocialAuthProvider:
        """Get the provider instance for ``name``, constructing it once.

        Raises
        ------
        UnknownProviderError
            If ``name`` is not registered.
        """
        with self._lock:
            cached = self._instances.get(name)
            if cached is not None:
                return cached

            provider_type = self._types.get(name)
            if provider_type is None:
                msg = f"Unsupported social auth provider: {name}"
                raise UnknownProviderError(msg, provider=name)

            instance = provider_type(
                config_source=self._config_source,
                overrides=self._overrides.get(name),
                directory=self._directory,
                oauth=self._oauth,
            )
            self._instances[name] = instance
            logger.debug("Created %s provider instance", name)
            return instance

    def get_available_providers(self) -> tuple[str, ...]:
        """Names of all registered providers."""
        with self._lock:
            return tuple(self._types)

    def get_enabled_providers(self) -> dict[str, SocialAuthProvider]:
        """Registered providers that are currently enabled."""
        enabled = {}
        for name in self.get_available_providers():
            provider = self.make(name)
            if provider.is_enabled():
                enabled[name] = provider
        return enabled

    def has_provider(self, name: str) -> bool:
        """Check whether ``name`` is registered."""
        with self._lock:
            return name in self._types

    def is_provider_enabled(self, name: str) -> bool:
        """Check whether ``name`` is registered and enabled."""
        if not self.has_provider(name):
            return False
        return self.make(name).is_enabled()

    def register_provider(self, name: str, provider_type: Any) -> None:
        """Register or replace the provider type for ``name``.

        Raises
        ------
        InvalidProviderTypeError
            If ``provider_type`` is not a concrete ``SocialAuthProvider``
            subclass.
        """
        if (
            not inspect.isclass(provider_type)
            or not issubclass(provider_type, SocialAuthProvider)
            or inspect.isabstract(provider_type)
        ):
            msg = f"Provider type must be a concrete SocialAuthProvider subclass, got {provider_type!r}"
            raise InvalidProviderTypeError(msg, provider=name)

        with self._lock:
            self._types[name] = provider_type
            self._instances.pop(name, None)
        logger.info("Registered social auth provider %s (%s)", name, provider_type.__name__)

    def get_provider_status(self) -> dict[str, dict[str, Any]]:
        """Configuration status of every registered provider.

        Returns
        -------
        dict[str, dict[str, Any]]
            Per provider: ``name``, ``display_name``, ``enabled``,
            ``configured``, ``required_config``, ``optional_config``.
        """
        status = {}
        for name in self.get_available_providers():
            provider = self.make(name)
            status[name] = {
                "name": provider.name,
                "display_name": provider.display_name,
                "enabled": provider.is_enabled(),
                "configured": provider.validate_config(),
                "required_config": list(provider.required_config_keys()),
                "optional_config": list(provider.optional_config_keys()),
            }
        return status

    def clear_cache(self) -> None:
        """Drop every cached provider instance."""
        with self._lock:
            self._instances.clear()
        logger.debug("Provider instance cache cleared")


def create_registry_from_settings(
    settings: SocialGateSettings,
    *,
    directory: UserDirectory | None = None,
    oauth: OAuthClient | None = None,
) -> ProviderRegistry:
    """Build a registry whose providers read ``settings.providers``.

    Parameters
    ----------
    settings : SocialGateSettings
        Loaded settings.
    directory : UserDirectory, optional
        User directory for the providers.
    oauth : OAuthClient, optional
        Handshake collaborator for the providers.

    Returns
    -------
    ProviderRegistry
        A fresh registry.
    """

    def config_source(name: str) -> dict[str, Any]:
        provider = settings.providers.get(name)
        return provider.model_dump() if provider is not None else {}

    return ProviderRegistry(directory=directory, oauth=oauth, config_source=config_source)
