"""OAuth handshake collaborator.

Providers delegate the two network-facing halves of sign-in to an
``OAuthClient``: building the authorization URL and turning the callback
into a ``SocialIdentity``. ``HttpxOAuthClient`` is the bundled
implementation; it performs one authorization-code exchange and one
profile fetch per sign-in. Token refresh, revocation and ID-token
validation are out of scope.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import dataclasses
import logging
import secrets

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from ..exceptions import InvalidStateError, ProviderCallbackError
from ..state.types import SocialIdentity


if TYPE_CHECKING:
    from ..state.types import AuthRequest


logger = logging.getLogger("socialgate.auth")

#: Session key prefix for the pending ``state`` nonce of each provider.
STATE_SESSION_KEY = "oauth_state"


def state_session_key(provider_name: str) -> str:
    """Session key holding the pending state nonce for ``provider_name``."""
    return f"{STATE_SESSION_KEY}.{provider_name}"


def _parse_google_profile(profile: dict[str, Any]) -> SocialIdentity:
    return SocialIdentity(
        external_id=str(profile["sub"]),
        email=profile.get("email") or None,
        display_name=profile.get("name") or None,
        avatar_url=profile.get("picture") or None,
        nickname=profile.get("given_name") or None,
        raw=profile,
    )


def _parse_github_profile(profile: dict[str, Any]) -> SocialIdentity:
    return SocialIdentity(
        external_id=str(profile["id"]),
        email=profile.get("email") or None,
        display_name=profile.get("name") or None,
        avatar_url=profile.get("avatar_url") or None,
        nickname=profile.get("login") or None,
        raw=profile,
    )


@dataclass(frozen=True)
class ProviderEndpoints:
    """Endpoint table for one OAuth provider.

    Attributes
    ----------
    authorize_url : str
        Authorization endpoint the browser is sent to.
    token_url : str
        Token endpoint for the code exchange.
    userinfo_url : str
        Profile endpoint called with the access token.
    parse_profile : Callable[[dict], SocialIdentity]
        Maps the raw profile payload to a ``SocialIdentity``.
    emails_url : str
        Optional endpoint listing the account's addresses, consulted when
        the profile carries no email (GitHub private emails).
    scopes : tuple[str, ...]
        Scopes requested when the provider config sets none.
    authorize_params : Mapping[str, str]
        Extra query parameters for the authorization URL.
    """

    authorize_url: str
    token_url: str
    userinfo_url: str
    parse_profile: Callable[[dict[str, Any]], SocialIdentity]
    emails_url: str = ""
    scopes: tuple[str, ...] = ()
    authorize_params: Mapping[str, str] = field(default_factory=dict)


DEFAULT_ENDPOINTS: dict[str, ProviderEndpoints] = {
    "google": ProviderEndpoints(
        authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",  # noqa: S106
        userinfo_url="https://openidconnect.googleapis.com/v1/userinfo",
        parse_profile=_parse_google_profile,
        scopes=("openid", "email", "profile"),
        authorize_params={"prompt": "select_account"},
    ),
    "github": ProviderEndpoints(
        authorize_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",  # noqa: S106
        userinfo_url="https://api.github.com/user",
        parse_profile=_parse_github_profile,
        emails_url="https://api.github.com/user/emails",
        scopes=("read:user", "user:email"),
    ),
}


class OAuthClient(ABC):
    """Performs the OAuth handshake on behalf of a provider."""

    @abstractmethod
    def build_authorization_url(
        self,
        provider_name: str,
        config: Mapping[str, Any],
        request: AuthRequest,
    ) -> str:
        """Build the URL the browser is redirected to.

        Parameters
        ----------
        provider_name : str
            Provider name (e.g. "google").
        config : Mapping[str, Any]
            The provider's merged configuration.
        request : AuthRequest
            The current request; its session holds the anti-forgery state.

        Returns
        -------
        str
            The provider authorization URL.
        """

    @abstractmethod
    async def exchange_callback(
        self,
        provider_name: str,
        config: Mapping[str, Any],
        request: AuthRequest,
    ) -> SocialIdentity:
        """Turn the provider callback into a ``SocialIdentity``.

        Raises
        ------
        InvalidStateError
            If the callback ``state`` does not match the session.
        ProviderCallbackError
            On provider errors, missing code, HTTP failures or malformed
            payloads.
        """


class HttpxOAuthClient(OAuthClient):
    """``OAuthClient`` over a shared ``httpx.AsyncClient``.

    Parameters
    ----------
    endpoints : Mapping[str, ProviderEndpoints], optional
        Endpoint tables by provider name (defaults to google and github).
    http_client : httpx.AsyncClient, optional
        Pre-configured client (for testing with ``httpx.MockTransport``).
    timeout : float
        Request timeout in seconds.
    """

    def __init__(
        self,
        endpoints: Mapping[str, ProviderEndpoints] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._endpoints: dict[str, ProviderEndpoints] = dict(
            DEFAULT_ENDPOINTS if endpoints is None else endpoints
        )
        self._http_client = http_client
        self._timeout = timeout

    def register_endpoints(self, provider_name: str, endpoints: ProviderEndpoints) -> None:
        """Add or replace the endpoint table for ``provider_name``."""
        self._endpoints[provider_name] = endpoints

    def endpoints_for(self, provider_name: str) -> ProviderEndpoints:
        """Get the endpoint table for ``provider_name``."""
        try:
            return self._endpoints[provider_name]
        except KeyError:
            msg = f"No OAuth endpoints registered for provider '{provider_name}'"
            raise ProviderCallbackError(msg, provider=provider_name) from None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    def _scopes(self, config: Mapping[str, Any], endpoints: ProviderEndpoints) -> str:
        configured = config.get("scopes") or ""
        if isinstance(configured, str):
            scopes = configured.split()
        else:
            scopes = list(configured)
        return " ".join(scopes or endpoints.scopes)

    def build_authorization_url(
        self,
        provider_name: str,
        config: Mapping[str, Any],
        request: AuthRequest,
    ) -> str:
        """Build the authorization URL and store a fresh state nonce."""
        endpoints = self.endpoints_for(provider_name)
        state = secrets.token_urlsafe(32)
        request.session.put(state_session_key(provider_name), state)

        params: dict[str, str] = {
            "response_type": "code",
            "client_id": str(config.get("client_id", "")),
            "redirect_uri": str(config.get("redirect", "")),
            "state": state,
            "scope": self._scopes(config, endpoints),
        }
        params.update(endpoints.authorize_params)
        return f"{endpoints.authorize_url}?{urlencode(params)}"

    async def exchange_callback(
        self,
        provider_name: str,
        config: Mapping[str, Any],
        request: AuthRequest,
    ) -> SocialIdentity:
        """Validate the callback, exchange the code and fetch the profile."""
        endpoints = self.endpoints_for(provider_name)
        params = request.query_params

        # The nonce is single-use whatever the outcome.
        expected = request.session.pull(state_session_key(provider_name))
        received = params.get("state", "")
        if not expected or not received or not secrets.compare_digest(str(expected), received):
            msg = "OAuth state mismatch"
            raise InvalidStateError(msg, provider=provider_name)

        if params.get("error"):
            msg = f"Provider returned error: {params.get('error_description') or params['error']}"
            raise ProviderCallbackError(msg, provider=provider_name)

        code = params.get("code")
        if not code:
            msg = "Callback is missing the authorization code"
            raise ProviderCallbackError(msg, provider=provider_name)

        access_token = await self._exchange_code(provider_name, endpoints, config, code)
        profile = await self._get_json(provider_name, endpoints.userinfo_url, access_token)
        if not isinstance(profile, dict):
            msg = "Malformed profile payload"
            raise ProviderCallbackError(msg, provider=provider_name)

        try:
            identity = endpoints.parse_profile(profile)
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"Malformed profile payload: {exc}"
            raise ProviderCallbackError(msg, provider=provider_name) from exc

        if not identity.email and endpoints.emails_url:
            email = await self._primary_email(provider_name, endpoints.emails_url, access_token)
            if email:
                identity = dataclasses.replace(identity, email=email)

        logger.debug("Fetched %s profile %s", provider_name, identity.external_id)
        return identity

    async def _exchange_code(
        self,
        provider_name: str,
        endpoints: ProviderEndpoints,
        config: Mapping[str, Any],
        code: str,
    ) -> str:
        """Exchange the authorization code for an access token."""
        data = {
            "grant_type": "authorization_code",
            "client_id": str(config.get("client_id", "")),
            "client_secret": str(config.get("client_secret", "")),
            "code": code,
            "redirect_uri": str(config.get("redirect", "")),
        }

        try:
            client = await self._get_client()
            resp = await client.post(
                endpoints.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            raw = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Token exchange failed: {exc.response.status_code}"
            raise ProviderCallbackError(msg, provider=provider_name) from exc
        except httpx.HTTPError as exc:
            msg = f"Token exchange request failed: {exc}"
            raise ProviderCallbackError(msg, provider=provider_name) from exc
        except ValueError as exc:
            msg = "Token response is not JSON"
            raise ProviderCallbackError(msg, provider=provider_name) from exc

        if not isinstance(raw, dict):
            msg = "Malformed token response"
            raise ProviderCallbackError(msg, provider=provider_name)

        # GitHub reports exchange errors with a 200 status
        if "error" in raw:
            msg = f"Token error: {raw.get('error_description', raw['error'])}"
            raise ProviderCallbackError(msg, provider=provider_name)

        access_token = raw.get("access_token")
        if not access_token:
            msg = "Token response has no access_token"
            raise ProviderCallbackError(msg, provider=provider_name)
        return str(access_token)

    async def _get_json(self, provider_name: str, url: str, access_token: str) -> Any:
        """GET ``url`` with the bearer token and decode the JSON body."""
        try:
            client = await self._get_client()
            resp = await client.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"Profile request failed: {exc.response.status_code}"
            raise ProviderCallbackError(msg, provider=provider_name) from exc
        except httpx.HTTPError as exc:
            msg = f"Profile request failed: {exc}"
            raise ProviderCallbackError(msg, provider=provider_name) from exc
        except ValueError as exc:
            msg = "Profile response is not JSON"
            raise ProviderCallbackError(msg, provider=provider_name) from exc

    async def _primary_email(self, provider_name: str, url: str, access_token: str) -> str | None:
        """Pick the primary verified address from an emails listing."""
        entries = await self._get_json(provider_name, url, access_token)
        if not isinstance(entries, list):
            return None
        verified = [e for e in entries if isinstance(e, dict) and e.get("verified") and e.get("email")]
        for entry in verified:
            if entry.get("primary"):
                return str(entry["email"])
        return str(verified[0]["email"]) if verified else None


@lru_cache(maxsize=1)
def get_default_oauth_client() -> HttpxOAuthClient:
    """Get the process-wide ``HttpxOAuthClient`` (cached)."""
    return HttpxOAuthClient()
