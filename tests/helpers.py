"""Shared test doubles and constants."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from socialgate.auth.oauth import OAuthClient
from socialgate.state.types import AuthRequest, SocialIdentity


PROVIDER_CONFIG: dict[str, Any] = {
    "client_id": "x",
    "client_secret": "y",
    "redirect": "https://app.test/auth/google/callback",
    "enabled": True,
}


class FakeOAuthClient(OAuthClient):
    """Records calls instead of talking to a provider."""

    def __init__(self, identity: SocialIdentity | None = None, error: Exception | None = None):
        self.identity = identity or SocialIdentity(
            external_id="42", email="a@b.com", display_name="A B"
        )
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def build_authorization_url(
        self, provider_name: str, config: Mapping[str, Any], request: AuthRequest
    ) -> str:
        self.calls.append(("build_authorization_url", provider_name))
        return f"https://idp.test/{provider_name}/authorize?client_id={config['client_id']}"

    async def exchange_callback(
        self, provider_name: str, config: Mapping[str, Any], request: AuthRequest
    ) -> SocialIdentity:
        self.calls.append(("exchange_callback", provider_name))
        if self.error is not None:
            raise self.error
        return self.identity


def static_config_source(configs: Mapping[str, Mapping[str, Any]]):
    """Config source reading from a fixed mapping."""

    def source(name: str) -> dict[str, Any]:
        return dict(configs.get(name, {}))

    return source
