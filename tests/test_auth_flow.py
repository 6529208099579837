"""Tests for the sign-in and sign-out flows."""

# pylint: disable=redefined-outer-name

from __future__ import annotations

import asyncio
import logging

import pytest

from socialgate.auth.flow import ERRORS_KEY, INTENDED_URL_KEY, AuthFlowController
from socialgate.auth.registry import ProviderRegistry
from socialgate.auth.session import SessionManager
from socialgate.config import FlowSettings
from socialgate.exceptions import AccountInactiveError, InvalidStateError
from socialgate.state.types import SocialIdentity, UserStatus
from tests.helpers import PROVIDER_CONFIG, FakeOAuthClient, static_config_source


def _run(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


class BrokenOAuthClient(FakeOAuthClient):
    """Fails while building the authorization URL."""

    def build_authorization_url(self, provider_name, config, request):
        raise RuntimeError("db down")


def _controller(directory, session_store, oauth, configs=None) -> AuthFlowController:
    registry = ProviderRegistry(
        directory=directory,
        oauth=oauth,
        config_source=static_config_source(
            {"google": PROVIDER_CONFIG} if configs is None else configs
        ),
    )
    manager = SessionManager(directory, session_store)
    return AuthFlowController(registry, manager, FlowSettings())


@pytest.fixture()
def controller(directory, session_store, fake_oauth) -> AuthFlowController:
    """Controller with google enabled and github unconfigured."""
    return _controller(directory, session_store, fake_oauth)


# ── Redirect ────────────────────────────────────────────────────────


class TestRedirect:
    """Tests for redirect()."""

    def test_enabled_provider(self, controller, auth_request, fake_oauth) -> None:
        """The client is sent to the provider."""
        result = _run(controller.redirect("google", auth_request))
        assert result.success is True
        assert result.redirect_to.startswith("https://idp.test/google/authorize")
        assert fake_oauth.calls == [("build_authorization_url", "google")]

    def test_unknown_provider(self, controller, auth_request) -> None:
        """Unknown names flash a message and go back to login."""
        result = _run(controller.redirect("myspace", auth_request))
        assert result.success is False
        assert result.redirect_to == "/login"
        assert result.error == "Invalid authentication provider."
        assert auth_request.session.get(ERRORS_KEY) == ["Invalid authentication provider."]

    def test_disabled_provider(self, controller, auth_request, fake_oauth) -> None:
        """A disabled provider never reaches the OAuth client."""
        result = _run(controller.redirect("github", auth_request))
        assert result.error == "GitHub authentication is currently disabled."
        assert fake_oauth.calls == []

    def test_intended_path_stored(self, controller, auth_request) -> None:
        """A same-site intended path is kept for the callback."""
        _run(controller.redirect("google", auth_request, intended="/reports/7"))
        assert auth_request.session.get(INTENDED_URL_KEY) == "/reports/7"

    @pytest.mark.parametrize("target", ["https://evil.test/", "//evil.test", "reports"])
    def test_offsite_intended_path_not_stored(self, controller, auth_request, target) -> None:
        """Targets outside the site are dropped."""
        _run(controller.redirect("google", auth_request, intended=target))
        assert not auth_request.session.has(INTENDED_URL_KEY)

    def test_intended_path_not_stored_on_failure(self, controller, auth_request) -> None:
        """A refused redirect leaves no intended path behind."""
        _run(controller.redirect("github", auth_request, intended="/reports/7"))
        assert not auth_request.session.has(INTENDED_URL_KEY)

    def test_unexpected_error_is_generic(self, directory, session_store, auth_request) -> None:
        """Internal failures surface only the generic message."""
        controller = _controller(directory, session_store, BrokenOAuthClient())

        result = _run(controller.redirect("google", auth_request))
        assert result.error == "Authentication failed. Please try again or contact support."
        assert "db down" not in result.error


# ── Callback ────────────────────────────────────────────────────────


class TestCallback:
    """Tests for callback()."""

    def test_new_user_signed_in(self, controller, auth_request, directory) -> None:
        """A first sign-in creates the user and authenticates the session."""
        old_id = auth_request.session.id

        result = _run(controller.callback("google", auth_request))

        assert result.success is True
        assert result.redirect_to == "/dashboard"
        user = _run(directory.find_by_email("a@b.com"))
        assert result.user.id == user.id
        assert user.provider_ids == {"google": "42"}
        assert user.last_login_ip == "10.0.0.1"
        assert user.last_login_at is not None
        assert user.remember_token is not None
        assert auth_request.session.user_id == user.id
        assert auth_request.session.id != old_id

    def test_intended_url_resumed(self, controller, auth_request) -> None:
        """A stored local intended URL wins over the home path."""
        auth_request.session.put(INTENDED_URL_KEY, "/reports/7")
        result = _run(controller.callback("google", auth_request))
        assert result.redirect_to == "/reports/7"
        assert not auth_request.session.has(INTENDED_URL_KEY)

    @pytest.mark.parametrize("target", ["https://evil.test/", "//evil.test", "/\\evil.test"])
    def test_offsite_intended_url_ignored(self, controller, auth_request, target) -> None:
        """Only same-site paths are resumed."""
        auth_request.session.put(INTENDED_URL_KEY, target)
        assert _run(controller.callback("google", auth_request)).redirect_to == "/dashboard"

    def test_missing_email_rejected_before_lookup(
        self, directory, session_store, auth_request
    ) -> None:
        """An identity without email never reaches user lookup."""
        oauth = FakeOAuthClient(identity=SocialIdentity(external_id="7", nickname="octo"))
        controller = _controller(directory, session_store, oauth, {"github": PROVIDER_CONFIG})
        provider = controller.registry.make("github")

        async def explode(identity):
            raise AssertionError("find_or_create_user must not run")

        provider.find_or_create_user = explode

        result = _run(controller.callback("github", auth_request))

        assert result.success is False
        assert result.error == (
            "Unable to retrieve email from GitHub. Please ensure your email is public."
        )
        assert auth_request.session.user_id is None
        assert _run(directory.count()) == 0

    def test_state_error_message(self, directory, session_store, auth_request) -> None:
        """Handshake errors are translated to their user message."""
        oauth = FakeOAuthClient(error=InvalidStateError("mismatch", provider="google"))
        controller = _controller(directory, session_store, oauth)

        result = _run(controller.callback("google", auth_request))
        assert result.error == "Authentication session expired. Please try again."
        assert auth_request.session.get(ERRORS_KEY) == [result.error]

    def test_unexpected_error_logged_and_generic(
        self, directory, session_store, auth_request, caplog
    ) -> None:
        """Non-authentication errors are logged with a traceback."""
        caplog.set_level(logging.ERROR, logger="socialgate.auth")
        oauth = FakeOAuthClient(error=RuntimeError("socket closed"))
        controller = _controller(directory, session_store, oauth)

        result = _run(controller.callback("google", auth_request))

        assert result.error == "Authentication failed. Please try again or contact support."
        assert any(r.exc_info for r in caplog.records)

    def test_inactive_user_rolled_back(self, controller, auth_request, directory) -> None:
        """A resolved but inactive user leaves no authenticated session."""
        _run(
            directory.create(
                {"email": "a@b.com", "provider_ids": {"google": "42"}, "status": "suspended"}
            )
        )
        auth_request.session.put("stale", "data")
        old_id = auth_request.session.id

        result = _run(controller.callback("google", auth_request))

        assert result.success is False
        assert result.error == "Your account is not active. Please contact an administrator."
        assert auth_request.session.user_id is None
        assert auth_request.session.id != old_id
        assert not auth_request.session.has("stale")
        assert auth_request.session.get(ERRORS_KEY) == [result.error]

    def test_activity_logged(self, controller, auth_request, caplog) -> None:
        """A successful sign-in logs a social_login activity."""
        caplog.set_level(logging.INFO, logger="socialgate.auth")
        _run(controller.callback("google", auth_request))
        activities = [
            r.context["activity"]
            for r in caplog.records
            if "Session activity" in r.getMessage()
        ]
        assert activities == ["social_login"]
        record = [r for r in caplog.records if "Session activity" in r.getMessage()][0]
        assert record.context["provider"] == "google"
        assert record.context["social_id"] == "42"


# ── Password login, logout, current user ────────────────────────────


class TestLoginLogout:
    """Tests for login(), logout() and current_user()."""

    def test_login_without_remember(self, controller, auth_request, directory) -> None:
        """Credential login authenticates without a remember token."""
        user = _run(directory.create({"email": "p@b.com", "password_hash": "h"}))
        result = _run(controller.login(auth_request, user))

        assert result.success is True
        assert auth_request.session.user_id == user.id
        assert _run(directory.find_by_id(user.id)).remember_token is None

    def test_login_with_remember(self, controller, auth_request, directory) -> None:
        """remember=True issues a token."""
        user = _run(directory.create({"email": "p@b.com", "password_hash": "h"}))
        _run(controller.login(auth_request, user, remember=True))
        assert _run(directory.find_by_id(user.id)).remember_token is not None

    def test_login_inactive(self, controller, auth_request, directory) -> None:
        """Inactive users are refused."""
        user = _run(directory.create({"email": "p@b.com", "status": "inactive"}))
        result = _run(controller.login(auth_request, user))
        assert result.success is False
        assert auth_request.session.user_id is None

    def test_logout(self, controller, auth_request, directory) -> None:
        """Logout clears the session and the remember token."""
        _run(controller.callback("google", auth_request))
        user_id = auth_request.session.user_id
        old_token = auth_request.session.token

        result = _run(controller.logout(auth_request))

        assert result.redirect_to == "/"
        assert auth_request.session.user_id is None
        assert auth_request.session.token != old_token
        assert _run(directory.find_by_id(user_id)).remember_token is None

    def test_current_user(self, controller, auth_request) -> None:
        """The signed-in user is resolved."""
        assert _run(controller.current_user(auth_request)) is None
        result = _run(controller.callback("google", auth_request))
        assert _run(controller.current_user(auth_request)).id == result.user.id

    def test_current_user_after_force_logout(self, controller, auth_request) -> None:
        """A revoked session resolves to no user and is reset."""
        result = _run(controller.callback("google", auth_request))
        _run(controller.session_manager.force_logout_all_sessions(result.user.id))

        assert _run(controller.current_user(auth_request)) is None
        assert auth_request.session.user_id is None

    def test_current_user_inactive(self, controller, auth_request, directory) -> None:
        """Deactivation takes effect on the next request."""
        result = _run(controller.callback("google", auth_request))
        _run(directory.update(result.user, {"status": UserStatus.INACTIVE}))

        with pytest.raises(AccountInactiveError):
            _run(controller.current_user(auth_request))
        assert auth_request.session.user_id is None
        assert auth_request.session.get(ERRORS_KEY) == [
            "Your account is not active. Please contact an administrator."
        ]


class TestUnlink:
    """Tests for unlink()."""

    def test_anonymous(self, controller, auth_request) -> None:
        """No signed-in user, nothing to unlink."""
        assert _run(controller.unlink(auth_request, "google")) is False

    def test_last_provider_kept(self, controller, auth_request, directory) -> None:
        """A social-only user's only provider stays linked."""
        result = _run(controller.callback("google", auth_request))
        assert _run(controller.unlink(auth_request, "google")) is False
        assert _run(directory.find_by_id(result.user.id)).provider_ids == {"google": "42"}

    def test_second_provider_unlinked(self, controller, auth_request, directory) -> None:
        """With another provider linked the target is removed."""
        result = _run(controller.callback("google", auth_request))
        _run(directory.update(result.user, {"provider_ids": {"google": "42", "github": "7"}}))

        assert _run(controller.unlink(auth_request, "github")) is True
        assert _run(directory.find_by_id(result.user.id)).provider_ids == {"google": "42"}
