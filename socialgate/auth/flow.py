"""Sign-in and sign-out flow orchestration.

``AuthFlowController`` drives the provider redirect, the OAuth callback,
password login (for credentials verified elsewhere) and logout, and turns
every failure into a user-facing message plus a redirect.
"""

# pylint: disable=logging-too-many-args,broad-exception-caught

from __future__ import annotations

import logging
import time

from typing import TYPE_CHECKING, Any

from ..exceptions import (
    AccountInactiveError,
    AuthenticationError,
    MissingIdentityEmailError,
    ProviderDisabledError,
)
from ..log import log_event
from ..state.types import FlowResult
from ..users import is_active, unlink_social_provider


if TYPE_CHECKING:
    from ..config import FlowSettings
    from ..state.base import UserDirectory
    from ..state.types import AuthRequest, User
    from .providers import SocialAuthProvider
    from .registry import ProviderRegistry
    from .session import SessionManager


logger = logging.getLogger("socialgate.auth")

#: Session key holding the URL to resume after sign-in.
INTENDED_URL_KEY = "url.intended"

#: Session key holding flashed error messages.
ERRORS_KEY = "errors"

GENERIC_FAILURE_MESSAGE = AuthenticationError.default_user_message


def _is_local_path(url: Any) -> bool:
    """Accept only same-site absolute paths as redirect targets."""
    return (
        isinstance(url, str)
        and url.startswith("/")
        and not url.startswith("//")
        and "\\" not in url
    )


class AuthFlowController:
    """Orchestrates the authentication flows.

    Parameters
    ----------
    registry : ProviderRegistry
        Resolves provider names.
    session_manager : SessionManager
        Session lifecycle operations.
    settings : FlowSettings, optional
        Redirect targets.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        session_manager: SessionManager,
        settings: FlowSettings | None = None,
    ) -> None:
        if settings is None:
            from ..config import FlowSettings

            settings = FlowSettings()
        self.registry = registry
        self.session_manager = session_manager
        self.settings = settings

    @property
    def directory(self) -> UserDirectory:
        """The user directory shared with the session manager."""
        return self.session_manager.directory

    def _enabled_provider(self, provider_name: str) -> SocialAuthProvider:
        provider = self.registry.make(provider_name)
        if not provider.is_enabled():
            msg = f"{provider.display_name} provider is disabled"
            raise ProviderDisabledError(
                msg, provider=provider.name, display_name=provider.display_name
            )
        return provider

    def _intended_url(self, request: AuthRequest) -> str:
        intended = request.session.pull(INTENDED_URL_KEY)
        return intended if _is_local_path(intended) else self.settings.home_path

    def _fail(self, request: AuthRequest, provider_name: str | None, exc: Exception) -> FlowResult:
        """Flash the user-facing message and send the client to login."""
        if isinstance(exc, AuthenticationError):
            message = exc.user_message
        else:
            message = GENERIC_FAILURE_MESSAGE
        log_event(
            logger,
            logging.WARNING,
            "Authentication failed",
            provider=provider_name,
            error=str(exc),
            error_type=type(exc).__name__,
            ip_address=request.ip_address,
        )
        request.session.flash(ERRORS_KEY, message)
        return FlowResult(success=False, redirect_to=self.settings.login_path, error=message)

    async def _establish_login(self, request: AuthRequest, user: User, remember: bool) -> User:
        """Record the login and bind ``user`` to a fresh session id."""
        if not is_active(user):
            msg = "Account is not active"
            raise AccountInactiveError(msg, user_id=user.id)

        user = await self.directory.update(
            user,
            {"last_login_at": time.time(), "last_login_ip": request.ip_address},
        )
        epoch = await self.session_manager.current_epoch(user.id)
        request.session.login(user.id, epoch)
        await self.session_manager.regenerate_session(request)
        await self.session_manager.set_remember_token(request, remember=remember)
        return user

    async def redirect(
        self, provider_name: str, request: AuthRequest, intended: str | None = None
    ) -> FlowResult:
        """Start social sign-in with ``provider_name``.

        Parameters
        ----------
        provider_name : str
            Registered provider name.
        request : AuthRequest
            The current request.
        intended : str, optional
            Where to land after sign-in. Only same-site paths are kept.

        Returns
        -------
        FlowResult
            On success ``redirect_to`` is the provider authorization URL.
        """
        try:
            provider = self._enabled_provider(provider_name)
            url = await provider.get_redirect_url(request)
            if _is_local_path(intended):
                request.session.put(INTENDED_URL_KEY, intended)
        except AuthenticationError as exc:
            return self._fail(request, provider_name, exc)
        except Exception as exc:
            logger.exception("Social redirect failed for %s", provider_name)
            return self._fail(request, provider_name, exc)
        return FlowResult(success=True, redirect_to=url)

    async def callback(self, provider_name: str, request: AuthRequest) -> FlowResult:
        """Complete social sign-in with ``provider_name``.

        Any failure after the user has been resolved invalidates the
        session, so the client is never left half logged in.
        """
        user: User | None = None
        try:
            provider = self._enabled_provider(provider_name)
            identity = await provider.handle_callback(request)

            if not identity.email:
                msg = f"{provider.display_name} returned no email address"
                raise MissingIdentityEmailError(
                    msg, provider=provider.name, display_name=provider.display_name
                )

            user = await provider.find_or_create_user(identity)
            user = await self._establish_login(request, user, remember=True)
            self.session_manager.log_session_activity(
                request,
                "social_login",
                {"provider": provider.name, "social_id": identity.external_id},
            )
        except Exception as exc:
            if not isinstance(exc, AuthenticationError):
                logger.exception("Social callback failed for %s", provider_name)
            if user is not None:
                await self.session_manager.invalidate_session(request)
            return self._fail(request, provider_name, exc)

        return FlowResult(success=True, redirect_to=self._intended_url(request), user=user)

    async def login(self, request: AuthRequest, user: User, remember: bool = False) -> FlowResult:
        """Sign in a user whose credentials were verified by the caller."""
        try:
            user = await self._establish_login(request, user, remember=remember)
            self.session_manager.log_session_activity(request, "login", {"remember": remember})
        except Exception as exc:
            if not isinstance(exc, AuthenticationError):
                logger.exception("Login failed for user %s", user.id)
            await self.session_manager.invalidate_session(request)
            return self._fail(request, None, exc)
        return FlowResult(success=True, redirect_to=self._intended_url(request), user=user)

    async def logout(self, request: AuthRequest) -> FlowResult:
        """Sign out and reset the session."""
        self.session_manager.log_session_activity(request, "logout")
        await self.session_manager.clear_remember_token(request)
        request.session.logout()
        await self.session_manager.invalidate_session(request)
        return FlowResult(success=True, redirect_to=self.settings.logout_redirect)

    async def current_user(self, request: AuthRequest) -> User | None:
        """Resolve the signed-in user, enforcing session validity and status.

        Revoked sessions and sessions of deleted users are reset and yield
        None.

        Raises
        ------
        AccountInactiveError
            If the user exists but is not active; the session is logged out
            and the message is flashed.
        """
        if not await self.session_manager.is_session_valid(request):
            if request.session.user_id:
                await self.session_manager.invalidate_session(request)
            return None

        user = await self.directory.find_by_id(request.session.user_id)
        if user is None:
            await self.session_manager.invalidate_session(request)
            return None

        if not is_active(user):
            error = AccountInactiveError("Account is not active", user_id=user.id)
            request.session.logout()
            await self.session_manager.invalidate_session(request)
            request.session.flash(ERRORS_KEY, error.user_message)
            raise error
        return user

    async def unlink(self, request: AuthRequest, provider_name: str) -> bool:
        """Unlink ``provider_name`` from the signed-in user.

        Returns
        -------
        bool
            False when no user is signed in, the provider is not linked, or
            it is the last sign-in method of a social-only user.
        """
        user = await self.current_user(request)
        if user is None:
            return False
        unlinked = await unlink_social_provider(self.directory, user, provider_name)
        if unlinked:
            self.session_manager.log_session_activity(
                request, "social_unlink", {"provider": provider_name}
            )
        return unlinked
