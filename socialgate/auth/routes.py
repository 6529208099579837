"""FastAPI routes for social authentication.

Provides provider listing, redirect, callback, logout, session info and
unlink endpoints over an ``AuthFlowController``. The session cookie
carries the session id; each request loads (or starts) its session and
saves it before responding.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import collections
import logging
import threading
import time

from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from ..exceptions import AccountInactiveError
from ..state.session import Session
from ..state.types import AuthRequest
from ..users import linked_providers


if TYPE_CHECKING:
    from ..config import SocialGateSettings
    from .flow import AuthFlowController
    from .registry import ProviderRegistry
    from .session import SessionManager


logger = logging.getLogger("socialgate.auth")


# ── CSRF Origin Verification ────────────────────────────────────────


def _verify_csrf_origin(request: Request, *, trusted_origins: list[str] | None = None) -> bool:
    """Verify that POST requests originate from a trusted origin.

    Checks the ``Origin`` header first, then falls back to ``Referer``.
    Same-origin requests are always accepted; ``trusted_origins`` adds
    further allowed origins (e.g. ``["https://app.example.com"]``).
    """
    origin = request.headers.get("origin")
    referer = request.headers.get("referer")

    source_origin: str | None = None
    if origin and origin != "null":
        source_origin = origin.rstrip("/")
    elif referer:
        parsed = urlparse(referer)
        if parsed.scheme and parsed.netloc:
            source_origin = f"{parsed.scheme}://{parsed.netloc}"

    if source_origin is None:
        # POST without Origin/Referer is rejected (fail-closed)
        return False

    request_origin = f"{request.url.scheme}://{request.url.netloc}".rstrip("/")
    if source_origin == request_origin:
        return True
    return source_origin in [o.rstrip("/") for o in trusted_origins or []]


# ── Login Rate Limiter ───────────────────────────────────────────────


class LoginRateLimiter:
    """In-process sliding-window rate limiter for sign-in redirects.

    Limits by client IP address with a configurable window and max requests.

    Parameters
    ----------
    max_requests : int
        Maximum number of requests allowed per window.
    window_seconds : float
        Time window in seconds.
    """

    def __init__(self, max_requests: int = 10, window_seconds: float = 60.0) -> None:
        self._max_requests = max_requests
        self._window = window_seconds
        self._requests: dict[str, collections.deque] = {}
        self._lock = threading.Lock()

    def is_allowed(self, client_ip: str) -> bool:
        """Check if a request from *client_ip* is allowed."""
        now = time.monotonic()
        with self._lock:
            dq = self._requests.setdefault(client_ip, collections.deque())
            # Evict old entries outside the window
            while dq and dq[0] < now - self._window:
                dq.popleft()

            if len(dq) >= self._max_requests:
                return False

            dq.append(now)
            self._prune(now)
            return True

    def _prune(self, now: float) -> None:
        # Drop IPs whose whole history has left the window; caller holds the lock
        cutoff = now - self._window
        stale = [ip for ip, dq in self._requests.items() if not dq or dq[-1] < cutoff]
        for ip in stale:
            del self._requests[ip]

    def __len__(self) -> int:
        """Number of client IPs currently tracked."""
        with self._lock:
            return len(self._requests)

    def reset(self) -> None:
        """Clear all rate limit state."""
        with self._lock:
            self._requests.clear()


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _error(status_code: int, error: str, description: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "error_description": description},
    )


def create_auth_router(  # noqa: C901
    registry: ProviderRegistry,
    session_manager: SessionManager,
    controller: AuthFlowController,
    settings: SocialGateSettings,
    rate_limiter: LoginRateLimiter | None = None,
) -> APIRouter:
    """Create a FastAPI router with the social authentication routes.

    Parameters
    ----------
    registry : ProviderRegistry
        Provider registry (listing and status endpoints).
    session_manager : SessionManager
        Session lifecycle operations.
    controller : AuthFlowController
        Flow orchestration.
    settings : SocialGateSettings
        Loaded settings (cookie, lifetime, flow paths, trusted origins).
    rate_limiter : LoginRateLimiter, optional
        Limiter for the redirect endpoint (built from settings if omitted).

    Returns
    -------
    APIRouter
        Router with ``/auth/*`` routes.
    """
    router = APIRouter(prefix="/auth", tags=["authentication"])
    session_settings = settings.session
    flow_settings = settings.flow
    session_ttl = session_settings.lifetime * 60
    limiter = rate_limiter or LoginRateLimiter(
        max_requests=flow_settings.login_rate_limit,
        window_seconds=flow_settings.login_rate_window,
    )

    async def load_request(request: Request) -> AuthRequest:
        session = await Session.load(
            session_manager.session_store,
            request.cookies.get(session_settings.cookie),
            ttl=session_ttl,
        )
        return AuthRequest(
            session=session,
            ip_address=_client_ip(request),
            user_agent=request.headers.get("user-agent"),
            query_params=dict(request.query_params),
        )

    async def finish(request: Request, auth_request: AuthRequest, response: Response) -> Response:
        """Persist the session and point the cookie at its current id."""
        await auth_request.session.save()
        response.set_cookie(
            key=session_settings.cookie,
            value=auth_request.session.id,
            httponly=True,
            secure=session_settings.secure_cookie or request.url.scheme == "https",
            samesite=session_settings.same_site,
            max_age=session_ttl,
        )
        return response

    def csrf_ok(request: Request) -> bool:
        return _verify_csrf_origin(request, trusted_origins=flow_settings.trusted_origins)

    @router.get("/providers")
    async def list_providers() -> JSONResponse:
        """List the providers currently offered for sign-in."""
        return JSONResponse(
            content=[
                {"name": name, "display_name": provider.display_name}
                for name, provider in registry.get_enabled_providers().items()
            ]
        )

    @router.get("/providers/status")
    async def providers_status() -> JSONResponse:
        """Configuration status of every registered provider."""
        return JSONResponse(content=registry.get_provider_status())

    @router.get("/{provider}/redirect")
    async def provider_redirect(
        provider: str,
        request: Request,
        next_url: str | None = Query(default=None, alias="next"),
    ) -> Response:
        """Send the browser to the provider's authorization page.

        Rate limited per client IP. A same-site ``next`` path is where the
        callback lands after sign-in.
        """
        if not limiter.is_allowed(_client_ip(request) or "unknown"):
            return _error(429, "rate_limited", "Too many login attempts. Please try again later.")

        auth_request = await load_request(request)
        result = await controller.redirect(provider, auth_request, intended=next_url)
        return await finish(
            request, auth_request, RedirectResponse(url=result.redirect_to, status_code=302)
        )

    @router.get("/{provider}/callback")
    async def provider_callback(provider: str, request: Request) -> Response:
        """Complete sign-in and redirect into the application."""
        auth_request = await load_request(request)
        result = await controller.callback(provider, auth_request)
        if result.success and result.user is not None:
            logger.info("User %s authenticated via %s", result.user.id, provider)
        return await finish(
            request, auth_request, RedirectResponse(url=result.redirect_to, status_code=302)
        )

    @router.post("/logout")
    async def logout(request: Request) -> Response:
        """Log out the current user and reset the session."""
        if not csrf_ok(request):
            return _error(403, "csrf_failed", "Origin verification failed")

        auth_request = await load_request(request)
        result = await controller.logout(auth_request)
        return await finish(
            request, auth_request, RedirectResponse(url=result.redirect_to, status_code=302)
        )

    @router.get("/session")
    async def session_info(request: Request) -> Response:
        """Return the current session and signed-in user."""
        auth_request = await load_request(request)
        try:
            user = await controller.current_user(auth_request)
        except AccountInactiveError as exc:
            return await finish(
                request, auth_request, _error(403, "account_inactive", exc.user_message)
            )

        if user is None:
            return await finish(
                request, auth_request, _error(401, "not_authenticated", "Not signed in")
            )

        content: dict[str, Any] = session_manager.get_session_info(auth_request)
        content["user"] = {
            "id": user.id,
            "email": user.email,
            "name": user.name,
            "avatar": user.avatar,
            "role": user.role.value,
            "providers": linked_providers(user),
        }
        return await finish(request, auth_request, JSONResponse(content=content))

    @router.post("/{provider}/unlink")
    async def unlink_provider(provider: str, request: Request) -> Response:
        """Unlink a provider from the signed-in user."""
        if not csrf_ok(request):
            return _error(403, "csrf_failed", "Origin verification failed")

        auth_request = await load_request(request)
        try:
            user = await controller.current_user(auth_request)
        except AccountInactiveError as exc:
            return await finish(
                request, auth_request, _error(403, "account_inactive", exc.user_message)
            )
        if user is None:
            return await finish(
                request, auth_request, _error(401, "not_authenticated", "Not signed in")
            )

        if not await controller.unlink(auth_request, provider):
            return await finish(
                request,
                auth_request,
                _error(
                    409,
                    "unlink_rejected",
                    "This provider is not linked or is your only way to sign in.",
                ),
            )
        return await finish(
            request, auth_request, JSONResponse(content={"success": True, "provider": provider})
        )

    return router
