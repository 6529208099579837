"""Session lifecycle management for authenticated requests.

Wraps the host session with the operations the sign-in and sign-out
flows need: identifier rotation, invalidation, validity checks,
remember-token issuance, activity logging and global logout.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging
import secrets
import string

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from ..log import log_event


if TYPE_CHECKING:
    from ..config import SessionSettings
    from ..state.base import SessionStore, UserDirectory
    from ..state.types import AuthRequest, User


logger = logging.getLogger("socialgate.auth")

REMEMBER_TOKEN_LENGTH = 60
_TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_remember_token(length: int = REMEMBER_TOKEN_LENGTH) -> str:
    """Random alphanumeric persistent-login credential."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


class SessionManager:
    """Session lifecycle operations over a session store and user directory.

    Parameters
    ----------
    directory : UserDirectory
        Where users (and their remember tokens) are persisted.
    session_store : SessionStore
        Where session records and per-user epochs are persisted.
    settings : SessionSettings, optional
        Session settings (lifetime is reported by ``get_session_info``).
    """

    def __init__(
        self,
        directory: UserDirectory,
        session_store: SessionStore,
        settings: SessionSettings | None = None,
    ) -> None:
        if settings is None:
            from ..config import SessionSettings

            settings = SessionSettings()
        self.directory = directory
        self.session_store = session_store
        self.settings = settings

    async def _current_user(self, request: AuthRequest) -> User | None:
        user_id = request.session.user_id
        if not user_id:
            return None
        return await self.directory.find_by_id(user_id)

    async def regenerate_session(self, request: AuthRequest) -> str:
        """Move the session to a new id, keeping its data.

        Returns
        -------
        str
            The new session id.
        """
        old_id = request.session.id
        new_id = await request.session.regenerate()
        log_event(
            logger,
            logging.INFO,
            "Session regenerated",
            user_id=request.session.user_id,
            old_session_id=old_id,
            new_session_id=new_id,
            ip_address=request.ip_address,
        )
        return new_id

    async def invalidate_session(self, request: AuthRequest) -> str:
        """Flush the session and move it to a new id and anti-forgery token.

        Returns
        -------
        str
            The new session id.
        """
        user_id = request.session.user_id
        old_id = request.session.id
        new_id = await request.session.invalidate()
        log_event(
            logger,
            logging.INFO,
            "Session invalidated",
            user_id=user_id,
            session_id=old_id,
            ip_address=request.ip_address,
        )
        return new_id

    async def is_session_valid(self, request: AuthRequest) -> bool:
        """Check that the session is authenticated and not revoked.

        A session is valid when it has a user, an anti-forgery token, and
        was issued in the user's current session epoch.
        """
        session = request.session
        if not session.user_id or not session.token:
            return False
        current_epoch = await self.session_store.get_user_epoch(session.user_id)
        return session.auth_epoch == current_epoch

    async def set_remember_token(self, request: AuthRequest, remember: bool = False) -> None:
        """Issue a remember token for the current user.

        Only issues a token when ``remember`` is set and the user has none;
        ``remember=False`` leaves any existing token in place.
        """
        if not remember:
            return
        user = await self._current_user(request)
        if user is None or user.remember_token:
            return
        await self.directory.update(user, {"remember_token": generate_remember_token()})
        logger.debug("Remember token issued for user %s", user.id)

    async def clear_remember_token(self, request: AuthRequest) -> None:
        """Remove the current user's remember token."""
        user = await self._current_user(request)
        if user is None or user.remember_token is None:
            return
        await self.directory.update(user, {"remember_token": None})
        logger.debug("Remember token cleared for user %s", user.id)

    def log_session_activity(
        self,
        request: AuthRequest,
        activity: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Record a session event (never raises)."""
        payload: dict[str, Any] = {
            "activity": activity,
            "user_id": request.session.user_id,
            "session_id": request.session.id,
            "ip_address": request.ip_address,
            "user_agent": request.user_agent,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            payload.update(context or {})
        except (TypeError, ValueError):
            logger.debug("Ignoring malformed context for session activity %s", activity)
        log_event(logger, logging.INFO, "Session activity", **payload)

    async def force_logout_all_sessions(self, user_id: str) -> int:
        """Revoke every session of ``user_id``.

        Bumps the user's session epoch, so copies of old sessions fail
        ``is_session_valid``, and deletes the stored sessions.

        Returns
        -------
        int
            Number of stored sessions deleted.
        """
        epoch = await self.session_store.bump_user_epoch(user_id)
        deleted = await self.session_store.delete_user_sessions(user_id)
        log_event(
            logger,
            logging.WARNING,
            "All sessions force-logged out",
            user_id=user_id,
            epoch=epoch,
            deleted_sessions=deleted,
        )
        return deleted

    async def current_epoch(self, user_id: str) -> int:
        """The user's current session epoch (recorded on login)."""
        return await self.session_store.get_user_epoch(user_id)

    def get_session_info(self, request: AuthRequest) -> dict[str, Any]:
        """Summary of the current session for diagnostics and the API."""
        session = request.session
        return {
            "session_id": session.id,
            "user_id": session.user_id,
            "is_authenticated": session.user_id is not None,
            "session_lifetime": self.settings.lifetime,
            "last_activity": session.last_activity,
            "csrf_token": session.token,
            "ip_address": request.ip_address,
            "user_agent": request.user_agent,
        }
