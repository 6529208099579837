"""socialgate exception hierarchy.

All socialgate-specific exceptions inherit from SocialGateException, enabling
catch-all handling while supporting specific error types.
"""

from __future__ import annotations

from typing import Any


class SocialGateException(Exception):
    """Base exception for all socialgate errors."""

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize socialgate exception.

        Parameters
        ----------
        message : str
            Human-readable error message.
        **context : Any
            Additional context (provider, user_id, session_id, etc.).
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        """Format exception with context."""
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class AuthenticationError(SocialGateException):
    """Base exception for all authentication failures.

    Every subclass carries a ``user_message``: the text that is safe to show
    to the person attempting to sign in.
    """

    default_user_message = "Authentication failed. Please try again or contact support."

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        user_message: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize authentication error.

        Parameters
        ----------
        message : str
            Human-readable error message (for logs).
        provider : str, optional
            The provider name (e.g., "google", "github").
        user_message : str, optional
            Message shown to the end user. Defaults to the class default.
        **context : Any
            Additional context.
        """
        super().__init__(message, provider=provider, **context)
        self.provider = provider
        self.user_message = user_message or self.default_user_message


class UnknownProviderError(AuthenticationError):
    """Requested provider name is not registered."""

    default_user_message = "Invalid authentication provider."


class ProviderDisabledError(AuthenticationError):
    """Provider is registered but not enabled or not fully configured."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        display_name: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize disabled-provider error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider name.
        display_name : str, optional
            Human label used in the user-facing message.
        **context : Any
            Additional context.
        """
        label = display_name or (provider or "This provider").capitalize()
        super().__init__(
            message,
            provider=provider,
            user_message=f"{label} authentication is currently disabled.",
            **context,
        )


class ProviderCallbackError(AuthenticationError):
    """The OAuth exchange with the provider failed.

    Wraps network failures, provider-reported errors, missing authorization
    codes and malformed profile payloads.
    """


class InvalidStateError(ProviderCallbackError):
    """The callback ``state`` does not match the one issued for this session."""

    default_user_message = "Authentication session expired. Please try again."


class MissingIdentityEmailError(AuthenticationError):
    """The provider returned an identity without an email address."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        display_name: str | None = None,
        **context: Any,
    ) -> None:
        """Initialize missing-email error.

        Parameters
        ----------
        message : str
            Human-readable error message.
        provider : str, optional
            The provider name.
        display_name : str, optional
            Human label used in the user-facing message.
        **context : Any
            Additional context.
        """
        label = display_name or (provider or "the provider").capitalize()
        super().__init__(
            message,
            provider=provider,
            user_message=(
                f"Unable to retrieve email from {label}. Please ensure your email is public."
            ),
            **context,
        )


class AccountInactiveError(AuthenticationError):
    """The authenticated user account is not active."""

    default_user_message = "Your account is not active. Please contact an administrator."


class InvalidProviderTypeError(SocialGateException, TypeError):
    """A provider type passed to the registry does not implement the contract.

    Programmer error raised by ``ProviderRegistry.register_provider``.
    """


class UserDirectoryError(SocialGateException):
    """Base exception for user directory failures."""


class DuplicateUserError(UserDirectoryError):
    """A user with the same email already exists."""


class UserNotFoundError(UserDirectoryError):
    """The referenced user does not exist in the directory."""


class SessionStoreError(SocialGateException):
    """Session persistence failed."""
