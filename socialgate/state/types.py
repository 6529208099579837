"""Type definitions shared by the auth core and the state stores."""

from __future__ import annotations

import time

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from .session import Session


class StateBackend(str, Enum):
    """Available storage backends."""

    MEMORY = "memory"
    REDIS = "redis"


class UserRole(str, Enum):
    """Application roles."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class UserStatus(str, Enum):
    """Account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class SocialIdentity:
    """Normalized profile returned by a provider after a successful exchange.

    Attributes
    ----------
    external_id : str
        The provider's stable identifier for the account.
    email : str or None
        Email address. Absence is rejected by the callback flow.
    display_name : str or None
        Full name as reported by the provider.
    avatar_url : str or None
        Profile picture URL.
    nickname : str or None
        Provider handle (e.g. GitHub login), used when no display name is set.
    raw : dict[str, Any]
        The raw profile payload.
    """

    external_id: str
    email: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    nickname: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class User:
    """User record owned by the user directory.

    Attributes
    ----------
    id : str
        Directory-assigned identifier.
    email : str
        Unique email address.
    name : str
        Display name.
    provider_ids : dict[str, str]
        Linked providers, provider name to external id.
    avatar : str or None
        Avatar URL.
    password_hash : str or None
        Local password hash; None for social-only accounts.
    is_verified : bool
        Whether the account is verified.
    email_verified_at : float or None
        Unix timestamp of email verification.
    role : UserRole
        Application role.
    status : UserStatus
        Account status.
    last_login_at : float or None
        Unix timestamp of the last successful login.
    last_login_ip : str or None
        Client IP of the last successful login.
    remember_token : str or None
        Opaque persistent-login credential.
    created_at : float
        Unix timestamp of creation.
    updated_at : float
        Unix timestamp of the last update.
    """

    id: str
    email: str
    name: str = ""
    provider_ids: dict[str, str] = field(default_factory=dict)
    avatar: str | None = None
    password_hash: str | None = None
    is_verified: bool = False
    email_verified_at: float | None = None
    role: UserRole = UserRole.EMPLOYEE
    status: UserStatus = UserStatus.ACTIVE
    last_login_at: float | None = None
    last_login_ip: str | None = None
    remember_token: str | None = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "provider_ids": dict(self.provider_ids),
            "avatar": self.avatar,
            "password_hash": self.password_hash,
            "is_verified": self.is_verified,
            "email_verified_at": self.email_verified_at,
            "role": self.role.value,
            "status": self.status.value,
            "last_login_at": self.last_login_at,
            "last_login_ip": self.last_login_ip,
            "remember_token": self.remember_token,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        """Deserialize from the dict produced by ``to_dict``."""
        return cls(
            id=str(data["id"]),
            email=data["email"],
            name=data.get("name", ""),
            provider_ids=dict(data.get("provider_ids") or {}),
            avatar=data.get("avatar"),
            password_hash=data.get("password_hash"),
            is_verified=bool(data.get("is_verified", False)),
            email_verified_at=data.get("email_verified_at"),
            role=UserRole(data.get("role", UserRole.EMPLOYEE.value)),
            status=UserStatus(data.get("status", UserStatus.ACTIVE.value)),
            last_login_at=data.get("last_login_at"),
            last_login_ip=data.get("last_login_ip"),
            remember_token=data.get("remember_token"),
            created_at=data.get("created_at", time.time()),
            updated_at=data.get("updated_at", time.time()),
        )


@dataclass
class SessionRecord:
    """Persisted state of one browser session.

    Attributes
    ----------
    session_id : str
        Session identifier carried by the session cookie.
    token : str
        Anti-forgery (CSRF) token.
    user_id : str or None
        Authenticated user, if any.
    data : dict[str, Any]
        Arbitrary session data (flash messages, OAuth state, intended URL).
    created_at : float
        Unix timestamp when the session was created.
    last_activity : float
        Unix timestamp of the last save.
    expires_at : float or None
        Unix timestamp after which the session is discarded.
    auth_epoch : int
        The user's session epoch at login time.
    """

    session_id: str
    token: str = ""
    user_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    expires_at: float | None = None
    auth_epoch: int = 0

    @property
    def is_expired(self) -> bool:
        """Check if the session has expired."""
        return self.expires_at is not None and self.expires_at < time.time()


@dataclass
class AuthRequest:
    """Per-request context passed through the authentication flows.

    Attributes
    ----------
    session : Session
        The host session for this request.
    ip_address : str or None
        Client IP address.
    user_agent : str or None
        Client User-Agent header.
    query_params : dict[str, str]
        Query string parameters (OAuth callback ``code``/``state``).
    """

    session: Session
    ip_address: str | None = None
    user_agent: str | None = None
    query_params: dict[str, str] = field(default_factory=dict)


@dataclass
class FlowResult:
    """Outcome of a controller flow, translated for the HTTP layer.

    Attributes
    ----------
    success : bool
        Whether the flow completed.
    redirect_to : str
        Where the client should be sent next.
    error : str or None
        User-facing error message if the flow was rejected.
    user : User or None
        The authenticated user on success.
    """

    success: bool
    redirect_to: str
    error: str | None = None
    user: User | None = None


# Type aliases for clarity
UserId = str
SessionId = str
ProviderName = str
