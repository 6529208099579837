"""Queries and account-linking operations over ``User`` records.

The query helpers are pure; the linking operations persist through a
``UserDirectory``.
"""

from __future__ import annotations

import logging

from typing import TYPE_CHECKING

from .state.types import UserRole, UserStatus


if TYPE_CHECKING:
    from .state.base import UserDirectory
    from .state.types import User


logger = logging.getLogger("socialgate.auth")


def has_social_provider(user: User, provider_name: str) -> bool:
    """Check whether ``provider_name`` is linked to the user."""
    return bool(user.provider_ids.get(provider_name))


def linked_providers(user: User) -> list[str]:
    """Names of the providers linked to the user, in link order."""
    return [name for name, external_id in user.provider_ids.items() if external_id]


def can_login_with_password(user: User) -> bool:
    """Check whether the user has a local password."""
    return bool(user.password_hash)


def is_social_only(user: User) -> bool:
    """Check whether the user can only sign in through a social provider.

    True when the user has no local password and at least one linked
    provider.
    """
    return not can_login_with_password(user) and bool(linked_providers(user))


def is_active(user: User) -> bool:
    """Check whether the account is active."""
    return user.status == UserStatus.ACTIVE


def has_role(user: User, role: UserRole | str) -> bool:
    """Check whether the user holds ``role``."""
    return user.role == UserRole(role)


def is_admin(user: User) -> bool:
    return has_role(user, UserRole.ADMIN)


def is_manager(user: User) -> bool:
    return has_role(user, UserRole.MANAGER)


def is_employee(user: User) -> bool:
    return has_role(user, UserRole.EMPLOYEE)


async def unlink_social_provider(directory: UserDirectory, user: User, provider_name: str) -> bool:
    """Remove a linked provider from the user.

    A social-only user must keep at least one way to sign in, so unlinking
    their last provider is refused.

    Parameters
    ----------
    directory : UserDirectory
        Where the user is persisted.
    user : User
        The user to change (updated in place on success).
    provider_name : str
        The provider to unlink.

    Returns
    -------
    bool
        True if the provider was unlinked; False if it was not linked or is
        the last sign-in method of a social-only user.
    """
    if not has_social_provider(user, provider_name):
        return False

    if is_social_only(user) and len(linked_providers(user)) == 1:
        logger.info("Refused to unlink last provider %s for user %s", provider_name, user.id)
        return False

    provider_ids = {k: v for k, v in user.provider_ids.items() if k != provider_name}
    await directory.update(user, {"provider_ids": provider_ids})
    logger.info("Unlinked provider %s from user %s", provider_name, user.id)
    return True


async def link_social_provider(
    directory: UserDirectory,
    user: User,
    provider_name: str,
    external_id: str,
) -> User:
    """Link ``external_id`` at ``provider_name`` to the user.

    Returns
    -------
    User
        The updated user.
    """
    provider_ids = dict(user.provider_ids)
    provider_ids[provider_name] = external_id
    return await directory.update(user, {"provider_ids": provider_ids})
