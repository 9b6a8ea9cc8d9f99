"""Caller identity as supplied by the external identity provider.

The storefront never authenticates anyone: it receives an opaque user id and
an admin flag, or nothing at all. No identity means the operation is
forbidden.
"""

from dataclasses import dataclass

from verticals.storefront.errors import Forbidden


@dataclass(frozen=True)
class Identity:
    user_id: str
    is_admin: bool = False


def require_user(identity: Identity | None) -> Identity:
    if identity is None or not identity.user_id:
        raise Forbidden("Please sign in to continue")
    return identity


def require_admin(identity: Identity | None) -> Identity:
    identity = require_user(identity)
    if not identity.is_admin:
        raise Forbidden("Administrator access required")
    return identity


def require_owner_or_admin(identity: Identity | None, owner_id: str) -> Identity:
    identity = require_user(identity)
    if not identity.is_admin and identity.user_id != owner_id:
        raise Forbidden("This rental belongs to another user")
    return identity
