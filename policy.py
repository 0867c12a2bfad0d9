from typing import Iterable, Optional

from auth import Identity
from directory import normalize_email
from errors import AuthorizationError

ADMIN = "admin"


def require_role(identity: Optional[Identity], allowed_roles: Iterable[str] = (ADMIN,)) -> None:
    allowed = list(allowed_roles)
    if identity is None or not identity.role or identity.role not in allowed:
        raise AuthorizationError(f"Access denied. Required role: {' or '.join(allowed)}")


def can_act_on(identity: Optional[Identity], owner_email: Optional[str]) -> bool:
    """Owners act on their own resources; everyone else needs the admin role."""
    if identity is None:
        return False
    if owner_email and normalize_email(owner_email) == normalize_email(identity.email):
        return True
    return identity.role == ADMIN


def require_owner_or_admin(identity: Optional[Identity], owner_email: Optional[str],
                           message: str = "Access denied") -> None:
    if not can_act_on(identity, owner_email):
        raise AuthorizationError(message)
