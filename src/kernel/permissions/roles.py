"""
Role capability checks.

A role grants a set of roles it satisfies; admin satisfies every built-in
role. Roles not listed grant only themselves, so adding a role never
requires touching the call sites that check for one.
"""

from typing import Mapping, Protocol, Union

from src.kernel.models.user import UserRole


class HasRole(Protocol):
    role: str


ROLE_GRANTS: Mapping[str, frozenset[str]] = {
    UserRole.USER.value: frozenset({UserRole.USER.value}),
    UserRole.ADMIN.value: frozenset({UserRole.ADMIN.value, UserRole.USER.value}),
}


def _role_value(role: Union[str, UserRole]) -> str:
    return role.value if isinstance(role, UserRole) else role


def has_role(identity: HasRole, required: Union[str, UserRole]) -> bool:
    """Return True if the identity's role satisfies the required role."""
    role = _role_value(identity.role)
    granted = ROLE_GRANTS.get(role, frozenset({role}))
    return _role_value(required) in granted
