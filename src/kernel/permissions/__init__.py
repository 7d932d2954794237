"""
Permission Core - role capability checks.
"""

from src.kernel.permissions.roles import ROLE_GRANTS, has_role

__all__ = [
    "ROLE_GRANTS",
    "has_role",
]
