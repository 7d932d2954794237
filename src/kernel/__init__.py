"""
Kernel Layer

Foundational components of the credential service:
- Identity Core (password hashing, signed tokens, authentication gate)
- Permission Core (role capability checks)
- Notifications (outbound email)
- Error taxonomy shared by all layers
"""

from src.kernel.models import User, UserRole

__all__ = [
    "User",
    "UserRole",
]
