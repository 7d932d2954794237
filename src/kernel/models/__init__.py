"""
Kernel Data Models

SQLAlchemy models for persisted identities.
"""

from src.kernel.models.base import Base, TimestampMixin
from src.kernel.models.user import User, UserRole

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "UserRole",
]
