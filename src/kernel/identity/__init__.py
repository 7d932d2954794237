"""
Identity Core - credentials, tokens and the request authentication gate.
"""

from src.kernel.identity.password import PasswordHasher, hash_password, verify_password
from src.kernel.identity.tokens import (
    TokenClaims,
    TokenError,
    TokenErrorKind,
    TokenPolicy,
    TokenPurpose,
    TokenService,
    get_token_service,
)
from src.kernel.identity.auth_gate import AuthGate, Principal, current_principal
from src.kernel.identity.repository import SqlAlchemyUserRepository, UniquenessError, UserRepository
from src.kernel.identity.identity_service import IdentityService, LoginResult

__all__ = [
    "PasswordHasher",
    "hash_password",
    "verify_password",
    "TokenClaims",
    "TokenError",
    "TokenErrorKind",
    "TokenPolicy",
    "TokenPurpose",
    "TokenService",
    "get_token_service",
    "AuthGate",
    "Principal",
    "current_principal",
    "SqlAlchemyUserRepository",
    "UniquenessError",
    "UserRepository",
    "IdentityService",
    "LoginResult",
]
