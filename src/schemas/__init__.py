"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.auth import (
    SignupRequest,
    LoginRequest,
    LoginResponse,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
    UserResponse,
    UserProfileUpdate,
    UserListResponse,
)
from src.schemas.common import (
    ErrorResponse,
    MessageResponse,
    HealthResponse,
)

__all__ = [
    # Auth
    "SignupRequest",
    "LoginRequest",
    "LoginResponse",
    "ForgotPasswordRequest",
    "ResetPasswordRequest",
    "ChangePasswordRequest",
    "UserResponse",
    "UserProfileUpdate",
    "UserListResponse",
    # Common
    "ErrorResponse",
    "MessageResponse",
    "HealthResponse",
]
