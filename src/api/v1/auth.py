"""
Authentication endpoints.

Access tokens travel in the Authorization header. Verification tokens arrive
as a query parameter and reset tokens in the JSON body; neither is accepted
as a bearer credential.
"""

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentUser, Identity
from src.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ResetPasswordRequest,
    SignupRequest,
)
from src.schemas.common import MessageResponse

router = APIRouter()

# Same reply whether or not the address is registered
FORGOT_PASSWORD_MESSAGE = "If an account exists for this email, a password reset link has been sent"


@router.post("/signup", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def signup(data: SignupRequest, identity: Identity):
    """
    Register a new user account.

    The account cannot log in until the emailed verification link is opened.
    """
    await identity.signup(
        email=data.email,
        password=data.password,
        first_name=data.first_name,
        last_name=data.last_name,
    )
    return MessageResponse(message="User created and verification mail sent")


@router.post("/login", response_model=LoginResponse)
async def login(data: LoginRequest, identity: Identity):
    """Authenticate user and return an access token."""
    result = await identity.login(email=data.email, password=data.password)
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
    )


@router.get("/verify", response_model=MessageResponse)
async def verify_email(identity: Identity, token: str = Query(..., min_length=1)):
    """Redeem the emailed verification token."""
    await identity.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(data: ForgotPasswordRequest, identity: Identity):
    """Email a password reset link to the account, if there is one."""
    await identity.request_password_reset(data.email)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordRequest, identity: Identity):
    """Redeem a password reset token and set a new password."""
    await identity.reset_password(data.token, data.new_password)
    return MessageResponse(message="Password reset successfully")


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    user: CurrentUser,
    identity: Identity,
):
    """
    Change the current user's password.

    Tokens issued before the change stop working; log in again afterwards.
    """
    await identity.change_password(
        user_id=user.id,
        old_password=data.old_password,
        new_password=data.new_password,
    )
    return MessageResponse(message="Password changed successfully")
