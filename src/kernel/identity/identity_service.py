"""
Identity service for account lifecycle operations.

Sequences the password hasher, the token service, the user repository and
the email sender for signup, login, email verification and password
changes. Every outcome other than success is raised as an APIError.
"""

import asyncio
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence
from urllib.parse import urlencode

from src.config import Settings, get_settings
from src.kernel.errors import (
    ConflictError,
    DeliveryError,
    EmailAlreadyVerifiedError,
    EmailNotVerifiedError,
    ForbiddenError,
    NotFoundError,
    Unauthenticated,
)
from src.kernel.identity.auth_gate import Principal
from src.kernel.identity.password import PasswordHasher, get_password_hasher
from src.kernel.identity.repository import UserRepository
from src.kernel.identity.tokens import (
    TokenClaims,
    TokenError,
    TokenPurpose,
    TokenService,
    get_token_service,
)
from src.kernel.models.user import User, UserRole
from src.kernel.notifications.email import EmailSender, get_email_sender
from src.kernel.permissions.roles import has_role
from src.logging_config import get_logger

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TOKEN = "Invalid or expired token"

PASSWORD_UPDATED_SUBJECT = "Password Updated Successfully"
PASSWORD_UPDATED_BODY = (
    "Your password has been updated successfully. If you did not perform "
    "this action, please contact support immediately."
)


@lru_cache
def _timing_digest(rounds: int) -> str:
    """Digest verified against when the email is unknown, so both paths cost one bcrypt check."""
    return PasswordHasher(rounds).hash("unknown-account-timing-equalizer")


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login."""

    user: User
    access_token: str
    expires_in: int  # Seconds until the access token expires


class IdentityService:
    """
    Service for user identity operations.

    Handles signup, login, email verification, password reset and change,
    and identity resolution for authenticated requests.
    """

    def __init__(
        self,
        repository: UserRepository,
        token_service: Optional[TokenService] = None,
        email_sender: Optional[EmailSender] = None,
        hasher: Optional[PasswordHasher] = None,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.token_service = token_service or get_token_service()
        self.email_sender = email_sender or get_email_sender()
        self.hasher = hasher or get_password_hasher()
        self.settings = settings or get_settings()

    async def signup(
        self,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """
        Register a new, unverified user and mail them a verification link.

        Raises:
            ConflictError: If the email is already registered
            HashingFailure: If the password could not be hashed
            DeliveryError: If the verification email could not be sent
        """
        email = email.strip()
        if await self.repository.find_by_email(email) is not None:
            raise ConflictError("Email already taken")

        user = User(
            email=email,
            password_hash=await self._hash(password),
            first_name=first_name,
            last_name=last_name,
            role=UserRole.USER.value,
            is_active=True,
            email_verified=False,
            token_epoch=0,
        )
        await self.repository.create(user)
        logger.info("User signed up", extra={"user_id": user.id})

        await self._send_verification_email(user)
        return user

    async def login(self, email: str, password: str) -> LoginResult:
        """
        Authenticate a user by email and password and issue an access token.

        Unknown email, wrong password and disabled account are reported
        identically so the response does not reveal which accounts exist.

        Raises:
            Unauthenticated: If the credentials are not valid
            EmailNotVerifiedError: If the credentials are valid but the
                email has not been verified
        """
        user = await self.repository.find_by_email(email)
        if user is None:
            dummy = await asyncio.to_thread(_timing_digest, self.hasher.rounds)
            await self._verify(password, dummy)
            logger.info("Login failed", extra={"reason": "unknown_email"})
            raise Unauthenticated(INVALID_CREDENTIALS)

        if not await self._verify(password, user.password_hash):
            logger.info("Login failed", extra={"user_id": user.id, "reason": "bad_password"})
            raise Unauthenticated(INVALID_CREDENTIALS)

        if not user.is_active:
            logger.info("Login failed", extra={"user_id": user.id, "reason": "inactive"})
            raise Unauthenticated(INVALID_CREDENTIALS)

        if not user.email_verified:
            raise EmailNotVerifiedError()

        if self.hasher.needs_rehash(user.password_hash):
            await self.repository.update_password_hash(user.id, await self._hash(password))
            logger.info("Password digest upgraded", extra={"user_id": user.id})

        token = self.token_service.issue(
            TokenPurpose.ACCESS,
            user.id,
            epoch=user.token_epoch,
        )
        logger.info("User logged in", extra={"user_id": user.id})
        return LoginResult(
            user=user,
            access_token=token,
            expires_in=self.token_service.lifetime_seconds(TokenPurpose.ACCESS),
        )

    async def verify_email(self, token: str) -> User:
        """
        Redeem an email verification token.

        Raises:
            Unauthenticated: If the token is invalid, expired or not a verification token
            NotFoundError: If the user no longer exists
            EmailAlreadyVerifiedError: If the email was already verified
        """
        claims = self._redeem(token, TokenPurpose.EMAIL_VERIFY)

        user = await self.repository.find_by_id(claims.subject_id)
        if user is None:
            raise NotFoundError("User")
        if user.email_verified:
            raise EmailAlreadyVerifiedError()

        await self.repository.set_email_verified(user.id)
        logger.info("Email verified", extra={"user_id": user.id})
        return user

    async def request_password_reset(self, email: str) -> None:
        """
        Mail a password reset link if the email belongs to an active account.

        Returns normally whether or not the account exists; only the server
        log records which case occurred.

        Raises:
            DeliveryError: If the reset email could not be sent
        """
        user = await self.repository.find_by_email(email)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return

        token = self.token_service.issue(
            TokenPurpose.PASSWORD_RESET,
            user.id,
            epoch=user.token_epoch,
        )
        link = f"{self.settings.public_base_url}/reset-password?{urlencode({'token': token})}"
        await self.email_sender.send(
            user.email,
            "Password Reset Request",
            f"Click the link to reset your password: {link}",
        )
        logger.info("Password reset email sent", extra={"user_id": user.id})

    async def reset_password(self, token: str, new_password: str) -> None:
        """
        Redeem a password reset token and set a new password.

        With token revocation enabled the reset bumps the user's token epoch,
        so the same reset token (and every earlier access token) stops working.

        Raises:
            Unauthenticated: If the token is invalid, expired, of the wrong
                purpose, or issued before the last password change
            NotFoundError: If the user no longer exists
        """
        claims = self._redeem(token, TokenPurpose.PASSWORD_RESET)

        user = await self.repository.find_by_id(claims.subject_id)
        if user is None:
            raise NotFoundError("User")
        if claims.epc != user.token_epoch:
            logger.info("Stale password reset token", extra={"user_id": user.id})
            raise Unauthenticated(INVALID_TOKEN)

        await self._replace_password(user, new_password, redeemed_epoch=claims.epc)
        logger.info("Password reset", extra={"user_id": user.id})

    async def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        """
        Change the password of an authenticated user.

        Raises:
            NotFoundError: If the user no longer exists
            Unauthenticated: If the old password is wrong
        """
        user = await self.get_profile(user_id)
        if not await self._verify(old_password, user.password_hash):
            raise Unauthenticated("Old password is incorrect")

        await self._replace_password(user, new_password)
        logger.info("Password changed", extra={"user_id": user.id})

    async def resolve_principal(self, principal: Principal) -> User:
        """
        Load the current identity behind an authenticated principal.

        The token only proves who the caller is; role, verification and
        activity are read fresh from the repository.

        Raises:
            Unauthenticated: If the user is gone, disabled, or the token
                predates the user's last password change
        """
        user = await self.repository.find_by_id(principal.subject_id)
        if user is None or not user.is_active:
            raise Unauthenticated()
        if principal.token_epoch != user.token_epoch:
            raise Unauthenticated()
        return user

    async def get_profile(self, user_id: int) -> User:
        """Get a user by ID or raise NotFoundError."""
        user = await self.repository.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    async def update_profile(
        self,
        user_id: int,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> User:
        """Update name fields; empty values leave the field unchanged."""
        return await self.repository.update_profile(user_id, first_name, last_name)

    async def list_users(self, actor: User) -> Sequence[User]:
        """List all users. Admin only."""
        if not has_role(actor, UserRole.ADMIN):
            raise ForbiddenError()
        return await self.repository.list_all()

    def _redeem(self, token: str, purpose: TokenPurpose) -> TokenClaims:
        try:
            return self.token_service.decode(token, purpose)
        except TokenError as exc:
            logger.info(
                "Token redemption rejected",
                extra={"purpose": purpose.value, "reason": exc.kind.value},
            )
            raise Unauthenticated(INVALID_TOKEN) from None

    async def _replace_password(
        self, user: User, new_password: str, redeemed_epoch: Optional[int] = None
    ) -> None:
        new_hash = await self._hash(new_password)
        if self.settings.revoke_tokens_on_password_change:
            if redeemed_epoch is None:
                await self.repository.bump_token_epoch(user.id)
            elif not await self.repository.bump_token_epoch_if(user.id, redeemed_epoch):
                # Another redemption of the same token won the bump
                logger.info("Stale password reset token", extra={"user_id": user.id})
                raise Unauthenticated(INVALID_TOKEN)
        await self.repository.update_password_hash(user.id, new_hash)

        try:
            await self.email_sender.send(user.email, PASSWORD_UPDATED_SUBJECT, PASSWORD_UPDATED_BODY)
        except DeliveryError:
            # The password is already changed; the notice is best-effort
            logger.warning("Password change notice not delivered", extra={"user_id": user.id})

    async def _send_verification_email(self, user: User) -> None:
        token = self.token_service.issue(TokenPurpose.EMAIL_VERIFY, user.id)
        link = (
            f"{self.settings.public_base_url}{self.settings.api_v1_prefix}"
            f"/auth/verify?{urlencode({'token': token})}"
        )
        await self.email_sender.send(
            user.email,
            "Verify Your Email",
            f"Click to verify your email: {link}",
        )

    async def _hash(self, password: str) -> str:
        # bcrypt is CPU-bound; keep it off the event loop
        return await asyncio.to_thread(self.hasher.hash, password)

    async def _verify(self, password: str, digest: str) -> bool:
        return await asyncio.to_thread(self.hasher.verify, password, digest)
