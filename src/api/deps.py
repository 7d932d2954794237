"""
FastAPI dependencies for authentication, authorization, and database sessions.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.database import get_db
from src.kernel.errors import ForbiddenError
from src.kernel.identity.auth_gate import AuthGate, Principal, current_principal
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.repository import SqlAlchemyUserRepository
from src.kernel.identity.tokens import TokenService, get_token_service
from src.kernel.models.user import User, UserRole
from src.kernel.notifications.email import EmailSender, get_email_sender
from src.kernel.permissions.roles import has_role

AUTHORIZATION_HEADER = "Authorization"


DbSession = Annotated[AsyncSession, Depends(get_db)]
Tokens = Annotated[TokenService, Depends(get_token_service)]
Mailer = Annotated[EmailSender, Depends(get_email_sender)]


def get_identity_service(db: DbSession, tokens: Tokens, mailer: Mailer) -> IdentityService:
    """Build the identity service for this request's session."""
    return IdentityService(
        repository=SqlAlchemyUserRepository(db),
        token_service=tokens,
        email_sender=mailer,
    )


Identity = Annotated[IdentityService, Depends(get_identity_service)]


async def get_principal(request: Request, tokens: Tokens) -> Principal:
    """
    Run the auth gate on the request's Authorization header.

    The principal is attached to the request-scoped context var; a missing or
    invalid token raises Unauthenticated (401).
    """
    return AuthGate(tokens).attach(request.headers.get(AUTHORIZATION_HEADER))


CurrentPrincipal = Annotated[Principal, Depends(get_principal)]


async def get_current_user(_: CurrentPrincipal, identity: Identity) -> User:
    """Resolve the principal the gate attached for this request, or raise 401."""
    return await identity.resolve_principal(current_principal())


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(role: UserRole):
    """
    Dependency factory requiring the current user to hold a role.

    Usage:
        @router.get("/admin/users")
        async def list_users(user: Annotated[User, Depends(require_role(UserRole.ADMIN))]):
            ...
    """

    async def _check(user: CurrentUser) -> User:
        if not has_role(user, role):
            raise ForbiddenError("Access denied")
        return user

    return _check


AdminUser = Annotated[User, Depends(require_role(UserRole.ADMIN))]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)
