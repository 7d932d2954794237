"""
Request authentication gate.

Turns the Authorization header of a request into a Principal or rejects the
request. Only access tokens are accepted here; verification and reset tokens
are redeemed by their own public endpoints.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

from src.kernel.errors import Unauthenticated
from src.kernel.identity.tokens import (
    UNSET_SUBJECT_ID,
    TokenError,
    TokenPurpose,
    TokenService,
)
from src.logging_config import get_logger

logger = get_logger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Principal:
    """The authenticated subject of the current request."""

    subject_id: int
    token_epoch: int = 0

    @property
    def is_set(self) -> bool:
        return self.subject_id != UNSET_SUBJECT_ID


# Request-scoped slot for the authenticated principal
principal_var: ContextVar[Optional[Principal]] = ContextVar("principal", default=None)


def current_principal() -> Principal:
    """Return the principal attached by the gate, or reject if there is none."""
    principal = principal_var.get()
    if principal is None or not principal.is_set:
        raise Unauthenticated()
    return principal


def extract_token(header_value: Optional[str]) -> Optional[str]:
    """Return the token from a raw or "Bearer <token>" header value."""
    if header_value is None:
        return None
    value = header_value.strip()
    if value.lower() == BEARER_PREFIX.strip():
        return None
    if value.lower().startswith(BEARER_PREFIX):
        value = value[len(BEARER_PREFIX):].strip()
    return value or None


class AuthGate:
    """Validates access tokens presented on incoming requests."""

    def __init__(self, token_service: TokenService):
        self.token_service = token_service

    def authenticate(self, header_value: Optional[str]) -> Principal:
        """
        Authenticate a request from its Authorization header value.

        Raises:
            Unauthenticated: Header absent or empty, or the token fails
                verification for any reason (the reason is not disclosed)
        """
        token = extract_token(header_value)
        if token is None:
            raise Unauthenticated("Not authorized: token empty")

        try:
            claims = self.token_service.decode(token, TokenPurpose.ACCESS)
        except TokenError as exc:
            logger.debug("Access token rejected", extra={"reason": exc.kind.value})
            raise Unauthenticated() from None

        principal = Principal(subject_id=claims.subject_id, token_epoch=claims.epc)
        if not principal.is_set:
            raise Unauthenticated()
        return principal

    def attach(self, header_value: Optional[str]) -> Principal:
        """Authenticate and store the principal in the request-scoped slot."""
        principal = self.authenticate(header_value)
        principal_var.set(principal)
        return principal
