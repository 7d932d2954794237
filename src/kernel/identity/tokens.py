"""
Signed, purpose-typed, expiring tokens.

Three purposes share one format (a JWS compact string with HMAC):

    access          bearer credential for gated requests
    email_verify    mailed link proving ownership of an address
    password_reset  mailed link allowing one password change

Each purpose is signed with its own key, so a key leak is contained to its
purpose and a token minted for one purpose never verifies as another.
Nothing is stored server side: a token is a pure function of its claims and
the key.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Callable, Mapping, Optional

from jose import JWTError, jws, jwt
from jose.exceptions import JWSError
from jose.utils import base64url_decode, base64url_encode
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from src.config import Settings, get_settings
from src.logging_config import get_logger

logger = get_logger(__name__)

# Keyed-MAC algorithms only; the algorithm is never taken from the token
SUPPORTED_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})

# Identity ids start at 1; 0 means "no subject"
UNSET_SUBJECT_ID = 0


class TokenPurpose(str, Enum):
    """What a token may be redeemed for."""

    ACCESS = "access"
    EMAIL_VERIFY = "email_verify"
    PASSWORD_RESET = "password_reset"


class TokenErrorKind(str, Enum):
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    WRONG_PURPOSE = "wrong_purpose"
    EXPIRED = "expired"


class TokenError(Exception):
    """Base class for verification failures. Carries only the failure kind."""

    kind: TokenErrorKind

    def __init__(self) -> None:
        super().__init__(self.kind.value)


class MalformedToken(TokenError):
    kind = TokenErrorKind.MALFORMED


class InvalidSignature(TokenError):
    kind = TokenErrorKind.INVALID_SIGNATURE


class WrongPurpose(TokenError):
    kind = TokenErrorKind.WRONG_PURPOSE


class TokenExpired(TokenError):
    kind = TokenErrorKind.EXPIRED


class TokenClaims(BaseModel):
    """Claim set carried by every token."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    sub: str  # Identity id, decimal string
    typ: TokenPurpose
    iat: int
    exp: int
    epc: int = 0  # Token epoch of the subject at issue time

    @field_validator("sub")
    @classmethod
    def validate_sub(cls, v: str) -> str:
        if not v.isdigit() or int(v) == UNSET_SUBJECT_ID:
            raise ValueError("sub must be a positive integer id")
        return v

    @property
    def subject_id(self) -> int:
        return int(self.sub)

    @property
    def purpose(self) -> TokenPurpose:
        return self.typ

    @property
    def issued_at(self) -> datetime:
        return datetime.fromtimestamp(self.iat, tz=timezone.utc)

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp, tz=timezone.utc)


@dataclass(frozen=True)
class TokenPolicy:
    """Lifetime per purpose."""

    lifetimes: Mapping[TokenPurpose, timedelta] = field(default_factory=lambda: {
        TokenPurpose.ACCESS: timedelta(minutes=120),
        TokenPurpose.EMAIL_VERIFY: timedelta(hours=24),
        TokenPurpose.PASSWORD_RESET: timedelta(minutes=60),
    })

    def __post_init__(self) -> None:
        missing = set(TokenPurpose) - set(self.lifetimes)
        if missing:
            raise ValueError(f"No lifetime configured for: {sorted(p.value for p in missing)}")
        for purpose, lifetime in self.lifetimes.items():
            if lifetime <= timedelta(0):
                raise ValueError(f"Lifetime for {purpose.value} must be positive")

    def ttl_for(self, purpose: TokenPurpose) -> timedelta:
        return self.lifetimes[purpose]

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenPolicy":
        return cls(lifetimes={
            TokenPurpose.ACCESS: timedelta(minutes=settings.access_token_expire_minutes),
            TokenPurpose.EMAIL_VERIFY: timedelta(hours=settings.email_verify_token_expire_hours),
            TokenPurpose.PASSWORD_RESET: timedelta(minutes=settings.password_reset_token_expire_minutes),
        })


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_canonical(segment: str) -> bool:
    """True if the segment is exactly the unpadded base64url encoding of the bytes it decodes to."""
    # Unused low bits in the last character would otherwise give one signature many spellings
    raw = segment.encode("ascii", errors="replace")
    try:
        return base64url_encode(base64url_decode(raw)) == raw
    except ValueError:
        return False


class TokenService:
    """
    Token issuance and verification.

    Stateless apart from the keys loaded at construction, so one instance is
    shared by all concurrent requests.
    """

    def __init__(
        self,
        keys: Mapping[TokenPurpose, str],
        policy: Optional[TokenPolicy] = None,
        algorithm: str = "HS256",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        missing = set(TokenPurpose) - set(keys)
        if missing:
            raise ValueError(f"No signing key configured for: {sorted(p.value for p in missing)}")
        if any(not key for key in keys.values()):
            raise ValueError("Signing keys must not be empty")
        if len(set(keys.values())) != len(keys):
            raise ValueError("Each token purpose needs its own signing key")
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported signing algorithm: {algorithm}")

        self._keys = dict(keys)
        self.policy = policy or TokenPolicy()
        self.algorithm = algorithm
        self._clock = clock or _utcnow

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            keys={
                TokenPurpose.ACCESS: settings.secret_key.get_secret_value(),
                TokenPurpose.EMAIL_VERIFY: settings.email_verify_secret_key.get_secret_value(),
                TokenPurpose.PASSWORD_RESET: settings.password_reset_secret_key.get_secret_value(),
            },
            policy=TokenPolicy.from_settings(settings),
            algorithm=settings.algorithm,
        )

    def issue(
        self,
        purpose: TokenPurpose,
        subject_id: int,
        ttl: Optional[timedelta] = None,
        epoch: int = 0,
    ) -> str:
        """
        Create a signed token.

        Args:
            purpose: What the token may be redeemed for
            subject_id: Identity id the token asserts
            ttl: Lifetime override; the policy lifetime is used when omitted
            epoch: Current token epoch of the identity

        Returns:
            URL-safe token string
        """
        if subject_id == UNSET_SUBJECT_ID or subject_id < 0:
            raise ValueError("subject_id must be a positive identity id")
        lifetime = ttl if ttl is not None else self.policy.ttl_for(purpose)
        if lifetime <= timedelta(0):
            raise ValueError("ttl must be positive")

        issued_at = int(self._clock().timestamp())
        claims = {
            "sub": str(subject_id),
            "typ": purpose.value,
            "iat": issued_at,
            "exp": issued_at + int(lifetime.total_seconds()),
            "epc": epoch,
        }
        return jwt.encode(claims, self._keys[purpose], algorithm=self.algorithm)

    def lifetime_seconds(self, purpose: TokenPurpose) -> int:
        return int(self.policy.ttl_for(purpose).total_seconds())

    def decode(self, token: str, expected_purpose: TokenPurpose) -> TokenClaims:
        """
        Verify a token and return its claims.

        Raises:
            MalformedToken: The string is not a structurally valid token
            InvalidSignature: Wrong algorithm, or no purpose key verifies it
            WrongPurpose: Authentic, but minted for another purpose
            TokenExpired: Authentic, but now is past its expiry
        """
        if not token or token.count(".") != 2:
            raise MalformedToken()
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise MalformedToken() from None
        if header.get("alg") != self.algorithm:
            raise InvalidSignature()
        if not all(_is_canonical(segment) for segment in token.split(".")):
            raise InvalidSignature()

        signed_purpose, payload = self._verify_signature(token)

        try:
            claims = TokenClaims.model_validate(json.loads(payload))
        except (ValueError, ValidationError):
            raise MalformedToken() from None

        # Signed with one purpose's key while claiming another
        if claims.typ is not signed_purpose:
            raise InvalidSignature()
        if claims.typ is not expected_purpose:
            raise WrongPurpose()
        if self._clock().timestamp() > claims.exp:
            raise TokenExpired()
        return claims

    def verify(self, token: str, expected_purpose: TokenPurpose) -> int:
        """Verify a token and return only the subject id it asserts."""
        return self.decode(token, expected_purpose).subject_id

    def _verify_signature(self, token: str) -> tuple[TokenPurpose, bytes]:
        for purpose, key in self._keys.items():
            try:
                return purpose, jws.verify(token, key, algorithms=[self.algorithm])
            except JWSError:
                continue
        raise InvalidSignature()


@lru_cache
def get_token_service() -> TokenService:
    """Get the token service configured from settings."""
    return TokenService.from_settings(get_settings())
