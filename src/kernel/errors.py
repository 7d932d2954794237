"""
Error taxonomy for the credential service.

Every error carries a machine-readable code, a user-facing message and the
HTTP status the API layer renders it with. Messages never include passwords,
digests, tokens or signing material.
"""

from fastapi import status


class APIError(Exception):
    """
    Base class for errors surfaced to API callers.

    Attributes:
        code: Machine-readable error code (e.g. "NOT_FOUND")
        message: Human-readable error message
        status_code: HTTP status code to return
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class Unauthenticated(APIError):
    """No usable credentials: absent, invalid, expired or wrong-purpose token, bad password (401)."""

    def __init__(self, message: str = "Not authorized") -> None:
        super().__init__(
            code="UNAUTHENTICATED",
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class ForbiddenError(APIError):
    """Authenticated but not allowed (403)."""

    def __init__(self, message: str = "Access denied", code: str = "FORBIDDEN") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class NotFoundError(APIError):
    """Identity or resource absent (404)."""

    def __init__(self, resource: str = "User") -> None:
        super().__init__(
            code="NOT_FOUND",
            message=f"{resource} not found",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ConflictError(APIError):
    """Uniqueness violated, e.g. duplicate email (409)."""

    def __init__(self, message: str = "Email already taken") -> None:
        super().__init__(
            code="CONFLICT",
            message=message,
            status_code=status.HTTP_409_CONFLICT,
        )


class ValidationError(APIError):
    """Malformed input or a business rule the input violates (400)."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class InternalError(APIError):
    """Hashing, signing or storage failure; fatal to the request only (500)."""

    def __init__(self, message: str = "Internal server error", code: str = "INTERNAL_ERROR") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class EmailNotVerifiedError(ForbiddenError):
    """Correct credentials, but the email address has not been confirmed yet."""

    def __init__(self) -> None:
        super().__init__(message="Email not verified", code="EMAIL_NOT_VERIFIED")


class EmailAlreadyVerifiedError(ValidationError):
    """A verification token was redeemed for an already verified identity."""

    def __init__(self) -> None:
        super().__init__(message="Email already verified", code="EMAIL_ALREADY_VERIFIED")


class HashingFailure(InternalError):
    """The password hashing engine could not produce a digest."""

    def __init__(self) -> None:
        super().__init__(message="Could not process password", code="HASHING_FAILURE")


class DeliveryError(APIError):
    """The outbound email could not be handed to the mail server (502)."""

    def __init__(self, message: str = "Could not send email") -> None:
        super().__init__(
            code="DELIVERY_FAILED",
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
