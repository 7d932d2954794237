"""Unit tests for the request authentication gate."""

from datetime import timedelta

import pytest

from src.kernel.errors import Unauthenticated
from src.kernel.identity.auth_gate import (
    AuthGate,
    Principal,
    current_principal,
    extract_token,
    principal_var,
)
from src.kernel.identity.tokens import TokenPurpose


@pytest.fixture
def gate(token_service) -> AuthGate:
    return AuthGate(token_service)


@pytest.fixture(autouse=True)
def fresh_principal_slot():
    token = principal_var.set(None)
    yield
    principal_var.reset(token)


class TestExtractToken:
    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc.def.ghi", "abc.def.ghi"),
            ("abc.def.ghi", "abc.def.ghi"),
            ("  Bearer   abc.def.ghi  ", "abc.def.ghi"),
            ("", None),
            ("   ", None),
            ("Bearer ", None),
            (None, None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_token(header) == expected


class TestAuthGate:
    """Tests for AuthGate.authenticate and attach."""

    def test_valid_access_token(self, gate, token_service):
        token = token_service.issue(TokenPurpose.ACCESS, 42, epoch=2)

        principal = gate.authenticate(f"Bearer {token}")

        assert principal == Principal(subject_id=42, token_epoch=2)
        assert principal.is_set

    def test_raw_token_accepted(self, gate, token_service):
        token = token_service.issue(TokenPurpose.ACCESS, 42)

        assert gate.authenticate(token).subject_id == 42

    @pytest.mark.parametrize("header", [None, "", "Bearer "])
    def test_missing_token(self, gate, header):
        with pytest.raises(Unauthenticated) as exc_info:
            gate.authenticate(header)

        assert exc_info.value.status_code == 401
        assert exc_info.value.message == "Not authorized: token empty"

    def test_garbage_token(self, gate):
        with pytest.raises(Unauthenticated) as exc_info:
            gate.authenticate("Bearer not-a-token")

        assert exc_info.value.message == "Not authorized"

    @pytest.mark.parametrize("purpose", [TokenPurpose.EMAIL_VERIFY, TokenPurpose.PASSWORD_RESET])
    def test_non_access_token_rejected(self, gate, token_service, purpose):
        token = token_service.issue(purpose, 42)

        with pytest.raises(Unauthenticated):
            gate.authenticate(f"Bearer {token}")

    def test_expired_token_rejected(self, gate, token_service, clock):
        token = token_service.issue(TokenPurpose.ACCESS, 42, ttl=timedelta(minutes=1))
        clock.advance(minutes=2)

        with pytest.raises(Unauthenticated) as exc_info:
            gate.authenticate(f"Bearer {token}")

        # Same message for every verification failure
        assert exc_info.value.message == "Not authorized"

    def test_attach_sets_principal(self, gate, token_service):
        token = token_service.issue(TokenPurpose.ACCESS, 42)

        gate.attach(f"Bearer {token}")

        assert principal_var.get() == Principal(subject_id=42)
        assert current_principal().subject_id == 42

    def test_failed_attach_leaves_slot_empty(self, gate):
        with pytest.raises(Unauthenticated):
            gate.attach("Bearer nope")

        assert principal_var.get() is None


class TestCurrentPrincipal:
    def test_unset_slot_rejected(self):
        with pytest.raises(Unauthenticated):
            current_principal()

    def test_sentinel_subject_rejected(self):
        principal_var.set(Principal(subject_id=0))

        with pytest.raises(Unauthenticated):
            current_principal()
