"""Unit tests for core/config.py and core/errors.py.

Covers:
- SECRET_KEY policy: dev auto-generation, production refusal, minimum length
- duration validation
- every error kind has a distinct stable code and the documented HTTP class
"""

import pytest
from pydantic import ValidationError

from core.config import Settings
from core.errors import (
    AuthError,
    BadSignature,
    ErrorKind,
    Forbidden,
    InvalidCredentials,
    MalformedToken,
    PrincipalNotFound,
    StatusClass,
    StoreUnavailable,
    TokenExpired,
    TokenRevoked,
    Unauthorized,
)

GOOD_KEY = "k" * 32


class TestSettings:
    def test_dev_mode_generates_key(self) -> None:
        s = Settings(debug=True, secret_key="")
        assert len(s.secret_key) >= 32

    def test_production_requires_key(self) -> None:
        with pytest.raises(ValidationError):
            Settings(debug=False, secret_key="")

    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(debug=True, secret_key="short")

    def test_defaults(self) -> None:
        s = Settings(secret_key=GOOD_KEY)
        assert s.token_ttl_seconds == 3600
        assert s.refresh_grace_seconds == 7 * 24 * 3600

    def test_non_positive_ttl_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(secret_key=GOOD_KEY, token_ttl_seconds=0)

    def test_env_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("SECRET_KEY", GOOD_KEY)
        monkeypatch.setenv("TOKEN_TTL_SECONDS", "120")
        monkeypatch.setenv("REFRESH_GRACE_SECONDS", "60")
        s = Settings()
        assert s.token_ttl_seconds == 120
        assert s.refresh_grace_seconds == 60


class TestErrorTaxonomy:
    def test_codes_are_unique(self) -> None:
        codes = [k.code for k in ErrorKind]
        assert len(codes) == len(set(codes))

    @pytest.mark.parametrize(
        "exc_type,code,status",
        [
            (PrincipalNotFound, "principal_not_found", 401),
            (InvalidCredentials, "invalid_credentials", 401),
            (MalformedToken, "malformed_token", 400),
            (BadSignature, "bad_signature", 401),
            (TokenExpired, "token_expired", 401),
            (TokenRevoked, "token_revoked", 401),
            (Unauthorized, "unauthorized", 403),
            (Forbidden, "forbidden", 403),
            (StoreUnavailable, "store_unavailable", 503),
        ],
    )
    def test_kind_mapping(self, exc_type: type[AuthError], code: str, status: int) -> None:
        exc = exc_type()
        assert exc.code == code
        assert exc.kind.http_status == status
        assert exc.message

    def test_only_store_unavailable_is_retryable(self) -> None:
        retryable = {k for k in ErrorKind if k.retryable}
        assert retryable == {ErrorKind.STORE_UNAVAILABLE}
        assert ErrorKind.STORE_UNAVAILABLE.status_class is StatusClass.server_error

    def test_base_class_has_no_kind(self) -> None:
        with pytest.raises(TypeError):
            AuthError()
        with pytest.raises(TypeError):
            AuthError("Something failed.")

    def test_custom_message_keeps_code(self) -> None:
        exc = InvalidCredentials("Account is disabled.")
        assert exc.code == "invalid_credentials"
        assert str(exc) == "Account is disabled."
