"""
core/errors.py -- Error taxonomy for the authentication core.

Every failure the core can report has exactly one ErrorKind. Each kind carries
a stable machine-readable code and an HTTP status class so clients can branch
on the code without parsing message text. Messages may change; codes may not.

The service layer raises AuthError subclasses. The API layer maps them to the
JSON error envelope in one exception handler (api/main.py). Introspection is
the only soft path: it returns valid=False instead of raising.

StoreUnavailable is the only retryable kind. Everything else is permanent for
the given input.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from enum import Enum


class StatusClass(str, Enum):
    unauthenticated = "unauthenticated"
    forbidden = "forbidden"
    bad_input = "bad_input"
    server_error = "server_error"


_HTTP_STATUS = {
    StatusClass.unauthenticated: 401,
    StatusClass.forbidden: 403,
    StatusClass.bad_input: 400,
}


class ErrorKind(Enum):
    """(code, status class, default message, retryable)."""

    PRINCIPAL_NOT_FOUND = ("principal_not_found", StatusClass.unauthenticated, "Principal does not exist.", False)
    INVALID_CREDENTIALS = ("invalid_credentials", StatusClass.unauthenticated, "Invalid credentials.", False)
    MALFORMED_TOKEN = ("malformed_token", StatusClass.bad_input, "Token could not be parsed.", False)
    BAD_SIGNATURE = ("bad_signature", StatusClass.unauthenticated, "Token signature is invalid.", False)
    TOKEN_EXPIRED = ("token_expired", StatusClass.unauthenticated, "Token has expired.", False)
    TOKEN_REVOKED = ("token_revoked", StatusClass.unauthenticated, "Token has been revoked.", False)
    UNAUTHORIZED = ("unauthorized", StatusClass.forbidden, "You do not have permission.", False)
    FORBIDDEN = ("forbidden", StatusClass.forbidden, "Access to this resource is restricted to its owner.", False)
    STORE_UNAVAILABLE = ("store_unavailable", StatusClass.server_error, "Backing store unavailable.", True)

    def __init__(self, code: str, status_class: StatusClass, message: str, retryable: bool) -> None:
        self.code = code
        self.status_class = status_class
        self.message = message
        self.retryable = retryable

    @property
    def http_status(self) -> int:
        # Retryable server errors are 503 so proxies and clients honour Retry-After.
        if self.status_class is StatusClass.server_error:
            return 503 if self.retryable else 500
        return _HTTP_STATUS[self.status_class]


class AuthError(Exception):
    """Base class for every error the authentication core raises.

    Not raised directly: each subclass binds exactly one ErrorKind.
    """

    kind: ErrorKind

    def __init__(self, message: str | None = None) -> None:
        if not hasattr(self, "kind"):
            raise TypeError(f"{type(self).__name__} has no ErrorKind; raise a specific subclass")
        self.message = message or self.kind.message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.code

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class PrincipalNotFound(AuthError):
    kind = ErrorKind.PRINCIPAL_NOT_FOUND


class InvalidCredentials(AuthError):
    kind = ErrorKind.INVALID_CREDENTIALS


class MalformedToken(AuthError):
    kind = ErrorKind.MALFORMED_TOKEN


class BadSignature(AuthError):
    kind = ErrorKind.BAD_SIGNATURE


class TokenExpired(AuthError):
    kind = ErrorKind.TOKEN_EXPIRED


class TokenRevoked(AuthError):
    kind = ErrorKind.TOKEN_REVOKED


class Unauthorized(AuthError):
    """Pre-check failure: the caller lacks the role the operation requires."""

    kind = ErrorKind.UNAUTHORIZED


class Forbidden(AuthError):
    """Post-check failure: the result belongs to someone else."""

    kind = ErrorKind.FORBIDDEN


class StoreUnavailable(AuthError):
    """Transient backing-store failure. Safe to retry: revoke is idempotent."""

    kind = ErrorKind.STORE_UNAVAILABLE
