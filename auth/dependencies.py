"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Protected routes authenticate with an "Authorization: Bearer <token>" header.
The token goes through AuthService.authenticate(): signature, expiry and
revocation are all checked before the route body runs.

get_current_claims() raises AuthError subclasses (BadSignature, TokenExpired,
TokenRevoked, ...). A request with no bearer credential at all is
InvalidCredentials (401). api/main.py maps those to the JSON error envelope,
so routes never build 401 responses by hand.

require_role() is the pre-check dependency factory. It resolves the caller's
roles fresh from the directory, so a role removed after the token was issued
is denied immediately.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Request

from auth.models import ClaimSet
from auth.service import AuthService
from core.errors import InvalidCredentials


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def bearer_token(request: Request) -> str | None:
    """Return the raw bearer token from the Authorization header, or None."""
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def get_current_claims(request: Request) -> ClaimSet:
    """Require a valid bearer token. Raises an AuthError otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: ClaimSet = Depends(get_current_claims)): ...
    """
    token = bearer_token(request)
    if token is None:
        raise InvalidCredentials("Bearer token required.")
    return get_auth_service(request).authenticate(token)


def require_role(role: str) -> Callable[..., ClaimSet]:
    """Build a dependency that authenticates the caller and requires role.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(claims: ClaimSet = Depends(require_role("ADMIN"))): ...
    """

    def dependency(request: Request, claims: ClaimSet = Depends(get_current_claims)) -> ClaimSet:
        get_auth_service(request).require_role(claims, role)
        return claims

    return dependency
