"""
api/routes/v1/auth.py -- Token endpoints.

Routes:
  POST /api/v1/auth/token       -- password login; returns a signed token
  POST /api/v1/auth/introspect  -- {"valid": bool}; never an error for a bad token
  POST /api/v1/auth/refresh     -- rotate a (possibly recently expired) token
  POST /api/v1/auth/logout      -- revoke a token; idempotent

All four are public: the token in the body is the credential. Failures are
raised as AuthError and rendered by the handler in api/main.py.

Security:
  POST /token is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import LOGIN_RATE_LIMIT, limiter
from api.models import AuthenticationResponse, IntrospectResponse, LoginRequest, MessageResponse, TokenRequest
from auth.dependencies import get_auth_service
from auth.service import AuthService

router = APIRouter()


@limiter.limit(LOGIN_RATE_LIMIT)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/token", response_model=AuthenticationResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthenticationResponse:
    """Authenticate with username and password.

    Unknown usernames fail with principal_not_found, wrong passwords with
    invalid_credentials. Both paths cost one bcrypt check.
    """
    result = service.login(body.username, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthenticationResponse.from_result(result)


@router.post("/auth/introspect", response_model=IntrospectResponse)
def introspect(body: TokenRequest, service: AuthService = Depends(get_auth_service)) -> IntrospectResponse:
    """Report whether a token is currently valid. Read-only."""
    return IntrospectResponse(valid=service.introspect(body.token).valid)


@router.post("/auth/refresh", response_model=AuthenticationResponse)
def refresh(
    response: Response,
    body: TokenRequest,
    service: AuthService = Depends(get_auth_service),
) -> AuthenticationResponse:
    """Exchange a token for a new one. The presented token is revoked."""
    result = service.refresh(body.token)
    response.headers["Cache-Control"] = "no-store"
    return AuthenticationResponse.from_result(result)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(body: TokenRequest, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    """Revoke a token. Logging out twice, or with an expired token, still returns 200."""
    service.logout(body.token)
    return MessageResponse(message="Logged out.")
