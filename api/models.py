"""
api/models.py -- Wire shapes for the identity-core HTTP API.

Pydantic v2 request/response bodies. The dataclasses in auth/models.py stay
the service's own types; the from_* classmethods below convert them at the
route boundary, which is also where the credential hash gets dropped.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AuthResult, Principal

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/token."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    # bcrypt truncates at 72 bytes; 255 chars keeps inputs bounded.
    password: str = Field(min_length=1, max_length=255)


class TokenRequest(BaseModel):
    """Request body for /introspect, /refresh and /logout."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=8192)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AuthenticationResponse(BaseModel):
    """Response for POST /auth/token and POST /auth/refresh."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    authenticated: bool = True
    expires_at: datetime

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthenticationResponse":
        return cls(token=result.token, authenticated=result.authenticated, expires_at=result.expires_at)


class IntrospectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    permissions: list[str]


class PrincipalResponse(BaseModel):
    """Public view of a principal. The credential hash is never exposed."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str]
    username: str
    is_active: bool
    created_at: str
    roles: list[RoleResponse]

    @classmethod
    def from_principal(cls, principal: Principal) -> "PrincipalResponse":
        return cls(
            id=principal.id,
            username=principal.username,
            is_active=principal.is_active,
            created_at=principal.created_at or "",
            roles=[
                RoleResponse(
                    name=r.name,
                    description=r.description,
                    permissions=sorted(p.name for p in r.permissions),
                )
                for r in sorted(principal.roles, key=lambda r: r.name)
            ],
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload. Clients branch on code, never on message."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    retryable: bool = False


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
