"""
api/routes/v1/users.py -- Read-only principal endpoints guarded by the access policy.

Routes:
  GET /api/v1/users             -- list principals (pre-check: role ADMIN)
  GET /api/v1/users/me          -- the caller's own record
  GET /api/v1/users/{username}  -- one record (post-check: self, or ADMIN)

The post-check runs after the record is loaded and before it is returned,
mirroring "return only if the result belongs to the caller".
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from api.models import PrincipalResponse
from auth.dependencies import get_auth_service, get_current_claims, require_role
from auth.models import ClaimSet
from auth.service import AuthService

ADMIN_ROLE = "ADMIN"

router = APIRouter()


@router.get("/users", response_model=list[PrincipalResponse])
def list_users(
    claims: ClaimSet = Depends(require_role(ADMIN_ROLE)),
    service: AuthService = Depends(get_auth_service),
) -> list[PrincipalResponse]:
    """List all principals. Admin only."""
    return [PrincipalResponse.from_principal(p) for p in service.directory.list_principals()]


@router.get("/users/me", response_model=PrincipalResponse)
def me(
    claims: ClaimSet = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> PrincipalResponse:
    """Return the caller's own record."""
    principal = service.directory.find_by_identifier(claims.subject)
    if principal is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Principal not found."},
        )
    return PrincipalResponse.from_principal(principal)


@router.get("/users/{username}", response_model=PrincipalResponse)
def get_user(
    username: str,
    claims: ClaimSet = Depends(get_current_claims),
    service: AuthService = Depends(get_auth_service),
) -> PrincipalResponse:
    """Return one principal if it is the caller, or if the caller is an admin."""
    principal = service.directory.find_by_identifier(username)
    if principal is None:
        # Check the caller's authority before confirming the name does not exist.
        service.require_role(claims, ADMIN_ROLE)
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": "Principal not found."},
        )
    service.require_owner_or_role(claims, principal.username, ADMIN_ROLE)
    return PrincipalResponse.from_principal(principal)
