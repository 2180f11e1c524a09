"""
auth/service.py -- Authentication service: login, introspect, refresh, logout.

Composes the credential verifier, token codec, revocation store, directory
and access policy. Each public method is one self-contained request: no state
is carried between calls except what is committed to the stores, plus the
timestamp of the last opportunistic purge.

Expiry policy per operation (the codec itself never checks expiry):
  introspect / authenticate: invalid at exp, no leeway.
  refresh: allowed until exp + refresh_grace.
  logout:  any expiry; revoking an expired token is harmless.

Error policy:
  login / refresh / authenticate raise the first failing check as an
  AuthError; no partial token is ever returned.
  introspect never raises for a bad, expired or revoked token. Store failures
  still propagate as StoreUnavailable because they say nothing about the token.
  logout is idempotent; only forged or unparseable tokens raise.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from auth.directory import PrincipalDirectory
from auth.models import AuthResult, ClaimSet, IntrospectResult, Principal, build_scope
from auth.passwords import burn_dummy_check, verify_password
from auth.policy import AccessPolicy, Decision
from auth.revocation import RevocationStore
from auth.tokens import TokenCodec
from core.config import Settings
from core.errors import (
    BadSignature,
    Forbidden,
    InvalidCredentials,
    MalformedToken,
    PrincipalNotFound,
    StoreUnavailable,
    TokenExpired,
    TokenRevoked,
    Unauthorized,
)

logger = logging.getLogger("identity.auth")


class AuthService:
    """Orchestrates the four token operations and the protected-request gate.

    Usage:
        service = AuthService(codec, revocations, directory)
        result = service.login("alice", "secret")
        service.introspect(result.token).valid      # True
        service.logout(result.token)
        service.introspect(result.token).valid      # False
    """

    def __init__(
        self,
        codec: TokenCodec,
        revocations: RevocationStore,
        directory: PrincipalDirectory,
        token_ttl: timedelta = timedelta(hours=1),
        refresh_grace: timedelta = timedelta(days=7),
        purge_interval: timedelta = timedelta(hours=1),
    ) -> None:
        self.codec = codec
        self.revocations = revocations
        self.directory = directory
        self.policy = AccessPolicy(directory)
        self.token_ttl = token_ttl
        self.refresh_grace = refresh_grace
        self.purge_interval = purge_interval
        self._last_purge: datetime | None = None
        self._purge_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        codec: TokenCodec,
        revocations: RevocationStore,
        directory: PrincipalDirectory,
    ) -> AuthService:
        return cls(
            codec,
            revocations,
            directory,
            token_ttl=timedelta(seconds=settings.token_ttl_seconds),
            refresh_grace=timedelta(seconds=settings.refresh_grace_seconds),
            purge_interval=timedelta(seconds=settings.revocation_purge_interval_seconds),
        )

    def now(self) -> datetime:
        return self.codec.clock()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, identifier: str, secret: str) -> AuthResult:
        """Verify credentials and issue a token scoped to the principal's current roles.

        Raises PrincipalNotFound if the identifier is unknown and
        InvalidCredentials on a wrong secret or an inactive account. bcrypt
        runs on every path so timing does not reveal which check failed.
        """
        principal = self.directory.find_by_identifier(identifier)
        if principal is None:
            burn_dummy_check(secret)
            logger.info("Login failed: unknown principal")
            raise PrincipalNotFound()
        if principal.hashed_password is None or not verify_password(secret, principal.hashed_password):
            if principal.hashed_password is None:
                burn_dummy_check(secret)
            logger.info("Login failed: bad credentials for %s", identifier)
            raise InvalidCredentials()
        if not principal.is_active:
            logger.info("Login failed: %s is inactive", identifier)
            raise InvalidCredentials("Account is disabled.")
        result = self._issue_for(principal)
        logger.info("Login succeeded for %s", identifier)
        return result

    # ------------------------------------------------------------------
    # Introspect
    # ------------------------------------------------------------------

    def introspect(self, token: str) -> IntrospectResult:
        """Report whether a token is currently usable. Read-only, never raises for the token."""
        try:
            claims = self.codec.decode_and_verify(token)
        except (MalformedToken, BadSignature):
            return IntrospectResult(valid=False)
        if claims.is_expired(self.now()):
            return IntrospectResult(valid=False)
        if self.revocations.is_revoked(claims.jti):
            return IntrospectResult(valid=False)
        return IntrospectResult(valid=True)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, token: str) -> AuthResult:
        """Rotate a token: revoke the presented jti and issue a fresh token.

        The presented token may be expired for up to refresh_grace. The
        revocation insert decides races: when two refreshes of the same token
        run concurrently only the one that creates the record wins, the other
        gets TokenRevoked.
        """
        claims = self.codec.decode_and_verify(token)
        now = self.now()
        if claims.is_expired(now, leeway=self.refresh_grace):
            logger.info("Refresh rejected: token jti=%s is past the grace window", claims.jti)
            raise TokenExpired("Token is past the refresh window.")
        if self.revocations.is_revoked(claims.jti):
            logger.warning("Refresh rejected: token jti=%s was already revoked", claims.jti)
            raise TokenRevoked()

        principal = self.directory.find_by_identifier(claims.subject)
        if principal is None:
            raise PrincipalNotFound()
        if not principal.is_active:
            raise InvalidCredentials("Account is disabled.")

        if not self.revocations.revoke(claims.jti, self._retain_until(claims)):
            logger.warning("Refresh rejected: token jti=%s rotated concurrently", claims.jti)
            raise TokenRevoked()
        result = self._issue_for(principal)
        logger.info("Rotated token jti=%s for %s", claims.jti, principal.username)
        self._purge_if_due(now)
        return result

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, token: str) -> None:
        """Revoke the token's jti. Calling it again, or on an expired token, is not an error.

        Forged or unparseable tokens still raise BadSignature / MalformedToken:
        only tokens this service signed may write to the denylist.
        """
        claims = self.codec.decode_and_verify(token)
        created = self.revocations.revoke(claims.jti, self._retain_until(claims))
        if created:
            logger.info("Logout for %s (jti=%s)", claims.subject, claims.jti)
        self._purge_if_due(self.now())

    # ------------------------------------------------------------------
    # Protected requests
    # ------------------------------------------------------------------

    def authenticate(self, token: str) -> ClaimSet:
        """Gate for protected operations: verified, unexpired and not revoked, or raise."""
        claims = self.codec.decode_and_verify(token)
        if claims.is_expired(self.now()):
            raise TokenExpired()
        if self.revocations.is_revoked(claims.jti):
            raise TokenRevoked()
        return claims

    def authorize(self, required_role: str, principal_id: str) -> Decision:
        return self.policy.authorize(required_role, principal_id)

    def require_role(self, claims: ClaimSet, required_role: str) -> None:
        """Pre-check. Raises Unauthorized unless the caller currently holds required_role."""
        decision = self.policy.authorize(required_role, claims.subject)
        if not decision:
            logger.info("Denied %s: %s", claims.subject, decision.reason)
            raise Unauthorized()

    def require_permission(self, claims: ClaimSet, permission: str) -> None:
        decision = self.policy.authorize_permission(permission, claims.subject)
        if not decision:
            logger.info("Denied %s: %s", claims.subject, decision.reason)
            raise Unauthorized()

    def require_owner_or_role(self, claims: ClaimSet, result_owner_id: str, elevated_role: str) -> None:
        """Post-check. Raises Forbidden unless the result is the caller's own or the caller is elevated."""
        decision = self.policy.owns_or_holds(result_owner_id, claims.subject, elevated_role)
        if not decision:
            logger.info("Denied %s: %s", claims.subject, decision.reason)
            raise Forbidden()

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        now = self.now()
        removed = self.revocations.purge_expired(now)
        self._last_purge = now
        return removed

    def _purge_if_due(self, now: datetime) -> None:
        """Purge expired revocations at most once per purge_interval.

        Non-blocking: if another request is already purging, skip.
        """
        if self._last_purge is not None and now - self._last_purge < self.purge_interval:
            return
        if not self._purge_lock.acquire(blocking=False):
            return
        try:
            self.revocations.purge_expired(now)
            self._last_purge = now
        except StoreUnavailable:
            # The caller's own write already committed; the next request retries the purge.
            logger.warning("Opportunistic purge skipped: revocation store unavailable")
        finally:
            self._purge_lock.release()

    def _retain_until(self, claims: ClaimSet) -> datetime:
        """Expiry stored on a revocation record.

        refresh() accepts a token until exp + refresh_grace, so the record has
        to outlive that point or a purge would make the jti refreshable again.
        """
        return claims.expires_at + self.refresh_grace

    def _issue_for(self, principal: Principal) -> AuthResult:
        token, claims = self.codec.mint(principal.username, build_scope(principal.roles), self.token_ttl)
        return AuthResult(token=token, expires_at=claims.expires_at)
