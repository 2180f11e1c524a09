"""
auth/tokens.py -- Token codec: signed claim sets <-> compact JWS strings.

Security design decisions:
  JWT: python-jose with HS512. Tokens are signed with SECRET_KEY and carry
       sub, iss, iat, exp, jti and scope. The key is handed to TokenCodec once
       at construction and never mutated; there is no module-level key state.

  Verification is split in two steps so callers can tell the failures apart:
       1. Structure: header and payload must parse as JSON objects and the
          payload must carry well-typed sub/jti/iat/exp -> MalformedToken.
       2. Signature: the header must name HS512 (rejects alg=none and
          algorithm confusion) and the HMAC must match -> BadSignature.
          python-jose compares MACs with hmac.compare_digest, so the check
          is constant time.

  Expiry is NOT enforced by the codec. decode_and_verify() returns the claim
       set including expires_at and each caller applies its own policy:
       introspection and protected requests reject at exp, refresh tolerates
       a bounded grace window, logout tolerates any expiry.

  Known limitation: one process-wide key, no rotation. Changing SECRET_KEY
       invalidates every outstanding token.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import jws, jwt
from jose.exceptions import JWSError, JWTError

from auth.models import ClaimSet
from core.errors import BadSignature, MalformedToken

logger = logging.getLogger("identity.tokens")

ALGORITHM = "HS512"
MIN_KEY_LENGTH = 32

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch(value: int | float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _is_number(value: object) -> bool:
    # bool is an int subclass; a boolean exp is not a timestamp.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TokenCodec:
    """Issues and verifies HS512-signed tokens with a fixed key.

    Usage:
        codec = TokenCodec(settings.secret_key, issuer="identity-core")
        token = codec.issue("alice", "ROLE_USER", timedelta(hours=1))
        claims = codec.decode_and_verify(token)
    """

    def __init__(self, secret_key: str, issuer: str = "identity-core", clock: Clock = utc_now) -> None:
        if len(secret_key) < MIN_KEY_LENGTH:
            raise ValueError(f"Signing key must be at least {MIN_KEY_LENGTH} characters.")
        self._key = secret_key
        self.issuer = issuer
        self.clock = clock

    def __repr__(self) -> str:
        # Never expose the key through repr() in logs or tracebacks.
        return f"TokenCodec(issuer={self.issuer!r}, algorithm={ALGORITHM!r})"

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def mint(self, principal_id: str, scope: str, ttl: timedelta) -> tuple[str, ClaimSet]:
        """Sign a new claim set and return (token, claims).

        iat and exp are whole seconds (RFC 7519 NumericDate). A fresh UUID4 is
        used as jti so every token is individually revocable.
        """
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive.")
        issued = int(self.clock().timestamp())
        expires = issued + int(ttl.total_seconds())
        claims = ClaimSet(
            subject=principal_id,
            issuer=self.issuer,
            issued_at=_from_epoch(issued),
            expires_at=_from_epoch(expires),
            jti=str(uuid.uuid4()),
            scope=scope,
        )
        payload = {
            "sub": claims.subject,
            "iss": claims.issuer,
            "iat": issued,
            "exp": expires,
            "jti": claims.jti,
            "scope": claims.scope,
        }
        token = jwt.encode(payload, self._key, algorithm=ALGORITHM)
        return token, claims

    def issue(self, principal_id: str, scope: str, ttl: timedelta) -> str:
        """Encode a signed token for principal_id carrying the given scope claim."""
        token, _claims = self.mint(principal_id, scope, ttl)
        return token

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def decode_and_verify(self, token: str) -> ClaimSet:
        """Parse and verify a token. Raises MalformedToken or BadSignature.

        Expiry is deliberately not checked here.
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedToken()
        try:
            header = jwt.get_unverified_header(token)
            payload = jwt.get_unverified_claims(token)
        except (JWTError, JWSError) as exc:
            raise MalformedToken() from exc

        claims = _parse_claims(payload)

        if header.get("alg") != ALGORITHM:
            logger.warning("Rejected token jti=%s with alg=%r", claims.jti, header.get("alg"))
            raise BadSignature()
        try:
            jws.verify(token, self._key, algorithms=[ALGORITHM])
        except JWSError as exc:
            logger.warning("Signature check failed for token jti=%s", claims.jti)
            raise BadSignature() from exc
        return claims


def _parse_claims(payload: dict) -> ClaimSet:
    """Map a raw payload dict to a ClaimSet, raising MalformedToken on bad shape."""
    sub = payload.get("sub")
    jti = payload.get("jti")
    iat = payload.get("iat")
    exp = payload.get("exp")
    iss = payload.get("iss", "")
    scope = payload.get("scope", "")
    if not isinstance(sub, str) or not sub:
        raise MalformedToken("Token is missing the sub claim.")
    if not isinstance(jti, str) or not jti:
        raise MalformedToken("Token is missing the jti claim.")
    if not _is_number(iat) or not _is_number(exp):
        raise MalformedToken("Token iat/exp claims must be numeric.")
    if not isinstance(iss, str) or not isinstance(scope, str):
        raise MalformedToken("Token iss/scope claims must be strings.")
    try:
        issued_at = _from_epoch(iat)
        expires_at = _from_epoch(exp)
    except (OverflowError, OSError, ValueError) as exc:
        raise MalformedToken("Token timestamps are out of range.") from exc
    return ClaimSet(
        subject=sub,
        issuer=iss,
        issued_at=issued_at,
        expires_at=expires_at,
        jti=jti,
        scope=scope,
    )


def decode_unverified(token: str) -> dict | None:
    """Return the raw payload without verifying anything, or None if unparseable.

    For diagnostics only (the admin CLI prints it). Never use the result for
    an access decision.
    """
    try:
        return jwt.get_unverified_claims(token)
    except (JWTError, JWSError):
        return None


def payload_json(claims: ClaimSet) -> str:
    """Render a claim set as pretty JSON for the CLI."""
    return json.dumps(
        {
            "sub": claims.subject,
            "iss": claims.issuer,
            "iat": claims.issued_at.isoformat(),
            "exp": claims.expires_at.isoformat(),
            "jti": claims.jti,
            "scope": claims.scope,
        },
        indent=2,
    )
