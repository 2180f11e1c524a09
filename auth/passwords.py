"""
auth/passwords.py -- Credential verifier (bcrypt).

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

The _DUMMY_HASH constant enables timing equalization in AuthService.login() so
response time does not reveal whether a principal exists.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

# Cost factor 10: hashes from existing deployments verify unchanged.
_ROUNDS = 10


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are silently truncated by bcrypt (this is
    a known bcrypt limitation). The API layer caps password length well below
    that threshold.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("identity_timing_dummy")


def burn_dummy_check(plain: str) -> None:
    """Run one bcrypt comparison against a throwaway hash.

    Called when the principal does not exist so an unknown identifier costs
    the same as a wrong password.
    """
    verify_password(plain, _DUMMY_HASH)
