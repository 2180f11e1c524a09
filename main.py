#!/usr/bin/env python3
"""
identity-core admin CLI -- maintenance commands for the authentication core.

Usage:
  python main.py purge                    # delete expired revocation records
  python main.py introspect <TOKEN>       # check a token against the live stores
  python main.py introspect <TOKEN> --claims
  python main.py hash-password            # prompt for a password, print its bcrypt hash

Environment variables (see core/config.py):
  SECRET_KEY     Signing key. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the directory / revocation database.
"""

import argparse
import getpass
import sys

from auth.passwords import hash_password
from auth.revocation import RevocationStore
from auth.tokens import TokenCodec, decode_unverified, payload_json, utc_now
from core.config import get_settings
from core.errors import AuthError, StoreUnavailable


def _cmd_purge(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = RevocationStore(settings.database_url, timeout=settings.store_timeout_seconds)
    try:
        removed = store.purge_expired(utc_now())
        remaining = store.count()
    finally:
        store.close()
    print(f"  Purged {removed} expired record(s); {remaining} still revoked.")
    return 0


def _cmd_introspect(args: argparse.Namespace) -> int:
    settings = get_settings()
    codec = TokenCodec(settings.secret_key, issuer=settings.token_issuer)
    try:
        claims = codec.decode_and_verify(args.token)
    except AuthError as e:
        print(f"  [!] {e.code}: {e.message}")
        if args.claims:
            raw = decode_unverified(args.token)
            if raw is not None:
                print(f"  Unverified payload: {raw}")
        return 1

    store = RevocationStore(settings.database_url, timeout=settings.store_timeout_seconds)
    try:
        revoked = store.is_revoked(claims.jti)
    finally:
        store.close()
    expired = claims.is_expired(utc_now())

    if args.claims:
        print(payload_json(claims))
    status = "revoked" if revoked else "expired" if expired else "valid"
    print(f"  {claims.subject} jti={claims.jti}: {status}")
    return 0 if status == "valid" else 1


def _cmd_hash_password(args: argparse.Namespace) -> int:
    plain = getpass.getpass("Password: ")
    if not plain:
        print("  [!] Empty password.")
        return 1
    if plain != getpass.getpass("Repeat: "):
        print("  [!] Passwords do not match.")
        return 1
    print(hash_password(plain))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="identity-core",
        description="Maintenance commands for the identity-core authentication service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_purge = sub.add_parser("purge", help="Delete revocation records whose token has expired.")
    p_purge.set_defaults(func=_cmd_purge)

    p_intro = sub.add_parser("introspect", help="Check whether a token is currently valid.")
    p_intro.add_argument("token")
    p_intro.add_argument("--claims", action="store_true", help="Print the token's claims.")
    p_intro.set_defaults(func=_cmd_introspect)

    p_hash = sub.add_parser("hash-password", help="Print a bcrypt hash for a password.")
    p_hash.set_defaults(func=_cmd_hash_password)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except StoreUnavailable as e:
        print(f"  [!] {e.message} Try again shortly.")
        return 2


if __name__ == "__main__":
    sys.exit(main())
