"""
auth/revocation.py -- SQLAlchemy Core denylist of revoked token identifiers.

Pattern: Repository + Data Mapper (same shape as auth/directory.py).
RevocationStore is the repository; _row_to_record is the mapper.

Concurrency:
  The jti primary key is the only arbiter. revoke() is a plain INSERT and an
  IntegrityError means another caller (or an earlier retry) got there first,
  which is a no-op for the caller. No in-process lock is taken, so several
  processes can share one database safely. Every call commits before
  returning, giving read-your-writes within a process.

Expiry:
  expires_at is stored as integer epoch seconds copied from the revoked
  token's exp. A record is dead weight once that time has passed (the token
  would be rejected on expiry anyway) and purge_expired() deletes it.

Failure mapping:
  Driver-level errors (connection refused, lock timeout, pool timeout) are
  raised as core.errors.StoreUnavailable, the only retryable error kind.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from auth.models import RevokedTokenRecord
from core.errors import StoreUnavailable

logger = logging.getLogger("identity.revocation")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("jti", String(64), primary_key=True),
    Column("expires_at", Integer, nullable=False, index=True),  # epoch seconds
    Column("revoked_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine helpers (shared with auth/directory.py)
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str, timeout: float = 5.0) -> Engine:
    """Create an engine whose connect and pool waits are bounded by timeout.

    SQLite gets check_same_thread=False (FastAPI runs sync handlers in a
    thread pool) and a busy timeout; other backends get a pool timeout.
    """
    if db_url.startswith("sqlite"):
        engine = create_engine(db_url, connect_args={"check_same_thread": False, "timeout": timeout})
        event.listen(engine, "connect", _set_wal_mode)
        return engine
    return create_engine(db_url, pool_timeout=timeout, pool_pre_ping=True)


def _epoch(moment: datetime) -> int:
    return int(moment.timestamp())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RevocationStore:
    """Repository for RevokedTokenRecord entities.

    Usage:
        store = RevocationStore("sqlite:///identity.db")
        store.revoke(claims.jti, claims.expires_at)
        store.is_revoked(claims.jti)      # True
        store.purge_expired(utc_now())
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///identity.db", timeout: float = 5.0) -> None:
        self.engine: Engine = make_engine(db_url, timeout)
        with self._connect() as conn:
            _metadata.create_all(conn)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError:
            raise
        except (DBAPIError, PoolTimeoutError) as exc:
            logger.error("Revocation store unavailable: %s", exc.__class__.__name__)
            raise StoreUnavailable() from exc

    def revoke(self, jti: str, expires_at: datetime) -> bool:
        """Insert jti into the denylist.

        Returns True if this call created the record, False if it was already
        revoked. Re-revoking is never an error.
        """
        try:
            with self._connect() as conn:
                conn.execute(
                    _revoked_tokens.insert().values(
                        jti=jti,
                        expires_at=_epoch(expires_at),
                        revoked_at=_now_iso(),
                    )
                )
                conn.commit()
        except IntegrityError:
            logger.debug("Token jti=%s already revoked", jti)
            return False
        logger.info("Revoked token jti=%s", jti)
        return True

    def is_revoked(self, jti: str) -> bool:
        """Primary-key lookup. O(1) via the jti index."""
        with self._connect() as conn:
            row = conn.execute(select(_revoked_tokens.c.jti).where(_revoked_tokens.c.jti == jti)).fetchone()
        return row is not None

    def get(self, jti: str) -> RevokedTokenRecord | None:
        with self._connect() as conn:
            row = conn.execute(_revoked_tokens.select().where(_revoked_tokens.c.jti == jti)).fetchone()
        return _row_to_record(row) if row is not None else None

    def count(self) -> int:
        with self._connect() as conn:
            result = conn.execute(select(func.count()).select_from(_revoked_tokens)).scalar()
        return result or 0

    def purge_expired(self, now: datetime) -> int:
        """Delete records whose expiry is at or before now. Returns rows removed.

        A single DELETE statement, so it is safe alongside concurrent revoke()
        and is_revoked() calls. Future-dated records are never touched.
        """
        with self._connect() as conn:
            result = conn.execute(_revoked_tokens.delete().where(_revoked_tokens.c.expires_at <= _epoch(now)))
            conn.commit()
        if result.rowcount:
            logger.info("Purged %d expired revocation records", result.rowcount)
        return result.rowcount

    def ping(self) -> bool:
        """Return True if the store answers a trivial query."""
        try:
            self.count()
        except StoreUnavailable:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_record(row) -> RevokedTokenRecord:
    return RevokedTokenRecord(
        jti=row.jti,
        expires_at=datetime.fromtimestamp(row.expires_at, tz=timezone.utc),
        revoked_at=datetime.fromisoformat(row.revoked_at),
    )
