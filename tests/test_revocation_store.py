"""Unit tests for auth/revocation.py -- RevocationStore.

Covers:
- revoke() is idempotent and reports whether it created the record
- is_revoked() sees a revocation immediately (read-your-writes)
- purge_expired() removes records at/before now and never future ones
- purge_expired() runs safely alongside concurrent revoke() / is_revoked()
- driver failures surface as StoreUnavailable
"""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from auth.revocation import RevocationStore
from core.errors import StoreUnavailable

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class TestRevoke:
    def test_unknown_jti_is_not_revoked(self, revocations: RevocationStore) -> None:
        assert revocations.is_revoked("nope") is False

    def test_revoke_then_lookup(self, revocations: RevocationStore) -> None:
        assert revocations.revoke("jti-1", NOW + timedelta(hours=1)) is True
        assert revocations.is_revoked("jti-1") is True

    def test_revoke_twice_is_a_noop(self, revocations: RevocationStore) -> None:
        """Second revoke returns False, raises nothing, and leaves a single record."""
        revocations.revoke("jti-1", NOW + timedelta(hours=1))
        assert revocations.revoke("jti-1", NOW + timedelta(hours=5)) is False
        assert revocations.count() == 1
        record = revocations.get("jti-1")
        assert record is not None
        assert record.expires_at == NOW + timedelta(hours=1)

    def test_get_missing_returns_none(self, revocations: RevocationStore) -> None:
        assert revocations.get("missing") is None


class TestPurge:
    def test_purge_removes_only_expired(self, revocations: RevocationStore) -> None:
        revocations.revoke("past", NOW - timedelta(minutes=1))
        revocations.revoke("boundary", NOW)
        revocations.revoke("future", NOW + timedelta(seconds=1))

        removed = revocations.purge_expired(NOW)

        assert removed == 2
        assert revocations.is_revoked("past") is False
        assert revocations.is_revoked("boundary") is False
        assert revocations.is_revoked("future") is True

    def test_purge_on_empty_store(self, revocations: RevocationStore) -> None:
        assert revocations.purge_expired(NOW) == 0

    def test_purge_is_repeatable(self, revocations: RevocationStore) -> None:
        revocations.revoke("past", NOW - timedelta(days=1))
        assert revocations.purge_expired(NOW) == 1
        assert revocations.purge_expired(NOW) == 0


class TestConcurrentAccess:
    def test_purge_alongside_revokes(self, tmp_path) -> None:
        """Writers, duplicate writers and a purge loop share one file database.

        Every future-dated jti must survive the purges, every past-dated one
        must be gone after a final purge, and no call may raise.
        """
        store = RevocationStore(f"sqlite:///{tmp_path / 'identity.db'}", timeout=10.0)
        errors: list[Exception] = []
        created: list[bool] = []
        writers_done = threading.Event()

        def writer(worker: int) -> None:
            try:
                for i in range(20):
                    assert store.revoke(f"live-{worker}-{i}", NOW + timedelta(days=1)) is True
                    store.revoke(f"dead-{worker}-{i}", NOW - timedelta(days=1))
                    created.append(store.revoke("shared", NOW + timedelta(days=1)))
                    assert store.is_revoked(f"live-{worker}-{i}") is True
            except Exception as exc:
                errors.append(exc)

        def purger() -> None:
            try:
                while not writers_done.is_set():
                    store.purge_expired(NOW)
                    time.sleep(0.001)
            except Exception as exc:
                errors.append(exc)

        workers = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        sweeper = threading.Thread(target=purger)
        sweeper.start()
        for t in workers:
            t.start()
        for t in workers:
            t.join()
        writers_done.set()
        sweeper.join()

        assert errors == []
        assert created.count(True) == 1
        store.purge_expired(NOW)
        assert all(store.is_revoked(f"live-{w}-{i}") for w in range(4) for i in range(20))
        assert store.is_revoked("shared") is True
        assert store.count() == 4 * 20 + 1
        store.close()


class TestStoreUnavailable:
    def test_unreachable_database_raises_store_unavailable(self, tmp_path) -> None:
        """A database path inside a missing directory cannot be opened."""
        url = f"sqlite:///{tmp_path / 'missing' / 'nested' / 'identity.db'}"
        with pytest.raises(StoreUnavailable) as exc_info:
            RevocationStore(url)
        assert exc_info.value.retryable is True
        assert exc_info.value.code == "store_unavailable"

    def test_ping_true_for_reachable_database(self, tmp_path) -> None:
        db_file = tmp_path / "identity.db"
        store = RevocationStore(f"sqlite:///{db_file}")
        assert store.ping() is True
        store.close()
