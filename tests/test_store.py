"""Tests for the snapshot store: sequences, change notification,
leases and the pending-command queue."""

from __future__ import annotations

from contextlib import contextmanager

import pytest
from sqlalchemy.exc import OperationalError

from studyfocus.database.db import Database
from studyfocus.database.models import Snapshot
from studyfocus.database.store import SESSION_KEY, SETTINGS_KEY, SnapshotStore

from helpers import SignalCollector


@pytest.fixture
def other_store(qapp, database, db_url):
    """A second store on the same file, as another process would have."""
    db = Database(db_url)
    yield SnapshotStore(db)
    db.dispose()


@pytest.fixture
def broken_storage(database, monkeypatch):
    @contextmanager
    def _session():
        raise OperationalError("BEGIN", {}, Exception("disk I/O error"))
        yield  # pragma: no cover

    def _break():
        monkeypatch.setattr(database, "session", _session)

    return _break


class TestSnapshots:
    def test_missing_key(self, store):
        assert store.read(SESSION_KEY) == (None, 0)

    def test_write_then_read(self, store):
        seq = store.write(SESSION_KEY, {"mode": "work"})
        assert store.read(SESSION_KEY) == ({"mode": "work"}, seq)

    def test_sequence_is_store_wide_and_increasing(self, store):
        a = store.write(SESSION_KEY, {"n": 1})
        b = store.write(SETTINGS_KEY, {"n": 2})
        c = store.write(SESSION_KEY, {"n": 3})
        assert a < b < c

    def test_corrupt_payload_reads_as_none(self, store, database):
        with database.session() as db:
            db.add(Snapshot(key=SESSION_KEY, payload="{oops", seq=7))
        assert store.read(SESSION_KEY) == (None, 7)

    def test_non_object_payload_reads_as_none(self, store, database):
        with database.session() as db:
            db.add(Snapshot(key=SESSION_KEY, payload="[1, 2]", seq=3))
        assert store.read(SESSION_KEY) == (None, 3)

    def test_write_emits_change(self, store):
        c = SignalCollector()
        store.snapshot_changed.connect(c)
        seq = store.write(SETTINGS_KEY, {"workDuration": 30})
        assert c.last == (SETTINGS_KEY, seq)

    def test_written_here_tracks_own_writes(self, store, other_store):
        seq = store.write(SESSION_KEY, {"mode": "work"})
        assert store.written_here(SESSION_KEY, seq) is True
        assert store.written_here(SETTINGS_KEY, seq) is False

        later = other_store.write(SESSION_KEY, {"mode": "long-break"})
        assert store.written_here(SESSION_KEY, later) is False
        assert other_store.written_here(SESSION_KEY, later) is True


class TestPollChanges:
    def test_sees_writes_from_another_store(self, store, other_store):
        c = SignalCollector()
        store.snapshot_changed.connect(c)

        seq = other_store.write(SESSION_KEY, {"mode": "work"})
        assert len(c) == 0

        assert store.poll_changes() == [(SESSION_KEY, seq)]
        assert c.last == (SESSION_KEY, seq)

    def test_reports_each_change_once(self, store, other_store):
        other_store.write(SESSION_KEY, {"mode": "work"})
        store.poll_changes()
        assert store.poll_changes() == []

    def test_own_writes_are_not_reported_again(self, store):
        store.write(SESSION_KEY, {"mode": "work"})
        assert store.poll_changes() == []


class TestLeases:
    def test_first_claim_succeeds(self, store):
        assert store.claim_lease("session", "a", now=100.0, ttl=5.0) is True
        lease = store.read_lease("session")
        assert lease.holder == "a"
        assert lease.expires_at == 105.0

    def test_live_lease_blocks_others(self, store):
        store.claim_lease("session", "a", now=100.0, ttl=5.0)
        assert store.claim_lease("session", "b", now=104.0, ttl=5.0) is False
        assert store.read_lease("session").holder == "a"

    def test_holder_renews(self, store):
        store.claim_lease("session", "a", now=100.0, ttl=5.0)
        assert store.claim_lease("session", "a", now=104.0, ttl=5.0) is True
        assert store.read_lease("session").expires_at == 109.0

    def test_expired_lease_can_be_taken(self, store):
        store.claim_lease("session", "a", now=100.0, ttl=5.0)
        assert store.claim_lease("session", "b", now=105.0, ttl=5.0) is True
        assert store.read_lease("session").holder == "b"

    def test_lease_is_shared_across_stores(self, store, other_store):
        store.claim_lease("session", "a", now=100.0, ttl=5.0)
        assert other_store.claim_lease("session", "b", now=101.0, ttl=5.0) is False

    def test_release_only_by_holder(self, store):
        store.claim_lease("session", "a", now=100.0, ttl=5.0)
        store.release_lease("session", "b")
        assert store.read_lease("session").holder == "a"
        store.release_lease("session", "a")
        assert store.read_lease("session") is None

    def test_validity(self, store):
        store.claim_lease("session", "a", now=100.0, ttl=5.0)
        lease = store.read_lease("session")
        assert lease.is_valid(104.9)
        assert not lease.is_valid(105.0)

    def test_storage_failure_is_not_a_claim(self, store, broken_storage):
        broken_storage()
        assert store.claim_lease("session", "a", now=100.0, ttl=5.0) is False


class TestCommandQueue:
    def test_fifo_and_consumed_once(self, store, other_store):
        other_store.enqueue_command("popout", "pause")
        other_store.enqueue_command("mini", "switch_mode", ["long-break"])
        assert store.pending_count() == 2

        taken = store.take_commands()
        assert [(c.issuer, c.name, c.arguments) for c in taken] == [
            ("popout", "pause", []),
            ("mini", "switch_mode", ["long-break"]),
        ]
        assert store.take_commands() == []
        assert store.pending_count() == 0
