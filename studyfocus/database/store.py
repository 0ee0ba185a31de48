"""Snapshot store: the persistence layer shared by every view.

Three kinds of record live in the database:

* **Snapshots** -- the latest JSON payload per key (``session``,
  ``settings``), stamped with a store-wide write sequence.  A higher
  sequence always wins; there is no merging.
* **Leases** -- which view currently owns the session (holder + expiry).
* **Pending commands** -- commands a follower view queued for the leader.

Change notification
-------------------
``snapshot_changed(key, seq)`` is emitted immediately after a local
write and from :meth:`SnapshotStore.poll_changes` when another process
(or another store on the same file) has written a newer sequence.
Delivery is best-effort: a view that misses a notification catches up
on its next poll.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from PyQt6.QtCore import QObject, pyqtSignal
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .db import Database
from .models import Lease, PendingCommand, Snapshot

LOGGER = logging.getLogger(__name__)

SESSION_KEY = "session"
SETTINGS_KEY = "settings"


@dataclass(frozen=True)
class LeaseInfo:
    holder: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return self.expires_at > now


@dataclass(frozen=True)
class QueuedCommand:
    id: int
    issuer: str
    name: str
    arguments: list


class SnapshotStore(QObject):
    """Durable snapshot, lease and command-queue storage.

    Signals
    -------
    snapshot_changed(key: str, seq: int)
        A snapshot was written (here or elsewhere) with a newer sequence.
    """

    snapshot_changed = pyqtSignal(str, int)

    def __init__(self, database: Database, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._db = database
        self._seen: dict[str, int] = {}
        self._written: dict[str, int] = {}

    @property
    def database(self) -> Database:
        return self._db

    # ══════════════════════════════════════════════════════════════════
    #  SNAPSHOTS
    # ══════════════════════════════════════════════════════════════════

    def read(self, key: str) -> tuple[dict[str, Any] | None, int]:
        """Return ``(payload, seq)``; payload is ``None`` if absent or corrupt."""
        with self._db.session() as db:
            row = db.get(Snapshot, key)
            if row is None:
                return None, 0
            raw, seq = row.payload, row.seq

        self._seen[key] = max(self._seen.get(key, 0), seq)
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError):
            LOGGER.warning("Snapshot %r (seq %s) is not valid JSON; ignoring", key, seq)
            return None, seq
        if not isinstance(payload, dict):
            LOGGER.warning("Snapshot %r (seq %s) is not an object; ignoring", key, seq)
            return None, seq
        return payload, seq

    def write(self, key: str, payload: dict[str, Any]) -> int:
        """Persist *payload* under *key* and return its write sequence."""
        text = json.dumps(payload, sort_keys=True)
        with self._db.session() as db:
            top = db.scalar(select(func.max(Snapshot.seq))) or 0
            seq = top + 1
            row = db.get(Snapshot, key)
            if row is None:
                db.add(Snapshot(key=key, payload=text, seq=seq))
            else:
                row.payload = text
                row.seq = seq
                row.updated_at = datetime.utcnow()

        self._seen[key] = seq
        self._written[key] = seq
        self.snapshot_changed.emit(key, seq)
        return seq

    def written_here(self, key: str, seq: int) -> bool:
        """True if *seq* is the last write of *key* made through this store."""
        return self._written.get(key) == seq

    def poll_changes(self) -> list[tuple[str, int]]:
        """Emit ``snapshot_changed`` for keys written since we last looked."""
        with self._db.session() as db:
            rows = db.execute(select(Snapshot.key, Snapshot.seq)).all()

        changed = []
        for key, seq in sorted(rows, key=lambda r: r[1]):
            if seq > self._seen.get(key, 0):
                self._seen[key] = seq
                changed.append((key, seq))
        for key, seq in changed:
            self.snapshot_changed.emit(key, seq)
        return changed

    # ══════════════════════════════════════════════════════════════════
    #  LEASES
    # ══════════════════════════════════════════════════════════════════

    def read_lease(self, name: str) -> LeaseInfo | None:
        with self._db.session() as db:
            row = db.get(Lease, name)
            if row is None:
                return None
            return LeaseInfo(holder=row.holder, expires_at=row.expires_at)

    def claim_lease(self, name: str, holder: str, now: float, ttl: float) -> bool:
        """Take or renew the lease.

        Succeeds when the lease is absent, expired, or already held by
        *holder*.  Any storage error counts as a failed claim.
        """
        expires_at = now + ttl
        try:
            with self._db.session() as db:
                result = db.execute(
                    update(Lease)
                    .where(Lease.name == name)
                    .where(or_(Lease.holder == holder, Lease.expires_at <= now))
                    .values(holder=holder, expires_at=expires_at)
                )
                if result.rowcount:
                    return True
                if db.get(Lease, name) is not None:
                    return False
                db.add(Lease(name=name, holder=holder, expires_at=expires_at))
            return True
        except IntegrityError:
            # another view inserted the first lease at the same moment
            return False
        except SQLAlchemyError:
            LOGGER.warning("Lease %r could not be written for %s", name, holder, exc_info=True)
            return False

    def release_lease(self, name: str, holder: str) -> None:
        try:
            with self._db.session() as db:
                row = db.get(Lease, name)
                if row is not None and row.holder == holder:
                    db.delete(row)
        except SQLAlchemyError:
            LOGGER.warning("Lease %r could not be released by %s", name, holder, exc_info=True)

    # ══════════════════════════════════════════════════════════════════
    #  PENDING COMMANDS
    # ══════════════════════════════════════════════════════════════════

    def enqueue_command(self, issuer: str, name: str, arguments: list | tuple = ()) -> int:
        with self._db.session() as db:
            record = PendingCommand(
                issuer=issuer,
                name=name,
                arguments=json.dumps(list(arguments)),
            )
            db.add(record)
            db.flush()
            return record.id

    def take_commands(self) -> list[QueuedCommand]:
        """Return unconsumed commands in issue order and mark them consumed."""
        taken: list[QueuedCommand] = []
        with self._db.session() as db:
            rows = db.scalars(
                select(PendingCommand)
                .where(PendingCommand.consumed.is_(False))
                .order_by(PendingCommand.id)
            ).all()
            for row in rows:
                row.consumed = True
                try:
                    arguments = json.loads(row.arguments)
                except (TypeError, ValueError):
                    LOGGER.warning("Dropping command %s with unreadable arguments", row.id)
                    continue
                taken.append(QueuedCommand(row.id, row.issuer, row.name, list(arguments)))
        return taken

    def pending_count(self) -> int:
        with self._db.session() as db:
            return db.scalar(
                select(func.count(PendingCommand.id))
                .where(PendingCommand.consumed.is_(False))
            ) or 0
