"""Keeps several views of one session consistent.

Every window that shows the timer (main panel, compact control, pop-out)
owns a :class:`ViewCoordinator`.  Exactly one of them is the **leader**:
it holds the session lease, applies commands, evaluates completion and
writes the session snapshot.  The others are **followers**: they mirror
the latest snapshot and hand their commands to the leader.

Lease
-----
The lease is a row with the holder's view id and an expiry instant.
:meth:`ViewCoordinator.poll` renews it on every evaluation cycle.  When
a leader disappears its lease simply runs out, and the next view that
polls or issues a command takes over.  If the lease cannot be written
at all the view stays a follower.

Commands
--------
A command issued on the leader runs immediately.  A follower queues it
when another view holds a live lease; the leader applies queued commands
in issue order on its next poll.  With no live leader the issuing view
claims the lease itself and runs the command.

Known limitation
----------------
Two views can briefly both believe they lead (a renewal racing an
expiry).  Snapshots are last-write-wins by write sequence, and time
left is always recomputed from ``targetInstant``, so the views converge.
``completedWorkSessions`` is the one value that may be incremented twice
in that window; the stats store ignores the second event for the same
completion key.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable

from PyQt6.QtCore import QObject, QTimer, pyqtSignal
from sqlalchemy.exc import SQLAlchemyError

from ..database.store import SESSION_KEY, SETTINGS_KEY, LeaseInfo, SnapshotStore
from ..settings import SettingsManager
from ..timer.engine import TimerEngine, check_note, check_reference
from ..timer.modes import Mode

LOGGER = logging.getLogger(__name__)

LEASE_NAME = "session"
LEASE_TTL_SECONDS = 5.0
POLL_INTERVAL_MS = 1000

COMMANDS = frozenset({
    "start",
    "pause",
    "reset",
    "switch_mode",
    "bind_to_task",
    "bind_to_document",
    "set_note",
})


def new_view_id() -> str:
    return f"view-{uuid.uuid4().hex[:12]}"


class ViewCoordinator(QObject):
    """Leader election and command routing for one view.

    Signals
    -------
    leadership_changed(is_leader: bool)
        Emitted when this view gains or loses the lease.
    """

    leadership_changed = pyqtSignal(bool)

    def __init__(
        self,
        engine: TimerEngine,
        settings: SettingsManager,
        store: SnapshotStore,
        *,
        view_id: str | None = None,
        clock: Callable[[], float] = time.time,
        lease_ttl: float = LEASE_TTL_SECONDS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._engine = engine
        self._settings = settings
        self._store = store
        self._view_id = view_id or new_view_id()
        self._clock = clock
        self._lease_ttl = lease_ttl
        self._is_leader = False

        self._store.snapshot_changed.connect(self._on_snapshot_changed)

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(POLL_INTERVAL_MS)
        self._poll_timer.timeout.connect(self.poll)

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC PROPERTIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def view_id(self) -> str:
        return self._view_id

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    @property
    def engine(self) -> TimerEngine:
        return self._engine

    def current_leader(self) -> str | None:
        """View id holding a live lease, if any."""
        lease = self._read_lease()
        if lease is None or not lease.is_valid(self._clock()):
            return None
        return lease.holder

    # ══════════════════════════════════════════════════════════════════
    #  LEADERSHIP
    # ══════════════════════════════════════════════════════════════════

    def check_leadership(self) -> bool:
        """Claim or renew the lease.  Returns True if this view leads."""
        claimed = self._store.claim_lease(
            LEASE_NAME, self._view_id, self._clock(), self._lease_ttl,
        )
        self._set_leader(claimed)
        return claimed

    def release(self) -> None:
        """Stop polling and hand the lease back, e.g. when a window closes."""
        self.stop_polling()
        if self._is_leader:
            self._store.release_lease(LEASE_NAME, self._view_id)
            self._set_leader(False)

    def _set_leader(self, leader: bool) -> None:
        if leader == self._is_leader:
            return
        if leader:
            # catch up before the first authoritative write
            self._sync_session()
        self._is_leader = leader
        LOGGER.info("%s is now %s", self._view_id, "leader" if leader else "follower")
        self.leadership_changed.emit(leader)

    def _read_lease(self) -> LeaseInfo | None:
        try:
            return self._store.read_lease(LEASE_NAME)
        except SQLAlchemyError:
            LOGGER.warning("Lease %r could not be read", LEASE_NAME, exc_info=True)
            return None

    # ══════════════════════════════════════════════════════════════════
    #  EVALUATION CYCLE
    # ══════════════════════════════════════════════════════════════════

    def poll(self) -> dict | None:
        """One evaluation pass.

        Followers pick up snapshots written elsewhere.  The leader also
        renews its lease, evaluates completion and then applies queued
        commands.  Returns completion data if an interval finished.
        """
        try:
            self._store.poll_changes()
        except SQLAlchemyError:
            LOGGER.warning("Could not check for snapshot changes", exc_info=True)

        try:
            if not self.check_leadership():
                return None
            completion = self._engine.check_completion()
            self._drain_queue()
        except SQLAlchemyError:
            LOGGER.warning("Evaluation pass failed for %s", self._view_id, exc_info=True)
            return None
        return completion

    def start_polling(self, interval_ms: int = POLL_INTERVAL_MS) -> None:
        """Drive :meth:`poll` from a Qt timer (needs a running event loop)."""
        self._poll_timer.setInterval(interval_ms)
        self.poll()
        self._poll_timer.start()

    def stop_polling(self) -> None:
        self._poll_timer.stop()

    # ══════════════════════════════════════════════════════════════════
    #  COMMANDS
    # ══════════════════════════════════════════════════════════════════

    def command(self, name: str, *args: Any) -> bool:
        """Route *name* to the leader.

        Returns True if this view executed it, False if it was queued
        for another view (or could not be stored at all).
        """
        if name not in COMMANDS:
            raise ValueError(f"unknown command {name!r}")

        if self._is_leader and self.check_leadership():
            self._run_as_leader(name, args)
            return True

        leader = self.current_leader()
        if leader is None or leader == self._view_id:
            if self.check_leadership():
                self._run_as_leader(name, args)
                return True

        try:
            self._store.enqueue_command(self._view_id, name, args)
        except SQLAlchemyError:
            LOGGER.error("Command %s could not be queued for the leader", name, exc_info=True)
            return False
        LOGGER.debug("%s queued %s for %s", self._view_id, name, leader)
        return False

    def start(self) -> bool:
        return self.command("start")

    def pause(self) -> bool:
        return self.command("pause")

    def reset(self) -> bool:
        return self.command("reset")

    def switch_mode(self, mode: Mode | str) -> bool:
        return self.command("switch_mode", Mode.parse(mode).value)

    def bind_to_task(self, task_id: Any) -> bool:
        return self.command("bind_to_task", check_reference(task_id))

    def bind_to_document(self, document_id: Any) -> bool:
        return self.command("bind_to_document", check_reference(document_id))

    def set_note(self, text: str | None) -> bool:
        return self.command("set_note", check_note(text))

    # ── read-only queries work the same on every view ────────────────────

    def get_time_left(self) -> int:
        return self._engine.get_time_left()

    def get_progress_percentage(self) -> float:
        return self._engine.get_progress_percentage()

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL
    # ══════════════════════════════════════════════════════════════════

    def _execute(self, name: str, args) -> None:
        getattr(self._engine, name)(*args)

    def _run_as_leader(self, name: str, args) -> None:
        # an interval that already hit zero completes before the command lands,
        # and commands queued earlier run before this one
        self._engine.check_completion()
        self._drain_queue()
        self._execute(name, args)

    def _drain_queue(self) -> None:
        for queued in self._store.take_commands():
            try:
                self._execute(queued.name, queued.arguments)
            except (TypeError, ValueError, SQLAlchemyError):
                LOGGER.warning(
                    "Ignoring queued command %s%r from %s",
                    queued.name, queued.arguments, queued.issuer, exc_info=True,
                )

    def _sync_session(self) -> None:
        payload, seq = self._store.read(SESSION_KEY)
        self._engine.apply_snapshot(payload, seq)

    def _on_snapshot_changed(self, key: str, seq: int) -> None:
        if self._store.written_here(key, seq):
            return  # our own engine or settings manager already holds it
        try:
            if key == SESSION_KEY and seq > self._engine.snapshot_seq:
                self._sync_session()
            elif key == SETTINGS_KEY:
                self._settings.reload()
        except SQLAlchemyError:
            LOGGER.warning("Could not read snapshot %r (seq %s)", key, seq, exc_info=True)
