"""Timer state machine for StudyFocus.

States
------
IDLE      Not running; the current mode's full duration is loaded.
RUNNING   Counting down towards ``target_instant``.
PAUSED    Not running; ``remaining_seconds`` holds what was left.

Transitions
-----------
IDLE | PAUSED → RUNNING                      (start)
RUNNING → PAUSED                             (pause)
Any → IDLE, same mode                        (reset)
Any → IDLE, new mode                         (switch_mode)
RUNNING → IDLE or RUNNING, next mode         (check_completion at 0)

Wall-clock design
-----------------
Nothing here ticks.  A running session only stores the instant at which
it reaches zero; every query recomputes ``target_instant - now``.  A
suspended process or a throttled window therefore never drifts, and a
session restored from disk keeps counting down while nobody watched.

Completion is lazy: the presentation layer polls, and the first
:meth:`TimerEngine.check_completion` call that sees zero left performs
the transition.  When the next interval auto-starts, it is anchored at
the previous ``target_instant`` rather than at the moment of the poll.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping

from PyQt6.QtCore import QObject, pyqtSignal

from ..database.store import SESSION_KEY, SnapshotStore
from .modes import Mode

if TYPE_CHECKING:
    from ..settings import SettingsManager

LOGGER = logging.getLogger(__name__)


# ── enums ─────────────────────────────────────────────────────────────────


class TimerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


# ── session ───────────────────────────────────────────────────────────────


@dataclass
class TimerSession:
    """The one active session.  Exactly one of ``target_instant`` (running)
    and ``remaining_seconds`` (paused / idle) is set."""

    mode: Mode = Mode.WORK
    is_running: bool = False
    target_instant: float | None = None
    remaining_seconds: int | None = 25 * 60
    completed_work_sessions: int = 0
    linked_task_id: Any = None
    linked_document_id: Any = None
    note: str | None = None

    def to_snapshot(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "mode": self.mode.value,
            "isRunning": self.is_running,
            "targetInstant": self.target_instant,
            "remainingSeconds": self.remaining_seconds,
            "completedWorkSessions": self.completed_work_sessions,
        }
        if self.linked_task_id is not None:
            data["linkedTaskId"] = self.linked_task_id
        if self.linked_document_id is not None:
            data["linkedDocumentId"] = self.linked_document_id
        if self.note is not None:
            data["note"] = self.note
        return data

    @classmethod
    def from_snapshot(cls, payload: Mapping[str, Any]) -> "TimerSession":
        """Parse a stored snapshot; raises ``ValueError`` if it is inconsistent."""
        try:
            mode = Mode(payload["mode"])
            running = payload["isRunning"]
            target = payload.get("targetInstant")
            remaining = payload.get("remainingSeconds")
            completed = payload.get("completedWorkSessions", 0)
        except (KeyError, TypeError) as exc:
            raise ValueError(f"malformed session snapshot: {exc}") from exc

        if not isinstance(running, bool):
            raise ValueError("isRunning must be a boolean")
        if isinstance(completed, bool) or not isinstance(completed, int) or completed < 0:
            raise ValueError("completedWorkSessions must be a non-negative integer")

        if running:
            if not _is_number(target) or remaining is not None:
                raise ValueError("a running session needs targetInstant only")
            target = float(target)
        else:
            if target is not None or not _is_number(remaining) or remaining < 0:
                raise ValueError("a stopped session needs remainingSeconds >= 0 only")
            remaining = int(math.ceil(remaining))

        return cls(
            mode=mode,
            is_running=running,
            target_instant=target,
            remaining_seconds=remaining,
            completed_work_sessions=completed,
            linked_task_id=payload.get("linkedTaskId"),
            linked_document_id=payload.get("linkedDocumentId"),
            note=payload.get("note"),
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def check_reference(value: Any) -> Any:
    """Return a task or document id unchanged if a snapshot can hold it.

    Ids are opaque; only their type is checked.  Strings and numbers come
    back from storage exactly as they went in, anything else raises
    ``ValueError``.
    """
    if value is None or isinstance(value, str) or _is_number(value):
        return value
    raise ValueError(f"reference must be a string or a number, got {type(value).__name__}")


def check_note(text: Any) -> str | None:
    if text is None or isinstance(text, str):
        return text
    raise ValueError(f"note must be text, got {type(text).__name__}")


def seconds_until(target: float, now: float) -> int:
    """Whole seconds left until *target*, never negative.

    Rounded to the millisecond first so float noise in ``now + n``
    cannot turn 1200 into 1201.
    """
    return max(0, math.ceil(round(target - now, 3)))


def next_mode(completed: Mode, completed_work_sessions: int, long_break_interval: int) -> Mode:
    """Mode that follows a completed interval.

    *completed_work_sessions* already includes the interval that just
    finished when *completed* is work.
    """
    if completed is Mode.WORK:
        if completed_work_sessions % long_break_interval == 0:
            return Mode.LONG_BREAK
        return Mode.SHORT_BREAK
    return Mode.WORK


# ── engine ────────────────────────────────────────────────────────────────


class TimerEngine(QObject):
    """Pomodoro countdown driven by wall-clock instants.

    Every mutation writes the full session snapshot through the store
    before returning.

    Signals
    -------
    state_changed(new_state: TimerState)
        Emitted whenever the derived state changes.
    session_changed(snapshot: dict)
        Emitted after every mutation or adopted snapshot.
    session_completed(data: dict)
        Emitted after an interval finishes naturally.  Keys:
        ``mode``, ``completion_key``, ``completed_at`` (epoch seconds),
        ``duration_seconds``, ``completed_work_sessions``, ``next_mode``,
        ``auto_started``, ``linked_task_id``, ``linked_document_id``,
        ``note``.
    """

    state_changed = pyqtSignal(object)
    session_changed = pyqtSignal(object)
    session_completed = pyqtSignal(object)

    def __init__(
        self,
        settings: SettingsManager,
        store: SnapshotStore,
        *,
        clock: Callable[[], float] = time.time,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings
        self._store = store
        self._clock = clock
        self._session = TimerSession(
            remaining_seconds=settings.duration_seconds(Mode.WORK),
        )
        self._seq = 0
        self._last_state = self.state

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC PROPERTIES
    # ══════════════════════════════════════════════════════════════════

    @property
    def session(self) -> TimerSession:
        """A copy of the current session."""
        return replace(self._session)

    @property
    def snapshot_seq(self) -> int:
        """Write sequence of the snapshot this engine currently reflects."""
        return self._seq

    @property
    def mode(self) -> Mode:
        return self._session.mode

    @property
    def is_running(self) -> bool:
        return self._session.is_running

    @property
    def state(self) -> TimerState:
        if self._session.is_running:
            return TimerState.RUNNING
        if self._session.remaining_seconds == self._full_duration():
            return TimerState.IDLE
        return TimerState.PAUSED

    @property
    def completed_work_sessions(self) -> int:
        return self._session.completed_work_sessions

    @property
    def linked_task_id(self) -> Any:
        return self._session.linked_task_id

    @property
    def linked_document_id(self) -> Any:
        return self._session.linked_document_id

    @property
    def note(self) -> str | None:
        return self._session.note

    # ══════════════════════════════════════════════════════════════════
    #  LOADING
    # ══════════════════════════════════════════════════════════════════

    def load(self) -> TimerSession:
        """Restore the stored session, or start fresh if absent/corrupt."""
        payload, seq = self._store.read(SESSION_KEY)
        session = self._parse(payload)
        if session is None:
            session = self._default_session()
        self._session = session
        self._seq = seq
        self._notify()
        return self.session

    def apply_snapshot(self, payload: Mapping[str, Any] | None, seq: int) -> bool:
        """Adopt a snapshot another view wrote, if it is newer.

        Never writes.  Returns True when the visible session changed.
        """
        if seq <= self._seq:
            return False
        session = self._parse(payload)
        if session is None:
            return False
        self._seq = seq
        if session == self._session:
            return False
        self._session = session
        self._notify()
        return True

    # ══════════════════════════════════════════════════════════════════
    #  CONTROLS
    # ══════════════════════════════════════════════════════════════════

    def start(self) -> None:
        """Count down from what is left.  No-op while running."""
        s = self._session
        if s.is_running:
            return
        remaining = s.remaining_seconds if s.remaining_seconds is not None else self._full_duration()
        self._commit(replace(
            s,
            is_running=True,
            target_instant=self._clock() + remaining,
            remaining_seconds=None,
        ))

    def pause(self) -> None:
        """Freeze the countdown.  No-op unless running."""
        s = self._session
        if not s.is_running:
            return
        self._commit(replace(
            s,
            is_running=False,
            target_instant=None,
            remaining_seconds=seconds_until(s.target_instant, self._clock()),
        ))

    def reset(self) -> None:
        """Back to IDLE with the current mode's configured duration."""
        self._commit(self._stopped(self._session.mode))

    def switch_mode(self, mode: Mode | str) -> None:
        """Hard switch to *mode*, discarding any countdown in progress.

        Never records a completion and never auto-starts.
        """
        self._commit(self._stopped(Mode.parse(mode)))

    def bind_to_task(self, task_id: Any) -> None:
        self._commit(replace(self._session, linked_task_id=check_reference(task_id)))

    def bind_to_document(self, document_id: Any) -> None:
        self._commit(replace(self._session, linked_document_id=check_reference(document_id)))

    def set_note(self, text: str | None) -> None:
        self._commit(replace(self._session, note=check_note(text)))

    # ══════════════════════════════════════════════════════════════════
    #  QUERIES
    # ══════════════════════════════════════════════════════════════════

    def get_time_left(self) -> int:
        """Seconds left, recomputed from the wall clock on every call."""
        s = self._session
        if s.is_running:
            return seconds_until(s.target_instant, self._clock())
        return s.remaining_seconds or 0

    def get_progress_percentage(self) -> float:
        """0 → 100 progress through the current mode's configured duration."""
        total = self._full_duration()
        if total <= 0:
            return 0.0
        elapsed = total - self.get_time_left()
        return max(0.0, min(100.0, elapsed / total * 100.0))

    # ══════════════════════════════════════════════════════════════════
    #  COMPLETION
    # ══════════════════════════════════════════════════════════════════

    def check_completion(self) -> dict | None:
        """Finish the running interval if it has reached zero.

        Performs at most one transition per call and returns the
        completion data (also emitted as ``session_completed``).  If the
        new snapshot cannot be written the session is left running, so
        the next call tries again.
        """
        s = self._session
        if not s.is_running or self.get_time_left() > 0:
            return None

        settings = self._settings.get()
        completed = s.mode
        completed_at = s.target_instant

        completed_work = s.completed_work_sessions + (1 if completed is Mode.WORK else 0)
        following = next_mode(completed, completed_work, settings.long_break_interval)
        auto = settings.auto_start_breaks if following.is_break else settings.auto_start_pomodoros

        if auto:
            after = replace(
                s,
                mode=following,
                completed_work_sessions=completed_work,
                is_running=True,
                target_instant=completed_at + settings.duration_seconds(following),
                remaining_seconds=None,
            )
        else:
            after = replace(
                s,
                mode=following,
                completed_work_sessions=completed_work,
                is_running=False,
                target_instant=None,
                remaining_seconds=settings.duration_seconds(following),
            )
        self._commit(after)

        data = {
            "mode": completed.value,
            "completion_key": f"{completed.value}@{round(completed_at * 1000)}",
            "completed_at": completed_at,
            "duration_seconds": settings.duration_seconds(completed),
            "completed_work_sessions": completed_work,
            "next_mode": following.value,
            "auto_started": auto,
            "linked_task_id": after.linked_task_id,
            "linked_document_id": after.linked_document_id,
            "note": after.note,
        }
        LOGGER.info("%s interval complete; next is %s", completed.value, following.value)
        self.session_completed.emit(data)
        return data

    # ══════════════════════════════════════════════════════════════════
    #  INTERNAL
    # ══════════════════════════════════════════════════════════════════

    def _full_duration(self) -> int:
        return self._settings.duration_seconds(self._session.mode)

    def _default_session(self) -> TimerSession:
        return TimerSession(remaining_seconds=self._settings.duration_seconds(Mode.WORK))

    def _stopped(self, mode: Mode) -> TimerSession:
        return replace(
            self._session,
            mode=mode,
            is_running=False,
            target_instant=None,
            remaining_seconds=self._settings.duration_seconds(mode),
        )

    def _parse(self, payload: Mapping[str, Any] | None) -> TimerSession | None:
        if payload is None:
            return None
        try:
            return TimerSession.from_snapshot(payload)
        except ValueError as exc:
            LOGGER.warning("Discarding stored session: %s", exc)
            return None

    def _commit(self, session: TimerSession) -> None:
        # persisted first; memory only moves once the write went through
        seq = self._store.write(SESSION_KEY, session.to_snapshot())
        self._session = session
        self._seq = seq
        self._notify()

    def _notify(self) -> None:
        self.session_changed.emit(self._session.to_snapshot())
        state = self.state
        if state != self._last_state:
            self._last_state = state
            self.state_changed.emit(state)
