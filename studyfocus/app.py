"""One view of the StudyFocus timer, fully wired.

``FocusDesk`` is what a window (main panel, compact control, pop-out)
constructs.  It owns the storage handle, the settings, timer engine,
stats aggregator and the coordinator that decides whether this view
leads.  Several instances on the same database behave like several
windows of the same profile::

    main = FocusDesk(url, view_id="main")
    popout = FocusDesk(url, view_id="popout")
    main.start()
    popout.poll()
    popout.get_time_left()
    ...
    popout.close()
    main.close()
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping

from PyQt6.QtCore import QObject

from .database.db import Database
from .database.store import SnapshotStore
from .settings import Settings, SettingsManager
from .stats.aggregator import Stats, StatsAggregator, StreakPolicy
from .sync.coordinator import LEASE_TTL_SECONDS, ViewCoordinator
from .timer.engine import TimerEngine
from .timer.modes import Mode

LOGGER = logging.getLogger(__name__)


class FocusDesk(QObject):
    """Explicitly constructed focus-timer context for a single view."""

    def __init__(
        self,
        database_url: str | None = None,
        *,
        view_id: str | None = None,
        clock: Callable[[], float] = time.time,
        lease_ttl: float = LEASE_TTL_SECONDS,
        streak_policy: StreakPolicy = StreakPolicy.CONSECUTIVE,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)

        # ── storage ───────────────────────────────────────────────────
        self.database = Database(database_url)
        self.database.init()
        self.store = SnapshotStore(self.database, self)

        # ── settings + engines ────────────────────────────────────────
        self.settings = SettingsManager(self.store, self)
        self.settings.load()

        self.engine = TimerEngine(self.settings, self.store, clock=clock, parent=self)
        self.engine.load()

        self.stats = StatsAggregator(
            self.database, streak_policy=streak_policy, parent=self,
        )
        self.engine.session_completed.connect(self.stats.record_completion)

        # ── coordination ──────────────────────────────────────────────
        self.coordinator = ViewCoordinator(
            self.engine,
            self.settings,
            self.store,
            view_id=view_id,
            clock=clock,
            lease_ttl=lease_ttl,
            parent=self,
        )
        self._closed = False
        LOGGER.debug("View %s opened on %s", self.view_id, self.database.url)

    # ── lifecycle ────────────────────────────────────────────────────────

    def close(self) -> None:
        """Give up leadership and release the database handle."""
        if self._closed:
            return
        self._closed = True
        self.coordinator.release()
        self.database.dispose()
        LOGGER.debug("View %s closed", self.view_id)

    def __enter__(self) -> "FocusDesk":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── identity ─────────────────────────────────────────────────────────

    @property
    def view_id(self) -> str:
        return self.coordinator.view_id

    @property
    def is_leader(self) -> bool:
        return self.coordinator.is_leader

    # ── command surface ──────────────────────────────────────────────────

    def start(self) -> bool:
        return self.coordinator.start()

    def pause(self) -> bool:
        return self.coordinator.pause()

    def reset(self) -> bool:
        return self.coordinator.reset()

    def switch_mode(self, mode: Mode | str) -> bool:
        return self.coordinator.switch_mode(mode)

    def bind_to_task(self, task_id: Any) -> bool:
        return self.coordinator.bind_to_task(task_id)

    def bind_to_document(self, document_id: Any) -> bool:
        return self.coordinator.bind_to_document(document_id)

    def set_note(self, text: str | None) -> bool:
        return self.coordinator.set_note(text)

    def poll(self) -> dict | None:
        return self.coordinator.poll()

    # ── queries ──────────────────────────────────────────────────────────

    def get_time_left(self) -> int:
        return self.engine.get_time_left()

    def get_progress_percentage(self) -> float:
        return self.engine.get_progress_percentage()

    def get_stats(self) -> Stats:
        return self.stats.get_stats()

    def get_settings(self) -> Settings:
        return self.settings.get()

    def update_settings(self, partial: Mapping[str, Any]) -> Settings:
        return self.settings.update(partial)
