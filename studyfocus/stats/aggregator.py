"""Focus statistics fed by timer completion events.

Totals
------
Each completed **work** interval adds one session, its configured
duration to the focus total, and one to the streak.  Breaks, resets and
manual mode switches never reach this module.

Streak policy
-------------
What happens to the streak when a whole calendar day passes without a
completion is a product decision, so it is a constructor option:

* ``StreakPolicy.CONSECUTIVE`` -- the streak only ever grows (default).
* ``StreakPolicy.DAILY`` -- a skipped day restarts the streak at 1.

Idempotency
-----------
Every event carries a ``completion_key`` unique to the countdown that
finished.  A key that was already recorded is ignored, so a replayed
event, or a second view evaluating the same tick after a leadership
hand-over, is not counted twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime
from enum import Enum

from PyQt6.QtCore import QObject, pyqtSignal
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database.db import Database
from ..database.models import Completion, DailyStats, FocusStats
from ..timer.modes import Mode

LOGGER = logging.getLogger(__name__)


class StreakPolicy(Enum):
    CONSECUTIVE = "consecutive"
    DAILY = "daily"


@dataclass(frozen=True)
class Stats:
    total_focus_seconds: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    sessions_completed_count: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class DayTotal:
    date: date
    sessions_completed: int
    focus_seconds: int


def _stats_from_row(row: FocusStats | None) -> Stats:
    if row is None:
        return Stats()
    return Stats(
        total_focus_seconds=row.total_focus_seconds,
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        sessions_completed_count=row.sessions_completed_count,
    )


class StatsAggregator(QObject):
    """Applies work-completion events to the stored statistics.

    Signals
    -------
    stats_updated(stats: Stats)
        Emitted after a completion was recorded.
    """

    stats_updated = pyqtSignal(object)

    def __init__(
        self,
        database: Database,
        *,
        streak_policy: StreakPolicy = StreakPolicy.CONSECUTIVE,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._db = database
        self._policy = streak_policy

    @property
    def streak_policy(self) -> StreakPolicy:
        return self._policy

    # ── recording ────────────────────────────────────────────────────────

    def record_completion(self, data: dict) -> bool:
        """Record one ``session_completed`` event.

        Returns False for breaks, for keys already recorded and when the
        stats could not be stored.
        """
        if data.get("mode") != Mode.WORK.value:
            return False

        key = data["completion_key"]
        completed_at = datetime.fromtimestamp(data["completed_at"])
        duration = int(data["duration_seconds"])
        day = completed_at.date()

        try:
            with self._db.session() as db:
                # ── idempotency guard ────────────────────────────────
                seen = db.scalar(
                    select(Completion.id).where(Completion.completion_key == key)
                )
                if seen is not None:
                    LOGGER.debug("Completion %s already recorded", key)
                    return False

                db.add(Completion(
                    completion_key=key,
                    mode=Mode.WORK.value,
                    duration_seconds=duration,
                    completed_at=completed_at,
                    linked_task_id=_opaque(data.get("linked_task_id")),
                    linked_document_id=_opaque(data.get("linked_document_id")),
                    note=data.get("note"),
                ))

                progress = db.query(FocusStats).first()
                if progress is None:
                    progress = FocusStats(
                        total_focus_seconds=0,
                        current_streak=0,
                        longest_streak=0,
                        sessions_completed_count=0,
                    )
                    db.add(progress)

                progress.sessions_completed_count += 1
                progress.total_focus_seconds += duration
                progress.current_streak = self._next_streak(
                    progress.current_streak, progress.last_completion_date, day,
                )
                progress.longest_streak = max(
                    progress.longest_streak, progress.current_streak,
                )
                if progress.last_completion_date is None or day > progress.last_completion_date:
                    progress.last_completion_date = day

                # ── daily totals ─────────────────────────────────────
                daily = db.query(DailyStats).filter_by(date=day).first()
                if daily is None:
                    daily = DailyStats(date=day, sessions_completed=0, focus_seconds=0)
                    db.add(daily)
                daily.sessions_completed += 1
                daily.focus_seconds += duration

                stats = _stats_from_row(progress)
        except IntegrityError:
            # another view recorded the same key between our check and commit
            LOGGER.debug("Completion %s recorded concurrently", key)
            return False
        except SQLAlchemyError:
            # runs as a Qt slot; raising here would abort the process
            LOGGER.error("Completion %s could not be recorded", key, exc_info=True)
            return False

        self.stats_updated.emit(stats)
        return True

    def _next_streak(self, current: int, last: date | None, day: date) -> int:
        if self._policy is StreakPolicy.DAILY and last is not None:
            if (day - last).days > 1:
                return 1  # a whole day was skipped
        return current + 1

    # ── queries ──────────────────────────────────────────────────────────

    def get_stats(self) -> Stats:
        with self._db.session() as db:
            return _stats_from_row(db.query(FocusStats).first())

    def daily_totals(self, start: date, end: date) -> list[DayTotal]:
        """Per-day totals for ``start <= date <= end``, oldest first."""
        with self._db.session() as db:
            rows = (
                db.query(DailyStats)
                .filter(DailyStats.date >= start, DailyStats.date <= end)
                .order_by(DailyStats.date)
                .all()
            )
            return [
                DayTotal(r.date, r.sessions_completed, r.focus_seconds)
                for r in rows
            ]

    def recent_completions(self, limit: int = 20) -> list[dict]:
        """Latest recorded work completions, newest first."""
        with self._db.session() as db:
            rows = db.scalars(
                select(Completion)
                .order_by(Completion.completed_at.desc(), Completion.id.desc())
                .limit(limit)
            ).all()
            return [
                {
                    "completion_key": r.completion_key,
                    "completed_at": r.completed_at,
                    "duration_seconds": r.duration_seconds,
                    "linked_task_id": r.linked_task_id,
                    "linked_document_id": r.linked_document_id,
                    "note": r.note,
                }
                for r in rows
            ]


def _opaque(value) -> str | None:
    return None if value is None else str(value)
