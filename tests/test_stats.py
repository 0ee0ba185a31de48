"""Tests for the stats aggregator.

Covers:
- Work completions update totals and streaks; breaks do not
- Idempotency per completion key
- Streak gap policies
- Daily totals and the completion log
- Wiring from the timer engine
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from studyfocus.database.models import Completion
from studyfocus.stats.aggregator import Stats, StatsAggregator, StreakPolicy

from helpers import BrokenDatabase, SignalCollector, complete_session


def _event(when: datetime, *, mode: str = "work", duration: int = 1500, key: str | None = None) -> dict:
    ts = when.timestamp()
    return {
        "mode": mode,
        "completion_key": key or f"{mode}@{round(ts * 1000)}",
        "completed_at": ts,
        "duration_seconds": duration,
        "linked_task_id": None,
        "linked_document_id": None,
        "note": None,
    }


@pytest.fixture
def aggregator(qapp, database):
    return StatsAggregator(database)


@pytest.fixture
def daily_aggregator(qapp, database):
    return StatsAggregator(database, streak_policy=StreakPolicy.DAILY)


MONDAY = datetime(2026, 3, 2, 10, 0, 0)


class TestTotals:
    def test_empty(self, aggregator):
        assert aggregator.get_stats() == Stats()

    def test_work_completion_counts(self, aggregator):
        assert aggregator.record_completion(_event(MONDAY)) is True
        assert aggregator.get_stats() == Stats(
            total_focus_seconds=1500,
            current_streak=1,
            longest_streak=1,
            sessions_completed_count=1,
        )

    def test_breaks_are_ignored(self, aggregator):
        assert aggregator.record_completion(_event(MONDAY, mode="short-break", duration=300)) is False
        assert aggregator.record_completion(_event(MONDAY, mode="long-break", duration=900)) is False
        assert aggregator.get_stats() == Stats()

    def test_totals_accumulate(self, aggregator):
        for i in range(3):
            aggregator.record_completion(_event(MONDAY + timedelta(minutes=30 * i), duration=1500 + i * 60))
        stats = aggregator.get_stats()
        assert stats.sessions_completed_count == 3
        assert stats.total_focus_seconds == 1500 + 1560 + 1620
        assert stats.current_streak == 3
        assert stats.longest_streak == 3

    def test_stats_updated_signal(self, aggregator):
        c = SignalCollector()
        aggregator.stats_updated.connect(c)
        aggregator.record_completion(_event(MONDAY))
        assert c.last.sessions_completed_count == 1

    def test_as_dict(self):
        assert Stats(1, 2, 3, 4).as_dict() == {
            "total_focus_seconds": 1,
            "current_streak": 2,
            "longest_streak": 3,
            "sessions_completed_count": 4,
        }


class TestIdempotency:
    def test_same_key_counts_once(self, aggregator, database):
        event = _event(MONDAY)
        assert aggregator.record_completion(event) is True
        assert aggregator.record_completion(dict(event)) is False
        assert aggregator.get_stats().sessions_completed_count == 1
        with database.session() as db:
            assert db.query(Completion).count() == 1

    def test_two_aggregators_same_database(self, aggregator, qapp, database):
        other = StatsAggregator(database)
        event = _event(MONDAY)
        aggregator.record_completion(event)
        other.record_completion(event)
        assert other.get_stats().sessions_completed_count == 1

    def test_storage_failure_is_logged_not_raised(self, qapp, caplog):
        broken = StatsAggregator(BrokenDatabase())
        c = SignalCollector()
        broken.stats_updated.connect(c)

        assert broken.record_completion(_event(MONDAY)) is False
        assert len(c) == 0
        assert "could not be recorded" in caplog.text


class TestStreakPolicy:
    def test_consecutive_policy_survives_gaps(self, aggregator):
        aggregator.record_completion(_event(MONDAY))
        aggregator.record_completion(_event(MONDAY + timedelta(days=5)))
        assert aggregator.get_stats().current_streak == 2

    def test_daily_policy_keeps_streak_on_next_day(self, daily_aggregator):
        daily_aggregator.record_completion(_event(MONDAY))
        daily_aggregator.record_completion(_event(MONDAY + timedelta(days=1)))
        assert daily_aggregator.get_stats().current_streak == 2

    def test_daily_policy_resets_after_skipped_day(self, daily_aggregator):
        daily_aggregator.record_completion(_event(MONDAY))
        daily_aggregator.record_completion(_event(MONDAY + timedelta(hours=2)))
        daily_aggregator.record_completion(_event(MONDAY + timedelta(days=2)))
        stats = daily_aggregator.get_stats()
        assert stats.current_streak == 1
        assert stats.longest_streak == 2
        assert stats.sessions_completed_count == 3

    def test_policy_property(self, daily_aggregator):
        assert daily_aggregator.streak_policy is StreakPolicy.DAILY


class TestHistory:
    def test_daily_totals(self, aggregator):
        aggregator.record_completion(_event(MONDAY))
        aggregator.record_completion(_event(MONDAY + timedelta(hours=1)))
        aggregator.record_completion(_event(MONDAY + timedelta(days=1), duration=600))

        totals = aggregator.daily_totals(MONDAY.date(), MONDAY.date() + timedelta(days=6))
        assert [(t.date, t.sessions_completed, t.focus_seconds) for t in totals] == [
            (MONDAY.date(), 2, 3000),
            (MONDAY.date() + timedelta(days=1), 1, 600),
        ]

    def test_recent_completions_newest_first(self, aggregator):
        first = _event(MONDAY)
        second = _event(MONDAY + timedelta(hours=1))
        second["linked_task_id"] = "task-7"
        aggregator.record_completion(first)
        aggregator.record_completion(second)

        recent = aggregator.recent_completions(limit=5)
        assert [r["completion_key"] for r in recent] == [
            second["completion_key"], first["completion_key"],
        ]
        assert recent[0]["linked_task_id"] == "task-7"


class TestEngineWiring:
    def test_engine_completion_feeds_stats(self, engine, aggregator, clock):
        engine.session_completed.connect(aggregator.record_completion)

        engine.start()
        complete_session(engine, clock)       # work
        engine.start()
        complete_session(engine, clock)       # short break
        engine.start()
        clock.advance(60)
        engine.reset()                        # abandoned work

        stats = aggregator.get_stats()
        assert stats.sessions_completed_count == 1
        assert stats.total_focus_seconds == 25 * 60
        assert stats.current_streak == 1
