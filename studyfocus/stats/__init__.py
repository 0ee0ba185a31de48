"""Statistics package."""

from .aggregator import DayTotal, Stats, StatsAggregator, StreakPolicy

__all__ = ["DayTotal", "Stats", "StatsAggregator", "StreakPolicy"]
