"""Timer package."""

from .modes import Mode
from .engine import (
    TimerEngine,
    TimerState,
    TimerSession,
    next_mode,
    seconds_until,
)
from .display import format_time, mode_color, mode_icon_name, mode_label

__all__ = [
    "Mode",
    "TimerEngine",
    "TimerState",
    "TimerSession",
    "next_mode",
    "seconds_until",
    "format_time",
    "mode_color",
    "mode_icon_name",
    "mode_label",
]
