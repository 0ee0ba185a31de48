"""Pure display helpers shared by every view.

Nothing here is persisted; each value is recomputed from the current
mode or the seconds left.
"""

from __future__ import annotations

from .modes import Mode


# (colour name, hex) per mode
MODE_COLORS: dict[Mode, tuple[str, str]] = {
    Mode.WORK:        ("red",   "#EF4444"),
    Mode.SHORT_BREAK: ("green", "#22C55E"),
    Mode.LONG_BREAK:  ("blue",  "#3B82F6"),
}

MODE_ICONS: dict[Mode, str] = {
    Mode.WORK: "target",
    Mode.SHORT_BREAK: "coffee",
    Mode.LONG_BREAK: "coffee",
}

MODE_LABELS: dict[Mode, str] = {
    Mode.WORK: "Focus Time",
    Mode.SHORT_BREAK: "Short Break",
    Mode.LONG_BREAK: "Long Break",
}

FALLBACK_ICON = "clock"


def mode_color(mode: Mode) -> str:
    return MODE_COLORS[mode][1]


def mode_icon_name(mode: Mode) -> str:
    return MODE_ICONS.get(mode, FALLBACK_ICON)


def mode_label(mode: Mode) -> str:
    return MODE_LABELS[mode]


def format_time(seconds: int) -> str:
    """1500 → '25:00', 65 → '1:05', negative → '0:00'."""
    m, s = divmod(max(0, int(seconds)), 60)
    return f"{m}:{s:02d}"
