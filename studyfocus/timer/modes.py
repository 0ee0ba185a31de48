"""Timer modes."""

from __future__ import annotations

from enum import Enum


class Mode(Enum):
    WORK = "work"
    SHORT_BREAK = "short-break"
    LONG_BREAK = "long-break"

    @property
    def is_break(self) -> bool:
        return self is not Mode.WORK

    @classmethod
    def parse(cls, value: "Mode | str") -> "Mode":
        """Accept a Mode, its value (``short-break``) or its name (``short_break``)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for mode in cls:
            if text in (mode.value, mode.name.lower()):
                return mode
        raise ValueError(f"unknown mode {value!r}")
