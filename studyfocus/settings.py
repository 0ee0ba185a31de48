"""Timer settings with validated updates and snapshot persistence.

Settings live in the ``settings`` snapshot of the shared store, using
the camelCase keys every view understands::

    {"workDuration": 25, "shortBreakDuration": 5, "longBreakDuration": 15,
     "longBreakInterval": 4, "autoStartBreaks": false,
     "autoStartPomodoros": false}

Usage::

    manager = SettingsManager(store)
    manager.load()
    manager.update({"workDuration": 50})

An update is validated as a whole: one bad field rejects the entire
update and nothing is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Mapping

from PyQt6.QtCore import QObject, pyqtSignal

from .database.store import SETTINGS_KEY, SnapshotStore
from .timer.modes import Mode

LOGGER = logging.getLogger(__name__)


class SettingsError(ValueError):
    """Raised when a settings update is rejected."""


# minutes, inclusive
DURATION_BOUNDS = (1, 60)
INTERVAL_BOUNDS = (1, 10)

_BOUNDS: dict[str, tuple[int, int]] = {
    "work_duration": DURATION_BOUNDS,
    "short_break_duration": DURATION_BOUNDS,
    "long_break_duration": DURATION_BOUNDS,
    "long_break_interval": INTERVAL_BOUNDS,
}
_FLAGS = ("auto_start_breaks", "auto_start_pomodoros")

_CAMEL_TO_FIELD = {
    "workDuration": "work_duration",
    "shortBreakDuration": "short_break_duration",
    "longBreakDuration": "long_break_duration",
    "longBreakInterval": "long_break_interval",
    "autoStartBreaks": "auto_start_breaks",
    "autoStartPomodoros": "auto_start_pomodoros",
}
_FIELD_TO_CAMEL = {v: k for k, v in _CAMEL_TO_FIELD.items()}


@dataclass
class Settings:
    """Timer configuration.  Durations are in minutes."""

    work_duration: int = 25
    short_break_duration: int = 5
    long_break_duration: int = 15
    long_break_interval: int = 4
    auto_start_breaks: bool = False
    auto_start_pomodoros: bool = False

    def duration_minutes(self, mode: Mode) -> int:
        if mode is Mode.WORK:
            return self.work_duration
        if mode is Mode.SHORT_BREAK:
            return self.short_break_duration
        return self.long_break_duration

    def duration_seconds(self, mode: Mode) -> int:
        return self.duration_minutes(mode) * 60

    def to_snapshot(self) -> dict[str, Any]:
        return {_FIELD_TO_CAMEL[k]: v for k, v in asdict(self).items()}


def validate_update(current: Settings, partial: Mapping[str, Any]) -> Settings:
    """Return *current* with *partial* applied, or raise :class:`SettingsError`.

    Keys may be field names (``work_duration``) or the persisted camelCase
    names (``workDuration``).
    """
    if not isinstance(partial, Mapping):
        raise SettingsError("settings update must be a mapping")

    valid_fields = {f.name for f in fields(Settings)}
    changes: dict[str, Any] = {}
    problems: list[str] = []

    for key, value in partial.items():
        name = _CAMEL_TO_FIELD.get(key, key)
        if name not in valid_fields:
            problems.append(f"unknown option {key!r}")
            continue
        if name in _FLAGS:
            if not isinstance(value, bool):
                problems.append(f"{key} must be true or false")
                continue
        else:
            # bool is an int subclass; True is not a duration
            if isinstance(value, bool) or not isinstance(value, int):
                problems.append(f"{key} must be a whole number")
                continue
            low, high = _BOUNDS[name]
            if not low <= value <= high:
                problems.append(f"{key} must be between {low} and {high}")
                continue
        changes[name] = value

    if problems:
        raise SettingsError("; ".join(problems))
    return replace(current, **changes)


def settings_from_snapshot(payload: Mapping[str, Any] | None) -> Settings:
    """Build settings from a stored snapshot, falling back to defaults."""
    if not payload:
        return Settings()
    known = {k: v for k, v in payload.items() if k in _CAMEL_TO_FIELD}
    try:
        return validate_update(Settings(), known)
    except SettingsError as exc:
        LOGGER.warning("Stored settings rejected (%s); using defaults", exc)
        return Settings()


class SettingsManager(QObject):
    """Holds the current settings and writes every accepted update.

    Signals
    -------
    settings_changed(settings: Settings)
        Emitted after an update or a reload that changed something.
    """

    settings_changed = pyqtSignal(object)

    def __init__(self, store: SnapshotStore, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._store = store
        self._settings = Settings()

    def load(self) -> Settings:
        """Load the stored settings, or defaults if absent/corrupt."""
        payload, _seq = self._store.read(SETTINGS_KEY)
        self._settings = settings_from_snapshot(payload)
        return self.get()

    def reload(self) -> None:
        """Pick up settings written by another view."""
        before = self._settings
        self.load()
        if self._settings != before:
            self.settings_changed.emit(self.get())

    def get(self) -> Settings:
        return replace(self._settings)

    def duration_seconds(self, mode: Mode) -> int:
        return self._settings.duration_seconds(mode)

    def update(self, partial: Mapping[str, Any]) -> Settings:
        """Validate and apply *partial*; raises :class:`SettingsError`."""
        updated = validate_update(self._settings, partial)
        self._store.write(SETTINGS_KEY, updated.to_snapshot())
        self._settings = updated
        self.settings_changed.emit(self.get())
        return self.get()
