"""Shared test helpers for StudyFocus."""

from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

from studyfocus.timer.engine import TimerEngine


class SignalCollector:
    """Utility to capture pyqtSignal emissions into a list."""

    def __init__(self):
        self.items: list = []

    def slot(self, *args):
        self.items.append(args if len(args) > 1 else args[0] if args else None)

    def __call__(self, *args):
        self.slot(*args)

    def __len__(self):
        return len(self.items)

    def __getitem__(self, idx):
        return self.items[idx]

    @property
    def last(self):
        return self.items[-1] if self.items else None

    def clear(self):
        self.items.clear()


class FakeClock:
    """Wall clock the tests move by hand (epoch seconds)."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


def complete_session(engine: TimerEngine, clock: FakeClock) -> dict | None:
    """Jump the clock to the end of the running interval and evaluate."""
    clock.advance(engine.get_time_left())
    return engine.check_completion()


class BrokenDatabase:
    """Stands in for a Database whose file has become unusable."""

    url = "sqlite:///unavailable.db"

    @contextmanager
    def session(self):
        raise OperationalError("BEGIN", {}, Exception("disk I/O error"))
        yield  # pragma: no cover
