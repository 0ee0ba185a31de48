"""Command-line view of StudyFocus: python -m studyfocus.

Each invocation is a short-lived view on the shared database: it polls
once (taking over if no leader is live), issues its command and exits.
``watch`` stays open and polls every second like a pop-out window.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from PyQt6.QtCore import QCoreApplication, QTimer

from .app import FocusDesk
from .settings import SettingsError
from .stats.aggregator import StreakPolicy
from .timer.display import format_time, mode_label
from .timer.modes import Mode


def _print_status(desk: FocusDesk) -> None:
    engine = desk.engine
    role = "leader" if desk.is_leader else "follower"
    print(
        f"{mode_label(engine.mode)}  {format_time(engine.get_time_left())}  "
        f"[{engine.state.value}]  {engine.get_progress_percentage():.0f}%  "
        f"completed={engine.completed_work_sessions}  ({role})"
    )
    if engine.linked_task_id is not None:
        print(f"  task: {engine.linked_task_id}")
    if engine.linked_document_id is not None:
        print(f"  document: {engine.linked_document_id}")
    if engine.note:
        print(f"  note: {engine.note}")


def _print_stats(desk: FocusDesk) -> None:
    stats = desk.get_stats()
    minutes = stats.total_focus_seconds // 60
    print(f"sessions completed: {stats.sessions_completed_count}")
    print(f"total focus:        {minutes // 60}h {minutes % 60}m")
    print(f"current streak:     {stats.current_streak}")
    print(f"longest streak:     {stats.longest_streak}")


def _parse_assignment(text: str) -> tuple[str, object]:
    key, sep, raw = text.partition("=")
    if not sep:
        raise SettingsError(f"expected key=value, got {text!r}")
    raw = raw.strip()
    if raw.lower() in ("true", "false"):
        return key.strip(), raw.lower() == "true"
    try:
        return key.strip(), int(raw)
    except ValueError:
        return key.strip(), raw


def _watch(desk: FocusDesk) -> int:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    timer = QTimer()
    timer.setInterval(1000)
    timer.timeout.connect(lambda: _print_status(desk))
    desk.coordinator.start_polling()
    timer.start()
    _print_status(desk)
    try:
        return app.exec()
    except KeyboardInterrupt:
        return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="studyfocus",
        description="Focus timer shared between every open StudyFocus view.",
    )
    ap.add_argument(
        "--db",
        default=os.getenv("STUDYFOCUS_DB_URL"),
        help="SQLAlchemy database URL (default: env STUDYFOCUS_DB_URL or the app data dir)",
    )
    ap.add_argument("--view", default=None, help="View id for this process (default: random)")
    ap.add_argument(
        "--streak-policy",
        choices=[p.value for p in StreakPolicy],
        default=StreakPolicy.CONSECUTIVE.value,
        help="What a day without completions does to the streak",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Log debug output")

    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show the current session")
    sub.add_parser("start", help="Start or resume the countdown")
    sub.add_parser("pause", help="Pause the countdown")
    sub.add_parser("reset", help="Reload the full duration of the current mode")
    p = sub.add_parser("switch", help="Switch to another mode")
    p.add_argument("mode", choices=[m.value for m in Mode])
    p = sub.add_parser("task", help="Link the session to a task id")
    p.add_argument("task_id")
    p = sub.add_parser("doc", help="Link the session to a document id")
    p.add_argument("document_id")
    p = sub.add_parser("note", help="Attach a note to the session")
    p.add_argument("text")
    sub.add_parser("stats", help="Show focus statistics")
    p = sub.add_parser("settings", help="Show or change settings (key=value ...)")
    p.add_argument("assignments", nargs="*")
    sub.add_parser("watch", help="Keep polling and print the countdown every second")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    desk = FocusDesk(
        args.db,
        view_id=args.view,
        streak_policy=StreakPolicy(args.streak_policy),
    )
    try:
        desk.poll()
        cmd = args.command

        if cmd == "watch":
            return _watch(desk)
        if cmd == "stats":
            _print_stats(desk)
            return 0
        if cmd == "settings":
            if args.assignments:
                try:
                    desk.update_settings(dict(_parse_assignment(a) for a in args.assignments))
                except SettingsError as exc:
                    print(f"settings rejected: {exc}", file=sys.stderr)
                    return 2
            for key, value in desk.get_settings().to_snapshot().items():
                print(f"{key} = {value}")
            return 0

        if cmd == "start":
            executed = desk.start()
        elif cmd == "pause":
            executed = desk.pause()
        elif cmd == "reset":
            executed = desk.reset()
        elif cmd == "switch":
            executed = desk.switch_mode(args.mode)
        elif cmd == "task":
            executed = desk.bind_to_task(args.task_id)
        elif cmd == "doc":
            executed = desk.bind_to_document(args.document_id)
        elif cmd == "note":
            executed = desk.set_note(args.text)
        else:
            executed = True
        if not executed:
            print("queued for the active view")
        _print_status(desk)
        return 0
    finally:
        desk.close()


if __name__ == "__main__":
    sys.exit(main())
