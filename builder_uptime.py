#!/usr/bin/env python3
"""Builder Uptime: API server and terminal focus timer."""

import argparse
import os
import sys
import time

# Ensure the project dir is on the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import config
import memory
import state
from alerts import DesktopNotifier, SoundPlayer
from focus import FocusSession, FocusStatsStore, format_time

# ─── ANSI color codes ───
RST = "\033[0m"
BOLD = "\033[1m"
DIM = "\033[2m"
B5 = "\033[38;5;33m"    # electric blue
B7 = "\033[38;5;75m"    # light blue
C1 = "\033[38;5;51m"    # cyan
Y1 = "\033[38;5;220m"   # gold
Y4 = "\033[38;5;214m"   # orange-yellow
G1 = "\033[38;5;82m"    # bright green
R1 = "\033[38;5;196m"   # bright red


def _bar(progress, width=30):
    filled = int(width * progress / 100)
    color = G1 if progress >= 100 else C1
    return f"{color}{'█' * filled}{DIM}{'░' * (width - filled)}{RST}"


def _print_stats(stats):
    print(f"  {B7}Today:{RST} {stats.sessions_today} session(s), "
          f"{stats.total_focus_time // 60} min focused, "
          f"longest {format_time(stats.longest_session)}, "
          f"{stats.distractions} distraction(s)")


def run_focus(goal_minutes, user_id):
    """Terminal focus timer. Ctrl+C ends the session; a second Ctrl+C quits."""
    memory.init_db()

    def _on_break():
        print(f"\n  {Y1}🌱 {goal_minutes} minutes done, time for a break.{RST}")

    session = FocusSession(
        user_id,
        stats_store=FocusStatsStore(),
        notifier=DesktopNotifier(),
        sounds=SoundPlayer(),
        on_break_reminder=_on_break,
    )

    print()
    print(f"  {B5}{'━' * 54}{RST}")
    print(f"  {C1}◉{RST} {BOLD}Focus session{RST} {DIM}{B7}{goal_minutes} min goal, Ctrl+C to end{RST}")
    print(f"  {B5}{'━' * 54}{RST}")

    session.start_session(goal_minutes)
    try:
        while True:
            snap = session.snapshot()
            extra = f"  {Y4}+{snap['breaksDue']} break(s) due{RST}" if snap["breaksDue"] else ""
            sys.stdout.write(f"\r  {_bar(snap['progress'])} {BOLD}{snap['formattedTime']}{RST}{extra}   ")
            sys.stdout.flush()
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass

    duration = session.end_session()
    print()
    if duration > config.MIN_COMMIT_SECONDS:
        print(f"  {G1}✓ Session complete:{RST} {format_time(duration)}")
    else:
        print(f"  {DIM}{B7}Under a minute, not counted.{RST}")
    _print_stats(session.stats)
    print()


def main():
    parser = argparse.ArgumentParser(description="Builder Uptime: wellness tracking for builders")
    parser.add_argument("--host", default=config.HOST, help=f"API bind address (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"API port (default: {config.PORT})")
    parser.add_argument("--focus", type=int, metavar="MINUTES",
                        help="Run a focus session in the terminal instead of the server")
    parser.add_argument("--user", default=config.DEFAULT_USER, help="User id for --focus stats")
    parser.add_argument("--timeline", nargs="?", const=30, type=int, metavar="N",
                        help="Print the last N internal events and exit")
    args = parser.parse_args()

    if args.timeline:
        memory.init_db()
        print(state.format_timeline(args.timeline))
        return

    if args.focus is not None:
        if args.focus <= 0:
            parser.error("--focus needs a positive number of minutes")
        run_focus(args.focus, args.user)
        return

    import web
    try:
        web.run_web(host=args.host, port=args.port)
    finally:
        web.shutdown()


if __name__ == "__main__":
    main()
