"""Builder Uptime internal event log and timeline formatting."""

import sqlite3
import time

import memory


def now_iso():
    """UTC timestamp in the ISO form the frontend expects."""
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()) + "Z"


def now_ms():
    return int(time.time() * 1000)


def log(event, details=None):
    """Log an internal event to the timeline. A database error only loses the event."""
    try:
        memory.log_event(event, details)
    except sqlite3.Error:
        pass


def format_timeline(limit=30, event=None):
    """Format timeline for display."""
    rows = memory.get_timeline(limit, event=event)
    if not rows:
        return "  No events yet."
    lines = []
    for r in rows:
        detail = f" — {r['details']}" if r["details"] else ""
        lines.append(f"  [{r['ts']}] {r['event']}{detail}")
    return "\n".join(lines)
