"""Saved session snapshots (check-ins) and the history views built on them."""

import datetime
import threading
import time

import state
import uptime
from store import open_store

MAX_CHECKINS = 1000


class CheckInLog:

    def __init__(self, store=None, clock=time.time):
        self.store = store if store is not None else open_store("checkins")
        self.clock = clock
        self._lock = threading.Lock()

    def save_checkin(self, user_id, data):
        """Store a snapshot. The uptime is recomputed when the client didn't send one."""
        tasks = data.get("tasks") or []
        energy = data.get("energy", 3)
        focus_seconds = int(data.get("focusSeconds") or 0)
        last_break = data.get("lastBreak")
        score = data.get("uptime")
        if score is None:
            score = uptime.compute_uptime(tasks, energy, focus_seconds, last_break)

        record = {
            "timestamp": self.clock(),
            "uptime": score,
            "energy": energy,
            "focusSeconds": focus_seconds,
            "lastBreak": last_break,
            "tasks": tasks,
        }
        if data.get("analysis"):
            record["analysis"] = data["analysis"]

        with self._lock:
            records = self.store.get(user_id, [])
            records.append(record)
            self.store.put(user_id, records[-MAX_CHECKINS:])
        state.log("checkin_saved", f"{user_id}: uptime={score}")
        return record

    def history(self, user_id, days=7):
        cutoff = self.clock() - days * 86400
        return [r for r in self.store.get(user_id, []) if r["timestamp"] >= cutoff]

    def weekly_stats(self, user_id):
        """Average uptime per local day for the last seven days, oldest first."""
        today = datetime.date.fromtimestamp(self.clock())
        buckets = {}
        for r in self.history(user_id, days=7):
            day = datetime.date.fromtimestamp(r["timestamp"])
            buckets.setdefault(day, []).append(r["uptime"])

        days = []
        for offset in range(6, -1, -1):
            day = today - datetime.timedelta(days=offset)
            scores = buckets.get(day, [])
            days.append({
                "date": day.isoformat(),
                "label": "Today" if offset == 0 else day.strftime("%a"),
                "uptime": uptime.round_half_up(sum(scores) / len(scores)) if scores else 0,
                "checkins": len(scores),
            })
        active = [d["uptime"] for d in days if d["checkins"]]
        return {
            "days": days,
            "averageUptime": uptime.round_half_up(sum(active) / len(active)) if active else 0,
        }
