"""Wellness check-ins: energy logs, burnout risk, weekly insights."""

import threading

import state
import telemetry
import uptime
from store import open_store


class WellnessLog:

    def __init__(self, store=None):
        self.store = store if store is not None else open_store("wellness")
        self._lock = threading.Lock()

    def log_wellness(self, user_id, energy_level, focus_quality=None, task_id=None):
        """Record one check-in and return the intervention for it."""
        risk = uptime.burnout_risk(energy_level)
        recommendation = uptime.recommendation_for(risk)

        tr = telemetry.trace(
            "wellness_intervention",
            input={"energyLevel": energy_level, "focusQuality": focus_quality,
                   "userId": user_id, "taskId": task_id},
            output={"burnoutRisk": risk, "recommendation": recommendation},
        )
        tr.feedback("accuracy", 1, reason="Rule-based energy threshold check passed.")

        entry = {
            "timestamp": state.now_iso(),
            "energyLevel": energy_level,
            "focusQuality": focus_quality,
            "burnoutRisk": risk,
            "taskId": task_id,
        }
        with self._lock:
            entries = self.store.get(user_id, [])
            entries.append(entry)
            self.store.put(user_id, entries)
        state.log("wellness_logged", f"{user_id}: energy={energy_level} risk={risk}")

        return {"success": True, "burnoutRisk": risk, "recommendation": recommendation}

    def entries(self, user_id):
        return self.store.get(user_id, [])

    def weekly_insights(self, user_id):
        entries = self.entries(user_id)
        if entries:
            avg = sum(e["energyLevel"] for e in entries) / len(entries)
        else:
            avg = 5
        return {
            "weeklyAvgEnergy": f"{avg:.1f}",
            "totalSessions": len(entries),
            "burnoutRiskDays": sum(1 for e in entries if e["burnoutRisk"] == "HIGH"),
        }
