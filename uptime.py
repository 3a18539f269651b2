"""Uptime scoring and wellness heuristics. Pure functions, no I/O."""

import math

from config import RECOMMENDATIONS

SUSTAINABLE_LIMIT_MINUTES = 120


def _get(task, name):
    if isinstance(task, dict):
        return bool(task.get(name))
    return bool(getattr(task, name, False))


def round_half_up(value):
    """Round .5 toward +infinity, not to even."""
    return int(math.floor(value + 0.5))


def compute_uptime(tasks, energy, focus_seconds, last_break):
    """Score a session 0-100.

    tasks are dicts (or objects) with `completed` and `hasBlocker`.
    energy is expected in 1-5; it is not validated here.
    last_break is any non-None value (timestamp) once a break was taken.

    A user who breaks early loses the sustainable bonus but gains the break
    bonus; one who works past two hours without a break gets neither.
    """
    total_tasks = len(tasks)
    completed = sum(1 for t in tasks if _get(t, "completed"))
    task_score = (completed / total_tasks) * 50 if total_tasks else 0

    energy_score = (energy / 5) * 25

    blockers = sum(1 for t in tasks if _get(t, "hasBlocker") and not _get(t, "completed"))
    blocker_penalty = blockers * 10

    focus_minutes = focus_seconds // 60
    took_break = last_break is not None
    sustainable_bonus = 0 if (focus_minutes > SUSTAINABLE_LIMIT_MINUTES or took_break) else 10
    break_bonus = 15 if took_break else 0

    total = task_score + energy_score - blocker_penalty + sustainable_bonus + break_bonus
    return max(0, min(100, round_half_up(total)))


def count_blockers(tasks):
    return sum(1 for t in tasks if _get(t, "hasBlocker") and not _get(t, "completed"))


def burnout_risk(energy):
    """Map reported energy (1-5) to HIGH / MEDIUM / LOW."""
    if energy <= 2:
        return "HIGH"
    if energy < 4:
        return "MEDIUM"
    return "LOW"


def recommendation_for(risk):
    return RECOMMENDATIONS[risk]


def focus_quality(focus_seconds):
    """1-5 focus quality: one point per half hour of focus, starting at 1."""
    return max(1, min(5, round_half_up(focus_seconds / 1800 + 1)))
