"""Focus sessions: timer, break cadence, focus lock and daily stats.

One FocusSession owns all of a user's session state. Every mutation goes
through its lock, so the ticker thread, grace timers and API calls never
interleave mid-transition.

    Idle --start--> Running <--pause/resume--> Paused
      ^                 |                         |
      +---end/break-----+-------------------------+
"""

import datetime
import threading
import time

import state
from config import (
    DEFAULT_GOAL_MINUTES, DISTRACTION_GRACE, EXTENDED_WORK_INTERVAL,
    MIN_COMMIT_SECONDS,
)
from store import open_store


def format_time(seconds):
    """Seconds as m:ss."""
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}:{secs:02d}"


def _today():
    return datetime.date.today().isoformat()


class FocusStats:
    """Per-day aggregate for one user."""

    FIELDS = (
        ("total_focus_time", "totalFocusTime"),
        ("sessions_today", "sessionsToday"),
        ("longest_session", "longestSession"),
        ("distractions", "distractions"),
    )

    def __init__(self, total_focus_time=0, sessions_today=0, longest_session=0, distractions=0):
        self.total_focus_time = total_focus_time
        self.sessions_today = sessions_today
        self.longest_session = longest_session
        self.distractions = distractions

    def to_dict(self):
        return {camel: getattr(self, attr) for attr, camel in self.FIELDS}

    @classmethod
    def from_dict(cls, data):
        return cls(**{attr: int(data.get(camel, 0)) for attr, camel in cls.FIELDS})

    def copy(self):
        return FocusStats.from_dict(self.to_dict())

    def __eq__(self, other):
        return isinstance(other, FocusStats) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"FocusStats({self.to_dict()})"


class FocusStatsStore:
    """Stats persistence sink. A record from another day loads as nothing."""

    def __init__(self, store=None, today=_today):
        self.store = store if store is not None else open_store("focus_stats")
        self.today = today

    def load(self, user_id):
        record = self.store.get(user_id)
        if not record or record.get("date") != self.today():
            return None
        return FocusStats.from_dict(record.get("stats", {}))

    def save(self, user_id, stats, date=None):
        self.store.put(user_id, {"date": date or self.today(), "stats": stats.to_dict()})


class FocusSession:
    """Controller for one user's focus session.

    notifier needs request_permission() and notify(title, body); sounds needs
    play(sound_id). Both, and the stats sink, are best-effort: whatever they
    raise is logged and the session carries on.

    timer_factory builds the distraction grace timer with threading.Timer's
    signature. With run_ticker=False nothing advances the clock except tick().
    """

    def __init__(self, user_id, stats_store=None, notifier=None, sounds=None,
                 on_break_reminder=None, on_session_complete=None, on_distraction=None,
                 timer_factory=threading.Timer, run_ticker=True, clock=time.time):
        self.user_id = user_id
        self.stats_store = stats_store
        self.notifier = notifier
        self.sounds = sounds
        self.on_break_reminder = on_break_reminder
        self.on_session_complete = on_session_complete
        self.on_distraction = on_distraction
        self.timer_factory = timer_factory
        self.run_ticker = run_ticker
        self.clock = clock

        self._lock = threading.RLock()
        self._ticker = None
        self._ticker_generation = 0
        self._grace_timer = None
        self._away_token = 0
        self._visible = True

        self.is_running = False
        self.is_paused = False
        self.focus_seconds = 0
        self.session_goal = DEFAULT_GOAL_MINUTES * 60
        self.breaks_due = 0
        self.focus_lock_enabled = False
        self.distraction_count = 0
        self.last_break = None

        self.stats = FocusStats()
        self._stats_day = None
        if stats_store is not None:
            self._stats_day = self._safe("stats_day", stats_store.today)
            loaded = self._safe("stats_load", stats_store.load, user_id)
            if loaded is not None:
                self.stats = loaded

    # ─── Side-effect helpers ───

    def _safe(self, what, fn, *args):
        try:
            return fn(*args)
        except Exception as e:
            state.log("focus_sink_error", f"{what}: {e}")
            return None

    def _play(self, sound_id):
        if self.sounds is not None:
            self._safe("sound", self.sounds.play, sound_id)

    def _notify(self, title, body):
        if self.notifier is not None:
            self._safe("notify", self.notifier.notify, title, body)

    def _call(self, callback, *args):
        if callback is not None:
            self._safe("callback", callback, *args)

    def _roll_day(self):
        """Start from empty stats once the local date has moved on."""
        if self.stats_store is None:
            return
        today = self._safe("stats_day", self.stats_store.today)
        if today is not None and today != self._stats_day:
            self.stats = FocusStats()
            self._stats_day = today

    # ─── Transitions ───

    def start_session(self, goal_minutes=DEFAULT_GOAL_MINUTES):
        if isinstance(goal_minutes, bool) or not isinstance(goal_minutes, (int, float)):
            raise ValueError("goal_minutes must be a number")
        if goal_minutes < 0:
            raise ValueError("goal_minutes must be >= 0")
        with self._lock:
            self._roll_day()
            self._stop_ticker()
            self._cancel_grace()
            if self.notifier is not None:
                self._safe("permission", self.notifier.request_permission)

            self.session_goal = int(goal_minutes * 60)
            self.focus_seconds = 0
            self.breaks_due = 0
            self.distraction_count = 0
            self.is_running = True
            self.is_paused = False
            self.stats.sessions_today += 1

            self._play("sessionStart")
            self._notify("🎯 Focus Session Started", f"{goal_minutes} minute session. Let's build!")
            self._start_ticker()
        state.log("focus_start", f"{self.user_id}: goal={self.session_goal}s")

    def pause_session(self):
        with self._lock:
            if not self.is_running or self.is_paused:
                return False
            self.is_paused = True
            self._cancel_grace()
            self._play("warning")
        return True

    def resume_session(self):
        with self._lock:
            if not self.is_running or not self.is_paused:
                return False
            self.is_paused = False
            self._play("sessionStart")
        return True

    def end_session(self):
        """Stop the session. Sessions over a minute are added to the stats.

        Returns the session length in seconds.
        """
        with self._lock:
            self._roll_day()
            duration = self.focus_seconds
            self.is_running = False
            self.is_paused = False
            self._stop_ticker()
            self._cancel_grace()

            if duration > MIN_COMMIT_SECONDS:
                self._play("sessionEnd")
                self._notify("✅ Session Complete!",
                             f"Great work! You focused for {duration // 60} minutes.")
                self.stats.total_focus_time += duration
                self.stats.longest_session = max(self.stats.longest_session, duration)
                if self.stats_store is not None:
                    self._safe("stats_save", self.stats_store.save, self.user_id,
                               self.stats.copy(), self._stats_day)
                self._call(self.on_session_complete, duration)

            self.focus_seconds = 0
            self.breaks_due = 0
        state.log("focus_end", f"{self.user_id}: {duration}s")
        return duration

    def take_break(self):
        """Stop without recording the session."""
        with self._lock:
            self.is_running = False
            self.is_paused = False
            self._stop_ticker()
            self._cancel_grace()
            self.focus_seconds = 0
            self.breaks_due = 0
            self.last_break = self.clock()
            self._play("breakReminder")
        state.log("focus_break", self.user_id)

    def toggle_focus_lock(self):
        with self._lock:
            self.focus_lock_enabled = not self.focus_lock_enabled
            if not self.focus_lock_enabled:
                self._cancel_grace()
            return self.focus_lock_enabled

    def tick(self):
        """Advance one second. Returns False when the timer is not counting."""
        with self._lock:
            if not self.is_running or self.is_paused:
                return False
            self.focus_seconds += 1
            secs = self.focus_seconds
            goal = self.session_goal

            if secs == goal:
                self._play("breakReminder")
                self._notify("🌱 Break Time!",
                             f"You've focused for {goal // 60} minutes. Take a 5-minute break!")
                self.breaks_due += 1
                self._call(self.on_break_reminder)
            elif secs > goal and (secs - goal) % EXTENDED_WORK_INTERVAL == 0:
                self._play("warning")
                self._notify("⚠️ Extended Focus",
                             "You've been working past your goal. Consider taking a break!")
                self.breaks_due += 1
            return True

    # ─── Focus lock ───

    def set_visibility(self, visible):
        """Page visibility changed. Hidden for the grace period counts as a distraction."""
        with self._lock:
            self._visible = bool(visible)
            if self._visible:
                self._cancel_grace()
                return
            if not (self.focus_lock_enabled and self.is_running and not self.is_paused):
                return
            self._cancel_grace()
            token = self._away_token
            timer = self.timer_factory(DISTRACTION_GRACE, self._grace_expired, args=(token,))
            timer.daemon = True
            self._grace_timer = timer
            timer.start()

    def _grace_expired(self, token):
        with self._lock:
            if token != self._away_token or self._visible or not self.is_running:
                return
            self._roll_day()
            self._grace_timer = None
            self._away_token += 1
            self.distraction_count += 1
            self.stats.distractions += 1
            self._call(self.on_distraction, "tab_switch")
            self._play("warning")
        state.log("distraction", f"{self.user_id}: tab_switch")

    def _cancel_grace(self):
        if self._grace_timer is not None:
            self._grace_timer.cancel()
            self._grace_timer = None
        self._away_token += 1

    # ─── Ticker ───

    def _start_ticker(self):
        if not self.run_ticker:
            return
        from workers import FocusTicker
        generation = self._ticker_generation
        self._ticker = FocusTicker(lambda: self._tick_if_current(generation))
        self._ticker.start()

    def _stop_ticker(self):
        self._ticker_generation += 1
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None

    def _tick_if_current(self, generation):
        # A stopped ticker can still be waiting on the lock; its tick is dropped.
        with self._lock:
            if generation != self._ticker_generation:
                return False
            return self.tick()

    def close(self):
        """Tear down timers without touching the stats."""
        with self._lock:
            self._stop_ticker()
            self._cancel_grace()

    # ─── Read-only views ───

    @property
    def progress(self):
        goal = self.session_goal
        if goal <= 0:
            return 0
        return min(100, (self.focus_seconds / goal) * 100)

    def snapshot(self):
        with self._lock:
            self._roll_day()
            return {
                "userId": self.user_id,
                "isRunning": self.is_running,
                "isPaused": self.is_paused,
                "focusSeconds": self.focus_seconds,
                "formattedTime": format_time(self.focus_seconds),
                "sessionGoal": self.session_goal,
                "breaksDue": self.breaks_due,
                "focusLockEnabled": self.focus_lock_enabled,
                "distractionCount": self.distraction_count,
                "lastBreak": self.last_break,
                "progress": self.progress,
                "stats": self.stats.to_dict(),
            }
