"""Background workers: focus ticker and the reminder feed."""

import threading
import time

import alerts
import state
from config import BREAK_REMINDER_INTERVAL, TICK_INTERVAL, WELLNESS_CHECK_INTERVAL


class FocusTicker(threading.Thread):
    """Calls tick() once per wall-clock second until stopped.

    Deadlines are absolute, so slow ticks don't drift the count; after a
    stall the missed ticks fire back-to-back.
    """

    def __init__(self, tick, interval=TICK_INTERVAL, clock=time.monotonic):
        super().__init__(daemon=True)
        self.tick = tick
        self.interval = interval
        self.clock = clock
        self._stop_event = threading.Event()

    def stop(self):
        self._stop_event.set()

    def run(self):
        next_at = self.clock() + self.interval
        while not self._stop_event.wait(max(0, next_at - self.clock())):
            try:
                self.tick()
            except Exception as e:
                state.log("ticker_error", str(e))
            next_at += self.interval


class ReminderWorker(threading.Thread):
    """Pushes periodic wellness-check and break reminders to every client feed.

    evict(now), when given, runs first on each pulse to drop idle clients.
    """

    CHECK_EVERY = 60

    def __init__(self, clock=time.time, evict=None):
        super().__init__(daemon=True)
        self.clock = clock
        self.evict = evict
        self._stop_event = threading.Event()
        self._last_sent = {}  # (user_id, kind) -> ts

    def stop(self):
        self._stop_event.set()

    def run(self):
        while not self._stop_event.wait(self.CHECK_EVERY):
            try:
                self.pulse()
            except Exception as e:
                state.log("reminder_error", str(e))

    def pulse(self):
        """Send whatever reminders are due. Returns how many went out."""
        now = self.clock()
        if self.evict is not None:
            self.evict(now)
        queues = alerts.all_queues()
        live = {user_id for user_id, _ in queues}
        self._last_sent = {k: ts for k, ts in self._last_sent.items() if k[0] in live}

        sent = 0
        for user_id, queue in queues:
            if self._due(user_id, "wellness", WELLNESS_CHECK_INTERVAL, now):
                queue.notify("💚 Wellness Check", "How's your energy? Log a quick check-in.")
                sent += 1
            if self._due(user_id, "break", BREAK_REMINDER_INTERVAL, now):
                queue.notify("🌱 Break Reminder", "You've been at it for a while. Stretch, hydrate, look away.")
                sent += 1
        return sent

    def _due(self, user_id, kind, interval, now):
        key = (user_id, kind)
        last = self._last_sent.setdefault(key, now)
        if now - last >= interval:
            self._last_sent[key] = now
            return True
        return False
