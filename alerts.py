"""Notification and sound sinks.

Two flavours with the same shape (request_permission / notify / play):
the desktop sinks shell out to notify-send and mpv/ffplay for the terminal
timer, and EventQueue buffers the same calls for a browser client to drain.
"""

import collections
import shutil
import subprocess
import threading
import time

import state
from config import MAX_PENDING_EVENTS, SOUNDS

MAX_FIELD_LEN = 500

# Players in preference order; each takes a URL
PLAYERS = {
    "mpv": ["mpv", "--no-video", "--really-quiet"],
    "ffplay": ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"],
}


def _truncate(text, limit=MAX_FIELD_LEN):
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class DesktopNotifier:

    def __init__(self, app_name="Builder Uptime"):
        self.app_name = app_name

    def request_permission(self):
        return shutil.which("notify-send") is not None

    def notify(self, title, body):
        if not self.request_permission():
            return False
        try:
            subprocess.Popen(
                ["notify-send", "-a", self.app_name, _truncate(title), _truncate(body)],
                stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            state.log("notify_error", str(e))
            return False
        return True


class SoundPlayer:

    def __init__(self):
        self.backend = next((name for name in PLAYERS if shutil.which(name)), None)

    def play(self, sound_id):
        if sound_id not in SOUNDS:
            raise KeyError(f"Unknown sound: {sound_id}")
        if not self.backend:
            return False
        try:
            subprocess.Popen(
                PLAYERS[self.backend] + [SOUNDS[sound_id]],
                stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            state.log("sound_error", str(e))
            return False
        return True


class EventQueue:
    """Buffers notifications and sounds for a client that polls for them."""

    def __init__(self, maxlen=MAX_PENDING_EVENTS):
        self._events = collections.deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self.last_seen = time.time()

    def request_permission(self):
        # The browser asks the user itself once it sees a notification event.
        return True

    def notify(self, title, body):
        self._push({"type": "notification", "title": _truncate(title), "body": _truncate(body)})
        return True

    def play(self, sound_id):
        if sound_id not in SOUNDS:
            raise KeyError(f"Unknown sound: {sound_id}")
        self._push({"type": "sound", "sound": sound_id, "url": SOUNDS[sound_id]})
        return True

    def _push(self, event):
        event["ts"] = state.now_iso()
        with self._lock:
            self._events.append(event)

    def drain(self, kind=None):
        """Take pending events, optionally only those of one type."""
        with self._lock:
            if kind is None:
                events = list(self._events)
                self._events.clear()
                return events
            events = [e for e in self._events if e["type"] == kind]
            keep = [e for e in self._events if e["type"] != kind]
            self._events.clear()
            self._events.extend(keep)
        return events

    def __len__(self):
        with self._lock:
            return len(self._events)


_queues = {}
_queues_lock = threading.Lock()


def queue_for(user_id):
    """The per-user EventQueue, created on first use. Counts as client activity."""
    with _queues_lock:
        q = _queues.get(user_id)
        if q is None:
            q = _queues[user_id] = EventQueue()
        q.last_seen = time.time()
        return q


def all_queues():
    """(user_id, queue) pairs, without marking anyone as active."""
    with _queues_lock:
        return list(_queues.items())


def evict_idle(cutoff, keep=()):
    """Drop queues untouched since cutoff, except those in keep. Returns the user ids dropped."""
    with _queues_lock:
        idle = [u for u, q in _queues.items() if q.last_seen < cutoff and u not in keep]
        for user_id in idle:
            del _queues[user_id]
    return idle
