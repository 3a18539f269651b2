"""Shared fixtures: a throwaway database, no real LLM/Opik, fake timers."""

import sys
import threading
import time
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import cloud  # noqa: E402
import config  # noqa: E402
import memory  # noqa: E402
from store import InMemoryStore  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Point SQLite at a temp file and switch external services off."""
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "uptime-test.db"))
    monkeypatch.setattr(config, "STORE_BACKEND", "sqlite")
    monkeypatch.setattr(config, "OPIK_API_KEY", None)
    monkeypatch.setattr(config, "API_TOKEN", None)
    monkeypatch.setattr(config, "JUDGE_ENABLED", False)
    for var in ("UPTIME_LLM_KEY", "OPENAI_API_KEY", "UPTIME_LLM_URL", "UPTIME_LLM_MODEL"):
        monkeypatch.delenv(var, raising=False)
    cloud.reset()
    yield
    memory.close()
    cloud.reset()


@pytest.fixture
def mem_store():
    return InMemoryStore()


class SlowStore(InMemoryStore):
    """Reads take a while, so unguarded read-modify-write cycles overlap."""

    def get(self, key, default=None):
        value = super().get(key, default)
        time.sleep(0.05)
        return value


@pytest.fixture
def slow_store():
    return SlowStore()


def _run_together(fn, *arg_lists):
    threads = [threading.Thread(target=fn, args=args) for args in arg_lists]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)


@pytest.fixture
def run_together():
    """Call fn once per argument tuple, each on its own thread, and wait."""
    return _run_together


class FakeTimer:
    """threading.Timer stand-in that only fires when the test says so."""

    created = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args, **self.kwargs)


@pytest.fixture
def fake_timer():
    FakeTimer.created = []
    return FakeTimer


class RecordingSink:
    """Notifier + sound sink that records calls."""

    def __init__(self, fail=False):
        self.fail = fail
        self.notifications = []
        self.sounds = []
        self.permission_requests = 0

    def request_permission(self):
        self.permission_requests += 1
        if self.fail:
            raise RuntimeError("permission denied")
        return True

    def notify(self, title, body):
        if self.fail:
            raise RuntimeError("notification failed")
        self.notifications.append((title, body))

    def play(self, sound_id):
        if self.fail:
            raise RuntimeError("audio blocked")
        self.sounds.append(sound_id)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return RecordingSink(fail=True)
