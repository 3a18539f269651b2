"""Tests for focus.py: session lifecycle, break cadence, focus lock, stats."""

import pytest

import memory
import workers
from focus import FocusSession, FocusStats, FocusStatsStore, format_time


def _session(sink=None, stats_store=None, timer=None, **kw):
    kw.setdefault("run_ticker", False)
    if timer is not None:
        kw["timer_factory"] = timer
    return FocusSession("u1", stats_store=stats_store, notifier=sink, sounds=sink, **kw)


def _advance(session, seconds):
    for _ in range(seconds):
        session.tick()


@pytest.fixture
def stats_store(mem_store):
    return FocusStatsStore(mem_store, today=lambda: "2026-10-19")


# --- Lifecycle ---

def test_start_session_sets_goal_and_runs(sink):
    s = _session(sink)
    s.start_session(25)
    assert s.is_running and not s.is_paused
    assert s.session_goal == 1500
    assert s.focus_seconds == 0
    assert s.stats.sessions_today == 1
    assert sink.permission_requests == 1
    assert sink.sounds == ["sessionStart"]
    assert sink.notifications[0][1] == "25 minute session. Let's build!"


def test_tick_is_gated_on_running_and_not_paused():
    s = _session()
    assert s.tick() is False
    assert s.focus_seconds == 0

    s.start_session(25)
    _advance(s, 10)
    assert s.focus_seconds == 10

    assert s.pause_session() is True
    _advance(s, 10)
    assert s.focus_seconds == 10

    assert s.resume_session() is True
    _advance(s, 5)
    assert s.focus_seconds == 15


def test_pause_and_resume_only_change_state_when_valid():
    s = _session()
    assert s.pause_session() is False
    s.start_session(25)
    assert s.resume_session() is False
    assert s.pause_session() is True
    assert s.pause_session() is False


def test_goal_reached_marks_one_break_exactly_once(sink):
    reminders = []
    s = _session(sink, on_break_reminder=lambda: reminders.append(1))
    s.start_session(25)
    _advance(s, 1500)
    assert s.breaks_due == 1
    assert reminders == [1]
    assert sink.sounds.count("breakReminder") == 1

    _advance(s, 1)
    assert s.breaks_due == 1


def test_extended_work_adds_a_break_every_half_hour(sink):
    s = _session(sink)
    s.start_session(25)
    _advance(s, 1500 + 1799)
    assert s.breaks_due == 1
    _advance(s, 1)
    assert s.breaks_due == 2
    assert sink.notifications[-1][0] == "⚠️ Extended Focus"
    _advance(s, 1800)
    assert s.breaks_due == 3


def test_progress():
    s = _session()
    assert s.progress == 0
    s.start_session(10)
    _advance(s, 300)
    assert s.progress == 50
    _advance(s, 600)
    assert s.progress == 100


def test_progress_with_zero_goal():
    s = _session()
    s.start_session(0)
    _advance(s, 5)
    assert s.progress == 0


def test_negative_goal_rejected():
    with pytest.raises(ValueError):
        _session().start_session(-1)


# --- Ending ---

def test_end_session_under_a_minute_is_not_recorded(sink, stats_store):
    done = []
    s = _session(sink, stats_store, on_session_complete=done.append)
    s.start_session(25)
    _advance(s, 30)
    assert s.end_session() == 30
    assert s.stats.total_focus_time == 0
    assert stats_store.load("u1") is None
    assert done == []
    assert s.focus_seconds == 0 and s.breaks_due == 0
    assert not s.is_running


def test_end_session_over_a_minute_is_recorded(sink, stats_store):
    done = []
    s = _session(sink, stats_store, on_session_complete=done.append)
    s.start_session(25)
    _advance(s, 90)
    s.end_session()
    assert s.stats.total_focus_time == 90
    assert s.stats.longest_session == 90
    assert done == [90]
    assert "sessionEnd" in sink.sounds
    assert stats_store.load("u1").total_focus_time == 90


def test_longest_session_keeps_the_max(stats_store):
    s = _session(stats_store=stats_store)
    for seconds in (200, 90, 150):
        s.start_session(25)
        _advance(s, seconds)
        s.end_session()
    assert s.stats.total_focus_time == 440
    assert s.stats.longest_session == 200
    assert s.stats.sessions_today == 3


def test_end_session_resets_counters_after_goal():
    s = _session()
    s.start_session(1)
    _advance(s, 61)
    assert s.breaks_due == 1
    s.end_session()
    assert s.breaks_due == 0 and s.focus_seconds == 0


def test_take_break_does_not_record(sink, stats_store):
    clock = iter([1234.0])
    s = _session(sink, stats_store, clock=lambda: next(clock))
    s.start_session(25)
    _advance(s, 600)
    s.take_break()
    assert not s.is_running
    assert s.focus_seconds == 0 and s.breaks_due == 0
    assert s.stats.total_focus_time == 0
    assert s.last_break == 1234.0
    assert stats_store.load("u1") is None
    assert sink.sounds[-1] == "breakReminder"


# --- Stats persistence ---

def test_stats_loaded_for_today(mem_store):
    store = FocusStatsStore(mem_store, today=lambda: "2026-10-19")
    store.save("u1", FocusStats(total_focus_time=500, sessions_today=2, longest_session=300))
    s = _session(stats_store=store)
    assert s.stats.total_focus_time == 500
    s.start_session(25)
    assert s.stats.sessions_today == 3


def test_stats_from_another_day_are_ignored(mem_store):
    FocusStatsStore(mem_store, today=lambda: "2026-10-18").save("u1", FocusStats(total_focus_time=500))
    store = FocusStatsStore(mem_store, today=lambda: "2026-10-19")
    assert store.load("u1") is None
    assert _session(stats_store=store).stats == FocusStats()


def test_stats_persist_in_sqlite():
    store = FocusStatsStore(today=lambda: "2026-10-19")
    s = _session(stats_store=store)
    s.start_session(25)
    _advance(s, 120)
    s.end_session()
    memory.close()
    assert FocusStatsStore(today=lambda: "2026-10-19").load("u1").total_focus_time == 120


def test_failing_sinks_do_not_stop_the_session(failing_sink):
    class BrokenStore:
        def load(self, user_id):
            raise OSError("disk gone")

        def save(self, user_id, stats, date=None):
            raise OSError("disk gone")

    s = _session(failing_sink, BrokenStore())
    s.start_session(1)
    _advance(s, 90)
    assert s.breaks_due == 1
    assert s.end_session() == 90
    assert s.stats.total_focus_time == 90
    timeline = [r["event"] for r in memory.get_timeline(50)]
    assert "focus_sink_error" in timeline


def test_failing_callback_is_contained():
    def boom():
        raise RuntimeError("ui gone")

    s = _session(on_break_reminder=boom)
    s.start_session(1)
    _advance(s, 61)
    assert s.focus_seconds == 61


# --- Focus lock / distractions ---

def _locked_session(fake_timer, **kw):
    s = _session(timer=fake_timer, **kw)
    s.toggle_focus_lock()
    s.start_session(25)
    return s


def test_quick_return_is_not_a_distraction(fake_timer):
    s = _locked_session(fake_timer)
    s.set_visibility(False)
    _advance(s, 4)
    s.set_visibility(True)
    timer = fake_timer.created[-1]
    assert timer.cancelled
    timer.fire()  # a late fire of the cancelled timer changes nothing
    assert s.distraction_count == 0
    assert s.stats.distractions == 0


def test_staying_away_counts_one_distraction(fake_timer, sink):
    seen = []
    s = _locked_session(fake_timer, on_distraction=seen.append)
    s.notifier = s.sounds = sink
    s.set_visibility(False)
    timer = fake_timer.created[-1]
    assert timer.interval == 5
    _advance(s, 6)
    timer.fire()
    assert s.distraction_count == 1
    assert s.stats.distractions == 1
    assert seen == ["tab_switch"]
    assert sink.sounds[-1] == "warning"


def test_each_stint_is_judged_on_its_own(fake_timer):
    s = _locked_session(fake_timer)
    s.set_visibility(False)
    first = fake_timer.created[-1]
    s.set_visibility(True)
    s.set_visibility(False)
    second = fake_timer.created[-1]

    first.fire()
    assert s.distraction_count == 0
    second.fire()
    assert s.distraction_count == 1

    s.set_visibility(True)
    s.set_visibility(False)
    fake_timer.created[-1].fire()
    assert s.distraction_count == 2


def test_no_distraction_tracking_without_lock(fake_timer):
    s = _session(timer=fake_timer)
    s.start_session(25)
    s.set_visibility(False)
    assert fake_timer.created == []


def test_no_distraction_tracking_while_paused(fake_timer):
    s = _locked_session(fake_timer)
    s.pause_session()
    s.set_visibility(False)
    assert fake_timer.created == []


def test_ending_session_voids_pending_grace_timer(fake_timer):
    s = _locked_session(fake_timer)
    s.set_visibility(False)
    timer = fake_timer.created[-1]
    s.end_session()
    timer.fire()
    assert timer.cancelled
    assert s.stats.distractions == 0


def test_snapshot_shape():
    s = _session()
    s.start_session(25)
    _advance(s, 75)
    snap = s.snapshot()
    assert snap["focusSeconds"] == 75
    assert snap["formattedTime"] == "1:15"
    assert snap["isRunning"] is True
    assert snap["stats"]["sessionsToday"] == 1
    assert snap["progress"] == 5


def test_format_time():
    assert format_time(0) == "0:00"
    assert format_time(65) == "1:05"
    assert format_time(3600) == "60:00"


def test_non_numeric_goal_rejected():
    with pytest.raises(ValueError):
        _session().start_session("25")


# --- Day rollover ---

class Day:
    def __init__(self, date):
        self.date = date

    def __call__(self):
        return self.date


def test_stats_start_fresh_after_midnight(mem_store):
    day = Day("2026-10-18")
    store = FocusStatsStore(mem_store, today=day)
    s = _session(stats_store=store)

    s.start_session(25)
    _advance(s, 90)
    s.end_session()

    day.date = "2026-10-19"
    s.start_session(25)
    _advance(s, 90)
    s.end_session()

    loaded = store.load("u1")
    assert loaded.total_focus_time == 90
    assert loaded.sessions_today == 1


def test_snapshot_shows_empty_stats_on_a_new_day(mem_store):
    day = Day("2026-10-18")
    s = _session(stats_store=FocusStatsStore(mem_store, today=day))
    s.start_session(25)
    day.date = "2026-10-19"
    assert s.snapshot()["stats"]["sessionsToday"] == 0


# --- Ticker ownership ---

class FakeTicker:
    """Stands in for workers.FocusTicker; the test drives tick by hand."""

    def __init__(self, tick, interval=None, clock=None):
        self.tick = tick
        self.stopped = False

    def start(self):
        pass

    def stop(self):
        self.stopped = True


@pytest.fixture
def tickers(monkeypatch):
    made = []

    def factory(tick):
        made.append(FakeTicker(tick))
        return made[-1]

    monkeypatch.setattr(workers, "FocusTicker", factory)
    return made


def test_stopped_ticker_cannot_tick_a_restarted_session(tickers):
    s = _session(run_ticker=True)

    s.start_session(25)
    tickers[0].tick()
    assert s.focus_seconds == 1

    s.start_session(25)
    assert tickers[0].stopped
    # the old thread was already waiting on the lock when the restart happened
    assert tickers[0].tick() is False
    assert s.focus_seconds == 0

    tickers[1].tick()
    assert s.focus_seconds == 1


def test_close_silences_the_ticker(tickers):
    s = _session(run_ticker=True)
    s.start_session(25)
    s.close()
    assert tickers[0].tick() is False
    assert s.focus_seconds == 0
