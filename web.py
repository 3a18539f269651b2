"""Builder Uptime backend: Flask JSON API for the web app and browser extension."""

import hmac
import threading
import time

from flask import Flask, request, jsonify

import alerts
import cloud
import config
import memory
import state
import telemetry
import uptime
from checkins import CheckInLog
from coach import Coach
from focus import FocusSession, FocusStatsStore
from tasks import TaskNotFound, TaskStore
from wellness import WellnessLog
from workers import ReminderWorker

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = 1 * 1024 * 1024  # 1MB max request

# Focus sessions tick on their own threads unless this is switched off
FOCUS_TICKER = True


@app.after_request
def _headers(response):
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type, Authorization, X-User-Id, X-Uptime-Token'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
    return response


# ─── Services (initialized once) ───
_initialized = False
_init_lock = threading.Lock()

_tasks = None
_wellness = None
_coach = None
_checkins = None
_stats_store = None
_reminders = None

_sessions = {}
_last_access = {}  # user_id -> ts of the last request that touched the session
_sessions_lock = threading.Lock()


def _ensure_initialized():
    global _initialized, _tasks, _wellness, _coach, _checkins, _stats_store, _reminders

    with _init_lock:
        if _initialized:
            return
        memory.init_db()
        _tasks = TaskStore()
        _wellness = WellnessLog()
        _coach = Coach()
        _checkins = CheckInLog()
        _stats_store = FocusStatsStore()
        _reminders = ReminderWorker(evict=_evict_idle)
        _reminders.start()
        state.log("server_init", f"store={config.STORE_BACKEND}, opik={telemetry.is_enabled()}")
        _initialized = True


def shutdown():
    """Stop background threads and forget every service (next request re-inits)."""
    global _initialized
    with _init_lock:
        if _reminders is not None:
            _reminders.stop()
        with _sessions_lock:
            for session in _sessions.values():
                session.close()
            _sessions.clear()
            _last_access.clear()
        _initialized = False


def _check_auth():
    """Returns an error response, or None when the request may proceed."""
    if not config.API_TOKEN:
        return None
    token = request.headers.get("X-Uptime-Token") or request.args.get("token")
    auth = request.headers.get("Authorization", "")
    if not token and auth.startswith("Bearer "):
        token = auth[7:]
    if token and hmac.compare_digest(token, config.API_TOKEN):
        return None
    return jsonify({"error": "Unauthorized"}), 401


@app.before_request
def _before():
    if request.method == "OPTIONS":
        return None
    _ensure_initialized()
    return _check_auth()


def _body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _number(data, key, default):
    """A numeric body field, or default when absent. Anything else is a 400."""
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return value


def _task_list(data):
    """The body's task list, None when absent."""
    tasks = data.get("tasks")
    if tasks is None:
        return None
    if not isinstance(tasks, list) or not all(isinstance(t, dict) for t in tasks):
        raise ValueError("tasks must be a list of objects")
    return tasks


def _user_id(data=None):
    data = data if data is not None else _body()
    return (data.get("userId")
            or request.headers.get("X-User-Id")
            or request.args.get("userId")
            or config.DEFAULT_USER)


def _session_for(user_id):
    with _sessions_lock:
        session = _sessions.get(user_id)
        if session is None:
            queue = alerts.queue_for(user_id)
            session = FocusSession(
                user_id,
                stats_store=_stats_store,
                notifier=queue,
                sounds=queue,
                run_ticker=FOCUS_TICKER,
            )
            _sessions[user_id] = session
        _last_access[user_id] = time.time()
        return session


def _evict_idle(now=None):
    """Close and forget stopped sessions, and drop feeds, idle past IDLE_EVICT_SECONDS."""
    now = time.time() if now is None else now
    cutoff = now - config.IDLE_EVICT_SECONDS
    with _sessions_lock:
        for user_id, session in list(_sessions.items()):
            if session.is_running or _last_access.get(user_id, now) >= cutoff:
                continue
            session.close()
            del _sessions[user_id]
            _last_access.pop(user_id, None)
        # a live session still holds its queue as notifier
        dropped = alerts.evict_idle(cutoff, keep=set(_sessions))
    if dropped:
        state.log("evicted_idle", f"{len(dropped)} feed(s)")
    return dropped


# ─── Errors ───

@app.errorhandler(TaskNotFound)
def _not_found(e):
    return jsonify({"error": str(e)}), 404


@app.errorhandler(ValueError)
def _bad_request(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(500)
def _server_error(e):
    state.log("server_error", str(getattr(e, "original_exception", e)))
    return jsonify({"error": "Internal server error"}), 500


# ─── Health ───

@app.route("/health")
def health():
    return jsonify({
        "status": "ok",
        "timestamp": state.now_iso(),
        "opikEnabled": telemetry.is_enabled(),
        "llm": cloud.get_display_name() or None,
        "store": config.STORE_BACKEND,
    })


# ─── Wellness ───

@app.route("/api/log-wellness", methods=["POST"])
def api_log_wellness():
    data = _body()
    energy = data.get("energyLevel")
    if not isinstance(energy, (int, float)) or isinstance(energy, bool):
        return jsonify({"error": "energyLevel must be a number"}), 400
    result = _wellness.log_wellness(_user_id(data), energy,
                                    focus_quality=data.get("focusQuality"),
                                    task_id=data.get("taskId"))
    return jsonify(result)


@app.route("/api/weekly-insights", methods=["POST"])
def api_weekly_insights():
    return jsonify(_wellness.weekly_insights(_user_id()))


# ─── Chat ───

@app.route("/api/chat", methods=["POST"])
def api_chat():
    data = _body()
    msg = (data.get("message") or "").strip()
    if not msg:
        return jsonify({"error": "Missing message"}), 400
    return jsonify(_coach.chat(_user_id(data), msg, data.get("context") or {}))


@app.route("/api/chat-history", methods=["POST"])
def api_chat_history():
    messages = _coach.history(_user_id())
    return jsonify({"success": True, "messages": messages, "count": len(messages)})


@app.route("/api/clear-chat", methods=["POST"])
def api_clear_chat():
    _coach.clear(_user_id())
    return jsonify({"success": True, "message": "Chat history cleared"})


@app.route("/api/chat-analytics", methods=["POST"])
def api_chat_analytics():
    data = _body()
    event_type = data.get("eventType") or "unknown"
    telemetry.trace(
        "chat_analytics",
        input={k: data.get(k) for k in ("userId", "eventType", "sessionDuration",
                                         "messageCount", "currentEnergy")},
        output={"tracked": True},
        metadata=dict(data.get("metadata") or {}, timestamp=data.get("timestamp")),
        tags=["analytics", "chat", event_type],
    )
    return jsonify({"success": True})


@app.route("/api/opik", methods=["POST"])
def api_opik():
    """Trace relay for clients that must not hold the Opik key."""
    data = _body()
    name = data.get("name")
    if not name:
        return jsonify({"error": "name is required"}), 400
    tr = telemetry.trace(name, input=data.get("input"), output=data.get("output"),
                         tags=data.get("tags"))
    return jsonify({"success": tr.sent, "id": tr.id})


# ─── Uptime ───

@app.route("/api/uptime/score", methods=["POST"])
def api_uptime_score():
    data = _body()
    user_id = _user_id(data)
    tasks = _task_list(data)
    if tasks is None:
        tasks = _tasks.list_tasks(user_id)
    session = _session_for(user_id)
    focus_seconds = _number(data, "focusSeconds", session.focus_seconds)
    last_break = data.get("lastBreak", session.last_break)
    energy = _number(data, "energy", 3)
    return jsonify({
        "uptime": uptime.compute_uptime(tasks, energy, int(focus_seconds), last_break),
        "burnoutRisk": uptime.burnout_risk(energy),
        "blockers": uptime.count_blockers(tasks),
    })


@app.route("/api/analyze-uptime", methods=["POST"])
def api_analyze_uptime():
    data = _body()
    analysis = _coach.analyze_uptime(
        _user_id(data),
        _number(data, "uptime", 0),
        _number(data, "energy", 3),
        _task_list(data) or [],
        _number(data, "focusMinutes", 0),
    )
    return jsonify({"analysis": analysis})


@app.route("/api/uptime/tasks", methods=["GET"])
def api_list_tasks():
    return jsonify({"tasks": _tasks.list_tasks(_user_id({}))})


@app.route("/api/uptime/tasks", methods=["POST"])
def api_create_task():
    data = _body()
    task = _tasks.create_task(
        _user_id(data),
        data.get("text") or data.get("title"),
        description=data.get("description"),
        priority=data.get("priority"),
    )
    return jsonify({"task": task})


@app.route("/api/uptime/tasks/<task_id>", methods=["PUT"])
def api_update_task(task_id):
    data = _body()
    fields = {k: data.get(k) for k in ("completed", "hasBlocker", "text", "title",
                                       "description", "priority") if k in data}
    task = _tasks.update_task(_user_id(data), task_id, **fields)
    return jsonify({"task": task})


@app.route("/api/uptime/tasks/<task_id>", methods=["DELETE"])
def api_delete_task(task_id):
    _tasks.delete_task(_user_id(), task_id)
    return jsonify({"success": True})


@app.route("/api/uptime/session", methods=["POST"])
def api_save_session():
    data = _body()
    for key in ("energy", "focusSeconds", "uptime"):
        _number(data, key, None)
    _task_list(data)
    record = _checkins.save_checkin(_user_id(data), data)
    return jsonify({"success": True, "checkin": record})


@app.route("/api/uptime/history", methods=["GET"])
def api_history():
    days = request.args.get("days", 7, type=int)
    return jsonify({"history": _checkins.history(_user_id({}), days=days)})


@app.route("/api/uptime/stats/weekly", methods=["GET"])
def api_weekly_stats():
    return jsonify(_checkins.weekly_stats(_user_id({})))


# ─── Focus sessions ───

@app.route("/api/focus/state", methods=["GET"])
def api_focus_state():
    return jsonify(_session_for(_user_id({})).snapshot())


@app.route("/api/focus/<action>", methods=["POST"])
def api_focus_action(action):
    data = _body()
    session = _session_for(_user_id(data))
    result = {}

    if action == "start":
        session.start_session(_number(data, "goalMinutes", config.DEFAULT_GOAL_MINUTES))
    elif action == "pause":
        result["changed"] = session.pause_session()
    elif action == "resume":
        result["changed"] = session.resume_session()
    elif action == "end":
        result["duration"] = session.end_session()
    elif action == "break":
        session.take_break()
    elif action == "lock":
        if "enabled" in data and bool(data["enabled"]) == session.focus_lock_enabled:
            result["changed"] = False
        else:
            session.toggle_focus_lock()
            result["changed"] = True
    elif action == "visibility":
        if "visible" not in data:
            return jsonify({"error": "visible is required"}), 400
        session.set_visibility(bool(data["visible"]))
    else:
        return jsonify({"error": f"Unknown focus action: {action}"}), 404

    result["state"] = session.snapshot()
    return jsonify(result)


@app.route("/api/focus/events", methods=["GET"])
def api_focus_events():
    return jsonify({"events": alerts.queue_for(_user_id({})).drain()})


@app.route("/api/notifications", methods=["GET"])
def api_notifications():
    """Notification-only feed for the browser extension."""
    events = alerts.queue_for(_user_id({})).drain(kind="notification")
    return jsonify({"notifications": events})


# ─── Startup ───

def run_web(host=None, port=None):
    """Launch the API server with a banner."""
    host = host or config.HOST
    port = port or config.PORT
    _ensure_initialized()

    print()
    print("  \033[38;5;33m━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\033[0m")
    print("  \033[38;5;51m◉\033[0m \033[1m\033[38;5;39mBuilder Uptime API\033[0m")
    print("  \033[38;5;33m━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\033[0m")
    print()
    print(f"  \033[38;5;75mListening:\033[0m  http://{host}:{port}")
    print(f"  \033[38;5;75mStore:\033[0m      {config.STORE_BACKEND} ({config.DB_PATH})")
    print(f"  \033[38;5;75mLLM:\033[0m        {cloud.get_display_name() or 'off (canned replies)'}")
    print(f"  \033[38;5;75mOpik:\033[0m       "
          f"{'workspace ' + config.OPIK_WORKSPACE if telemetry.is_enabled() else 'disabled'}")
    if config.API_TOKEN:
        print("  \033[38;5;214mAuth:\033[0m       bearer token required")
    print()

    state.log("web_start", f"{host}:{port}")
    app.run(host=host, port=port, threaded=True, debug=False)
