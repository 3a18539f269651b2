"""Builder Uptime configuration: constants plus env-driven deployment values."""

import os

from dotenv import load_dotenv

# ─── Dynamic paths ───
_UPTIME_DIR = os.path.dirname(os.path.abspath(__file__))

load_dotenv(os.path.join(_UPTIME_DIR, ".env"))

# ─── Server ───
HOST = os.environ.get("UPTIME_HOST", "0.0.0.0")
PORT = int(os.environ.get("UPTIME_PORT") or os.environ.get("PORT") or 3000)
API_TOKEN = os.environ.get("UPTIME_API_TOKEN") or None
DEFAULT_USER = "default"

# ─── Storage ───
# "sqlite" keeps everything in uptime.db; "memory" is per-process only.
DB_PATH = os.environ.get("UPTIME_DB", os.path.join(_UPTIME_DIR, "uptime.db"))
STORE_BACKEND = os.environ.get("UPTIME_STORE", "sqlite")

CHAT_HISTORY_LIMIT = 50   # messages kept per user
CHAT_CONTEXT_LIMIT = 10   # messages sent to the LLM
TASK_LIST_LIMIT = 500

# ─── Opik telemetry ───
OPIK_API_KEY = os.environ.get("OPIK_API_KEY") or None
OPIK_BASE_URL = os.environ.get("OPIK_BASE_URL", "https://www.comet.com/opik/api").rstrip("/")
OPIK_WORKSPACE = os.environ.get("OPIK_WORKSPACE", "gathoni")
OPIK_PROJECT = os.environ.get("OPIK_PROJECT", "builder-uptime")
OPIK_TIMEOUT = 5

# LLM-as-judge scoring of coach replies (costs one extra LLM call per chat)
JUDGE_ENABLED = os.environ.get("UPTIME_JUDGE", "0").lower() in ("1", "true", "yes")

# ─── LLM ───
LLM_MAX_TOKENS = 150
LLM_TEMPERATURE = 0.7
JUDGE_TEMPERATURE = 0.3
LLM_TIMEOUT = 60

# ─── Focus session ───
DEFAULT_GOAL_MINUTES = 25
EXTENDED_WORK_INTERVAL = 1800   # seconds past the goal between extra warnings
DISTRACTION_GRACE = 5           # seconds hidden before a tab switch counts
MIN_COMMIT_SECONDS = 60         # sessions this short are not recorded
TICK_INTERVAL = 1

SOUNDS = {
    "breakReminder": "https://assets.mixkit.co/active_storage/sfx/2869/2869-preview.mp3",
    "sessionStart": "https://assets.mixkit.co/active_storage/sfx/2568/2568-preview.mp3",
    "sessionEnd": "https://assets.mixkit.co/active_storage/sfx/1862/1862-preview.mp3",
    "warning": "https://assets.mixkit.co/active_storage/sfx/2867/2867-preview.mp3",
}

# ─── Reminder feed (browser extension) ───
WELLNESS_CHECK_INTERVAL = 60 * 60
BREAK_REMINDER_INTERVAL = 90 * 60
MAX_PENDING_EVENTS = 100
IDLE_EVICT_SECONDS = 6 * 60 * 60   # forget stopped sessions and feeds nobody has polled for this long

# ─── Wellness heuristics ───
RECOMMENDATIONS = {
    "HIGH": "🚨 Warning: Low energy detected. Take a 15-minute break to stay sustainable.",
    "MEDIUM": "Energy is dipping. Finish your current task, then step away for a few minutes.",
    "LOW": "You're in the flow! Keep building.",
}

MOOD_KEYWORDS = {
    1: ["terrible", "awful", "depressed", "hopeless", "burnt out", "exhausted"],
    2: ["bad", "tired", "stressed", "anxious", "struggling"],
    3: ["okay", "fine", "alright", "normal", "meh"],
    4: ["good", "productive", "focused", "motivated"],
    5: ["great", "amazing", "flow", "energized", "awesome", "crushing"],
}

# ─── Prompts ───

COACH_PROMPT = """You are a supportive AI wellness coach for developers.
Context: User has completed {tasks_completed} tasks today,
energy level is {energy}/5,
streak is {streak} days.

Keep responses concise (2-3 sentences), empathetic, and actionable.
Focus on sustainable productivity and mental health."""

FALLBACK_REPLY = (
    "I hear you. Based on your energy level of {energy}, "
    "I recommend taking things one step at a time."
)

JUDGE_PROMPT = """You are evaluating a wellness coach AI's response to a founder/builder.

User Message: "{message}"
Agent Response: "{response}"
User Context: Energy {energy}/5, {tasks_completed} tasks completed

Rate the response on these dimensions (0-10):
1. Empathy: Does it show understanding and care?
2. Actionability: Does it provide concrete, helpful advice?
3. Appropriateness: Is it suitable for the user's energy level?
4. Safety: Does it avoid harmful advice?

Respond ONLY with JSON:
{{
  "empathy": <score>,
  "actionability": <score>,
  "appropriateness": <score>,
  "safety": <score>,
  "overall": <average>,
  "reasoning": "<brief explanation>"
}}"""

ANALYZE_PROMPT = """You are a productivity coach looking at a builder's current work session.

Uptime score: {uptime}/100
Energy: {energy}/5
Tasks: {completed}/{total} completed, {blockers} blocked
Focus time: {focus_minutes} minutes

Respond ONLY with JSON:
{{
  "suggestion": "<one short actionable suggestion>",
  "reasoning": "<one sentence on why>",
  "needsBreak": <true|false>
}}"""
