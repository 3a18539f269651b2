"""Builder Uptime coach: chat proxy to the LLM, reply judging, session analysis."""

import json
import re
import threading

import cloud
import config
import state
import telemetry
import uptime
from store import open_store

_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_mood(message):
    """Guess a 1-5 mood from keywords in the message, or None."""
    text = message.lower()
    for mood in sorted(config.MOOD_KEYWORDS):
        if any(word in text for word in config.MOOD_KEYWORDS[mood]):
            return mood
    return None


def _parse_json(text):
    """Pull the first {...} block out of an LLM reply."""
    match = _JSON_RE.search(text or "")
    if not match:
        raise ValueError("no JSON object in reply")
    return json.loads(match.group(0))


class Coach:

    def __init__(self, store=None):
        self.store = store if store is not None else open_store("chat")
        self._lock = threading.Lock()

    # --- History ---

    def history(self, user_id):
        return self.store.get(user_id, [])

    def clear(self, user_id):
        with self._lock:
            self.store.delete(user_id)
        state.log("chat_cleared", user_id)

    # --- Chat ---

    def chat(self, user_id, message, context=None):
        """Answer one message. Falls back to a canned reply if the LLM is down."""
        context = context or {}
        asked = {"role": "user", "content": message, "timestamp": state.now_iso()}
        history = self.history(user_id) + [asked]

        system_prompt = config.COACH_PROMPT.format(
            tasks_completed=context.get("tasksCompleted") or 0,
            energy=context.get("currentEnergy") or 3,
            streak=context.get("streakDays") or 0,
        )
        recent = history[-config.CHAT_CONTEXT_LIMIT:]
        messages = [{"role": "system", "content": system_prompt}]
        messages += [{"role": m["role"], "content": m["content"]} for m in recent]

        try:
            reply = cloud.complete(messages) or "I'm here to help!"
            source = "llm"
        except cloud.LLMError as e:
            state.log("llm_error", str(e))
            reply = config.FALLBACK_REPLY.format(energy=context.get("currentEnergy") or "unknown")
            source = "fallback"

        answered = {"role": "assistant", "content": reply, "timestamp": state.now_iso()}
        # The LLM call ran unlocked, so re-read: another request may have written meanwhile.
        with self._lock:
            history = self.history(user_id) + [asked, answered]
            history = history[-config.CHAT_HISTORY_LIMIT:]
            self.store.put(user_id, history)
        state.log("chat", f"{user_id}: source={source}, len={len(reply)}")

        tr = telemetry.trace("shade_agent_chat",
                             input={"message": message, "context": context},
                             output={"response": reply})
        if config.JUDGE_ENABLED and tr.sent:
            self._judge(tr, message, reply, context)

        return {
            "reply": reply,
            "message": reply,
            "extractedMood": extract_mood(message),
            "conversationLength": len(history),
        }

    def _judge(self, tr, message, reply, context):
        """Score the reply with the LLM and attach the scores to the trace."""
        prompt = config.JUDGE_PROMPT.format(
            message=message,
            response=reply,
            energy=context.get("currentEnergy") or "unknown",
            tasks_completed=context.get("tasksCompleted") or 0,
        )
        try:
            raw = cloud.complete([{"role": "user", "content": prompt}],
                                 max_tokens=300, temperature=config.JUDGE_TEMPERATURE)
            scores = _parse_json(raw)
            tr.feedback("empathy", scores["empathy"] / 10, reason=scores.get("reasoning"))
            tr.feedback("actionability", scores["actionability"] / 10)
            tr.feedback("safety", scores["safety"] / 10)
            tr.feedback("overall_quality", scores["overall"] / 10)
            state.log("chat_judged", f"overall={scores['overall']}/10")
            return scores
        except (cloud.LLMError, ValueError, KeyError, TypeError) as e:
            state.log("judge_error", str(e))
            return None

    # --- Session analysis ---

    def analyze_uptime(self, user_id, score, energy, tasks, focus_minutes):
        """Suggest a next step for the current session."""
        completed = sum(1 for t in tasks if t.get("completed"))
        blockers = uptime.count_blockers(tasks)
        prompt = config.ANALYZE_PROMPT.format(
            uptime=score, energy=energy, completed=completed, total=len(tasks),
            blockers=blockers, focus_minutes=focus_minutes,
        )
        try:
            data = _parse_json(cloud.complete([{"role": "user", "content": prompt}],
                                              max_tokens=200))
            analysis = {
                "suggestion": str(data["suggestion"]),
                "reasoning": str(data.get("reasoning", "")),
                "needsBreak": bool(data.get("needsBreak")),
            }
        except (cloud.LLMError, ValueError, KeyError, TypeError) as e:
            state.log("analyze_fallback", str(e))
            analysis = rule_based_analysis(energy, blockers, focus_minutes)

        telemetry.trace("uptime_analysis",
                        input={"userId": user_id, "uptime": score, "energy": energy,
                               "focusMinutes": focus_minutes, "blockers": blockers},
                        output=analysis)
        return analysis


def rule_based_analysis(energy, blockers, focus_minutes):
    if energy <= 2:
        return {
            "suggestion": "Step away for 15 minutes before the next task.",
            "reasoning": "Your reported energy is low; pushing through raises burnout risk.",
            "needsBreak": True,
        }
    if focus_minutes >= 90:
        return {
            "suggestion": "Take a short break, you've been heads-down for a while.",
            "reasoning": f"{focus_minutes} minutes of continuous focus without a pause.",
            "needsBreak": True,
        }
    if blockers:
        return {
            "suggestion": "Unblock one task before starting anything new.",
            "reasoning": f"{blockers} open task(s) are marked as blocked.",
            "needsBreak": False,
        }
    return {
        "suggestion": "Keep going, pick the next smallest task.",
        "reasoning": "Energy is fine and nothing is blocked.",
        "needsBreak": False,
    }
