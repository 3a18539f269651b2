"""LLM client for the coach. One blocking completion call over plain requests.

The provider is picked from the key prefix; anything unrecognised needs
UPTIME_LLM_URL and is spoken to in the OpenAI chat format.

  UPTIME_LLM_KEY    provider key (OPENAI_API_KEY is read as a fallback)
  UPTIME_LLM_MODEL  model override
  UPTIME_LLM_URL    endpoint override
"""

import os

import requests

from config import LLM_MAX_TOKENS, LLM_TEMPERATURE, LLM_TIMEOUT

ANTHROPIC_VERSION = "2023-06-01"

# (key prefix, display name, endpoint, default model, wire format)
# Checked in order, so "sk-ant-" and "sk-or-" must come before "sk-".
KNOWN_PROVIDERS = (
    ("sk-ant-", "Anthropic", "https://api.anthropic.com/v1/messages",
     "claude-sonnet-4-6", "anthropic"),
    ("sk-or-", "OpenRouter", "https://openrouter.ai/api/v1/chat/completions",
     "openai/gpt-4o-mini", "openai"),
    ("gsk_", "Groq", "https://api.groq.com/openai/v1/chat/completions",
     "llama-3.3-70b-versatile", "openai"),
    ("sk-", "OpenAI", "https://api.openai.com/v1/chat/completions",
     "gpt-4o-mini", "openai"),
)

ROLES = ("system", "user", "assistant")


class LLMError(Exception):
    """The LLM could not produce a reply (no key, HTTP error, bad payload)."""


_provider = None


def _detect():
    key = os.environ.get("UPTIME_LLM_KEY") or os.environ.get("OPENAI_API_KEY")
    if not key:
        return None
    url = os.environ.get("UPTIME_LLM_URL")
    model = os.environ.get("UPTIME_LLM_MODEL")

    match = next((p for p in KNOWN_PROVIDERS if key.startswith(p[0])), None)
    if match is None and not url:
        return None
    if match is None:
        name, wire = "Custom", "openai"
        default_url, default_model = url, "unknown"
    else:
        _, name, default_url, default_model, wire = match

    url = url or default_url
    if "anthropic" in url:
        wire = "anthropic"
    return {"name": name, "url": url, "model": model or default_model,
            "wire": wire, "key": key}


def _current():
    global _provider
    if _provider is None:
        _provider = _detect()
    return _provider


def reset():
    """Forget the detected provider (env vars changed)."""
    global _provider
    _provider = None


def is_available():
    return _current() is not None


def get_display_name():
    """'model @ Provider' for the banner and /health, or '' without a key."""
    p = _current()
    return f"{p['model']} @ {p['name']}" if p else ""


def _turns(messages):
    """Normalise chat turns: drop blanks, coerce odd roles to user, join repeats."""
    turns = []
    for m in messages:
        text = (m.get("content") or "").strip()
        if not text:
            continue
        role = m.get("role") if m.get("role") in ROLES else "user"
        if turns and turns[-1]["role"] == role and role != "system":
            turns[-1]["content"] += "\n" + text
        else:
            turns.append({"role": role, "content": text})
    if not any(t["role"] != "system" for t in turns):
        raise LLMError("no messages to send")
    return turns


def _build_request(p, messages, max_tokens, temperature):
    turns = _turns(messages)
    body = {"model": p["model"], "max_tokens": max_tokens, "temperature": temperature}

    if p["wire"] != "anthropic":
        body["messages"] = turns
        headers = {"Authorization": f"Bearer {p['key']}", "Content-Type": "application/json"}
        return headers, body

    # Anthropic takes the system prompt separately and wants a user turn first.
    system = [t["content"] for t in turns if t["role"] == "system"]
    chat = [t for t in turns if t["role"] != "system"]
    if chat[0]["role"] != "user":
        chat.insert(0, {"role": "user", "content": "(continuing conversation)"})
    body["messages"] = chat
    if system:
        body["system"] = "\n\n".join(system)
    headers = {
        "x-api-key": p["key"],
        "anthropic-version": ANTHROPIC_VERSION,
        "content-type": "application/json",
    }
    return headers, body


def _reply_text(p, data):
    if p["wire"] == "anthropic":
        return "".join(b.get("text", "") for b in data.get("content", [])
                       if b.get("type") == "text")
    return data["choices"][0]["message"]["content"] or ""


def complete(messages, max_tokens=LLM_MAX_TOKENS, temperature=LLM_TEMPERATURE):
    """Send messages, return the reply text. Raises LLMError on any failure."""
    p = _current()
    if not p:
        raise LLMError("no LLM API key set")
    headers, body = _build_request(p, messages, max_tokens, temperature)

    try:
        resp = requests.post(p["url"], headers=headers, json=body, timeout=LLM_TIMEOUT)
    except requests.Timeout:
        raise LLMError(f"{p['name']} timed out")
    except requests.RequestException as e:
        raise LLMError(f"{p['name']} unreachable: {e}")

    if resp.status_code != 200:
        try:
            detail = resp.json().get("error", {}).get("message") or resp.text[:200]
        except ValueError:
            detail = resp.text[:200]
        raise LLMError(f"{p['name']} HTTP {resp.status_code}: {detail}")

    try:
        return _reply_text(p, resp.json()).strip()
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise LLMError(f"unparseable {p['name']} reply: {e}")
