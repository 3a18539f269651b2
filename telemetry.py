"""Opik telemetry over its REST API.

Everything here is best-effort: without OPIK_API_KEY the client is a no-op,
and transport errors are written to the timeline instead of raised.
"""

import os
import time
import uuid

import requests

import config
import state


def _uuid7():
    """Time-ordered UUID (version 7), which Opik requires for trace ids."""
    ms = int(time.time() * 1000)
    rand = int.from_bytes(os.urandom(10), "big")
    value = (ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return str(uuid.UUID(int=value))


def is_enabled():
    return bool(config.OPIK_API_KEY)


def _headers():
    return {
        "Authorization": config.OPIK_API_KEY,
        "Comet-Workspace": config.OPIK_WORKSPACE,
        "Content-Type": "application/json",
    }


def _send(method, path, payload):
    """Fire one request at Opik. Returns True on a 2xx."""
    url = f"{config.OPIK_BASE_URL}{path}"
    try:
        resp = requests.request(method, url, headers=_headers(), json=payload,
                                timeout=config.OPIK_TIMEOUT)
    except requests.RequestException as e:
        state.log("opik_error", f"{path}: {e}")
        return False
    if resp.status_code >= 300:
        state.log("opik_error", f"{path}: HTTP {resp.status_code} {resp.text[:200]}")
        return False
    return True


class Trace:
    """Handle for a logged trace; attach feedback scores to it."""

    def __init__(self, trace_id, name, sent):
        self.id = trace_id
        self.name = name
        self.sent = sent

    def feedback(self, name, value, reason=None):
        if not self.sent:
            return False
        score = {"name": name, "value": value, "source": "sdk"}
        if reason:
            score["reason"] = reason
        return _send("PUT", f"/v1/private/traces/{self.id}/feedback-scores", score)


def trace(name, input=None, output=None, tags=None, metadata=None):
    """Log a completed trace. Always returns a Trace (unsent when disabled)."""
    trace_id = _uuid7()
    if not is_enabled():
        return Trace(trace_id, name, sent=False)

    ts = state.now_iso()
    payload = {
        "id": trace_id,
        "project_name": config.OPIK_PROJECT,
        "name": name,
        "start_time": ts,
        "end_time": ts,
        "input": input or {},
        "output": output or {},
    }
    if tags:
        payload["tags"] = list(tags)
    if metadata:
        payload["metadata"] = metadata

    sent = _send("POST", "/v1/private/traces", payload)
    if sent:
        state.log("opik_trace", name)
    return Trace(trace_id, name, sent)
