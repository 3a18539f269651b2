"""Tests for telemetry.py: Opik REST calls with requests faked out."""

import uuid

import pytest
import requests

import config
import memory
import telemetry


class FakeResponse:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def opik(monkeypatch):
    monkeypatch.setattr(config, "OPIK_API_KEY", "opik-key")
    sent = []
    responses = []

    def fake_request(method, url, headers=None, json=None, timeout=None):
        sent.append({"method": method, "url": url, "headers": headers, "json": json})
        resp = responses.pop(0) if responses else FakeResponse()
        if isinstance(resp, Exception):
            raise resp
        return resp

    monkeypatch.setattr(requests, "request", fake_request)
    return sent, responses


def test_uuid7_is_version_7():
    ids = [telemetry._uuid7() for _ in range(3)]
    for value in ids:
        assert uuid.UUID(value).version == 7
    assert len(set(ids)) == 3


def test_disabled_is_a_noop(monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("should not call Opik")

    monkeypatch.setattr(requests, "request", boom)
    tr = telemetry.trace("task_created", input={"text": "x"})
    assert tr.sent is False
    assert tr.feedback("accuracy", 1.0) is False


def test_trace_payload(opik):
    sent, _ = opik
    tr = telemetry.trace("shade_agent_chat", input={"message": "hi"},
                         output={"response": "hello"}, tags=["chat"])
    assert tr.sent is True
    call = sent[0]
    assert call["method"] == "POST"
    assert call["url"] == f"{config.OPIK_BASE_URL}/v1/private/traces"
    assert call["headers"]["Authorization"] == "opik-key"
    assert call["headers"]["Comet-Workspace"] == config.OPIK_WORKSPACE
    body = call["json"]
    assert body["id"] == tr.id
    assert body["project_name"] == config.OPIK_PROJECT
    assert body["name"] == "shade_agent_chat"
    assert body["input"] == {"message": "hi"}
    assert body["tags"] == ["chat"]


def test_feedback_targets_the_trace(opik):
    sent, _ = opik
    tr = telemetry.trace("wellness_check")
    assert tr.feedback("accuracy", 1.0, reason="High energy") is True
    call = sent[1]
    assert call["method"] == "PUT"
    assert call["url"].endswith(f"/v1/private/traces/{tr.id}/feedback-scores")
    assert call["json"] == {"name": "accuracy", "value": 1.0, "source": "sdk",
                            "reason": "High energy"}


def test_http_error_is_logged_not_raised(opik):
    _, responses = opik
    responses.append(FakeResponse(401, "bad key"))
    tr = telemetry.trace("task_created")
    assert tr.sent is False
    assert tr.feedback("x", 0.5) is False
    assert memory.get_timeline(event="opik_error")


def test_connection_error_is_logged_not_raised(opik):
    _, responses = opik
    responses.append(requests.ConnectionError("refused"))
    assert telemetry.trace("task_created").sent is False
    assert "refused" in memory.get_timeline(event="opik_error")[0]["details"]
