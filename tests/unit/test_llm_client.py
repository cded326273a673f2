from __future__ import annotations

import json
from typing import Any
from urllib import error

import pytest

from app_builder import llm as llm_module
from app_builder.llm import ChatCompletionsClient, LLMResponseError, message_text


class FakeResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def __enter__(self) -> FakeResponse:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def read(self) -> bytes:
        return self._body


def _completion(message: dict[str, Any]) -> dict[str, Any]:
    return {"choices": [{"index": 0, "message": message, "finish_reason": "stop"}]}


def test_client_requires_api_key() -> None:
    with pytest.raises(RuntimeError, match="OPENROUTER_API_KEY"):
        ChatCompletionsClient(api_key="")


def test_complete_sends_tools_and_returns_tool_calls(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: list[Any] = []
    call = {
        "id": "call_1",
        "type": "function",
        "function": {"name": "terminal", "arguments": '{"command": "ls"}'},
    }

    def fake_urlopen(req, timeout):
        sent.append(req)
        return FakeResponse(_completion({"role": "assistant", "content": None, "tool_calls": [call]}))

    monkeypatch.setattr(llm_module.request, "urlopen", fake_urlopen)
    client = ChatCompletionsClient(
        api_key="secret",
        base_url="https://llm.test/v1/",
        extra_headers={"X-Title": "App Builder"},
    )

    message = client.complete(
        model="coding-model",
        messages=[{"role": "user", "content": "hi"}],
        tools=[{"type": "function", "function": {"name": "terminal"}}],
        temperature=0.1,
    )

    assert message == {"role": "assistant", "content": None, "tool_calls": [call]}
    req = sent[0]
    assert req.full_url == "https://llm.test/v1/chat/completions"
    assert req.get_header("Authorization") == "Bearer secret"
    assert req.get_header("X-title") == "App Builder"
    body = json.loads(req.data.decode("utf-8"))
    assert body["tool_choice"] == "auto"
    assert body["temperature"] == 0.1


def test_complete_retries_transient_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[int] = []

    def flaky_urlopen(req, timeout):
        attempts.append(1)
        if len(attempts) == 1:
            raise error.URLError("connection reset")
        return FakeResponse(_completion({"role": "assistant", "content": "Counter App"}))

    monkeypatch.setattr(llm_module.request, "urlopen", flaky_urlopen)
    client = ChatCompletionsClient(api_key="secret", max_retries=1, backoff_s=0)

    message = client.complete(model="title-model", messages=[])

    assert message == {"role": "assistant", "content": "Counter App"}
    assert len(attempts) == 2


def test_error_payload_raises_response_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        llm_module.request,
        "urlopen",
        lambda req, timeout: FakeResponse({"error": {"message": "rate limited"}}),
    )
    client = ChatCompletionsClient(api_key="secret", max_retries=0)

    with pytest.raises(LLMResponseError, match="rate limited"):
        client.complete(model="coding-model", messages=[])


def test_message_text_handles_each_content_shape() -> None:
    assert message_text({"content": "plain"}) == "plain"
    assert message_text({"content": [{"type": "text", "text": "a"}, "b"]}) == "ab"
    assert message_text({"content": [{"type": "image_url"}]}) is None
    assert message_text({"content": None}) is None
