"""OpenAI-compatible chat completions client with tool calling."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol
from urllib import error, request

logger = logging.getLogger(__name__)


class LLMResponseError(ValueError):
    """Raised when a completion payload cannot be interpreted."""


class ChatModel(Protocol):
    """Interface for one chat completion turn."""

    def complete(
        self,
        *,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any]: ...


class ChatCompletionsClient:
    """Small adapter over the `/chat/completions` REST API (OpenAI, OpenRouter)."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout_s: float = 120.0,
        max_retries: int = 1,
        backoff_s: float = 0.5,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("OPENROUTER_API_KEY is missing")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)
        self.extra_headers = dict(extra_headers or {})

    def complete(
        self,
        *,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        temperature: float | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": model, "messages": messages}
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        if temperature is not None:
            payload["temperature"] = temperature
        response_json = self._request_with_retry(payload, model=model)
        return _extract_message(response_json)

    def _request_with_retry(self, payload: dict[str, Any], *, model: str) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._request(payload)
            except (TimeoutError, ValueError, error.URLError) as exc:
                last_error = exc
                logger.warning(
                    "LLM request failed attempt=%d/%d model=%s reason=%s",
                    attempt + 1,
                    self.max_retries + 1,
                    model,
                    exc,
                )
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)
        if last_error is None:
            raise RuntimeError("LLM request failed with unknown error")
        raise last_error

    def _request(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                **self.extra_headers,
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise error.HTTPError(
                exc.url,
                exc.code,
                f"Chat completions request failed: {raw_error[:400]}",
                exc.headers,
                exc.fp,
            ) from exc
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise LLMResponseError("Chat completions returned non-JSON response") from exc


def _extract_message(response_json: dict[str, Any]) -> dict[str, Any]:
    if "error" in response_json and not response_json.get("choices"):
        raise LLMResponseError(f"Chat completions returned an error: {response_json['error']}")
    choices = response_json.get("choices") or []
    if not choices:
        raise LLMResponseError("Chat completions response did not contain choices")

    raw = choices[0].get("message") or {}
    message: dict[str, Any] = {"role": "assistant", "content": raw.get("content")}
    tool_calls = [call for call in raw.get("tool_calls") or [] if isinstance(call, dict)]
    if tool_calls:
        message["tool_calls"] = tool_calls
    return message


def message_text(message: dict[str, Any]) -> str | None:
    """Return the text of an assistant message, joining list-of-parts content."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts) if parts else None
    return None
