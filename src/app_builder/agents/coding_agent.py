"""Tool-calling coding agent driven one round at a time."""

from __future__ import annotations

import logging
from typing import Any

from app_builder.agents.prompts import PROMPT
from app_builder.graph.state import TASK_SUMMARY_MARKER, AgentState, RoundOutcome
from app_builder.llm import ChatModel, message_text
from app_builder.tools import ToolContext, ToolExecutor, build_registry, tool_definitions

logger = logging.getLogger(__name__)


class CodingAgent:
    """One round = one inference step, its tool calls in order, then the response hook.

    The transcript is the caller's list and is extended in place with the
    assistant turn and one `tool` message per call.
    """

    name = "code-agent"

    def __init__(
        self,
        *,
        llm: ChatModel,
        model: str,
        temperature: float | None = 0.1,
        system_prompt: str = PROMPT,
        executor: ToolExecutor | None = None,
    ) -> None:
        self.llm = llm
        self.model = model
        self.temperature = temperature
        self.system_prompt = system_prompt
        self.executor = executor or ToolExecutor(registry=build_registry())
        self._tools = tool_definitions(self.executor.registry)

    def run_round(self, transcript: list[dict[str, Any]], context: ToolContext) -> RoundOutcome:
        messages = [{"role": "system", "content": self.system_prompt}, *transcript]
        message: dict[str, Any] = context.steps.run(
            "code-agent-inference",
            lambda: self.llm.complete(
                model=self.model,
                messages=messages,
                tools=self._tools,
                temperature=self.temperature,
            ),
        )
        transcript.append(message)

        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            tool_name = str(function.get("name", ""))
            output = self.executor.execute(tool_name, function.get("arguments") or {}, context)
            transcript.append(
                {
                    "role": "tool",
                    "tool_call_id": call.get("id", ""),
                    "content": output,
                }
            )

        return self.on_response(message, context.state)

    @staticmethod
    def on_response(message: dict[str, Any], state: AgentState) -> RoundOutcome:
        text = message_text(message)
        if text and TASK_SUMMARY_MARKER in text:
            state.summary = text
            return RoundOutcome.done(text)
        return RoundOutcome.proceed()
