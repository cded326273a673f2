"""Load-context node: seed the transcript with recent project messages."""

from __future__ import annotations

from typing import Any

from langchain_core.runnables import RunnableConfig

from app_builder.graph.context import run_context
from app_builder.graph.state import WorkflowState


def run(state: WorkflowState, config: RunnableConfig) -> WorkflowState:
    ctx = run_context(config)

    def _previous_messages() -> list[dict[str, Any]]:
        rows = ctx.services.storage.list_recent_messages(
            ctx.event.project_id,
            limit=ctx.settings.history_limit,
        )
        formatted = [
            {
                "role": "assistant" if row.role == "ASSISTANT" else "user",
                "content": row.content,
            }
            for row in rows
        ]
        formatted.reverse()
        return formatted

    history = ctx.steps.run("get-previous-messages", _previous_messages)
    messages = [*history, {"role": "user", "content": state.get("value", ctx.event.value)}]
    return {"messages": messages}
