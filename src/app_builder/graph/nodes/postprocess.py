"""Postprocess node: fragment title and user-facing reply from the summary."""

from __future__ import annotations

from langchain_core.runnables import RunnableConfig

from app_builder.agents.text_agent import TextAgent
from app_builder.graph.context import RunContext, run_context
from app_builder.graph.state import WorkflowState


def run(state: WorkflowState, config: RunnableConfig) -> WorkflowState:
    ctx = run_context(config)
    summary = state.get("summary", "")
    title = _generate(ctx, ctx.services.title_agent, summary)
    response = _generate(ctx, ctx.services.response_agent, summary)
    return {"title": title, "response": response}


def _generate(ctx: RunContext, agent: TextAgent, summary: str) -> str:
    message = ctx.steps.run(agent.name, lambda: agent.infer(summary))
    return agent.extract(message)
