"""Agent node and the router that decides whether another round runs."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from app_builder.graph.context import run_context
from app_builder.graph.state import AgentState, WorkflowState
from app_builder.tools import ToolContext

logger = logging.getLogger(__name__)

CONTINUE = "agent"
STOP = "check"


def run(state: WorkflowState, config: RunnableConfig) -> WorkflowState:
    ctx = run_context(config)
    if not ctx.sandbox_id:
        raise RuntimeError("Agent round requested before the sandbox was provisioned")

    agent_state = AgentState(summary=state.get("summary", ""), files=state.get("files", {}))
    round_number = int(state.get("iteration", 0)) + 1
    tool_context = ToolContext(
        sandbox_id=ctx.sandbox_id,
        sandbox=ctx.services.sandbox,
        steps=ctx.steps,
        state=agent_state,
        round=round_number,
        events=ctx.tool_events,
    )
    transcript = list(state.get("messages", []))

    outcome = ctx.services.coding_agent.run_round(transcript, tool_context)
    logger.info(
        "run event=agent_round run_id=%s round=%s outcome=%s files=%s",
        ctx.run_id,
        round_number,
        outcome.kind,
        len(agent_state.files),
    )

    telemetry = dict(state.get("telemetry", {}))
    telemetry["tool_execution"] = {
        "events": list(ctx.tool_events),
        "executed_tools": len(ctx.tool_events),
        "failed_tools": sum(1 for event in ctx.tool_events if event["status"] != "ok"),
    }
    return {
        "messages": transcript,
        "summary": agent_state.summary,
        "files": agent_state.files,
        "iteration": round_number,
        "outcome": outcome.as_dict(),
        "telemetry": telemetry,
    }


def build_router(max_iterations: int):
    def route(state: WorkflowState) -> str:
        if state.get("summary"):
            return STOP
        if int(state.get("iteration", 0)) >= max_iterations:
            return STOP
        return CONTINUE

    return route
