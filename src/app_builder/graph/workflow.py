"""LangGraph workflow assembly and the run entrypoint with its outer failure handler."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from langgraph.graph import END, StateGraph

from app_builder.graph.compensation import (
    UNEXPECTED_ERROR_MESSAGE,
    cleanup_sandbox,
    refund_credit,
    save_error_message,
)
from app_builder.graph.context import RunContext, WorkflowServices
from app_builder.graph.nodes import agent, completion, load_context, persist, postprocess, provision
from app_builder.graph.state import (
    RunEvent,
    WorkflowFailure,
    WorkflowResult,
    WorkflowState,
    WorkflowSuccess,
    initial_state,
)
from app_builder.graph.steps import StepRunner
from app_builder.storage.models import RunRecord

logger = logging.getLogger(__name__)


def build_graph(*, max_iterations: int = 15):
    graph = StateGraph(WorkflowState)

    graph.add_node("provision", provision.run)
    graph.add_node("load_context", load_context.run)
    graph.add_node("agent", agent.run)
    graph.add_node("check", completion.check)
    graph.add_node("fail", completion.fail)
    graph.add_node("postprocess", postprocess.run)
    graph.add_node("persist", persist.run)

    route_agent = agent.build_router(max_iterations)
    agent_edges = {agent.CONTINUE: "agent", agent.STOP: "check"}

    graph.set_entry_point("provision")
    graph.add_edge("provision", "load_context")
    graph.add_conditional_edges("load_context", route_agent, agent_edges)
    graph.add_conditional_edges("agent", route_agent, agent_edges)
    graph.add_conditional_edges(
        "check",
        completion.route,
        {completion.COMPLETE: "postprocess", completion.INCOMPLETE: "fail"},
    )
    graph.add_edge("postprocess", "persist")
    graph.add_edge("persist", END)
    graph.add_edge("fail", END)

    return graph.compile()


class CodeAgentWorkflow:
    """Run the code-agent graph for one trigger event.

    `run` never raises: every outcome is a `WorkflowSuccess` or `WorkflowFailure`.
    Calling it again with the id of an unfinished run replays recorded steps;
    with the id of a finished run it returns the stored result.
    """

    def __init__(self, services: WorkflowServices) -> None:
        self.services = services
        self.max_iterations = services.settings.max_agent_iterations
        self.graph = build_graph(max_iterations=self.max_iterations)

    def run(self, event: RunEvent, *, run_id: str | None = None) -> WorkflowResult:
        run_id = run_id or str(uuid4())
        storage = self.services.storage

        record = storage.get_run(run_id)
        if record is not None and record.result is not None:
            logger.info("run event=already_finished run_id=%s status=%s", run_id, record.status)
            return _parse_result(record.result)
        if record is None:
            record = storage.create_run(
                run_id=run_id,
                project_id=event.project_id,
                user_id=event.user_id,
                value=event.value,
            )

        ctx = RunContext(
            run_id=run_id,
            event=event,
            services=self.services,
            steps=StepRunner(run_id=run_id, storage=storage),
            sandbox_id=record.sandbox_id,
        )
        logger.info(
            "run event=start run_id=%s project_id=%s user_id=%s",
            run_id,
            event.project_id,
            event.user_id,
        )

        try:
            final_state = self.graph.invoke(
                initial_state(
                    run_id=run_id,
                    project_id=event.project_id,
                    user_id=event.user_id,
                    value=event.value,
                ),
                config={
                    "configurable": {"run": ctx},
                    "recursion_limit": self.max_iterations + 10,
                },
            )
            result = _parse_result(final_state["result"])
        except Exception as exc:  # noqa: BLE001
            logger.exception("Code agent function error run_id=%s", run_id)
            result = self._handle_failure(ctx, exc)

        self._finish(ctx, result)
        return result

    def _handle_failure(self, ctx: RunContext, exc: Exception) -> WorkflowFailure:
        try:
            refund_credit(ctx, "refund-credit-on-error")
        except Exception:  # noqa: BLE001
            logger.exception("run event=refund_step_failed run_id=%s", ctx.run_id)
        try:
            save_error_message(ctx, "save-error-message", UNEXPECTED_ERROR_MESSAGE, dedup=True)
        except Exception:  # noqa: BLE001
            logger.exception("run event=error_message_failed run_id=%s", ctx.run_id)
        cleanup_sandbox(ctx)
        return WorkflowFailure(message=str(exc) or exc.__class__.__name__)

    def _finish(self, ctx: RunContext, result: WorkflowResult) -> RunRecord | None:
        status = "succeeded" if isinstance(result, WorkflowSuccess) else "failed"
        logger.info(
            "run event=completed run_id=%s status=%s replayed_steps=%s",
            ctx.run_id,
            status,
            len(ctx.steps.replayed),
        )
        try:
            return self.services.storage.update_run(
                ctx.run_id,
                status=status,
                result=result.model_dump(),
                compensations=ctx.compensations,
            )
        except Exception:  # noqa: BLE001
            logger.exception("run event=finish_failed run_id=%s", ctx.run_id)
            return None


def _parse_result(payload: dict[str, Any]) -> WorkflowResult:
    if payload.get("success"):
        return WorkflowSuccess.model_validate(payload)
    return WorkflowFailure.model_validate(payload)
