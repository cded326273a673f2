"""Completion check and the failure path for runs that produced no usable result."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from app_builder.graph.compensation import (
    FAILED_GENERATION_MESSAGE,
    refund_credit,
    save_error_message,
)
from app_builder.graph.context import run_context
from app_builder.graph.state import WorkflowFailure, WorkflowState

logger = logging.getLogger(__name__)

COMPLETE = "postprocess"
INCOMPLETE = "fail"


def check(state: WorkflowState) -> WorkflowState:
    # Either a missing summary or an empty file map fails the run.
    completed = bool(state.get("summary")) and bool(state.get("files"))
    return {"completed": completed}


def route(state: WorkflowState) -> str:
    return COMPLETE if state.get("completed") else INCOMPLETE


def fail(state: WorkflowState, config: RunnableConfig) -> WorkflowState:
    ctx = run_context(config)
    logger.error(
        "Code generation failed - no summary or files generated run_id=%s rounds=%s files=%s",
        ctx.run_id,
        state.get("iteration", 0),
        len(state.get("files", {})),
    )

    refund_credit(ctx, "refund-credit")
    save_error_message(ctx, "save-error-result", FAILED_GENERATION_MESSAGE, dedup=False)

    result = WorkflowFailure(message="Failed to generate code")
    return {"result": result.model_dump()}
