"""Provision node: create the run's sandbox and apply its timeout."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from app_builder.graph.context import run_context
from app_builder.graph.state import WorkflowState

logger = logging.getLogger(__name__)


def run(state: WorkflowState, config: RunnableConfig) -> WorkflowState:
    ctx = run_context(config)
    settings = ctx.settings

    sandbox_id: str = ctx.steps.run(
        "get-sandbox-id",
        lambda: ctx.services.sandbox.create(
            settings.sandbox_template,
            timeout_ms=settings.sandbox_timeout_ms,
        ),
    )
    ctx.sandbox_id = sandbox_id
    ctx.services.storage.update_run(ctx.run_id, sandbox_id=sandbox_id)
    logger.info("run event=sandbox_ready run_id=%s sandbox_id=%s", ctx.run_id, sandbox_id)
    return {"sandbox_id": sandbox_id}
