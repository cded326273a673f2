"""Persist node: preview URL plus the RESULT message and its fragment."""

from __future__ import annotations

import logging

from langchain_core.runnables import RunnableConfig

from app_builder.graph.context import run_context
from app_builder.graph.state import WorkflowState, WorkflowSuccess

logger = logging.getLogger(__name__)


def run(state: WorkflowState, config: RunnableConfig) -> WorkflowState:
    ctx = run_context(config)
    sandbox_id = ctx.sandbox_id
    if not sandbox_id:
        raise RuntimeError("Cannot persist a result without a sandbox")

    def _sandbox_url() -> str:
        host = ctx.services.sandbox.get_host(sandbox_id, ctx.settings.sandbox_preview_port)
        return f"https://{host}"

    sandbox_url: str = ctx.steps.run("get-sandbox-url", _sandbox_url)
    title = state.get("title", "Fragment")
    files = dict(state.get("files", {}))

    def _save() -> str:
        record = ctx.services.storage.create_message(
            project_id=ctx.event.project_id,
            content=state.get("response", "Here you go!"),
            role="ASSISTANT",
            type="RESULT",
            fragment={"sandbox_url": sandbox_url, "title": title, "files": files},
        )
        return record.message_id

    message_id = ctx.steps.run("save-success-result", _save)
    logger.info(
        "run event=result_saved run_id=%s message_id=%s url=%s files=%s",
        ctx.run_id,
        message_id,
        sandbox_url,
        len(files),
    )

    result = WorkflowSuccess(
        url=sandbox_url,
        title=title,
        files=files,
        summary=state.get("summary", ""),
    )
    return {"sandbox_url": sandbox_url, "result": result.model_dump()}
