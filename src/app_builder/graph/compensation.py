"""Best-effort compensations and error reporting for failed runs."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from app_builder.graph.context import RunContext
from app_builder.storage.models import CompensationResult

logger = logging.getLogger(__name__)

FAILED_GENERATION_MESSAGE = (
    "Sorry, I failed to generate a response. "
    "Please try again with a more specific prompt or simpler request."
)
UNEXPECTED_ERROR_MESSAGE = "Sorry, an unexpected error occurred. Please try again."


def refund_credit(ctx: RunContext, step_name: str) -> CompensationResult:
    """Refund the generation cost once per run; failures are logged, never raised."""
    if ctx.refund_attempted:
        logger.info("run event=refund_skipped run_id=%s reason=already_attempted", ctx.run_id)
        return _record(ctx, CompensationResult(name=step_name, attempted=False, succeeded=False))
    ctx.refund_attempted = True

    def _refund() -> dict[str, Any]:
        try:
            ctx.services.ledger.reward(ctx.event.user_id, ctx.settings.generation_cost)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error refunding credit run_id=%s: %s", ctx.run_id, exc)
            return {"attempted": True, "succeeded": False, "error": str(exc)}
        logger.info("Credit refunded run_id=%s user_id=%s", ctx.run_id, ctx.event.user_id)
        return {"attempted": True, "succeeded": True, "error": None}

    outcome = ctx.steps.run(step_name, _refund)
    return _record(ctx, CompensationResult(name=step_name, **outcome))


def save_error_message(
    ctx: RunContext,
    step_name: str,
    content: str,
    *,
    dedup: bool,
) -> str | None:
    """Persist an ERROR message, optionally skipping it when one was saved recently."""

    def _save() -> str | None:
        storage = ctx.services.storage
        if dedup:
            since = datetime.now(UTC) - timedelta(seconds=ctx.settings.error_dedup_window_s)
            existing = storage.find_recent_error(ctx.event.project_id, since=since)
            if existing is not None:
                logger.info(
                    "run event=error_message_deduplicated run_id=%s existing=%s",
                    ctx.run_id,
                    existing.message_id,
                )
                return None
        record = storage.create_message(
            project_id=ctx.event.project_id,
            content=content,
            role="ASSISTANT",
            type="ERROR",
        )
        return record.message_id

    return ctx.steps.run(step_name, _save)


def cleanup_sandbox(ctx: RunContext) -> CompensationResult:
    """Tear down the run's sandbox when enabled; failures are swallowed after logging."""
    if not ctx.sandbox_id or not ctx.settings.kill_sandbox_on_failure:
        return _record(
            ctx, CompensationResult(name="cleanup-sandbox", attempted=False, succeeded=False)
        )
    try:
        ctx.services.sandbox.kill(ctx.sandbox_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error closing sandbox sandbox_id=%s: %s", ctx.sandbox_id, exc)
        return _record(
            ctx,
            CompensationResult(
                name="cleanup-sandbox", attempted=True, succeeded=False, error=str(exc)
            ),
        )
    return _record(ctx, CompensationResult(name="cleanup-sandbox", attempted=True, succeeded=True))


def _record(ctx: RunContext, result: CompensationResult) -> CompensationResult:
    ctx.compensations.append(result)
    return result
