"""Schema-enforcing tool dispatch with agent-state access control."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from pydantic import ValidationError

from app_builder.tools.context import ToolContext, ToolOutcome
from app_builder.tools.registry import ToolSpec, build_registry

logger = logging.getLogger(__name__)


class ToolAccessError(RuntimeError):
    """Raised when a tool writes an agent-state field it did not declare."""


class ToolExecutor:
    """Validate arguments, run one tool and apply its declared state writes.

    Bad arguments and unknown tools come back as `Error:` text for the model.
    Access violations are programming errors and propagate.
    """

    def __init__(self, *, registry: dict[str, ToolSpec] | None = None) -> None:
        self.registry = registry or build_registry()

    def execute(self, tool_name: str, raw_args: str | dict[str, Any], context: ToolContext) -> str:
        started_at = time.perf_counter()
        spec = self.registry.get(tool_name)
        if spec is None:
            return self._reject(context, tool_name, started_at, f"Unknown tool: {tool_name}")

        try:
            args = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
            payload = spec.input_model.model_validate(args or {})
        except (json.JSONDecodeError, ValidationError) as exc:
            return self._reject(context, tool_name, started_at, f"Invalid arguments: {exc}")

        outcome = spec.fn(payload, context)
        self._apply_updates(tool_name, spec, outcome, context)

        output = outcome.output
        status = "failed" if isinstance(output, str) and _is_failure_text(output) else "ok"
        self._record(context, tool_name, status, started_at)
        if isinstance(output, str):
            return output
        return json.dumps(output)

    @staticmethod
    def _apply_updates(
        tool_name: str,
        spec: ToolSpec,
        outcome: ToolOutcome,
        context: ToolContext,
    ) -> None:
        undeclared = set(outcome.updates) - spec.writes
        if undeclared:
            raise ToolAccessError(
                f"Tool '{tool_name}' wrote undeclared state fields: {sorted(undeclared)}"
            )
        for field_name, value in outcome.updates.items():
            context.state.apply(field_name, value)

    def _reject(self, context: ToolContext, tool_name: str, started_at: float, reason: str) -> str:
        logger.warning("tool event=rejected tool=%s reason=%s", tool_name, reason)
        self._record(context, tool_name, "rejected", started_at)
        return f"Error:{reason}"

    @staticmethod
    def _record(context: ToolContext, tool_name: str, status: str, started_at: float) -> None:
        context.events.append(
            {
                "round": context.round,
                "tool": tool_name,
                "status": status,
                "duration_ms": _duration_ms(started_at),
            }
        )


def _is_failure_text(output: str) -> bool:
    return output.startswith("Error:") or output.startswith("Command failed:")


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
