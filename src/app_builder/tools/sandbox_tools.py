"""Sandbox-bound tool implementations.

Each tool wraps its side effects in one durable step and converts failures into
text the agent can read, so a failing command or write never raises into the
agent loop.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from app_builder.sandbox.base import SandboxCommandError
from app_builder.tools.context import ToolContext, ToolOutcome
from app_builder.tools.schemas import CreateOrUpdateFilesInput, ReadFilesInput, TerminalInput

logger = logging.getLogger(__name__)


def terminal(payload: TerminalInput, context: ToolContext) -> ToolOutcome:
    def _run() -> str:
        buffers = {"stdout": "", "stderr": ""}

        def on_stdout(data: str) -> None:
            buffers["stdout"] += data

        def on_stderr(data: str) -> None:
            buffers["stderr"] += data

        try:
            result = context.sandbox.run_command(
                context.sandbox_id,
                payload.command,
                on_stdout=on_stdout,
                on_stderr=on_stderr,
            )
            if result.exit_code != 0:
                if not buffers["stderr"]:
                    buffers["stderr"] = result.stderr
                raise SandboxCommandError(result.exit_code, result.stderr)
            return result.stdout
        except Exception as exc:  # noqa: BLE001
            message = (
                f"Command failed: {exc} \n"
                f"stdout: {buffers['stdout']}\n"
                f"stderr: {buffers['stderr']}"
            )
            logger.error(message)
            return message

    return ToolOutcome(output=context.steps.run("terminal", _run))


def create_or_update_files(payload: CreateOrUpdateFilesInput, context: ToolContext) -> ToolOutcome:
    # The step records only this batch; it is merged into agent state on replay too.
    def _write() -> dict[str, str] | str:
        written: dict[str, str] = {}
        try:
            for entry in payload.files:
                context.sandbox.write_file(context.sandbox_id, entry.path, entry.content)
                written[entry.path] = entry.content
        except Exception as exc:  # noqa: BLE001
            logger.error("Error creating/updating files: %s", exc)
            return f"Error:{exc}"
        return written

    result: Any = context.steps.run("createOrUpdateFiles", _write)
    if isinstance(result, dict):
        return ToolOutcome(
            output=f"Updated files: {', '.join(result)}",
            updates={"files": result},
        )
    return ToolOutcome(output=result)


def read_files(payload: ReadFilesInput, context: ToolContext) -> ToolOutcome:
    def _read() -> str:
        try:
            contents = [
                {"path": path, "content": context.sandbox.read_file(context.sandbox_id, path)}
                for path in payload.files
            ]
        except Exception as exc:  # noqa: BLE001
            logger.error("Error reading files: %s", exc)
            return f"Error:{exc}"
        return json.dumps(contents)

    return ToolOutcome(output=context.steps.run("readFiles", _read))
