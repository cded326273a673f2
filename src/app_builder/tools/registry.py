"""Tool registry for the sandbox coding agent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from app_builder.tools import sandbox_tools
from app_builder.tools.context import ToolContext, ToolOutcome
from app_builder.tools.schemas import CreateOrUpdateFilesInput, ReadFilesInput, TerminalInput


@dataclass(frozen=True)
class ToolSpec:
    input_model: type[BaseModel]
    fn: Callable[[Any, ToolContext], ToolOutcome]
    description: str
    writes: frozenset[str] = frozenset()


def build_registry() -> dict[str, ToolSpec]:
    return {
        "terminal": ToolSpec(
            input_model=TerminalInput,
            fn=sandbox_tools.terminal,
            description="Use terminal to run commands",
        ),
        "createOrUpdateFiles": ToolSpec(
            input_model=CreateOrUpdateFilesInput,
            fn=sandbox_tools.create_or_update_files,
            description="Create or update files in the sandbox",
            writes=frozenset({"files"}),
        ),
        "readFiles": ToolSpec(
            input_model=ReadFilesInput,
            fn=sandbox_tools.read_files,
            description="Read files from the sandbox",
        ),
    }


def list_tools() -> list[str]:
    return sorted(build_registry().keys())


def tool_definitions(registry: dict[str, ToolSpec]) -> list[dict[str, Any]]:
    """Render the registry as chat-completions `tools` entries."""
    return [
        {
            "type": "function",
            "function": {
                "name": name,
                "description": spec.description,
                "parameters": spec.input_model.model_json_schema(),
            },
        }
        for name, spec in registry.items()
    ]
