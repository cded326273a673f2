"""Tooling layer for sandbox-bound, schema-validated execution."""

from app_builder.tools.context import ToolContext, ToolOutcome
from app_builder.tools.gateway import ToolAccessError, ToolExecutor
from app_builder.tools.registry import ToolSpec, build_registry, list_tools, tool_definitions

__all__ = [
    "ToolAccessError",
    "ToolContext",
    "ToolExecutor",
    "ToolOutcome",
    "ToolSpec",
    "build_registry",
    "list_tools",
    "tool_definitions",
]
