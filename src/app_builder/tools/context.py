"""Dispatch context handed to every tool call of a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app_builder.graph.state import AgentState
from app_builder.graph.steps import StepRunner
from app_builder.sandbox.base import SandboxService


@dataclass
class ToolContext:
    sandbox_id: str
    sandbox: SandboxService
    steps: StepRunner
    state: AgentState
    round: int = 0
    events: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ToolOutcome:
    """Text or data for the model plus the agent-state fields the tool writes."""

    output: Any
    updates: dict[str, Any] = field(default_factory=dict)
